"""Globbing pattern validation for source relations."""

from __future__ import annotations

import glob
import logging
import os
from typing import Iterable, List, Mapping, Optional

from versindex.errors import ValidationError
from versindex.index.constants import GLOBBING_PATTERN_KEY

logger = logging.getLogger(__name__)


def globbing_patterns(options: Mapping[str, str]) -> Optional[List[str]]:
    """オプションからglobパターンを取得（カンマ区切り、前後の空白を除去して絶対パス化）

    Returns:
        パターン一覧（オプションがなければNone）
    """
    raw = options.get(GLOBBING_PATTERN_KEY)
    if raw is None:
        return None
    patterns = [os.path.abspath(p.strip()) for p in raw.split(",") if p.strip()]
    if not patterns:
        raise ValidationError(
            f"Empty globbing pattern in option {GLOBBING_PATTERN_KEY}",
            field=GLOBBING_PATTERN_KEY,
            value=raw,
        )
    return patterns


def expand_patterns(patterns: Iterable[str]) -> set:
    """パターンを展開した絶対パス集合"""
    expanded = set()
    for pattern in patterns:
        expanded.update(os.path.abspath(p) for p in glob.glob(pattern))
    return expanded


def validate_root_paths(patterns: List[str], root_paths: Iterable[str]) -> List[str]:
    """すべてのルートパスがglobパターンの展開結果に含まれることを検証

    Args:
        patterns: globパターン（絶対パス）
        root_paths: データセットのルートパス

    Returns:
        リレーションに記録するルートパス（パターンそのもの）

    Raises:
        ValidationError: 展開結果に含まれないルートパスがある場合
    """
    expanded = expand_patterns(patterns)
    mismatched = sorted(
        p for p in (os.path.abspath(r) for r in root_paths) if p not in expanded
    )
    if mismatched:
        raise ValidationError(
            f"Some root paths are not covered by the globbing pattern "
            f"'{','.join(patterns)}': {', '.join(mismatched)}",
            field=GLOBBING_PATTERN_KEY,
            value=mismatched,
        )

    logger.debug(f"Root paths validated against globbing pattern {patterns}")
    return list(patterns)
