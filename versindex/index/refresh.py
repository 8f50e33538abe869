"""Refresh Planner.

記録済みのファイル集合と現在のファイル一覧を比較し、リフレッシュ方式を決定する。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable

from versindex.errors import ValidationError
from versindex.index.constants import (
    REFRESH_MODE_FULL,
    REFRESH_MODE_QUICK,
    REFRESH_MODES,
)
from versindex.index.types import Content, FileInfo

logger = logging.getLogger(__name__)


class RefreshAction(Enum):
    """リフレッシュ判定結果

    Attributes:
        UP_TO_DATE: 変更なし（何もしない）
        QUICK: 削除のみ（メタデータのみ更新、バージョン据え置き）
        INCREMENTAL: 追加・変更あり（新バージョンを作成）
        FULL: 全再構築（明示的に要求された場合のみ）
    """
    UP_TO_DATE = "up_to_date"
    QUICK = "quick"
    INCREMENTAL = "incremental"
    FULL = "full"


@dataclass(frozen=True)
class RefreshPlan:
    """リフレッシュ計画

    Attributes:
        action: 判定結果
        deleted_files: 記録済みで現在存在しないファイル
        appended_files: 現在存在し記録されていないファイル
        current_files: 現在のファイル一覧
    """
    action: RefreshAction
    deleted_files: frozenset = field(default_factory=frozenset)
    appended_files: frozenset = field(default_factory=frozenset)
    current_files: frozenset = field(default_factory=frozenset)

    @property
    def has_deletions(self) -> bool:
        return bool(self.deleted_files)

    @property
    def has_additions(self) -> bool:
        return bool(self.appended_files)

    @property
    def is_noop(self) -> bool:
        return self.action == RefreshAction.UP_TO_DATE

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "action": self.action.value,
            "deleted_files": sorted(f.path for f in self.deleted_files),
            "appended_files": sorted(f.path for f in self.appended_files),
            "current_file_count": len(self.current_files),
        }


class RefreshPlanner:
    """リフレッシュプランナー

    判定規則:
        - 現在 == 記録済み → UP_TO_DATE
        - 現在 ⊂ 記録済み（削除のみ）→ QUICK
        - それ以外（追加・変更・削除と追加の混在）→ INCREMENTAL

    ファイルの比較は (path, size, modified_time) で行う。内容が変更された
    ファイルは「古いFileInfoの削除 + 新しいFileInfoの追加」として扱う。
    判定自体は例外を送出しない。

    Example:
        >>> planner = RefreshPlanner()
        >>> plan = planner.plan(entry.relation.content, current_files)
        >>> plan.action
        <RefreshAction.QUICK: 'quick'>
    """

    def plan(self, recorded: Content, current: Iterable[FileInfo]) -> RefreshPlan:
        """記録済みファイル集合と現在のファイル一覧からリフレッシュ計画を作成

        Args:
            recorded: インデックス作成時に記録したContent
            current: ソースアダプタが列挙した現在のファイル

        Returns:
            リフレッシュ計画
        """
        recorded_files = frozenset(recorded.files)
        current_files = frozenset(current)

        deleted = recorded_files - current_files
        appended = current_files - recorded_files

        if not deleted and not appended:
            action = RefreshAction.UP_TO_DATE
        elif not appended:
            action = RefreshAction.QUICK
        else:
            action = RefreshAction.INCREMENTAL

        logger.debug(
            f"Refresh plan: action={action.value}, "
            f"deleted={len(deleted)}, appended={len(appended)}"
        )

        return RefreshPlan(
            action=action,
            deleted_files=deleted,
            appended_files=appended,
            current_files=current_files,
        )

    def resolve(self, requested_mode: str, plan: RefreshPlan) -> RefreshAction:
        """要求されたモードと計画から実際に実行するアクションを決定

        - ``full``: 常に全再構築
        - 変更なし: ``full`` 以外は何もしない
        - ``quick``: 削除のみの場合のみQUICK、追加があればINCREMENTALに昇格
        - ``incremental``: 変更があればINCREMENTAL

        Args:
            requested_mode: 要求モード（incremental / quick / full）
            plan: リフレッシュ計画

        Returns:
            実行するアクション

        Raises:
            ValidationError: 未知のモードの場合
        """
        mode = validate_refresh_mode(requested_mode)

        if mode == REFRESH_MODE_FULL:
            return RefreshAction.FULL
        if plan.action == RefreshAction.UP_TO_DATE:
            return RefreshAction.UP_TO_DATE
        if mode == REFRESH_MODE_QUICK:
            if plan.action == RefreshAction.QUICK:
                return RefreshAction.QUICK
            logger.info(
                f"Quick refresh requested but {len(plan.appended_files)} appended or "
                f"modified file(s) found, falling back to incremental refresh"
            )
            return RefreshAction.INCREMENTAL
        return RefreshAction.INCREMENTAL


def validate_refresh_mode(mode: str) -> str:
    """リフレッシュモードを検証して正規化"""
    normalized = (mode or "").strip().lower()
    if normalized not in REFRESH_MODES:
        raise ValidationError(
            f"Unsupported refresh mode: {mode}. "
            f"Supported modes: {', '.join(REFRESH_MODES)}",
            field="mode",
            value=mode,
        )
    return normalized
