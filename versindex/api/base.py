# Versindex API Base Types
"""
versindex.api.base - Python API 基本型定義
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from versindex.index.constants import DEFAULT_SUPPORTED_FORMATS
from versindex.index.refresh import RefreshAction, RefreshPlan
from versindex.index.version import IndexStatistics


@dataclass
class VersindexConfig:
    """Versindex設定"""

    # インデックスの保存先
    system_path: Path = field(default_factory=lambda: Path("./indexes"))

    # ソース設定
    supported_formats: str = DEFAULT_SUPPORTED_FORMATS

    # インデックス設定
    lineage_enabled: bool = False

    # リスティング設定
    parallel_workers: int = 4

    # ログ設定
    log_level: str = "INFO"

    def __post_init__(self):
        """パス変換"""
        if isinstance(self.system_path, str):
            self.system_path = Path(self.system_path)


@dataclass
class RefreshResult:
    """リフレッシュ結果"""

    index_name: str
    requested_mode: str
    action: RefreshAction
    plan: RefreshPlan
    version_id: int
    stats: IndexStatistics
    duration_ms: float = 0.0

    @property
    def changed(self) -> bool:
        """インデックスが更新されたか"""
        return self.action != RefreshAction.UP_TO_DATE

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "index_name": self.index_name,
            "requested_mode": self.requested_mode,
            "action": self.action.value,
            "plan": self.plan.to_dict(),
            "version_id": self.version_id,
            "duration_ms": self.duration_ms,
            "stats": self.stats.to_dict(),
        }
