# Index Module
"""
versindex.index - 変更検出とバージョン管理

Components:
- signature: ファイルのフィンガープリントとデータセットのシグネチャ
- FileIdTracker: ファイルパスへの安定したID割り当て
- RefreshPlanner: リフレッシュ方式の決定
- IndexLogManager: ログエントリの永続化
- VersionManager: バージョンの払い出しと統計情報
"""

from versindex.index.file_id_tracker import FileIdTracker
from versindex.index.log import IndexLogEntry, IndexLogManager, IndexState
from versindex.index.refresh import (
    RefreshAction,
    RefreshPlan,
    RefreshPlanner,
    validate_refresh_mode,
)
from versindex.index.signature import fingerprint, md5_hex, signature
from versindex.index.types import (
    Content,
    FileInfo,
    IndexConfig,
    Relation,
    SourceProperties,
    serialize_schema,
)
from versindex.index.version import (
    IndexStatistics,
    IndexVersion,
    VersionManager,
    version_directory_name,
)

__all__ = [
    # Types
    "FileInfo",
    "Content",
    "Relation",
    "SourceProperties",
    "IndexConfig",
    "serialize_schema",
    # Signature
    "fingerprint",
    "md5_hex",
    "signature",
    # Tracker
    "FileIdTracker",
    # Refresh
    "RefreshAction",
    "RefreshPlan",
    "RefreshPlanner",
    "validate_refresh_mode",
    # Log
    "IndexLogEntry",
    "IndexLogManager",
    "IndexState",
    # Version
    "IndexStatistics",
    "IndexVersion",
    "VersionManager",
    "version_directory_name",
]
