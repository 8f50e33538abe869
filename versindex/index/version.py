"""Index Version Manager.

バージョンIDの払い出し、バージョンディレクトリの配置、アクティブなバージョンの
一覧と統計情報を扱う。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import pyarrow as pa

from versindex.index.constants import INDEX_VERSION_DIRECTORY_PREFIX
from versindex.index.log import IndexLogEntry, IndexLogManager, parse_version_directory
from versindex.index.types import Relation

logger = logging.getLogger(__name__)


def version_directory_name(version_id: int) -> str:
    """バージョンディレクトリ名（``v__=<id>``）"""
    if version_id < 0:
        raise ValueError(f"Version id must be non-negative: {version_id}")
    return f"{INDEX_VERSION_DIRECTORY_PREFIX}={version_id}"


@dataclass(frozen=True)
class IndexVersion:
    """インデックスバージョン（作成後は変更しない）

    Attributes:
        version_id: バージョンID
        relation: ソースリレーション
        signature: ソースデータのシグネチャ
        root_path: バージョンディレクトリの絶対パス
    """
    version_id: int
    relation: Relation
    signature: str
    root_path: str


@dataclass(frozen=True)
class IndexStatistics:
    """インデックス統計情報

    最新の安定ログエントリから導出される読み取り専用の射影。

    Attributes:
        name: インデックス名
        index_root_paths: アクティブなバージョンディレクトリ
        indexed_columns: インデックス列
        included_columns: 付随列
        schema: ソーススキーマ（JSON）
        source_root_paths: ソースのルートパス
        source_file_count: ソースファイル数
        source_size_bytes: ソースファイル合計サイズ
        index_file_count: インデックスデータファイル数
        index_size_bytes: インデックスデータ合計サイズ
        has_lineage: リネージ列の有無
        state: インデックス状態
        signature: ソースデータのシグネチャ
        excluded_file_count: クイックリフレッシュで除外したファイル数
    """
    name: str
    index_root_paths: tuple
    indexed_columns: tuple = ()
    included_columns: tuple = ()
    schema: str = ""
    source_root_paths: tuple = ()
    source_file_count: int = 0
    source_size_bytes: int = 0
    index_file_count: int = 0
    index_size_bytes: int = 0
    has_lineage: bool = False
    state: str = ""
    signature: str = ""
    excluded_file_count: int = 0

    @classmethod
    def from_entry(cls, entry: IndexLogEntry, index_path: str | Path) -> IndexStatistics:
        """ログエントリから統計情報を作成

        Args:
            entry: 最新の安定ログエントリ
            index_path: インデックスのルートディレクトリ

        Returns:
            統計情報
        """
        index_path = Path(index_path)
        root_paths = tuple(
            str(index_path / version_directory_name(v))
            for v in entry.active_version_ids()
            if (index_path / version_directory_name(v)).is_dir()
        )

        index_size = 0
        for rel_path in entry.index_files:
            data_file = index_path / rel_path
            if data_file.exists():
                index_size += data_file.stat().st_size

        content = entry.source_content
        return cls(
            name=entry.name,
            index_root_paths=root_paths,
            indexed_columns=tuple(entry.config.indexed_columns),
            included_columns=tuple(entry.config.included_columns),
            schema=entry.relation.schema,
            source_root_paths=tuple(entry.relation.root_paths),
            source_file_count=content.file_count,
            source_size_bytes=content.total_size,
            index_file_count=len(entry.index_files),
            index_size_bytes=index_size,
            has_lineage=entry.has_lineage,
            state=entry.state.value,
            signature=entry.signature,
            excluded_file_count=len(entry.excluded_file_ids),
        )

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "name": self.name,
            "index_root_paths": list(self.index_root_paths),
            "indexed_columns": list(self.indexed_columns),
            "included_columns": list(self.included_columns),
            "schema": self.schema,
            "source_root_paths": list(self.source_root_paths),
            "source_file_count": self.source_file_count,
            "source_size_bytes": self.source_size_bytes,
            "index_file_count": self.index_file_count,
            "index_size_bytes": self.index_size_bytes,
            "has_lineage": self.has_lineage,
            "state": self.state,
            "signature": self.signature,
            "excluded_file_count": self.excluded_file_count,
        }

    def to_table(self) -> pa.Table:
        """1行のpyarrowテーブルに変換"""
        return pa.Table.from_pylist([self.to_dict()], schema=STATISTICS_SCHEMA)


STATISTICS_SCHEMA = pa.schema(
    [
        pa.field("name", pa.string()),
        pa.field("index_root_paths", pa.list_(pa.string())),
        pa.field("indexed_columns", pa.list_(pa.string())),
        pa.field("included_columns", pa.list_(pa.string())),
        pa.field("schema", pa.string()),
        pa.field("source_root_paths", pa.list_(pa.string())),
        pa.field("source_file_count", pa.int64()),
        pa.field("source_size_bytes", pa.int64()),
        pa.field("index_file_count", pa.int64()),
        pa.field("index_size_bytes", pa.int64()),
        pa.field("has_lineage", pa.bool_()),
        pa.field("state", pa.string()),
        pa.field("signature", pa.string()),
        pa.field("excluded_file_count", pa.int64()),
    ]
)


@dataclass
class VersionManager:
    """バージョンマネージャ

    バージョンIDは既知の全バージョン（ログに記録されたもの、およびディスク上に
    存在するディレクトリ）の最大値 + 1。削除されたバージョンのIDも再利用しない。

    Attributes:
        index_path: インデックスのルートディレクトリ
        log_manager: ログマネージャ
    """
    index_path: Path
    log_manager: IndexLogManager = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        self.index_path = Path(self.index_path)
        if self.log_manager is None:
            self.log_manager = IndexLogManager(self.index_path)

    def version_path(self, version_id: int) -> Path:
        """バージョンディレクトリのパス"""
        return self.index_path / version_directory_name(version_id)

    def known_version_ids(self) -> List[int]:
        """既知の全バージョンID（昇順）"""
        ids = set()
        if self.index_path.exists():
            for child in self.index_path.iterdir():
                version_id = parse_version_directory(child.name)
                if version_id is not None and child.is_dir():
                    ids.add(version_id)
        for entry in self.log_manager.list_entries():
            ids.add(entry.version_id)
            ids.update(entry.active_version_ids())
        return sorted(ids)

    def allocate_next_version(self) -> int:
        """次のバージョンIDを払い出す（既存がなければ0）"""
        known = self.known_version_ids()
        next_id = known[-1] + 1 if known else 0
        logger.debug(f"Allocated version {next_id} for {self.index_path}")
        return next_id

    def list_active_versions(self) -> List[IndexVersion]:
        """ログがアクティブとしているバージョン（ID昇順）"""
        return [
            IndexVersion(
                version_id=entry.version_id,
                relation=entry.relation,
                signature=entry.signature,
                root_path=str(self.version_path(entry.version_id)),
            )
            for entry in self.log_manager.list_active_entries()
        ]

    def stats(self) -> IndexStatistics | None:
        """最新の安定エントリから統計情報を作成（未作成ならNone）"""
        entry = self.log_manager.get_latest_stable_log()
        if entry is None:
            return None
        return IndexStatistics.from_entry(entry, self.index_path)
