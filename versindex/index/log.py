"""Index Log.

インデックスのメタデータ（ログエントリ）をJSONファイルとして永続化する。

Layout:
    <index_path>/_versindex_log/0
    <index_path>/_versindex_log/1
    ...
    <index_path>/_versindex_log/latestStable

ログIDの確保は排他的なファイル作成で行い、同じインデックスへの同時書き込みを
検出する。``latestStable`` はアトミックに置き換えるため、読み取り側が書きかけの
バージョンを観測することはない。
"""

from __future__ import annotations

import json
import logging
import os
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from versindex.errors import ConcurrentWriteError, StorageError
from versindex.index.constants import (
    INDEX_LOG_DIRECTORY,
    INDEX_VERSION_DIRECTORY_PREFIX,
    LATEST_STABLE_LOG_NAME,
)
from versindex.index.types import Content, IndexConfig, Relation

logger = logging.getLogger(__name__)

_VERSION_DIR_PATTERN = re.compile(
    rf"^{re.escape(INDEX_VERSION_DIRECTORY_PREFIX)}=(\d+)$"
)


def parse_version_directory(name: str) -> int | None:
    """``v__=<id>`` 形式のディレクトリ名からバージョンIDを取得"""
    match = _VERSION_DIR_PATTERN.match(name)
    return int(match.group(1)) if match else None


class IndexState(Enum):
    """インデックス状態

    Attributes:
        CREATING: 作成中
        REFRESHING: リフレッシュ中
        ACTIVE: 利用可能（安定状態）
        FAILED: 失敗（直前の安定エントリが有効）
    """
    CREATING = "creating"
    REFRESHING = "refreshing"
    ACTIVE = "active"
    FAILED = "failed"

    @property
    def is_stable(self) -> bool:
        return self == IndexState.ACTIVE


@dataclass
class IndexLogEntry:
    """インデックスログエントリ

    Attributes:
        id: ログID
        name: インデックス名
        state: インデックス状態
        config: インデックス設定
        relation: ソースリレーション
        signature: ソースデータのシグネチャ
        version_id: このエントリが参照する最新バージョンID
        index_files: インデックスデータファイル（インデックスパスからの相対パス）
        excluded_file_ids: クイックリフレッシュで除外したソースファイルID
        has_lineage: リネージ列の有無
        file_ids: ファイルIDマップ（パス -> ID）
        timestamp: 作成日時
    """
    id: int
    name: str
    state: IndexState
    config: IndexConfig
    relation: Relation
    signature: str
    version_id: int
    index_files: List[str] = field(default_factory=list)
    excluded_file_ids: List[int] = field(default_factory=list)
    has_lineage: bool = False
    file_ids: Dict[str, int] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def source_content(self) -> Content:
        """記録済みのソースファイル集合"""
        return self.relation.content

    def active_version_ids(self) -> List[int]:
        """インデックスデータが参照するバージョンID（昇順）"""
        ids = set()
        for rel_path in self.index_files:
            version_id = parse_version_directory(rel_path.split("/", 1)[0])
            if version_id is not None:
                ids.add(version_id)
        return sorted(ids)

    def copy_with(self, **changes: Any) -> IndexLogEntry:
        """フィールドを置き換えたコピーを作成"""
        changes.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state.value,
            "config": self.config.to_dict(),
            "relation": self.relation.to_dict(),
            "signature": self.signature,
            "version_id": self.version_id,
            "index_files": list(self.index_files),
            "excluded_file_ids": list(self.excluded_file_ids),
            "has_lineage": self.has_lineage,
            "file_ids": dict(self.file_ids),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IndexLogEntry:
        """辞書から作成"""
        return cls(
            id=data["id"],
            name=data["name"],
            state=IndexState(data["state"]),
            config=IndexConfig.from_dict(data["config"]),
            relation=Relation.from_dict(data["relation"]),
            signature=data["signature"],
            version_id=data["version_id"],
            index_files=data.get("index_files", []),
            excluded_file_ids=data.get("excluded_file_ids", []),
            has_lineage=data.get("has_lineage", False),
            file_ids={k: int(v) for k, v in data.get("file_ids", {}).items()},
            timestamp=data.get("timestamp", datetime.now(timezone.utc).isoformat()),
        )


class IndexLogManager:
    """インデックスログマネージャ

    Example:
        >>> log_manager = IndexLogManager(Path("./indexes/index1"))
        >>> entry = log_manager.get_latest_stable_log()
        >>> if entry is not None:
        ...     print(entry.version_id)
    """

    def __init__(self, index_path: str | Path) -> None:
        """初期化

        Args:
            index_path: インデックスのルートディレクトリ
        """
        self.index_path = Path(index_path)
        self.log_dir = self.index_path / INDEX_LOG_DIRECTORY
        self.latest_stable_path = self.log_dir / LATEST_STABLE_LOG_NAME

    def list_log_ids(self) -> List[int]:
        """ログIDの一覧（昇順）"""
        if not self.log_dir.exists():
            return []
        return sorted(int(p.name) for p in self.log_dir.iterdir() if p.name.isdigit())

    def get_latest_id(self) -> int | None:
        """最新のログID"""
        ids = self.list_log_ids()
        return ids[-1] if ids else None

    def get_log(self, log_id: int) -> IndexLogEntry | None:
        """ログエントリを取得"""
        return self._read(self.log_dir / str(log_id))

    def get_latest_log(self) -> IndexLogEntry | None:
        """最新のログエントリを取得"""
        latest_id = self.get_latest_id()
        return None if latest_id is None else self.get_log(latest_id)

    def get_latest_stable_log(self) -> IndexLogEntry | None:
        """最新の安定（ACTIVE）ログエントリを取得

        ``latestStable`` がない場合はログを新しい順に走査する。
        """
        entry = self._read(self.latest_stable_path)
        if entry is not None:
            return entry

        for log_id in reversed(self.list_log_ids()):
            entry = self.get_log(log_id)
            if entry is not None and entry.state.is_stable:
                return entry
        return None

    def list_entries(self) -> List[IndexLogEntry]:
        """全ログエントリ（ID昇順）"""
        entries = []
        for log_id in self.list_log_ids():
            entry = self.get_log(log_id)
            if entry is not None:
                entries.append(entry)
        return entries

    def list_active_entries(self) -> List[IndexLogEntry]:
        """現在アクティブなバージョンを作成・更新したエントリ

        最新の安定エントリが参照する各バージョンについて、そのバージョンを
        最後に記録した安定エントリを返す（バージョンID昇順）。
        """
        latest = self.get_latest_stable_log()
        if latest is None:
            return []

        active_ids = set(latest.active_version_ids())
        by_version: Dict[int, IndexLogEntry] = {}
        for entry in self.list_entries():
            if (
                entry.state.is_stable
                and entry.id <= latest.id
                and entry.version_id in active_ids
            ):
                by_version[entry.version_id] = entry
        return [by_version[v] for v in sorted(by_version)]

    def write_log(self, log_id: int, entry: IndexLogEntry) -> None:
        """ログエントリを書き込み

        同じIDのエントリが既に存在する場合は ConcurrentWriteError。

        Args:
            log_id: ログID
            entry: ログエントリ
        """
        self.log_dir.mkdir(parents=True, exist_ok=True)
        target = self.log_dir / str(log_id)
        tmp = self.log_dir / f".{log_id}.{uuid.uuid4().hex}.tmp"

        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(entry.to_dict(), f, indent=2, ensure_ascii=False)
            os.link(tmp, target)
        except FileExistsError as e:
            raise ConcurrentWriteError(
                f"Log entry {log_id} already exists for index '{entry.name}'; "
                f"another create or refresh is in progress",
                log_id=log_id,
                cause=e,
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to write log entry {log_id}", path=str(target), cause=e
            ) from e
        finally:
            if tmp.exists():
                tmp.unlink()

        logger.debug(f"Wrote log entry {log_id} ({entry.state.value}) to {target}")

    def create_latest_stable_log(self, log_id: int) -> bool:
        """指定IDのエントリを ``latestStable`` として公開

        Returns:
            エントリが安定状態で公開できた場合True
        """
        entry = self.get_log(log_id)
        if entry is None or not entry.state.is_stable:
            return False

        tmp = self.log_dir / f".{LATEST_STABLE_LOG_NAME}.{uuid.uuid4().hex}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(entry.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.latest_stable_path)
        except OSError as e:
            if tmp.exists():
                tmp.unlink()
            raise StorageError(
                "Failed to publish latest stable log",
                path=str(self.latest_stable_path),
                cause=e,
            ) from e
        return True

    def _read(self, path: Path) -> Optional[IndexLogEntry]:
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(
                f"Failed to read log entry: {e}", path=str(path), cause=e
            ) from e
        return IndexLogEntry.from_dict(data)
