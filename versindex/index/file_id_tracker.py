"""File Identity Tracker.

ソースファイルのパスに安定した整数IDを割り当てる。リネージ列はこのIDで
インデックス行と元ファイルを結び付ける。
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping

from versindex.errors import IdentityConflictError
from versindex.index.types import FileInfo

logger = logging.getLogger(__name__)


class FileIdTracker:
    """ファイルID追跡器

    パス <-> ID の双方向マップ。追記のみで縮小しない。

    - IDは割り当て順に単調増加する（0始まり）
    - 同じパスに2つ以上のIDを割り当てない（マージ時も既存エントリを優先）
    - パスがデータセットから消えてもIDは再利用しない

    ビルド・リフレッシュ中は単一の書き込み者のみが使用する。完了後は
    :meth:`freeze` で読み取り専用にし、次回のリフレッシュでは :meth:`copy`
    で派生コピーを作る。

    Example:
        >>> tracker = FileIdTracker()
        >>> tracker.id_for("/data/part-0.parquet")
        0
        >>> tracker.id_for("/data/part-1.parquet")
        1
        >>> tracker.id_for("/data/part-0.parquet")
        0
    """

    def __init__(self) -> None:
        self._path_to_id: Dict[str, int] = {}
        self._id_to_path: Dict[int, str] = {}
        self._max_id = -1
        self._frozen = False

    @property
    def max_id(self) -> int:
        """割り当て済みの最大ID（未割り当てなら-1）"""
        return self._max_id

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._path_to_id)

    def __contains__(self, path: object) -> bool:
        return path in self._path_to_id

    def get_file_id(self, path: str) -> int | None:
        """パスのIDを取得（未登録ならNone）"""
        return self._path_to_id.get(path)

    def get_path(self, file_id: int) -> str | None:
        """IDのパスを取得（未登録ならNone）"""
        return self._id_to_path.get(file_id)

    def id_for(self, path: str) -> int:
        """パスのIDを取得し、未登録なら新しいIDを割り当てる

        Args:
            path: ファイルパス

        Returns:
            ファイルID

        Raises:
            IdentityConflictError: 読み取り専用のトラッカーで新規割り当てが必要な場合
        """
        existing = self._path_to_id.get(path)
        if existing is not None:
            return existing

        self._check_writable(path)
        new_id = self._max_id + 1
        self._assign(path, new_id)
        return new_id

    def add_files(self, files: Iterable[FileInfo]) -> List[FileInfo]:
        """ファイルを登録し、IDを付与したFileInfoを返す

        既にIDを持つFileInfoはそのIDで登録する。既存の割り当てと矛盾する場合や、
        新しいパスのIDが割り当て済みの最大ID以下の場合は例外。

        Args:
            files: ファイル一覧

        Returns:
            ID付きのファイル一覧（入力と同じ順序）
        """
        result = []
        for file in files:
            if file.id is not None:
                self._register(file.path, file.id)
                result.append(file)
            else:
                result.append(file.with_id(self.id_for(file.path)))
        return result

    def merge(self, mapping: Mapping[str, int]) -> None:
        """永続化済みのマップを取り込む

        既存エントリを先に参照し、同じパスに別のIDが指定されていれば
        IdentityConflictError を送出する。新しいパスはID順に登録するため、
        空のトラッカーへの取り込みでは永続化済みのIDがそのまま復元される。

        Args:
            mapping: パス -> ID
        """
        for path, file_id in sorted(mapping.items(), key=lambda kv: kv[1]):
            self._register(path, int(file_id))

    def to_map(self) -> Dict[str, int]:
        """パス -> ID のマップを返す"""
        return dict(self._path_to_id)

    @classmethod
    def from_map(cls, mapping: Mapping[str, int]) -> FileIdTracker:
        """永続化済みのマップから作成"""
        tracker = cls()
        tracker.merge(mapping)
        return tracker

    def copy(self) -> FileIdTracker:
        """書き込み可能な派生コピーを作成"""
        return FileIdTracker.from_map(self._path_to_id)

    def freeze(self) -> FileIdTracker:
        """読み取り専用にする"""
        self._frozen = True
        return self

    def _register(self, path: str, file_id: int) -> None:
        existing = self._path_to_id.get(path)
        if existing is not None:
            if existing != file_id:
                raise IdentityConflictError(
                    f"Path {path} already has id {existing}, cannot assign {file_id}",
                    path=path,
                    existing_id=existing,
                    conflicting_id=file_id,
                )
            return

        owner = self._id_to_path.get(file_id)
        if owner is not None:
            raise IdentityConflictError(
                f"File id {file_id} is already assigned to {owner}, cannot reuse it for {path}",
                path=path,
                existing_id=file_id,
            )
        if file_id <= self._max_id:
            raise IdentityConflictError(
                f"File id {file_id} for new path {path} does not follow the "
                f"largest assigned id {self._max_id}",
                path=path,
                conflicting_id=file_id,
            )

        self._check_writable(path)
        self._assign(path, file_id)

    def _assign(self, path: str, file_id: int) -> None:
        self._path_to_id[path] = file_id
        self._id_to_path[file_id] = path
        self._max_id = max(self._max_id, file_id)
        logger.debug(f"Assigned file id {file_id} to {path}")

    def _check_writable(self, path: str) -> None:
        if self._frozen:
            raise IdentityConflictError(
                f"Tracker is read-only, cannot assign an id to {path}",
                path=path,
            )
