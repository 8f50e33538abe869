"""File Index.

データセットのファイル一覧（リスティング）、Hiveパーティションの検出、
pyarrowによるファイル読み込みを扱う。
"""

from __future__ import annotations

import glob
import logging
import os
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pyarrow as pa
import pyarrow.csv as pa_csv
import pyarrow.json as pa_json
import pyarrow.parquet as pq

from versindex.errors import StorageError, UnsupportedSourceError
from versindex.index.constants import BASE_PATH_OPTION_KEY
from versindex.index.types import FileInfo
from versindex.sources.file_status import FileStatusAdapter, NativeFileStatus

logger = logging.getLogger(__name__)

# ルート直下から再帰的にステータスを返すリスティングフック
ListingHook = Callable[[str], Iterable[Any]]

_GLOB_CHARS = set("*?[{")


def to_input_file_name(path: str) -> str:
    """リネージで使う正規化済みのファイル名（``file:///abs/path``）

    インデックス構築時のリネージ列とソースアダプタのリネージ対応表の両方で
    この関数を使い、同じファイルが同じ文字列になるようにする。
    """
    return Path(os.path.abspath(path)).as_uri()


def has_glob(path: str) -> bool:
    return any(c in _GLOB_CHARS for c in path)


def expand_paths(paths: Iterable[str]) -> List[str]:
    """globを展開して絶対パスの一覧を返す（順序保持・重複除去）"""
    expanded: List[str] = []
    for path in paths:
        path = os.path.abspath(path)
        matches = sorted(glob.glob(path)) if has_glob(path) else [path]
        for match in matches:
            if match not in expanded:
                expanded.append(match)
    return expanded


def _is_hidden(name: str) -> bool:
    return name.startswith((".", "_"))


def _parse_partition_dir(name: str) -> Optional[Tuple[str, str]]:
    key, sep, value = name.partition("=")
    if not sep or not key:
        return None
    return key, value


@dataclass(frozen=True)
class PartitionSpec:
    """パーティション情報

    Attributes:
        partition_columns: パーティション列（階層順）
        partitions: (パーティション値, パーティションディレクトリ) の一覧
    """
    partition_columns: Tuple[str, ...] = ()
    partitions: Tuple[Tuple[Tuple[Tuple[str, str], ...], str], ...] = ()

    @property
    def is_partitioned(self) -> bool:
        return bool(self.partition_columns)

    @property
    def partition_paths(self) -> List[str]:
        return [path for _, path in self.partitions]


class FileIndex(ABC):
    """ファイルインデックス（データセットの所在）"""

    @property
    @abstractmethod
    def root_paths(self) -> List[str]:
        ...

    @abstractmethod
    def all_files(self) -> List[FileInfo]:
        """データセットを構成する全ファイル"""

    @abstractmethod
    def refresh(self) -> None:
        """キャッシュ済みのリスティングを破棄"""


class PartitioningAwareFileIndex(FileIndex):
    """Hiveパーティションを認識するファイルインデックス"""

    @property
    @abstractmethod
    def partition_spec(self) -> PartitionSpec:
        ...

    @abstractmethod
    def partition_values(self, path: str) -> Dict[str, str]:
        """ファイルのパーティション値"""


class InMemoryFileIndex(PartitioningAwareFileIndex):
    """ルートパスを再帰的に列挙してメモリに保持するファイルインデックス

    - ``.`` / ``_`` で始まるファイル・ディレクトリは無視する
    - ``key=value`` 形式のディレクトリはHiveパーティションとして扱う
    - ステータス取得はスレッドプールで並列に行う
    - リスティングは完了した時点でのみ公開する（途中で失敗した場合は何も残さない）

    Example:
        >>> index = InMemoryFileIndex(["/data/table"])
        >>> files = index.all_files()
    """

    def __init__(
        self,
        root_paths: Sequence[str],
        parallel_workers: int = 4,
        listing_hook: ListingHook | None = None,
        base_path: str | None = None,
    ) -> None:
        """初期化

        Args:
            root_paths: ルートパス（ファイルまたはディレクトリ、絶対パス）
            parallel_workers: ステータス取得の並列数
            listing_hook: 指定された場合、ルートごとのステータス列挙に使う
            base_path: パーティション検出の基準パス
        """
        self._root_paths = [os.path.abspath(p) for p in root_paths]
        self.parallel_workers = max(1, parallel_workers)
        self.listing_hook = listing_hook
        self.base_path = os.path.abspath(base_path) if base_path else None
        self._files: Optional[List[FileInfo]] = None
        self._partition_spec: Optional[PartitionSpec] = None
        self._partition_values: Dict[str, Dict[str, str]] = {}
        self._status_variant: Optional[str] = None

    @property
    def root_paths(self) -> List[str]:
        return list(self._root_paths)

    @property
    def status_variant(self) -> Optional[str]:
        """直近のリスティングで使ったステータス形式"""
        return self._status_variant

    def all_files(self) -> List[FileInfo]:
        if self._files is None:
            self._list()
        return list(self._files or [])

    @property
    def partition_spec(self) -> PartitionSpec:
        if self._partition_spec is None:
            self._list()
        return self._partition_spec or PartitionSpec()

    def partition_values(self, path: str) -> Dict[str, str]:
        if self._files is None:
            self._list()
        return dict(self._partition_values.get(path, {}))

    def refresh(self) -> None:
        self._files = None
        self._partition_spec = None
        self._partition_values = {}

    # === Listing ===

    def _list(self) -> None:
        adapter = FileStatusAdapter()
        statuses = []
        for root in self._root_paths:
            statuses.extend(self._list_root(root))

        files = []
        for raw in statuses:
            status = adapter.adapt(raw)
            if status.is_dir:
                continue
            if _is_hidden(os.path.basename(status.path)):
                continue
            files.append(status.to_file_info())

        files.sort(key=lambda f: f.path)
        self._status_variant = adapter.variant
        partition_spec, partition_values = self._infer_partitions(files)

        # 完了後にまとめて公開
        self._files = files
        self._partition_spec = partition_spec
        self._partition_values = partition_values
        logger.debug(
            f"Listed {len(files)} file(s) under {len(self._root_paths)} root path(s)"
        )

    def _list_root(self, root: str) -> List[Any]:
        if self.listing_hook is not None:
            return list(self.listing_hook(root))

        if not os.path.exists(root):
            raise StorageError(f"Path does not exist: {root}", path=root)
        if os.path.isfile(root):
            return [NativeFileStatus.from_path(root)]

        leaf_paths = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not _is_hidden(d))
            leaf_paths.extend(
                os.path.join(dirpath, name)
                for name in sorted(filenames)
                if not _is_hidden(name)
            )

        with ThreadPoolExecutor(max_workers=self.parallel_workers) as executor:
            return list(executor.map(NativeFileStatus.from_path, leaf_paths))

    def _infer_partitions(
        self, files: List[FileInfo]
    ) -> Tuple[PartitionSpec, Dict[str, Dict[str, str]]]:
        columns: Optional[Tuple[str, ...]] = None
        partitions: Dict[str, Tuple[Tuple[str, str], ...]] = {}
        values_by_file: Dict[str, Dict[str, str]] = {}

        for file in files:
            base = self.base_path or self._root_for(file.path)
            if base is None:
                continue
            rel_dir = os.path.relpath(os.path.dirname(file.path), base)
            parts = [] if rel_dir == os.curdir else rel_dir.split(os.sep)
            parsed = [_parse_partition_dir(p) for p in parts]
            if not parsed or any(p is None for p in parsed):
                if columns:
                    raise UnsupportedSourceError(
                        f"Inconsistent partition layout under {base}: {file.path}"
                    )
                columns = ()
                continue

            file_columns = tuple(k for k, _ in parsed)  # type: ignore[misc]
            if columns is None:
                columns = file_columns
            elif columns != file_columns:
                raise UnsupportedSourceError(
                    f"Conflicting partition columns {columns} and {file_columns} "
                    f"under {base}"
                )

            values = tuple(parsed)  # type: ignore[arg-type]
            partitions[os.path.dirname(file.path)] = values
            values_by_file[file.path] = dict(values)

        spec = PartitionSpec(
            partition_columns=columns or (),
            partitions=tuple(sorted((v, p) for p, v in partitions.items())),
        )
        return spec, values_by_file

    def _root_for(self, path: str) -> Optional[str]:
        for root in self._root_paths:
            if path == root:
                return os.path.dirname(root)
            if path.startswith(root.rstrip(os.sep) + os.sep):
                return root
        return None


# === Reading ===


def _read_orc(path: str) -> pa.Table:
    from pyarrow import orc

    return orc.read_table(path)


READERS: Dict[str, Callable[[str], pa.Table]] = {
    "parquet": lambda path: pq.read_table(path),
    "csv": lambda path: pa_csv.read_csv(path),
    "json": lambda path: pa_json.read_json(path),
    "orc": _read_orc,
}


def read_file(path: str, file_format: str) -> pa.Table:
    """1ファイルをpyarrowテーブルとして読み込み

    Raises:
        UnsupportedSourceError: 読み込めないフォーマットの場合
        StorageError: 読み込みに失敗した場合
    """
    reader = READERS.get(file_format.lower())
    if reader is None:
        raise UnsupportedSourceError(f"No reader for file format: {file_format}")
    try:
        return reader(path)
    except (OSError, pa.ArrowException) as e:
        raise StorageError(f"Failed to read {path}: {e}", path=path, cause=e) from e


@dataclass
class FileDataset:
    """ファイルベースのデータセット

    Attributes:
        location: ファイルインデックス
        data_schema: データスキーマ（パーティション列を含む）
        file_format: ファイルフォーマット名
        options: 読み込みオプション
    """
    location: FileIndex
    data_schema: pa.Schema
    file_format: str
    options: Dict[str, str] = field(default_factory=dict)

    def read_table(self, files: Iterable[FileInfo] | None = None) -> pa.Table:
        """データを読み込み（パーティション値は文字列列として付与）

        Args:
            files: 読み込むファイル（省略時は全ファイル）

        Returns:
            スキーマを揃えて連結したテーブル
        """
        targets = self.location.all_files() if files is None else list(files)
        tables = []
        for file in targets:
            table = read_file(file.path, self.file_format)
            if isinstance(self.location, PartitioningAwareFileIndex):
                for column, value in self.location.partition_values(file.path).items():
                    if column not in table.column_names:
                        table = table.append_column(
                            column, pa.array([value] * table.num_rows, type=pa.string())
                        )
            tables.append(table)

        if not tables:
            return self.data_schema.empty_table()
        return pa.concat_tables(tables, promote_options="default")


def infer_schema(location: FileIndex, file_format: str) -> pa.Schema:
    """先頭ファイルからスキーマを推定（ファイルがなければ空のスキーマ）"""
    files = location.all_files()
    if not files:
        return pa.schema([])

    first = files[0].path
    if file_format.lower() == "parquet":
        try:
            schema = pq.read_schema(first)
        except (OSError, pa.ArrowException) as e:
            raise StorageError(f"Failed to read schema of {first}: {e}", path=first, cause=e) from e
    else:
        schema = read_file(first, file_format).schema

    if isinstance(location, PartitioningAwareFileIndex):
        for column in location.partition_spec.partition_columns:
            if column not in schema.names:
                schema = schema.append(pa.field(column, pa.string()))
    return schema


def read_dataset(
    paths: Sequence[str],
    file_format: str,
    options: Mapping[str, str] | None = None,
    parallel_workers: int = 4,
    listing_hook: ListingHook | None = None,
) -> FileDataset:
    """パスからデータセットを作成

    パス中のglob文字は展開する。``basePath`` オプションはパーティション検出の
    基準パスとして使う。

    Args:
        paths: データセットのパス（glob可）
        file_format: ファイルフォーマット名
        options: 読み込みオプション
        parallel_workers: ステータス取得の並列数
        listing_hook: リスティングフック

    Returns:
        データセット
    """
    options = dict(options or {})
    expanded = expand_paths(paths)
    if not expanded:
        raise StorageError(f"No path matched: {', '.join(paths)}")

    location = InMemoryFileIndex(
        expanded,
        parallel_workers=parallel_workers,
        listing_hook=listing_hook,
        base_path=options.get(BASE_PATH_OPTION_KEY),
    )
    schema = infer_schema(location, file_format)
    return FileDataset(
        location=location,
        data_schema=schema,
        file_format=file_format.lower(),
        options=options,
    )
