"""Default File-Based Source.

pyarrowで読み込めるファイルフォーマット（parquet / csv / json / orc）の
データセットを扱うデフォルトのソースプロバイダ。
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

from versindex.index.signature import signature as compute_signature
from versindex.index.constants import (
    BASE_PATH_OPTION_KEY,
    DEFAULT_SUPPORTED_FORMATS,
    PATH_OPTION_KEY,
)
from versindex.index.file_id_tracker import FileIdTracker
from versindex.index.types import Content, FileInfo, Relation, SourceProperties, serialize_schema
from versindex.sources.base import FileBasedSourceProvider, PartitionBasePath
from versindex.sources.file_index import (
    FileDataset,
    FileIndex,
    PartitioningAwareFileIndex,
    to_input_file_name,
)
from versindex.sources.globbing import globbing_patterns, validate_root_paths

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class CachedTransform(Generic[K, V]):
    """読み込んだ値を変換してキャッシュする

    ローダーの戻り値が変わった場合のみ変換をやり直す。

    Example:
        >>> formats = CachedTransform(lambda: "CSV, parquet", parse_formats)
        >>> formats.load()
        frozenset({'csv', 'parquet'})
    """

    def __init__(self, loader: Callable[[], K], transform: Callable[[K], V]) -> None:
        self._loader = loader
        self._transform = transform
        self._key: Optional[K] = None
        self._value: Optional[V] = None
        self._loaded = False

    def load(self) -> V:
        """変換済みの値を取得"""
        if not self._loaded:
            self.reload()
        return self._value  # type: ignore[return-value]

    def reload(self) -> V:
        """ローダーを呼び直し、値が変わっていれば変換し直す"""
        key = self._loader()
        if not self._loaded or key != self._key:
            self._value = self._transform(key)
            self._key = key
            self._loaded = True
        return self._value  # type: ignore[return-value]

    def invalidate(self) -> None:
        """キャッシュを破棄"""
        self._key = None
        self._value = None
        self._loaded = False


def parse_formats(formats: str) -> frozenset:
    """カンマ区切りのフォーマット名を小文字の集合に変換"""
    return frozenset(f.strip().lower() for f in formats.split(",") if f.strip())


class DefaultFileBasedSource(FileBasedSourceProvider):
    """デフォルトのファイルベースソース

    ``PartitioningAwareFileIndex`` を持ち、サポート対象のフォーマットで
    読み込まれたデータセットを扱う。

    Example:
        >>> source = DefaultFileBasedSource(lambda: "parquet,csv")
        >>> dataset = read_dataset(["/data/table"], "parquet")
        >>> sig = source.signature(dataset)
    """

    name = "default"

    def __init__(self, supported_formats: Callable[[], str] | str | None = None) -> None:
        """初期化

        Args:
            supported_formats: サポートするフォーマット（カンマ区切り）、
                またはそれを返すローダー
        """
        if supported_formats is None:
            supported_formats = DEFAULT_SUPPORTED_FORMATS
        if isinstance(supported_formats, str):
            value = supported_formats
            loader: Callable[[], str] = lambda: value
        else:
            loader = supported_formats
        self.supported_formats: CachedTransform[str, frozenset] = CachedTransform(
            loader, parse_formats
        )

    def is_supported_format(self, file_format: str) -> bool:
        return file_format.lower() in self.supported_formats.load()

    def _handles(self, dataset: FileDataset) -> bool:
        return isinstance(
            dataset.location, PartitioningAwareFileIndex
        ) and self.is_supported_format(dataset.file_format)

    def all_files(self, dataset: FileDataset) -> Optional[List[FileInfo]]:
        if not isinstance(dataset.location, PartitioningAwareFileIndex):
            return None
        return dataset.location.all_files()

    def signature(self, dataset: FileDataset) -> Optional[str]:
        if not self._handles(dataset):
            return None
        return compute_signature(dataset.location.all_files())

    def create_relation(
        self, dataset: FileDataset, tracker: FileIdTracker
    ) -> Optional[Relation]:
        """データセットからリレーションを作成

        - ``path`` オプションは取り除く
        - Hiveパーティションの場合は ``basePath`` オプションを設定する
        - globパターンオプションがある場合、ルートパスがすべてパターンに
          一致することを検証し、パターンをルートパスとして記録する
        """
        if not self._handles(dataset):
            return None

        location = dataset.location
        content = Content.from_leaf_files(location.all_files(), tracker)

        options = {k: v for k, v in dataset.options.items() if k != PATH_OPTION_KEY}
        base_path = self.partition_base_path(location).base_path
        if base_path is not None:
            options[BASE_PATH_OPTION_KEY] = base_path

        root_paths = location.root_paths
        patterns = globbing_patterns(options)
        if patterns is not None:
            root_paths = validate_root_paths(patterns, root_paths)

        relation = Relation(
            root_paths=tuple(root_paths),
            properties=SourceProperties(content=content),
            schema=serialize_schema(dataset.data_schema),
            file_format=dataset.file_format.lower(),
            options=options,
        )
        logger.debug(
            f"Created relation over {content.file_count} file(s) "
            f"with root paths {list(relation.root_paths)}"
        )
        return relation

    def refresh_relation(self, relation: Relation) -> Optional[Relation]:
        if not self.is_supported_format(relation.file_format):
            return None
        # ルートパスは常に最新のソースファイルを指すため変更不要
        return relation

    def internal_file_format_name(self, relation: Relation) -> Optional[str]:
        if not self.is_supported_format(relation.file_format):
            return None
        return relation.file_format

    def partition_base_path(self, location: FileIndex) -> PartitionBasePath:
        """パーティション基準パス

        パーティションディレクトリのいずれか1つから、パーティション列の数だけ
        親ディレクトリをたどったパス。
        """
        if not isinstance(location, PartitioningAwareFileIndex):
            return PartitionBasePath.unsupported()

        spec = location.partition_spec
        if not spec.partitions or not spec.partition_columns:
            return PartitionBasePath.supported(None)

        base_path = spec.partition_paths[0]
        for _ in spec.partition_columns:
            base_path = os.path.dirname(base_path)
        return PartitionBasePath.supported(base_path)

    def lineage_pairs(
        self, dataset: FileDataset, tracker: FileIdTracker
    ) -> Optional[List[Tuple[str, int]]]:
        if not self._handles(dataset):
            return None
        # 既存のエントリのみを対応付け、新しいIDは割り当てない
        return sorted(
            (to_input_file_name(path), file_id)
            for path, file_id in tracker.to_map().items()
        )

    def has_parquet_as_source_format(self, dataset: FileDataset) -> Optional[bool]:
        if not self._handles(dataset):
            return None
        return dataset.file_format.lower() == "parquet"
