# Sources Module
"""
versindex.sources - ファイルベースのソースアダプタ

Components:
- FileBasedSourceProvider: プロバイダインターフェース
- DefaultFileBasedSource: pyarrowで読めるフォーマットのデフォルト実装
- SourceProviderManager: プロバイダの選択
- InMemoryFileIndex: ファイル一覧とパーティション検出
"""

from versindex.sources.base import FileBasedSourceProvider, PartitionBasePath
from versindex.sources.default import CachedTransform, DefaultFileBasedSource, parse_formats
from versindex.sources.file_index import (
    FileDataset,
    FileIndex,
    InMemoryFileIndex,
    PartitioningAwareFileIndex,
    PartitionSpec,
    read_dataset,
    read_file,
    to_input_file_name,
)
from versindex.sources.file_status import (
    FileStatus,
    FileStatusAdapter,
    ForeignFileStatus,
    NativeFileStatus,
)
from versindex.sources.globbing import globbing_patterns, validate_root_paths
from versindex.sources.manager import SourceProviderManager

__all__ = [
    # Providers
    "FileBasedSourceProvider",
    "DefaultFileBasedSource",
    "SourceProviderManager",
    "PartitionBasePath",
    "CachedTransform",
    "parse_formats",
    # File Index
    "FileDataset",
    "FileIndex",
    "InMemoryFileIndex",
    "PartitioningAwareFileIndex",
    "PartitionSpec",
    "read_dataset",
    "read_file",
    "to_input_file_name",
    # File Status
    "FileStatus",
    "FileStatusAdapter",
    "ForeignFileStatus",
    "NativeFileStatus",
    # Globbing
    "globbing_patterns",
    "validate_root_paths",
]
