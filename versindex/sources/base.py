"""Source Provider Interface.

ファイルベースのデータソースを扱うプロバイダの抽象インターフェース。
各操作は、そのプロバイダが扱えないデータセットに対して None を返す。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from versindex.index.file_id_tracker import FileIdTracker
from versindex.index.types import FileInfo, Relation
from versindex.sources.file_index import FileDataset, FileIndex


@dataclass(frozen=True)
class PartitionBasePath:
    """パーティション基準パスの判定結果

    - ``supported(path)``: 扱えるロケーションで、パーティションあり
    - ``supported(None)``: 扱えるロケーションで、パーティションなし
    - ``unsupported()``: 扱えないロケーション
    """
    is_supported: bool
    base_path: Optional[str] = None

    @classmethod
    def supported(cls, base_path: Optional[str]) -> PartitionBasePath:
        return cls(is_supported=True, base_path=base_path)

    @classmethod
    def unsupported(cls) -> PartitionBasePath:
        return cls(is_supported=False)


class FileBasedSourceProvider(ABC):
    """ファイルベースのソースプロバイダ"""

    name: str = "source"

    @abstractmethod
    def all_files(self, dataset: FileDataset) -> Optional[List[FileInfo]]:
        """データセットを構成する全ファイル（0件も可）"""

    @abstractmethod
    def signature(self, dataset: FileDataset) -> Optional[str]:
        """データセットのシグネチャ"""

    @abstractmethod
    def create_relation(
        self, dataset: FileDataset, tracker: FileIdTracker
    ) -> Optional[Relation]:
        """データセットからリレーションを作成"""

    @abstractmethod
    def refresh_relation(self, relation: Relation) -> Optional[Relation]:
        """最新のソースを読み込むためのリレーション"""

    @abstractmethod
    def internal_file_format_name(self, relation: Relation) -> Optional[str]:
        """内部データファイルを読むためのフォーマット名"""

    @abstractmethod
    def partition_base_path(self, location: FileIndex) -> PartitionBasePath:
        """パーティション基準パス"""

    @abstractmethod
    def lineage_pairs(
        self, dataset: FileDataset, tracker: FileIdTracker
    ) -> Optional[List[Tuple[str, int]]]:
        """リネージ列を作るための (正規化済みファイル名, ファイルID) の一覧"""

    @abstractmethod
    def has_parquet_as_source_format(self, dataset: FileDataset) -> Optional[bool]:
        """ソースファイルがParquetかどうか"""
