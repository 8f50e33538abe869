"""Source Provider Manager.

登録されたプロバイダを順に試し、データセットを扱えるプロバイダを1つだけ選ぶ。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from versindex.errors import UnsupportedSourceError
from versindex.index.file_id_tracker import FileIdTracker
from versindex.index.types import FileInfo, Relation
from versindex.sources.base import FileBasedSourceProvider, PartitionBasePath
from versindex.sources.default import DefaultFileBasedSource
from versindex.sources.file_index import FileDataset, FileIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceProviderManager:
    """ソースプロバイダマネージャ

    各操作はすべてのプロバイダに問い合わせ、ちょうど1つが応答することを要求する。

    - 応答なし → UnsupportedSourceError
    - 複数が応答 → UnsupportedSourceError（応答したプロバイダ名を含む）

    Example:
        >>> manager = SourceProviderManager([DefaultFileBasedSource()])
        >>> relation = manager.create_relation(dataset, FileIdTracker())
    """

    def __init__(self, providers: Sequence[FileBasedSourceProvider] | None = None) -> None:
        self.providers: List[FileBasedSourceProvider] = (
            list(providers) if providers is not None else [DefaultFileBasedSource()]
        )

    def register(self, provider: FileBasedSourceProvider) -> None:
        """プロバイダを追加"""
        self.providers.append(provider)

    def all_files(self, dataset: FileDataset) -> List[FileInfo]:
        return self._run("all_files", lambda p: p.all_files(dataset))

    def signature(self, dataset: FileDataset) -> str:
        return self._run("signature", lambda p: p.signature(dataset))

    def create_relation(self, dataset: FileDataset, tracker: FileIdTracker) -> Relation:
        return self._run("create_relation", lambda p: p.create_relation(dataset, tracker))

    def try_create_relation(
        self, dataset: FileDataset, tracker: FileIdTracker
    ) -> Optional[Relation]:
        """リレーションを作成（扱えない場合はNone）"""
        try:
            return self.create_relation(dataset, tracker)
        except UnsupportedSourceError as e:
            logger.info(f"Skipping unsupported relation: {e.message}")
            return None

    def refresh_relation(self, relation: Relation) -> Relation:
        return self._run("refresh_relation", lambda p: p.refresh_relation(relation))

    def internal_file_format_name(self, relation: Relation) -> str:
        return self._run(
            "internal_file_format_name", lambda p: p.internal_file_format_name(relation)
        )

    def partition_base_path(self, location: FileIndex) -> Optional[str]:
        result: PartitionBasePath = self._run(
            "partition_base_path",
            lambda p: _supported_or_none(p.partition_base_path(location)),
        )
        return result.base_path

    def lineage_pairs(
        self, dataset: FileDataset, tracker: FileIdTracker
    ) -> List[Tuple[str, int]]:
        return self._run("lineage_pairs", lambda p: p.lineage_pairs(dataset, tracker))

    def has_parquet_as_source_format(self, dataset: FileDataset) -> bool:
        return self._run(
            "has_parquet_as_source_format", lambda p: p.has_parquet_as_source_format(dataset)
        )

    def _run(self, operation: str, call: Callable[[FileBasedSourceProvider], Any]) -> Any:
        answers = []
        for provider in self.providers:
            result = call(provider)
            if result is not None:
                answers.append((provider, result))

        if not answers:
            raise UnsupportedSourceError(
                f"No source provider supports {operation} for the given source",
                operation=operation,
            )
        if len(answers) > 1:
            names = ", ".join(p.name for p, _ in answers)
            raise UnsupportedSourceError(
                f"Multiple source providers answered {operation}: {names}",
                operation=operation,
                providers=[p.name for p, _ in answers],
            )
        return answers[0][1]


def _supported_or_none(result: PartitionBasePath) -> Optional[PartitionBasePath]:
    return result if result.is_supported else None
