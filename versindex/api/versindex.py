# Versindex Main Facade
"""
versindex.api.versindex - メインFacade API

インデックスの作成・リフレッシュ・統計情報の取得をまとめたエントリポイント。
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import pyarrow as pa

from versindex.api.base import RefreshResult, VersindexConfig
from versindex.api.config import ConfigManager
from versindex.errors import (
    ConcurrentWriteError,
    ErrorHandler,
    IndexExistsError,
    IndexNotFoundError,
    StorageError,
    VersindexError,
    get_error_handler,
)
from versindex.index.builder import IndexDataBuilder, resolve_columns
from versindex.index.constants import DATA_FILE_ID_COLUMN, INDEX_LOG_DIRECTORY
from versindex.index.file_id_tracker import FileIdTracker
from versindex.index.log import IndexLogEntry, IndexLogManager, IndexState
from versindex.index.refresh import (
    RefreshAction,
    RefreshPlan,
    RefreshPlanner,
    validate_refresh_mode,
)
from versindex.index.signature import signature as compute_signature
from versindex.index.types import Content, IndexConfig
from versindex.index.version import IndexStatistics, VersionManager, version_directory_name
from versindex.sources.default import DefaultFileBasedSource
from versindex.sources.file_index import FileDataset, ListingHook, read_dataset
from versindex.sources.manager import SourceProviderManager
from versindex.storage.parquet import ParquetStorage

logger = logging.getLogger(__name__)


class Versindex:
    """Versindex メインAPI (Facade)

    Example:
        >>> vi = Versindex({"system_path": "./indexes", "lineage_enabled": True})
        >>> dataset = vi.read(["./data/sales"], "parquet")
        >>> vi.create_index(dataset, IndexConfig("sales_idx", ["id"], ["amount"]))
        >>> vi.refresh_index("sales_idx", mode="quick")
        >>> vi.get_index_stats("sales_idx")
    """

    def __init__(
        self,
        config: str | Path | dict[str, Any] | VersindexConfig | None = None,
        source_manager: SourceProviderManager | None = None,
        listing_hook: ListingHook | None = None,
        error_handler: ErrorHandler | None = None,
    ):
        """
        Versindex を初期化

        Args:
            config: 設定ファイルパス、辞書、またはVersindexConfigオブジェクト
            source_manager: ソースプロバイダマネージャ（省略時はデフォルトソースのみ）
            listing_hook: リスティングフック（ファイルステータスの取得方法を差し替える）
            error_handler: エラーハンドラ
        """
        # 設定読み込み
        if config is None:
            self._config_manager = ConfigManager()
        elif isinstance(config, (str, Path)):
            self._config_manager = ConfigManager.from_yaml(config)
        elif isinstance(config, dict):
            self._config_manager = ConfigManager.from_dict(config)
        elif isinstance(config, VersindexConfig):
            self._config_manager = ConfigManager.from_config(config)
        else:
            raise ValueError(f"Invalid config type: {type(config)}")

        self.source_manager = source_manager or SourceProviderManager(
            [DefaultFileBasedSource(lambda: self.config.supported_formats)]
        )
        self.listing_hook = listing_hook
        self.planner = RefreshPlanner()
        self._error_handler = error_handler or get_error_handler()

    @property
    def config(self) -> VersindexConfig:
        """設定を取得"""
        return self._config_manager.config

    # ========== データセット ==========

    def read(
        self,
        paths: str | Sequence[str],
        file_format: str = "parquet",
        options: Mapping[str, str] | None = None,
    ) -> FileDataset:
        """データセットを読み込み（パス中のglobは展開する）"""
        if isinstance(paths, str):
            paths = [paths]
        return read_dataset(
            paths,
            file_format,
            options=options,
            parallel_workers=self.config.parallel_workers,
            listing_hook=self.listing_hook,
        )

    def signature(self, dataset: FileDataset) -> str:
        """データセットのシグネチャを計算"""
        return self.source_manager.signature(dataset)

    # ========== インデックス作成 ==========

    def create_index(self, dataset: FileDataset, index_config: IndexConfig) -> IndexStatistics:
        """
        インデックスを作成（バージョン0）

        Args:
            dataset: ソースデータセット
            index_config: インデックス設定

        Returns:
            IndexStatistics: 作成後の統計情報

        Raises:
            IndexExistsError: 同名のインデックスが存在する場合
            ValidationError: 列がソーススキーマにない場合
        """
        name = index_config.index_name
        index_path = self._find_index_path(name) or self.config.system_path / name
        log_manager = IndexLogManager(index_path)
        if log_manager.get_latest_stable_log() is not None:
            raise IndexExistsError(f"Index already exists: {name}", index_name=name)

        resolve_columns(index_config, dataset.data_schema.names)

        tracker = FileIdTracker()
        relation = self.source_manager.create_relation(dataset, tracker)
        signature = self.source_manager.signature(dataset)

        version_manager = VersionManager(index_path, log_manager)
        version_id = version_manager.allocate_next_version()
        lineage = self.config.lineage_enabled
        latest_id = log_manager.get_latest_id()

        begin = IndexLogEntry(
            id=0 if latest_id is None else latest_id + 1,
            name=name,
            state=IndexState.CREATING,
            config=index_config,
            relation=relation,
            signature=signature,
            version_id=version_id,
            has_lineage=lineage,
            file_ids=tracker.to_map(),
        )

        def build() -> IndexLogEntry:
            builder = IndexDataBuilder(ParquetStorage(index_path), index_config, lineage)
            index_files = builder.build(
                dataset,
                relation.content.files,
                version_directory_name(version_id),
                self._lineage_ids(dataset, tracker, lineage),
            )
            return begin.copy_with(index_files=index_files, file_ids=tracker.to_map())

        start_time = time.time()
        self._commit(log_manager, begin, build, version_manager.version_path(version_id), "create")
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Created index '{name}' version {version_id} over "
            f"{relation.content.file_count} file(s) in {elapsed_ms:.0f}ms"
        )
        return self.index_stats(name)

    # ========== リフレッシュ ==========

    def plan_refresh(self, name: str) -> RefreshPlan:
        """リフレッシュ計画を作成（インデックスは変更しない）"""
        _, entry = self._latest_stable(name)
        dataset = self._read_relation(entry)
        current = self.source_manager.all_files(dataset)
        return self.planner.plan(entry.source_content, current)

    def refresh_index(self, name: str, mode: str = "incremental") -> RefreshResult:
        """
        インデックスをリフレッシュ

        Args:
            name: インデックス名
            mode: リフレッシュモード（incremental / quick / full）

        Returns:
            RefreshResult: 実行したアクションと更新後の統計情報

        Raises:
            IndexNotFoundError: インデックスが存在しない場合
            ValidationError: 未知のモードの場合
        """
        mode = validate_refresh_mode(mode)
        start_time = time.time()
        index_path, entry = self._latest_stable(name)
        log_manager = IndexLogManager(index_path)

        dataset = self._read_relation(entry)
        current = self.source_manager.all_files(dataset)
        if not current:
            dataset = self._with_index_schema(index_path, entry, dataset)
        plan = self.planner.plan(entry.source_content, current)
        action = self.planner.resolve(mode, plan)

        if action == RefreshAction.UP_TO_DATE:
            logger.info(f"Index '{entry.name}' is up to date, nothing to refresh")
            return RefreshResult(
                index_name=entry.name,
                requested_mode=mode,
                action=action,
                plan=plan,
                version_id=entry.version_id,
                stats=self.index_stats(name),
                duration_ms=(time.time() - start_time) * 1000,
            )

        version_manager = VersionManager(index_path, log_manager)
        tracker = FileIdTracker.from_map(entry.file_ids)
        latest_id = log_manager.get_latest_id()
        log_id = 0 if latest_id is None else latest_id + 1

        if action == RefreshAction.QUICK:
            begin, build, version_dir = self._quick_refresh(entry, plan, tracker, log_id)
        else:
            begin, build, version_dir = self._rebuild_refresh(
                entry, plan, action, dataset, tracker, version_manager, log_id
            )

        self._commit(log_manager, begin, build, version_dir, "refresh")
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Refreshed index '{entry.name}' ({action.value}, requested {mode}): "
            f"version {begin.version_id}, {len(plan.deleted_files)} deleted, "
            f"{len(plan.appended_files)} appended, {duration_ms:.0f}ms"
        )
        return RefreshResult(
            index_name=entry.name,
            requested_mode=mode,
            action=action,
            plan=plan,
            version_id=begin.version_id,
            stats=self.index_stats(name),
            duration_ms=duration_ms,
        )

    def _quick_refresh(
        self,
        entry: IndexLogEntry,
        plan: RefreshPlan,
        tracker: FileIdTracker,
        log_id: int,
    ) -> tuple[IndexLogEntry, Callable[[], IndexLogEntry], Path | None]:
        """削除のみの場合: メタデータだけを更新する（バージョン据え置き）"""
        deleted_ids = {tracker.get_file_id(f.path) for f in plan.deleted_files}
        excluded = sorted(set(entry.excluded_file_ids) | {i for i in deleted_ids if i is not None})
        content = Content.from_leaf_files(plan.current_files, tracker)
        relation = entry.relation.with_content(content)

        begin = entry.copy_with(
            id=log_id,
            state=IndexState.REFRESHING,
            relation=relation,
            signature=compute_signature(content.files),
            excluded_file_ids=excluded,
        )
        return begin, lambda: begin, None

    def _rebuild_refresh(
        self,
        entry: IndexLogEntry,
        plan: RefreshPlan,
        action: RefreshAction,
        dataset: FileDataset,
        tracker: FileIdTracker,
        version_manager: VersionManager,
        log_id: int,
    ) -> tuple[IndexLogEntry, Callable[[], IndexLogEntry], Path | None]:
        """追加・変更がある場合（またはフル）: 新しいバージョンを作成する"""
        relation = self.source_manager.create_relation(dataset, tracker)
        if not plan.current_files:
            # ソースファイルが空の場合は作成時のスキーマを残す
            relation = replace(relation, schema=entry.relation.schema)
        version_id = version_manager.allocate_next_version()
        version_dir = version_directory_name(version_id)
        builder = IndexDataBuilder(
            ParquetStorage(version_manager.index_path), entry.config, entry.has_lineage
        )

        removed_ids = set(entry.excluded_file_ids)
        removed_ids.update(
            i for i in (tracker.get_file_id(f.path) for f in plan.deleted_files)
            if i is not None
        )

        begin = entry.copy_with(
            id=log_id,
            state=IndexState.REFRESHING,
            relation=relation,
            signature=self.source_manager.signature(dataset),
            version_id=version_id,
            file_ids=tracker.to_map(),
        )

        def build() -> IndexLogEntry:
            lineage_ids = self._lineage_ids(dataset, tracker, entry.has_lineage)
            if action == RefreshAction.FULL or (removed_ids and not entry.has_lineage):
                # 全ファイルから作り直す
                index_files = builder.build(
                    dataset, relation.content.files, version_dir, lineage_ids
                )
            elif removed_ids:
                # 既存の行から削除分を除き、追加分と合わせて新バージョンに書き直す
                index_files = builder.rebuild_excluding(
                    dataset,
                    entry.index_files,
                    removed_ids,
                    plan.appended_files,
                    version_dir,
                    lineage_ids,
                )
            else:
                # 追記のみ: 追加分だけを新バージョンに書き、既存バージョンは残す
                index_files = list(entry.index_files) + builder.build(
                    dataset, plan.appended_files, version_dir, lineage_ids
                )
            return begin.copy_with(
                index_files=index_files,
                excluded_file_ids=[],
                file_ids=tracker.to_map(),
            )

        return begin, build, version_manager.version_path(version_id)

    # ========== 統計情報 ==========

    def index_stats(self, name: str) -> IndexStatistics:
        """インデックスの統計情報を取得

        Raises:
            IndexNotFoundError: インデックスが存在しない場合
        """
        index_path = self._find_index_path(name)
        stats = VersionManager(index_path).stats() if index_path else None
        if stats is None:
            raise IndexNotFoundError(f"Index not found: {name}", index_name=name)
        return stats

    def get_index_stats(self, name: str) -> pa.Table:
        """インデックスの統計情報を1行のテーブルとして取得"""
        return self.index_stats(name).to_table()

    def indexes(self) -> list[IndexStatistics]:
        """全インデックスの統計情報"""
        system_path = self.config.system_path
        if not system_path.exists():
            return []

        result = []
        for child in sorted(system_path.iterdir()):
            if not (child / INDEX_LOG_DIRECTORY).is_dir():
                continue
            stats = VersionManager(child).stats()
            if stats is not None:
                result.append(stats)
        return result

    # ========== 内部処理 ==========

    def _find_index_path(self, name: str) -> Path | None:
        """インデックスディレクトリを検索（大文字小文字を区別しない）"""
        system_path = self.config.system_path
        exact = system_path / name
        if exact.is_dir():
            return exact
        if not system_path.exists():
            return None
        for child in system_path.iterdir():
            if child.is_dir() and child.name.lower() == name.lower():
                return child
        return None

    def _latest_stable(self, name: str) -> tuple[Path, IndexLogEntry]:
        index_path = self._find_index_path(name)
        entry = IndexLogManager(index_path).get_latest_stable_log() if index_path else None
        if entry is None:
            raise IndexNotFoundError(f"Index not found: {name}", index_name=name)
        return index_path, entry

    def _read_relation(self, entry: IndexLogEntry) -> FileDataset:
        relation = self.source_manager.refresh_relation(entry.relation)
        return self.read(list(relation.root_paths), relation.file_format, relation.options)

    def _with_index_schema(
        self, index_path: Path, entry: IndexLogEntry, dataset: FileDataset
    ) -> FileDataset:
        """ソースファイルがない場合、既存のインデックスデータのスキーマを使う"""
        schema = ParquetStorage(index_path).read_schema(entry.index_files)
        if schema is None:
            return dataset
        if DATA_FILE_ID_COLUMN in schema.names:
            schema = schema.remove(schema.get_field_index(DATA_FILE_ID_COLUMN))
        logger.debug(
            f"No source files left for '{entry.name}', using index schema {schema.names}"
        )
        return replace(dataset, data_schema=schema)

    def _lineage_ids(
        self, dataset: FileDataset, tracker: FileIdTracker, lineage: bool
    ) -> dict[str, int]:
        """リネージ列のための 入力ファイル名 -> ファイルID"""
        if not lineage:
            return {}
        return dict(self.source_manager.lineage_pairs(dataset, tracker))

    def _commit(
        self,
        log_manager: IndexLogManager,
        begin: IndexLogEntry,
        build: Callable[[], IndexLogEntry],
        version_path: Path | None,
        operation: str,
    ) -> IndexLogEntry:
        """開始エントリを書き、構築後に安定エントリを公開する

        失敗時は書きかけのバージョンディレクトリを削除し、FAILEDエントリを書く。
        直前の安定エントリは ``latestStable`` のまま残る。
        """
        log_manager.write_log(begin.id, begin)
        final_id = begin.id + 1
        try:
            final = build().copy_with(id=final_id, state=IndexState.ACTIVE)
            log_manager.write_log(final_id, final)
            log_manager.create_latest_stable_log(final_id)
            return final
        except Exception as e:
            if version_path is not None and version_path.exists():
                shutil.rmtree(version_path, ignore_errors=True)
            if not isinstance(e, ConcurrentWriteError):
                self._write_failed(log_manager, begin.copy_with(id=final_id, state=IndexState.FAILED))
            self._error_handler.handle(
                e,
                component="index",
                operation=operation,
                error_cls=StorageError,
                index_name=begin.name,
            )

    def _write_failed(self, log_manager: IndexLogManager, entry: IndexLogEntry) -> None:
        try:
            log_manager.write_log(entry.id, entry)
        except VersindexError as e:
            logger.warning(f"Could not record failed state for '{entry.name}': {e}")


def create_versindex(
    config: str | Path | dict[str, Any] | VersindexConfig | None = None,
) -> Versindex:
    """Versindexインスタンスを作成するヘルパー関数"""
    return Versindex(config)
