"""Index Data Builder.

ソースデータからインデックス列（インデックス列 + 付随列、リネージ有効時は
ファイルID列）を取り出し、バージョンディレクトリにParquetとして書き込む。
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

import pyarrow as pa

from versindex.errors import IdentityConflictError, ValidationError
from versindex.index.constants import DATA_FILE_ID_COLUMN
from versindex.index.types import FileInfo, IndexConfig
from versindex.sources.file_index import FileDataset, to_input_file_name
from versindex.storage.parquet import ParquetStorage

logger = logging.getLogger(__name__)


def resolve_columns(config: IndexConfig, field_names: Sequence[str]) -> List[str]:
    """インデックス設定の列名をスキーマ上の列名に解決（大文字小文字を区別しない）

    Raises:
        ValidationError: スキーマにない列がある場合
    """
    by_lower: Dict[str, str] = {name.lower(): name for name in field_names}
    resolved = []
    missing = []
    for column in config.all_columns:
        name = by_lower.get(column.lower())
        if name is None:
            missing.append(column)
        else:
            resolved.append(name)
    if missing:
        raise ValidationError(
            f"Columns not found in source schema: {', '.join(missing)}. "
            f"Available columns: {', '.join(field_names) or '(none)'}",
            field="columns",
            value=missing,
        )
    return resolved


class IndexDataBuilder:
    """インデックスデータビルダー

    Example:
        >>> builder = IndexDataBuilder(storage, config, lineage_enabled=True)
        >>> pairs = dict(source_manager.lineage_pairs(dataset, tracker))
        >>> files = builder.build(dataset, dataset.location.all_files(), "v__=0", pairs)
    """

    def __init__(
        self,
        storage: ParquetStorage,
        config: IndexConfig,
        lineage_enabled: bool = False,
    ) -> None:
        """初期化

        Args:
            storage: インデックスデータのストレージ
            config: インデックス設定
            lineage_enabled: ファイルID列を付与するか
        """
        self.storage = storage
        self.config = config
        self.lineage_enabled = lineage_enabled

    def build(
        self,
        dataset: FileDataset,
        files: Iterable[FileInfo],
        version_dir: str,
        lineage_ids: Mapping[str, int] | None = None,
    ) -> List[str]:
        """指定したソースファイルからインデックスデータを作成

        Args:
            dataset: データセット
            files: 対象のソースファイル
            version_dir: 出力先バージョンディレクトリ名
            lineage_ids: 入力ファイル名 -> ファイルID（リネージ有効時に使用）

        Returns:
            書き込んだファイルの相対パス
        """
        table = self.extract(dataset, files, lineage_ids)
        return self.storage.write_table(version_dir, table)

    def rebuild_excluding(
        self,
        dataset: FileDataset,
        previous_files: Sequence[str],
        excluded_ids: Iterable[int],
        appended: Iterable[FileInfo],
        version_dir: str,
        lineage_ids: Mapping[str, int] | None = None,
    ) -> List[str]:
        """既存のインデックスデータから除外IDの行を除き、追加分と合わせて書き直す

        Args:
            dataset: データセット
            previous_files: 既存のインデックスデータ（相対パス）
            excluded_ids: 除外するソースファイルID
            appended: 追加・変更されたソースファイル
            version_dir: 出力先バージョンディレクトリ名
            lineage_ids: 入力ファイル名 -> ファイルID

        Returns:
            書き込んだファイルの相対パス
        """
        if not self.lineage_enabled:
            raise ValidationError(
                "Rewriting index data without deleted files requires lineage",
                field="lineage_enabled",
            )

        surviving = self.storage.read_excluding(
            previous_files, DATA_FILE_ID_COLUMN, excluded_ids
        )
        delta = self.extract(dataset, appended, lineage_ids)
        if surviving is None:
            table = delta
        else:
            table = pa.concat_tables(
                [surviving.select(delta.column_names), delta],
                promote_options="default",
            )
        logger.debug(
            f"Rewriting {0 if surviving is None else surviving.num_rows} surviving row(s) "
            f"and {delta.num_rows} appended row(s) into {version_dir}"
        )
        return self.storage.write_table(version_dir, table)

    def extract(
        self,
        dataset: FileDataset,
        files: Iterable[FileInfo],
        lineage_ids: Mapping[str, int] | None = None,
    ) -> pa.Table:
        """ソースファイルからインデックス列を取り出す

        リネージ有効時、ファイルIDは ``lineage_ids`` を入力ファイル名で引いて決める。

        Raises:
            IdentityConflictError: ファイルIDが見つからないファイルがある場合
        """
        columns = resolve_columns(self.config, dataset.data_schema.names)
        lineage_ids = lineage_ids or {}

        tables = []
        for file in sorted(files, key=lambda f: f.path):
            table = dataset.read_table([file]).select(columns)
            if self.lineage_enabled:
                input_file_name = to_input_file_name(file.path)
                file_id = lineage_ids.get(input_file_name)
                if file_id is None:
                    raise IdentityConflictError(
                        f"No file id recorded for {input_file_name}",
                        path=file.path,
                    )
                table = table.append_column(
                    DATA_FILE_ID_COLUMN,
                    pa.array([file_id] * table.num_rows, type=pa.int64()),
                )
            tables.append(table)

        if not tables:
            return self._empty_table(dataset, columns)
        return pa.concat_tables(tables, promote_options="default")

    def _empty_table(self, dataset: FileDataset, columns: List[str]) -> pa.Table:
        fields = [dataset.data_schema.field(c) for c in columns]
        if self.lineage_enabled:
            fields.append(pa.field(DATA_FILE_ID_COLUMN, pa.int64()))
        return pa.schema(fields).empty_table()

