# Parquet Storage
"""
Parquet-based storage for index data.

Provides columnar storage for:
- Index data files under ``v__=<id>`` version directories
- Reading back index rows (optionally filtered by lineage file id)
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Iterable, List

import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.parquet as pq

from versindex.errors import StorageError

logger = logging.getLogger(__name__)


class ParquetStorage:
    """Parquet ストレージ

    インデックスデータをインデックスディレクトリ配下にParquet形式で保存する。
    ファイルパスはインデックスディレクトリからの相対パスで扱う。

    Example:
        >>> storage = ParquetStorage(index_dir="./indexes/index1")
        >>> files = storage.write_table("v__=0", table)
        >>> files
        ['v__=0/part-00000-3f2a....parquet']
        >>> table = storage.read_tables(files)

    Attributes:
        index_dir: インデックスディレクトリ
    """

    # ファイル名定義
    PART_FILE_PREFIX = "part"
    PART_FILE_SUFFIX = ".parquet"

    def __init__(self, index_dir: str | Path, max_rows_per_file: int = 1_000_000) -> None:
        """初期化

        Args:
            index_dir: インデックスディレクトリ
            max_rows_per_file: 1ファイルあたりの最大行数
        """
        self.index_dir = Path(index_dir)
        self.max_rows_per_file = max_rows_per_file

    # === Write ===

    def write_table(self, version_dir: str, table: pa.Table) -> List[str]:
        """テーブルをバージョンディレクトリに保存

        Args:
            version_dir: バージョンディレクトリ名（例: ``v__=0``）
            table: 保存するテーブル

        Returns:
            保存したファイルの相対パス
        """
        output_dir = self.index_dir / version_dir
        output_dir.mkdir(parents=True, exist_ok=True)

        batch_id = uuid.uuid4().hex
        written = []
        offsets = range(0, max(table.num_rows, 1), self.max_rows_per_file)
        for part, offset in enumerate(offsets):
            chunk = table.slice(offset, self.max_rows_per_file)
            file_name = (
                f"{self.PART_FILE_PREFIX}-{part:05d}-{batch_id}{self.PART_FILE_SUFFIX}"
            )
            try:
                pq.write_table(chunk, output_dir / file_name)
            except (OSError, pa.ArrowException) as e:
                raise StorageError(
                    f"Failed to write index data: {e}",
                    path=str(output_dir / file_name),
                    cause=e,
                ) from e
            written.append(f"{version_dir}/{file_name}")

        logger.debug(f"Wrote {table.num_rows} rows to {len(written)} file(s) in {output_dir}")
        return written

    # === Read ===

    def read_tables(
        self,
        files: Iterable[str],
        columns: list[str] | None = None,
    ) -> pa.Table | None:
        """インデックスデータを読み込み

        Args:
            files: 相対パスの一覧
            columns: 取得するカラム（省略時は全カラム）

        Returns:
            連結したテーブル（ファイルがなければNone）
        """
        tables = []
        for rel_path in files:
            file_path = self.index_dir / rel_path
            try:
                tables.append(pq.read_table(file_path, columns=columns))
            except (OSError, pa.ArrowException) as e:
                raise StorageError(
                    f"Failed to read index data: {e}", path=str(file_path), cause=e
                ) from e
        if not tables:
            return None
        return pa.concat_tables(tables)

    def read_schema(self, files: Iterable[str]) -> pa.Schema | None:
        """先頭ファイルのスキーマを取得（ファイルがなければNone）"""
        for rel_path in files:
            file_path = self.index_dir / rel_path
            try:
                return pq.read_schema(file_path)
            except (OSError, pa.ArrowException) as e:
                raise StorageError(
                    f"Failed to read index schema: {e}", path=str(file_path), cause=e
                ) from e
        return None

    def read_rows(self, files: Iterable[str]) -> list[dict[str, Any]]:
        """インデックスデータを行の辞書として読み込み"""
        table = self.read_tables(files)
        return [] if table is None else table.to_pylist()

    def read_excluding(
        self,
        files: Iterable[str],
        id_column: str,
        excluded_ids: Iterable[int],
    ) -> pa.Table | None:
        """指定したファイルIDの行を除いて読み込み

        Args:
            files: 相対パスの一覧
            id_column: ファイルIDカラム名
            excluded_ids: 除外するファイルID

        Returns:
            フィルタ済みテーブル（ファイルがなければNone）
        """
        table = self.read_tables(files)
        excluded = sorted(set(excluded_ids))
        if table is None or not excluded:
            return table

        mask = pc.invert(
            pc.is_in(table[id_column], value_set=pa.array(excluded, type=pa.int64()))
        )
        return table.filter(mask)

    # === Utilities ===

    def exists(self, rel_path: str) -> bool:
        """ファイルが存在するかチェック"""
        return (self.index_dir / rel_path).exists()

    def get_stats(self, files: Iterable[str]) -> dict[str, Any]:
        """ストレージの統計情報を取得

        Returns:
            統計情報
        """
        stats = {
            "index_dir": str(self.index_dir),
            "file_count": 0,
            "row_count": 0,
            "total_size_bytes": 0,
        }

        for rel_path in files:
            file_path = self.index_dir / rel_path
            if file_path.exists():
                stats["file_count"] += 1
                stats["row_count"] += pq.read_metadata(file_path).num_rows
                stats["total_size_bytes"] += file_path.stat().st_size

        return stats
