# Parquet Storage Unit Tests
"""
Unit tests for Parquet storage.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import pyarrow as pa
import pytest

from versindex.errors import StorageError
from versindex.index.constants import DATA_FILE_ID_COLUMN
from versindex.storage.parquet import ParquetStorage


def create_index_table(rows: int, file_id: int = 0) -> pa.Table:
    """テスト用のインデックステーブルを作成"""
    return pa.table({
        "id": pa.array(list(range(rows)), type=pa.int64()),
        DATA_FILE_ID_COLUMN: pa.array([file_id] * rows, type=pa.int64()),
    })


class TestParquetStorage:
    """ParquetStorageのテスト"""

    def test_write_table(self):
        """バージョンディレクトリへの書き込み"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            files = storage.write_table("v__=0", create_index_table(3))

            assert len(files) == 1
            assert files[0].startswith("v__=0/part-00000-")
            assert files[0].endswith(".parquet")
            assert storage.exists(files[0])
            assert (Path(tmpdir) / "v__=0").is_dir()

    def test_write_splits_large_tables(self):
        """max_rows_per_fileごとにファイルを分割"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir, max_rows_per_file=2)
            files = storage.write_table("v__=1", create_index_table(5))

            assert len(files) == 3
            assert storage.read_tables(files).num_rows == 5

    def test_write_empty_table(self):
        """空のテーブルでもスキーマを持つファイルを1つ書き込む"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            files = storage.write_table("v__=0", create_index_table(0))

            assert len(files) == 1
            table = storage.read_tables(files)
            assert table.num_rows == 0
            assert table.column_names == ["id", DATA_FILE_ID_COLUMN]

    def test_read_tables_columns(self):
        """カラムを指定して読み込み"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            files = storage.write_table("v__=0", create_index_table(2))

            table = storage.read_tables(files, columns=["id"])
            assert table.column_names == ["id"]

    def test_read_tables_no_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            assert ParquetStorage(tmpdir).read_tables([]) is None
            assert ParquetStorage(tmpdir).read_rows([]) == []

    def test_read_schema(self):
        """先頭ファイルのスキーマを取得"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            files = storage.write_table("v__=0", create_index_table(0))

            schema = storage.read_schema(files)
            assert schema.names == ["id", DATA_FILE_ID_COLUMN]
            assert schema.field("id").type == pa.int64()
            assert storage.read_schema([]) is None

    def test_read_missing_file_raises(self):
        """存在しないファイルはStorageError"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            with pytest.raises(StorageError):
                storage.read_tables(["v__=0/missing.parquet"])

    def test_read_rows(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            files = storage.write_table("v__=0", create_index_table(2, file_id=7))

            rows = storage.read_rows(files)
            assert rows == [
                {"id": 0, DATA_FILE_ID_COLUMN: 7},
                {"id": 1, DATA_FILE_ID_COLUMN: 7},
            ]

    def test_read_excluding(self):
        """除外IDの行を取り除く"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            files = storage.write_table("v__=0", create_index_table(2, file_id=0))
            files += storage.write_table("v__=0", create_index_table(3, file_id=1))

            table = storage.read_excluding(files, DATA_FILE_ID_COLUMN, [0])
            assert table.num_rows == 3
            assert set(table.column(DATA_FILE_ID_COLUMN).to_pylist()) == {1}

            # 除外なしはそのまま
            assert storage.read_excluding(files, DATA_FILE_ID_COLUMN, []).num_rows == 5

    def test_get_stats(self):
        """統計情報"""
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = ParquetStorage(tmpdir)
            files = storage.write_table("v__=0", create_index_table(4))

            stats = storage.get_stats(files + ["v__=0/missing.parquet"])
            assert stats["file_count"] == 1
            assert stats["row_count"] == 4
            assert stats["total_size_bytes"] > 0
