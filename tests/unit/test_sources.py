"""Source Adapter Unit Tests.

ファイルステータス互換、ファイルインデックス、globパターン検証、
ソースプロバイダのユニットテスト。
"""

from __future__ import annotations

import os
from types import SimpleNamespace

import pyarrow as pa
import pytest

from versindex.errors import (
    CompatibilityFallbackError,
    UnsupportedSourceError,
    ValidationError,
)
from versindex.index.constants import BASE_PATH_OPTION_KEY, GLOBBING_PATTERN_KEY
from versindex.index.file_id_tracker import FileIdTracker
from versindex.index.signature import signature
from versindex.sources import (
    CachedTransform,
    DefaultFileBasedSource,
    FileDataset,
    FileIndex,
    FileStatusAdapter,
    ForeignFileStatus,
    InMemoryFileIndex,
    NativeFileStatus,
    SourceProviderManager,
    parse_formats,
    read_dataset,
    to_input_file_name,
    validate_root_paths,
)
from versindex.sources.globbing import globbing_patterns


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def table_dir(tmp_path, write_parquet, sample_rows):
    """パーティションなしのテーブル"""
    root = tmp_path / "table"
    write_parquet(root / "part-0.parquet", sample_rows(0, 2), mtime_ms=1_000)
    write_parquet(root / "part-1.parquet", sample_rows(2, 2), mtime_ms=2_000)
    return root


@pytest.fixture
def partitioned_dir(tmp_path, write_parquet, sample_rows):
    """Hiveパーティション形式のテーブル"""
    root = tmp_path / "partitioned"
    write_parquet(root / "year=2023" / "month=1" / "a.parquet", sample_rows(0, 1))
    write_parquet(root / "year=2024" / "month=2" / "b.parquet", sample_rows(1, 1))
    return root


class _PlainFileIndex(FileIndex):
    """パーティションを扱わないファイルインデックス"""

    @property
    def root_paths(self):
        return ["/plain"]

    def all_files(self):
        return []

    def refresh(self):
        pass


# =============================================================================
# Test: File Status
# =============================================================================

class TestFileStatus:
    """ファイルステータス互換のテスト"""

    def test_native_status(self, table_dir):
        """os.statに基づくステータス"""
        status = NativeFileStatus.from_path(str(table_dir / "part-0.parquet"))
        assert not status.is_dir
        assert status.length == os.path.getsize(table_dir / "part-0.parquet")
        assert status.modification_time == 1_000
        info = status.to_file_info()
        assert info.path == str(table_dir / "part-0.parquet")
        assert info.id is None

    def test_dir_entry_is_native(self, table_dir):
        """os.DirEntryはネイティブ形式として扱う"""
        adapter = FileStatusAdapter()
        with os.scandir(table_dir) as entries:
            statuses = [adapter.adapt(e) for e in entries]
        assert adapter.variant == "NativeFileStatus"
        assert all(isinstance(s, NativeFileStatus) for s in statuses)

    def test_foreign_mapping(self):
        """別名のフィールドを持つマッピング"""
        adapter = FileStatusAdapter()
        status = adapter.adapt(
            {"name": "/v/a.parquet", "size": 12, "modificationTime": 5_000, "isDir": False}
        )
        assert isinstance(status, ForeignFileStatus)
        assert adapter.variant == "ForeignFileStatus"
        assert (status.path, status.length, status.modification_time) == ("/v/a.parquet", 12, 5_000)
        assert not status.is_dir

    def test_foreign_object_with_methods(self):
        """メソッドとして公開されたフィールドは呼び出して値を得る"""
        status = FileStatusAdapter().adapt(
            SimpleNamespace(
                path=lambda: "/v/d",
                len=0,
                isdir=lambda: True,
                mtime=1.5,
            )
        )
        assert status.is_dir
        # 秒単位の浮動小数点はミリ秒に変換
        assert status.modification_time == 1_500

    def test_foreign_type_string(self):
        """種別文字列でディレクトリを判定"""
        status = FileStatusAdapter().adapt(
            {"path": "/v/d", "length": 0, "mtime": 0, "type": "directory"}
        )
        assert status.is_dir

    def test_unresolvable_fields_raise(self):
        """解決できないフィールドはCompatibilityFallbackError"""
        with pytest.raises(CompatibilityFallbackError) as exc_info:
            FileStatusAdapter().adapt({"path": "/v/a", "size": 1})
        details = exc_info.value.context.details
        assert details["missing_fields"] == ["is_dir", "modification_time"]
        assert isinstance(exc_info.value, UnsupportedSourceError)

    def test_probe_happens_once(self):
        """形式の判定は最初のステータスでのみ行う"""
        adapter = FileStatusAdapter()
        adapter.adapt({"path": "/v/a", "size": 1, "mtime": 1, "is_dir": False})
        second = adapter.adapt({"path": "/v/b", "size": 2, "mtime": 2, "is_dir": False})
        assert second.path == "/v/b"
        assert adapter.variant == "ForeignFileStatus"

    def test_later_status_missing_field_raises(self):
        """判定後のステータスにフィールドがない場合もCompatibilityFallbackError"""
        adapter = FileStatusAdapter()
        adapter.adapt({"path": "/v/a", "size": 1, "mtime": 1, "is_dir": False})
        second = adapter.adapt({"path": "/v/b", "mtime": 2, "is_dir": False})

        with pytest.raises(CompatibilityFallbackError) as exc_info:
            second.to_file_info()
        assert exc_info.value.context.details["missing_fields"] == ["size"]


# =============================================================================
# Test: InMemoryFileIndex
# =============================================================================

class TestInMemoryFileIndex:
    """InMemoryFileIndex のテスト"""

    def test_lists_files_sorted(self, table_dir):
        index = InMemoryFileIndex([str(table_dir)])
        files = index.all_files()
        assert [os.path.basename(f.path) for f in files] == ["part-0.parquet", "part-1.parquet"]
        assert [f.modified_time for f in files] == [1_000, 2_000]
        assert index.status_variant == "NativeFileStatus"
        assert not index.partition_spec.is_partitioned

    def test_skips_hidden_files_and_directories(self, table_dir, write_parquet, sample_rows):
        """. / _ で始まるファイル・ディレクトリは無視する"""
        (table_dir / "_SUCCESS").write_text("")
        (table_dir / ".part-0.parquet.crc").write_text("")
        write_parquet(table_dir / "_temporary" / "part-9.parquet", sample_rows(9, 1))

        files = InMemoryFileIndex([str(table_dir)]).all_files()
        assert len(files) == 2

    def test_single_file_root(self, table_dir):
        """ファイルをルートとして指定できる"""
        files = InMemoryFileIndex([str(table_dir / "part-1.parquet")]).all_files()
        assert [f.modified_time for f in files] == [2_000]

    def test_missing_root_raises(self, tmp_path):
        from versindex.errors import StorageError

        with pytest.raises(StorageError):
            InMemoryFileIndex([str(tmp_path / "missing")]).all_files()

    def test_partition_detection(self, partitioned_dir):
        """key=value ディレクトリをパーティションとして検出"""
        index = InMemoryFileIndex([str(partitioned_dir)])
        spec = index.partition_spec
        assert spec.partition_columns == ("year", "month")
        assert len(spec.partition_paths) == 2

        file = next(f for f in index.all_files() if f.path.endswith("a.parquet"))
        assert index.partition_values(file.path) == {"year": "2023", "month": "1"}

    def test_partition_detection_with_base_path(self, partitioned_dir):
        """basePathを基準にパーティションを検出"""
        index = InMemoryFileIndex(
            [str(partitioned_dir / "year=2024")], base_path=str(partitioned_dir)
        )
        assert index.partition_spec.partition_columns == ("year", "month")

    def test_inconsistent_partitions_raise(self, partitioned_dir, write_parquet, sample_rows):
        """パーティション列が一致しない場合はUnsupportedSourceError"""
        write_parquet(partitioned_dir / "day=1" / "c.parquet", sample_rows(5, 1))
        with pytest.raises(UnsupportedSourceError):
            InMemoryFileIndex([str(partitioned_dir)]).all_files()

    def test_refresh_relists(self, table_dir, write_parquet, sample_rows):
        """refresh後は最新のファイルを列挙する"""
        index = InMemoryFileIndex([str(table_dir)])
        assert len(index.all_files()) == 2
        write_parquet(table_dir / "part-2.parquet", sample_rows(4, 1))
        assert len(index.all_files()) == 2
        index.refresh()
        assert len(index.all_files()) == 3

    def test_listing_hook_with_foreign_status(self):
        """リスティングフックが返す外部形式のステータス"""
        def hook(root):
            return [
                {"path": f"{root}/b.parquet", "size": 2, "mtime": 20, "isDir": False},
                {"path": f"{root}/sub", "size": 0, "mtime": 0, "isDir": True},
                {"path": f"{root}/a.parquet", "size": 1, "mtime": 10, "isDir": False},
            ]

        index = InMemoryFileIndex(["/virtual/t"], listing_hook=hook)
        files = index.all_files()
        assert [(f.path, f.size) for f in files] == [
            ("/virtual/t/a.parquet", 1),
            ("/virtual/t/b.parquet", 2),
        ]
        assert index.status_variant == "ForeignFileStatus"

    def test_failed_listing_publishes_nothing(self):
        """途中で失敗したリスティングは公開しない"""
        def hook(root):
            return [{"path": f"{root}/a", "size": 1}]

        index = InMemoryFileIndex(["/virtual/t"], listing_hook=hook)
        with pytest.raises(CompatibilityFallbackError):
            index.all_files()
        assert index._files is None


# =============================================================================
# Test: read_dataset
# =============================================================================

class TestReadDataset:
    """read_dataset のテスト"""

    def test_schema_and_rows(self, table_dir):
        dataset = read_dataset([str(table_dir)], "PARQUET")
        assert dataset.file_format == "parquet"
        assert dataset.data_schema.names == ["id", "name", "amount"]
        assert dataset.read_table().num_rows == 4

    def test_partition_columns_appended(self, partitioned_dir):
        """パーティション値は文字列列として付与する"""
        dataset = read_dataset([str(partitioned_dir)], "parquet")
        assert dataset.data_schema.names[-2:] == ["year", "month"]
        table = dataset.read_table()
        assert sorted(table.column("year").to_pylist()) == ["2023", "2024"]
        assert table.schema.field("year").type == pa.string()

    def test_glob_paths(self, tmp_path, write_parquet, sample_rows):
        """パス中のglobを展開する"""
        write_parquet(tmp_path / "data" / "2023" / "a.parquet", sample_rows(0, 1))
        write_parquet(tmp_path / "data" / "2024" / "b.parquet", sample_rows(1, 1))
        dataset = read_dataset([str(tmp_path / "data" / "*")], "parquet")
        assert len(dataset.location.root_paths) == 2
        assert len(dataset.location.all_files()) == 2

    def test_no_match_raises(self, tmp_path):
        from versindex.errors import StorageError

        with pytest.raises(StorageError):
            read_dataset([str(tmp_path / "nothing-*")], "parquet")

    def test_to_input_file_name(self, tmp_path):
        """正規化済みファイル名はfile URI"""
        name = to_input_file_name(str(tmp_path / "a.parquet"))
        assert name.startswith("file:///")
        assert name.endswith("/a.parquet")
        assert to_input_file_name("/gone") == "file:///gone"


# =============================================================================
# Test: Globbing
# =============================================================================

class TestGlobbing:
    """globパターン検証のテスト"""

    def test_no_option(self):
        assert globbing_patterns({}) is None

    def test_patterns_are_split_and_trimmed(self):
        patterns = globbing_patterns({GLOBBING_PATTERN_KEY: " /a/* , /b/*"})
        assert patterns == ["/a/*", "/b/*"]

    def test_empty_pattern_raises(self):
        with pytest.raises(ValidationError):
            globbing_patterns({GLOBBING_PATTERN_KEY: " , "})

    def test_matching_roots(self, tmp_path):
        (tmp_path / "2023").mkdir()
        (tmp_path / "2024").mkdir()
        pattern = str(tmp_path / "*")
        result = validate_root_paths([pattern], [str(tmp_path / "2023"), str(tmp_path / "2024")])
        assert result == [pattern]

    def test_mismatched_roots_raise(self, tmp_path):
        """パターンに含まれないルートパスはValidationError"""
        (tmp_path / "2023").mkdir()
        (tmp_path / "2024").mkdir()
        pattern = str(tmp_path / "2024*")
        with pytest.raises(ValidationError) as exc_info:
            validate_root_paths([pattern], [str(tmp_path / "2023"), str(tmp_path / "2024")])
        assert str(tmp_path / "2023") in exc_info.value.message
        assert pattern in exc_info.value.message


# =============================================================================
# Test: DefaultFileBasedSource
# =============================================================================

class TestDefaultFileBasedSource:
    """DefaultFileBasedSource のテスト"""

    def test_signature_matches_listing(self, table_dir):
        dataset = read_dataset([str(table_dir)], "parquet")
        source = DefaultFileBasedSource()
        assert source.signature(dataset) == signature(dataset.location.all_files())

    def test_unsupported_format_returns_none(self, table_dir):
        """サポート外のフォーマットには応答しない"""
        dataset = read_dataset([str(table_dir)], "parquet")
        source = DefaultFileBasedSource("csv")
        assert source.signature(dataset) is None
        assert source.create_relation(dataset, FileIdTracker()) is None
        assert source.has_parquet_as_source_format(dataset) is None

    def test_create_relation_strips_path_option(self, table_dir):
        """pathオプションは取り除き、他のオプションは残す"""
        dataset = read_dataset(
            [str(table_dir)], "parquet", options={"path": str(table_dir), "mergeSchema": "true"}
        )
        tracker = FileIdTracker()
        relation = DefaultFileBasedSource().create_relation(dataset, tracker)

        assert "path" not in relation.options
        assert relation.options["mergeSchema"] == "true"
        assert BASE_PATH_OPTION_KEY not in relation.options
        assert relation.root_paths == (str(table_dir),)
        assert relation.file_format == "parquet"
        assert sorted(f.id for f in relation.content.files) == [0, 1]
        assert len(tracker) == 2

    def test_create_relation_sets_base_path(self, partitioned_dir):
        """Hiveパーティションの場合はbasePathを設定"""
        dataset = read_dataset([str(partitioned_dir)], "parquet")
        relation = DefaultFileBasedSource().create_relation(dataset, FileIdTracker())
        assert relation.options[BASE_PATH_OPTION_KEY] == str(partitioned_dir)

    def test_create_relation_records_glob_patterns(self, tmp_path, write_parquet, sample_rows):
        """globパターンオプションがあればパターンをルートパスとして記録"""
        write_parquet(tmp_path / "data" / "2023" / "a.parquet", sample_rows(0, 1))
        write_parquet(tmp_path / "data" / "2024" / "b.parquet", sample_rows(1, 1))
        pattern = str(tmp_path / "data" / "*")
        dataset = read_dataset([pattern], "parquet", options={GLOBBING_PATTERN_KEY: pattern})
        relation = DefaultFileBasedSource().create_relation(dataset, FileIdTracker())
        assert relation.root_paths == (pattern,)

    def test_create_relation_rejects_mismatched_glob(self, tmp_path, write_parquet, sample_rows):
        write_parquet(tmp_path / "data" / "2023" / "a.parquet", sample_rows(0, 1))
        write_parquet(tmp_path / "data" / "2024" / "b.parquet", sample_rows(1, 1))
        dataset = read_dataset(
            [str(tmp_path / "data" / "*")],
            "parquet",
            options={GLOBBING_PATTERN_KEY: str(tmp_path / "data" / "2024")},
        )
        with pytest.raises(ValidationError):
            DefaultFileBasedSource().create_relation(dataset, FileIdTracker())

    def test_refresh_relation_returns_same_relation(self, table_dir):
        dataset = read_dataset([str(table_dir)], "parquet")
        source = DefaultFileBasedSource()
        relation = source.create_relation(dataset, FileIdTracker())
        assert source.refresh_relation(relation) is relation
        assert source.internal_file_format_name(relation) == "parquet"
        assert DefaultFileBasedSource("csv").refresh_relation(relation) is None

    def test_partition_base_path(self, table_dir, partitioned_dir):
        source = DefaultFileBasedSource()
        plain = source.partition_base_path(InMemoryFileIndex([str(table_dir)]))
        assert plain.is_supported and plain.base_path is None

        partitioned = source.partition_base_path(InMemoryFileIndex([str(partitioned_dir)]))
        assert partitioned.base_path == str(partitioned_dir)

        assert not source.partition_base_path(_PlainFileIndex()).is_supported

    def test_lineage_pairs_cover_whole_tracker(self, table_dir):
        """リネージ対応表はトラッカーの全エントリを含む"""
        dataset = read_dataset([str(table_dir)], "parquet")
        tracker = FileIdTracker.from_map({"/gone.parquet": 0})
        tracker.add_files(dataset.location.all_files())
        pairs = DefaultFileBasedSource().lineage_pairs(dataset, tracker)

        assert ("file:///gone.parquet", 0) in pairs
        assert len(pairs) == 3
        assert {file_id for _, file_id in pairs} == {0, 1, 2}

    def test_lineage_pairs_do_not_assign_ids(self, table_dir):
        """リネージ対応表の取得ではIDを割り当てない（読み取り専用でも使える）"""
        dataset = read_dataset([str(table_dir)], "parquet")
        tracker = FileIdTracker.from_map({"/gone.parquet": 0}).freeze()

        pairs = DefaultFileBasedSource().lineage_pairs(dataset, tracker)

        assert pairs == [("file:///gone.parquet", 0)]
        assert len(tracker) == 1

    def test_has_parquet_as_source_format(self, tmp_path):
        csv_path = tmp_path / "csv" / "a.csv"
        csv_path.parent.mkdir()
        csv_path.write_text("id,name\n1,a\n")
        dataset = read_dataset([str(csv_path.parent)], "csv")
        assert DefaultFileBasedSource().has_parquet_as_source_format(dataset) is False


# =============================================================================
# Test: CachedTransform
# =============================================================================

class TestCachedTransform:
    """CachedTransform のテスト"""

    def test_parse_formats(self):
        assert parse_formats(" CSV, parquet ,,") == frozenset({"csv", "parquet"})

    def test_transform_cached_until_value_changes(self):
        """ローダーの値が変わった場合のみ変換し直す"""
        value = {"formats": "csv"}
        calls = []

        def transform(raw):
            calls.append(raw)
            return parse_formats(raw)

        cached = CachedTransform(lambda: value["formats"], transform)
        assert cached.load() == frozenset({"csv"})
        assert cached.load() == frozenset({"csv"})
        assert cached.reload() == frozenset({"csv"})
        assert len(calls) == 1

        value["formats"] = "csv,json"
        assert cached.load() == frozenset({"csv"})
        assert cached.reload() == frozenset({"csv", "json"})
        assert len(calls) == 2

    def test_invalidate(self):
        calls = []
        cached = CachedTransform(lambda: "orc", lambda raw: calls.append(raw) or raw)
        cached.load()
        cached.invalidate()
        cached.load()
        assert calls == ["orc", "orc"]

    def test_source_picks_up_reloaded_formats(self, table_dir):
        """サポート対象フォーマットの再読み込み"""
        formats = {"value": "csv"}
        source = DefaultFileBasedSource(lambda: formats["value"])
        dataset = read_dataset([str(table_dir)], "parquet")
        assert source.signature(dataset) is None

        formats["value"] = "csv,parquet"
        source.supported_formats.reload()
        assert source.signature(dataset) is not None


# =============================================================================
# Test: SourceProviderManager
# =============================================================================

class TestSourceProviderManager:
    """SourceProviderManager のテスト"""

    def test_single_provider_answers(self, table_dir):
        dataset = read_dataset([str(table_dir)], "parquet")
        manager = SourceProviderManager()
        assert manager.signature(dataset) == signature(dataset.location.all_files())
        assert manager.has_parquet_as_source_format(dataset) is True
        assert manager.partition_base_path(dataset.location) is None
        assert len(manager.all_files(dataset)) == 2

    def test_no_provider_raises(self, table_dir):
        """どのプロバイダも応答しない場合はUnsupportedSourceError"""
        dataset = FileDataset(
            location=InMemoryFileIndex([str(table_dir)]),
            data_schema=pa.schema([]),
            file_format="avro",
        )
        manager = SourceProviderManager()
        with pytest.raises(UnsupportedSourceError):
            manager.signature(dataset)
        assert manager.try_create_relation(dataset, FileIdTracker()) is None

    def test_multiple_providers_raise(self, table_dir):
        """複数のプロバイダが応答した場合はUnsupportedSourceError"""
        dataset = read_dataset([str(table_dir)], "parquet")
        manager = SourceProviderManager([DefaultFileBasedSource()])
        manager.register(DefaultFileBasedSource())
        with pytest.raises(UnsupportedSourceError) as exc_info:
            manager.signature(dataset)
        assert exc_info.value.context.details["providers"] == ["default", "default"]

    def test_unsupported_location(self):
        """パーティションを扱わないロケーション"""
        with pytest.raises(UnsupportedSourceError):
            SourceProviderManager().partition_base_path(_PlainFileIndex())
