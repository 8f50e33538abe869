"""Index Types.

ソースデータのスナップショット、リレーション、インデックス設定の型定義。
"""

from __future__ import annotations

import json
import posixpath
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping

from versindex.errors import ValidationError

if TYPE_CHECKING:
    import pyarrow as pa

    from versindex.index.file_id_tracker import FileIdTracker


@dataclass(frozen=True)
class FileInfo:
    """ソースファイル1件のメタデータスナップショット

    等価性とハッシュは (path, size, modified_time) のみで判定する。
    id はリネージ用の注釈であり比較には使わない。

    Attributes:
        path: ファイルパス（絶対パス）
        size: ファイルサイズ（バイト）
        modified_time: 更新日時（エポックミリ秒）
        id: ファイルID（未割り当てならNone）
    """
    path: str
    size: int
    modified_time: int
    id: int | None = field(default=None, compare=False)

    def with_id(self, file_id: int) -> FileInfo:
        """IDを付与したコピーを返す"""
        return replace(self, id=file_id)

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "path": self.path,
            "size": self.size,
            "modified_time": self.modified_time,
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FileInfo:
        """辞書から作成"""
        return cls(
            path=data["path"],
            size=int(data["size"]),
            modified_time=int(data["modified_time"]),
            id=data.get("id"),
        )


@dataclass(frozen=True)
class Content:
    """データセットの1状態を構成する全ファイル

    同一パスのFileInfoを2件以上含むことはできない。

    Attributes:
        files: FileInfoの集合
    """
    files: frozenset = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        files = frozenset(self.files)
        object.__setattr__(self, "files", files)
        paths = [f.path for f in files]
        if len(paths) != len(set(paths)):
            duplicates = sorted({p for p in paths if paths.count(p) > 1})
            raise ValidationError(
                f"Content cannot contain the same path twice: {', '.join(duplicates)}",
                field="files",
                value=duplicates,
            )

    @classmethod
    def from_leaf_files(
        cls,
        files: Iterable[FileInfo],
        tracker: "FileIdTracker | None" = None,
    ) -> Content:
        """リーフファイルからContentを作成

        Args:
            files: ファイル一覧
            tracker: 指定された場合、各ファイルにIDを割り当てる

        Returns:
            Content
        """
        files = list(files)
        if tracker is not None:
            files = tracker.add_files(files)
        return cls(frozenset(files))

    @property
    def root_paths(self) -> frozenset:
        """ファイルの親ディレクトリ集合"""
        return frozenset(posixpath.dirname(f.path) for f in self.files)

    @property
    def paths(self) -> frozenset:
        return frozenset(f.path for f in self.files)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    def sorted_files(self) -> List[FileInfo]:
        """パス順にソートしたファイル一覧"""
        return sorted(self.files, key=lambda f: f.path)

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "files": [f.to_dict() for f in self.sorted_files()],
            "root_paths": sorted(self.root_paths),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Content:
        """辞書から作成"""
        return cls(frozenset(FileInfo.from_dict(f) for f in data.get("files", [])))


@dataclass(frozen=True)
class SourceProperties:
    """ソースデータのプロパティ（Contentから導出）"""
    content: Content
    kind: str = "file"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "content": self.content.to_dict(),
            "file_count": self.content.file_count,
            "total_size": self.content.total_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SourceProperties:
        return cls(
            content=Content.from_dict(data.get("content", {})),
            kind=data.get("kind", "file"),
        )


@dataclass(frozen=True)
class Relation:
    """データセットを再読み込みする方法

    インデックスバージョンに紐付いた後は変更しない。

    読み込みオプションに関する明示的な例外:
    リテラルの ``path`` オプションは常に取り除く。残しておくと、データセットの
    パスが ``root_paths`` と ``path`` の二重に解決され、同じデータが重複して
    読み込まれるためである。Hiveパーティション形式の場合は代わりに
    ``basePath`` オプションを設定する。

    Attributes:
        root_paths: ルートパス（globパターン指定時はパターン）
        properties: ソースプロパティ
        schema: シリアライズ済みスキーマ（JSON）
        file_format: ファイルフォーマット名
        options: 読み込みオプション
    """
    root_paths: tuple
    properties: SourceProperties
    schema: str
    file_format: str
    options: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "root_paths", tuple(self.root_paths))
        object.__setattr__(self, "options", dict(self.options))

    @property
    def content(self) -> Content:
        return self.properties.content

    def with_content(self, content: Content) -> Relation:
        """Contentを差し替えたコピーを返す"""
        return replace(self, properties=replace(self.properties, content=content))

    def schema_field_names(self) -> List[str]:
        """スキーマのフィールド名一覧"""
        return [f["name"] for f in json.loads(self.schema)] if self.schema else []

    def to_dict(self) -> Dict[str, Any]:
        """辞書に変換"""
        return {
            "root_paths": list(self.root_paths),
            "properties": self.properties.to_dict(),
            "schema": self.schema,
            "file_format": self.file_format,
            "options": dict(self.options),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Relation:
        """辞書から作成"""
        return cls(
            root_paths=tuple(data.get("root_paths", [])),
            properties=SourceProperties.from_dict(data.get("properties", {})),
            schema=data.get("schema", ""),
            file_format=data["file_format"],
            options=data.get("options", {}),
        )


def serialize_schema(schema: "pa.Schema | None") -> str:
    """pyarrowスキーマをJSON文字列にシリアライズ"""
    if schema is None:
        return "[]"
    return json.dumps(
        [
            {"name": f.name, "type": str(f.type), "nullable": f.nullable}
            for f in schema
        ]
    )


@dataclass(frozen=True)
class IndexConfig:
    """インデックス設定

    Attributes:
        index_name: インデックス名（大文字小文字を区別せず検索される）
        indexed_columns: インデックス列
        included_columns: 付随列
    """
    index_name: str
    indexed_columns: tuple
    included_columns: tuple = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "indexed_columns", tuple(self.indexed_columns))
        object.__setattr__(self, "included_columns", tuple(self.included_columns))

        if not self.index_name or not self.index_name.strip():
            raise ValidationError("Index name must not be empty", field="index_name")
        if not self.indexed_columns:
            raise ValidationError(
                "At least one indexed column is required", field="indexed_columns"
            )

        lowered = [c.lower() for c in self.indexed_columns + self.included_columns]
        if len(lowered) != len(set(lowered)):
            raise ValidationError(
                "Indexed and included columns must be unique",
                field="columns",
                value=list(self.indexed_columns + self.included_columns),
            )

    @property
    def all_columns(self) -> List[str]:
        return list(self.indexed_columns) + list(self.included_columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index_name": self.index_name,
            "indexed_columns": list(self.indexed_columns),
            "included_columns": list(self.included_columns),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IndexConfig:
        return cls(
            index_name=data["index_name"],
            indexed_columns=tuple(data.get("indexed_columns", [])),
            included_columns=tuple(data.get("included_columns", [])),
        )
