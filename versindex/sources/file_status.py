"""File Status Compatibility.

リスティングが返すファイルステータスを統一的に扱うためのアダプタ。

Variants:
    - NativeFileStatus: ``os.stat_result`` に基づくステータス
    - ForeignFileStatus: 外部のオブジェクト / マッピング（フィールド名が異なる）

最初のステータスを一度だけ調べてどちらの形式かを決定し、以降はその結果を使う。
外部形式の場合もアクセサ（フィールド名）の解決は一度だけ行う。
"""

from __future__ import annotations

import logging
import os
import stat as stat_module
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from versindex.errors import CompatibilityFallbackError
from versindex.index.types import FileInfo

logger = logging.getLogger(__name__)

# 外部形式で受け付けるフィールド名（先に見つかったものを使う）
LENGTH_ALIASES = ("length", "size", "len")
IS_DIR_ALIASES = ("is_dir", "isDir", "isdir", "type")
MODIFICATION_TIME_ALIASES = ("modification_time", "modificationTime", "mtime")
PATH_ALIASES = ("path", "name")


class FileStatus(ABC):
    """ファイルステータス"""

    @property
    @abstractmethod
    def path(self) -> str:
        ...

    @property
    @abstractmethod
    def length(self) -> int:
        ...

    @property
    @abstractmethod
    def is_dir(self) -> bool:
        ...

    @property
    @abstractmethod
    def modification_time(self) -> int:
        """更新日時（エポックミリ秒）"""

    def to_file_info(self) -> FileInfo:
        """FileInfoに変換"""
        return FileInfo(
            path=self.path,
            size=self.length,
            modified_time=self.modification_time,
        )


@dataclass(frozen=True)
class NativeFileStatus(FileStatus):
    """``os.stat_result`` に基づくファイルステータス"""
    file_path: str
    stat_result: os.stat_result

    @classmethod
    def from_path(cls, path: str) -> NativeFileStatus:
        return cls(os.path.abspath(path), os.stat(path))

    @property
    def path(self) -> str:
        return self.file_path

    @property
    def length(self) -> int:
        return self.stat_result.st_size

    @property
    def is_dir(self) -> bool:
        return stat_module.S_ISDIR(self.stat_result.st_mode)

    @property
    def modification_time(self) -> int:
        return self.stat_result.st_mtime_ns // 1_000_000


@dataclass(frozen=True)
class ForeignAccessors:
    """外部形式のフィールド名（解決済み）"""
    length: str
    is_dir: str
    modification_time: str
    path: str

    @classmethod
    def resolve(cls, status: Any) -> ForeignAccessors:
        """ステータスからフィールド名を解決

        Raises:
            CompatibilityFallbackError: 解決できないフィールドがある場合
        """
        resolved: Dict[str, Optional[str]] = {
            "length": _find_field(status, LENGTH_ALIASES),
            "is_dir": _find_field(status, IS_DIR_ALIASES),
            "modification_time": _find_field(status, MODIFICATION_TIME_ALIASES),
            "path": _find_field(status, PATH_ALIASES),
        }
        missing = [name for name, accessor in resolved.items() if accessor is None]
        if missing:
            raise CompatibilityFallbackError(
                f"Cannot resolve file status fields {', '.join(missing)} "
                f"on {type(status).__name__}",
                status_type=type(status).__name__,
                missing_fields=missing,
            )
        return cls(**resolved)  # type: ignore[arg-type]


class ForeignFileStatus(FileStatus):
    """外部形式のファイルステータス"""

    def __init__(self, status: Any, accessors: ForeignAccessors) -> None:
        self._status = status
        self._accessors = accessors

    @property
    def path(self) -> str:
        return str(_get_field(self._status, self._accessors.path))

    @property
    def length(self) -> int:
        return int(_get_field(self._status, self._accessors.length))

    @property
    def is_dir(self) -> bool:
        value = _get_field(self._status, self._accessors.is_dir)
        if isinstance(value, str):
            return value.lower() in ("dir", "directory")
        return bool(value)

    @property
    def modification_time(self) -> int:
        value = _get_field(self._status, self._accessors.modification_time)
        if isinstance(value, float):
            # 秒単位の浮動小数点はミリ秒に変換
            return int(value * 1000)
        return int(value)


class FileStatusAdapter:
    """ファイルステータスアダプタ

    最初に渡されたステータスで形式を判定する。判定後は同じ形式の
    ステータスが渡される前提で変換する。

    Example:
        >>> adapter = FileStatusAdapter()
        >>> infos = [adapter.adapt(s).to_file_info() for s in statuses]
    """

    def __init__(self) -> None:
        self._convert: Optional[Callable[[Any], FileStatus]] = None
        self.variant: Optional[str] = None

    def adapt(self, status: Any) -> FileStatus:
        """ステータスを FileStatus に変換"""
        if self._convert is None:
            self._convert = self._probe(status)
        return self._convert(status)

    def _probe(self, status: Any) -> Callable[[Any], FileStatus]:
        if isinstance(status, FileStatus):
            self.variant = type(status).__name__
            return lambda s: s

        if isinstance(status, os.DirEntry):
            self.variant = NativeFileStatus.__name__
            return lambda s: NativeFileStatus(os.path.abspath(s.path), s.stat())

        accessors = ForeignAccessors.resolve(status)
        self.variant = ForeignFileStatus.__name__
        logger.debug(f"Using foreign file status accessors {accessors} for {type(status).__name__}")
        return lambda s: ForeignFileStatus(s, accessors)


def _find_field(status: Any, aliases: Sequence[str]) -> Optional[str]:
    for alias in aliases:
        if isinstance(status, Mapping):
            if alias in status:
                return alias
        elif hasattr(status, alias):
            return alias
    return None


def _get_field(status: Any, name: str) -> Any:
    try:
        if isinstance(status, Mapping):
            value = status[name]
        else:
            value = getattr(status, name)
    except (KeyError, AttributeError) as e:
        raise CompatibilityFallbackError(
            f"File status {type(status).__name__} has no field {name}",
            status_type=type(status).__name__,
            missing_fields=[name],
            cause=e,
        ) from e
    return value() if callable(value) else value
