"""VERSINDEX Error Handling Framework.

インデックスのバージョン管理・鮮度判定で発生するエラーを統一的に扱う。

Example:
    >>> from versindex.errors import ValidationError, UnsupportedSourceError
    >>>
    >>> raise ValidationError(
    ...     "Some glob patterns do not match with available root paths",
    ...     field="versindex.source.globbingPattern",
    ...     value="/data/*/2024",
    ... )
"""

from __future__ import annotations

import logging
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

__all__ = [
    # Base exceptions
    "VersindexError",
    "ConfigurationError",
    "ValidationError",
    "UnsupportedSourceError",
    "CompatibilityFallbackError",
    "IdentityConflictError",
    "IndexNotFoundError",
    "IndexExistsError",
    "ConcurrentWriteError",
    "StorageError",
    # Error context
    "ErrorContext",
    "ErrorSeverity",
    # Error handler
    "ErrorHandlerConfig",
    "ErrorHandler",
    "create_error_handler",
    "get_error_handler",
]


# ============================================================
# Error Severity
# ============================================================


class ErrorSeverity(str, Enum):
    """エラー重要度"""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_logging_level(self) -> int:
        """ロギングレベルに変換"""
        mapping = {
            ErrorSeverity.DEBUG: logging.DEBUG,
            ErrorSeverity.INFO: logging.INFO,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL,
        }
        return mapping[self]


# ============================================================
# Error Context
# ============================================================


@dataclass
class ErrorContext:
    """エラーコンテキスト情報

    Attributes:
        error_id: ユニークなエラーID
        timestamp: エラー発生時刻
        component: エラー発生コンポーネント
        operation: 実行中の操作
        details: 追加の詳細情報
        stack_trace: スタックトレース
    """

    error_id: str = field(default_factory=lambda: f"err_{int(time.time() * 1000)}")
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: str | None = None
    operation: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    stack_trace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "component": self.component,
            "operation": self.operation,
            "details": self.details,
            "stack_trace": self.stack_trace,
        }


# ============================================================
# Base Exception Classes
# ============================================================


class VersindexError(Exception):
    """VERSINDEX基底例外クラス

    すべてのVERSINDEX例外の基底クラス。
    構造化されたエラー情報を提供。

    Attributes:
        message: エラーメッセージ
        code: エラーコード
        severity: エラー重要度
        context: エラーコンテキスト
        cause: 原因となった例外
    """

    default_code: str = "VERSINDEX_ERROR"
    default_severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        severity: ErrorSeverity | None = None,
        cause: Exception | None = None,
        component: str | None = None,
        operation: str | None = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.severity = severity or self.default_severity
        self.cause = cause

        self.context = ErrorContext(
            component=component,
            operation=operation,
            details=details,
            stack_trace=traceback.format_exc() if cause else None,
        )

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.context.component:
            parts.append(f"(component: {self.context.component})")
        if self.context.operation:
            parts.append(f"(operation: {self.context.operation})")
        if self.cause:
            parts.append(f"caused by: {self.cause}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"severity={self.severity.value!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """辞書に変換"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "severity": self.severity.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        **kwargs: Any,
    ) -> "VersindexError":
        """既存の例外からVersindexErrorを作成"""
        return cls(
            message=message or str(exc),
            cause=exc,
            **kwargs,
        )


# ============================================================
# Specific Exception Classes
# ============================================================


class ConfigurationError(VersindexError):
    """設定エラー

    設定ファイルの読み込みや検証に失敗した場合。
    """

    default_code = "CONFIG_ERROR"


class ValidationError(VersindexError):
    """バリデーションエラー

    globパターンとルートパスの不一致、パス重複、不正なインデックス設定など。
    操作は即座に失敗する。
    """

    default_code = "VALIDATION_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if field:
            self.context.details["field"] = field
        if value is not None:
            self.context.details["value"] = repr(value)


class UnsupportedSourceError(VersindexError):
    """非対応ソースエラー

    どのソースアダプタもデータセットを扱えない場合（リレーション生成不可）。
    呼び出し側はリレーション単位でスキップまたは報告できる。
    """

    default_code = "UNSUPPORTED_SOURCE"
    default_severity = ErrorSeverity.WARNING


class CompatibilityFallbackError(UnsupportedSourceError):
    """互換フォールバックエラー

    外部形式のファイルステータスから必要なフィールドを解決できない場合。
    """

    default_code = "COMPAT_FALLBACK_ERROR"

    def __init__(
        self,
        message: str,
        status_type: str | None = None,
        missing_fields: list[str] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if status_type:
            self.context.details["status_type"] = status_type
        if missing_fields:
            self.context.details["missing_fields"] = list(missing_fields)


class IdentityConflictError(VersindexError):
    """ファイルID衝突エラー

    同一パスに異なるIDが割り当てられようとした場合。リネージの正しさを
    保証できないため致命的エラーとして扱う。
    """

    default_code = "IDENTITY_CONFLICT"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(
        self,
        message: str,
        path: str | None = None,
        existing_id: int | None = None,
        conflicting_id: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if path:
            self.context.details["path"] = path
        if existing_id is not None:
            self.context.details["existing_id"] = existing_id
        if conflicting_id is not None:
            self.context.details["conflicting_id"] = conflicting_id


class IndexNotFoundError(VersindexError):
    """インデックス未検出エラー"""

    default_code = "INDEX_NOT_FOUND"

    def __init__(self, message: str, index_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if index_name:
            self.context.details["index_name"] = index_name


class IndexExistsError(VersindexError):
    """インデックス重複エラー"""

    default_code = "INDEX_EXISTS"

    def __init__(self, message: str, index_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if index_name:
            self.context.details["index_name"] = index_name


class ConcurrentWriteError(VersindexError):
    """同時書き込みエラー

    同じインデックスに対する作成・リフレッシュが並行して実行された場合。
    """

    default_code = "CONCURRENT_WRITE"

    def __init__(self, message: str, log_id: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if log_id is not None:
            self.context.details["log_id"] = log_id


class StorageError(VersindexError):
    """ストレージエラー

    ログエントリやインデックスデータの読み書きに失敗した場合。
    """

    default_code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str,
        path: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if path:
            self.context.details["path"] = path


# ============================================================
# Error Handler
# ============================================================


@dataclass
class ErrorHandlerConfig:
    """エラーハンドラ設定"""

    log_errors: bool = True
    include_stack_trace: bool = True


class ErrorHandler:
    """統合エラーハンドラ

    エラーのログ記録、変換、集約を管理。

    Example:
        >>> handler = ErrorHandler()
        >>>
        >>> try:
        ...     refresh()
        ... except Exception as e:
        ...     handler.handle(e, component="index", operation="refresh")
    """

    def __init__(
        self,
        config: ErrorHandlerConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config or ErrorHandlerConfig()
        self.logger = logger or logging.getLogger("versindex.errors")

        self._error_counts: dict[str, int] = {}
        self._recent_errors: list[VersindexError] = []
        self._max_recent_errors = 100

    def handle(
        self,
        error: Exception,
        component: str | None = None,
        operation: str | None = None,
        reraise: bool = True,
        error_cls: type[VersindexError] = VersindexError,
        **context: Any,
    ) -> VersindexError:
        """エラーを処理

        Args:
            error: 処理するエラー
            component: コンポーネント名
            operation: 操作名
            reraise: エラーを再送出するか
            error_cls: VersindexError以外の例外を変換する際のクラス
            **context: 追加のコンテキスト

        Returns:
            変換されたVersindexError

        Raises:
            VersindexError: reraise=Trueの場合
        """
        if isinstance(error, VersindexError):
            converted = error
            if component and not converted.context.component:
                converted.context.component = component
            if operation and not converted.context.operation:
                converted.context.operation = operation
            converted.context.details.update(context)
        else:
            converted = error_cls.from_exception(
                error,
                component=component,
                operation=operation,
                **context,
            )

        if self.config.log_errors:
            self._log_error(converted)

        self._update_stats(converted)

        if reraise:
            if converted is error:
                raise converted
            raise converted from error

        return converted

    def _log_error(self, error: VersindexError) -> None:
        """エラーをログ記録"""
        level = error.severity.to_logging_level()

        message = str(error)
        if self.config.include_stack_trace and error.context.stack_trace:
            message += f"\n{error.context.stack_trace}"

        self.logger.log(level, message, extra={"error": error.to_dict()})

    def _update_stats(self, error: VersindexError) -> None:
        """統計を更新"""
        error_type = error.__class__.__name__
        self._error_counts[error_type] = self._error_counts.get(error_type, 0) + 1

        self._recent_errors.append(error)
        if len(self._recent_errors) > self._max_recent_errors:
            self._recent_errors.pop(0)

    def get_stats(self) -> dict[str, Any]:
        """エラー統計を取得"""
        return {
            "error_counts": dict(self._error_counts),
            "total_errors": sum(self._error_counts.values()),
            "recent_error_count": len(self._recent_errors),
        }

    def get_recent_errors(self, limit: int = 10) -> list[dict[str, Any]]:
        """最近のエラーを取得"""
        return [e.to_dict() for e in self._recent_errors[-limit:]]

    def clear_stats(self) -> None:
        """統計をクリア"""
        self._error_counts.clear()
        self._recent_errors.clear()


# Global error handler
_default_handler: ErrorHandler | None = None


def create_error_handler(
    config: ErrorHandlerConfig | None = None,
    logger: logging.Logger | None = None,
) -> ErrorHandler:
    """エラーハンドラを作成"""
    global _default_handler
    _default_handler = ErrorHandler(config=config, logger=logger)
    return _default_handler


def get_error_handler() -> ErrorHandler:
    """グローバルエラーハンドラを取得"""
    global _default_handler
    if _default_handler is None:
        _default_handler = ErrorHandler()
    return _default_handler
