"""Tests for Error Handling Framework.

Exception classes and ErrorHandler tests.
"""

import logging

import pytest

from versindex.errors import (
    CompatibilityFallbackError,
    ConcurrentWriteError,
    ConfigurationError,
    ErrorContext,
    ErrorHandler,
    ErrorHandlerConfig,
    ErrorSeverity,
    IdentityConflictError,
    IndexExistsError,
    IndexNotFoundError,
    StorageError,
    UnsupportedSourceError,
    ValidationError,
    VersindexError,
    create_error_handler,
    get_error_handler,
)


# ============================================================
# ErrorSeverity Tests
# ============================================================


class TestErrorSeverity:
    """ErrorSeverity tests."""

    def test_severity_values(self):
        """Test severity values."""
        assert ErrorSeverity.DEBUG.value == "debug"
        assert ErrorSeverity.WARNING.value == "warning"
        assert ErrorSeverity.CRITICAL.value == "critical"

    def test_to_logging_level(self):
        """Test conversion to logging level."""
        assert ErrorSeverity.DEBUG.to_logging_level() == logging.DEBUG
        assert ErrorSeverity.ERROR.to_logging_level() == logging.ERROR


# ============================================================
# ErrorContext Tests
# ============================================================


class TestErrorContext:
    """ErrorContext tests."""

    def test_context_creation(self):
        """Test context creation."""
        ctx = ErrorContext()

        assert ctx.error_id.startswith("err_")
        assert ctx.timestamp is not None

    def test_to_dict(self):
        """Test context serialization."""
        ctx = ErrorContext(component="index", operation="refresh", details={"k": 1})

        data = ctx.to_dict()

        assert data["component"] == "index"
        assert data["operation"] == "refresh"
        assert data["details"] == {"k": 1}


# ============================================================
# VersindexError Tests
# ============================================================


class TestVersindexError:
    """VersindexError tests."""

    def test_basic_error(self):
        """Test basic error creation."""
        error = VersindexError("Something went wrong")

        assert error.message == "Something went wrong"
        assert error.code == "VERSINDEX_ERROR"
        assert error.severity == ErrorSeverity.ERROR

    def test_error_with_context(self):
        """Test error with context."""
        error = VersindexError(
            "Error",
            component="index",
            operation="create",
            index_name="idx",
        )

        assert error.context.component == "index"
        assert error.context.operation == "create"
        assert error.context.details["index_name"] == "idx"

    def test_error_str(self):
        """Test error string representation."""
        cause = OSError("disk full")
        error = VersindexError("Write failed", code="ERR001", component="storage", cause=cause)

        error_str = str(error)

        assert "[ERR001]" in error_str
        assert "storage" in error_str
        assert "disk full" in error_str

    def test_to_dict(self):
        """Test error serialization."""
        error = StorageError("Failed", path="/ix/idx")

        data = error.to_dict()

        assert data["error_type"] == "StorageError"
        assert data["code"] == "STORAGE_ERROR"
        assert data["context"]["details"]["path"] == "/ix/idx"

    def test_from_exception(self):
        """Test creating from exception."""
        original = ValueError("Original")
        error = StorageError.from_exception(original)

        assert error.cause is original
        assert "Original" in error.message


# ============================================================
# Specific Exception Tests
# ============================================================


class TestSpecificErrors:
    """Specific exception tests."""

    def test_validation_error(self):
        error = ValidationError(
            "Pattern mismatch", field="versindex.source.globbingPattern", value=["/a"]
        )

        assert error.code == "VALIDATION_ERROR"
        assert error.severity == ErrorSeverity.WARNING
        assert error.context.details["field"] == "versindex.source.globbingPattern"
        assert error.context.details["value"] == "['/a']"

    def test_compatibility_fallback_is_unsupported_source(self):
        error = CompatibilityFallbackError(
            "Cannot resolve", status_type="dict", missing_fields=["length"]
        )

        assert isinstance(error, UnsupportedSourceError)
        assert error.code == "COMPAT_FALLBACK_ERROR"
        assert error.context.details["missing_fields"] == ["length"]

    def test_identity_conflict_is_critical(self):
        error = IdentityConflictError("Conflict", path="/a", existing_id=0, conflicting_id=1)

        assert error.severity == ErrorSeverity.CRITICAL
        assert error.context.details == {"path": "/a", "existing_id": 0, "conflicting_id": 1}

    @pytest.mark.parametrize(
        "error,code",
        [
            (IndexNotFoundError("x", index_name="idx"), "INDEX_NOT_FOUND"),
            (IndexExistsError("x", index_name="idx"), "INDEX_EXISTS"),
            (ConcurrentWriteError("x", log_id=3), "CONCURRENT_WRITE"),
            (ConfigurationError("x"), "CONFIG_ERROR"),
        ],
    )
    def test_error_codes(self, error, code):
        assert error.code == code
        assert isinstance(error, VersindexError)

    def test_concurrent_write_log_id(self):
        assert ConcurrentWriteError("x", log_id=0).context.details["log_id"] == 0


# ============================================================
# Error Handler Tests
# ============================================================


class TestErrorHandler:
    """ErrorHandler tests."""

    def test_handler_creation(self):
        """Test handler creation."""
        handler = ErrorHandler()

        assert handler.config.log_errors is True

    def test_handle_exception(self):
        """Test handling exception."""
        handler = ErrorHandler()

        try:
            raise ValueError("Original")
        except Exception as e:
            with pytest.raises(VersindexError):
                handler.handle(e, component="test")

    def test_handle_converts_with_error_cls(self):
        """Test conversion with a specific error class."""
        handler = ErrorHandler()

        with pytest.raises(StorageError) as exc_info:
            handler.handle(OSError("disk"), operation="refresh", error_cls=StorageError)

        assert exc_info.value.context.operation == "refresh"
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_handle_without_reraise(self):
        """Test handling without reraise."""
        handler = ErrorHandler()

        error = handler.handle(ValueError("Original"), reraise=False)

        assert isinstance(error, VersindexError)
        assert "Original" in error.message

    def test_handle_versindex_error_keeps_type(self):
        """Test handling VersindexError."""
        handler = ErrorHandler()
        original = ValidationError("Bad mode", field="mode")

        with pytest.raises(ValidationError) as exc_info:
            handler.handle(original, component="index", index_name="idx")

        assert exc_info.value is original
        assert original.context.component == "index"
        assert original.context.details["index_name"] == "idx"

    def test_handle_logs_with_severity(self, caplog):
        """Test log level follows severity."""
        handler = ErrorHandler()

        with caplog.at_level(logging.DEBUG, logger="versindex.errors"):
            handler.handle(ValidationError("warn me"), reraise=False)
            handler.handle(IdentityConflictError("critical"), reraise=False)

        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.WARNING, logging.CRITICAL]

    def test_no_logging_when_disabled(self, caplog):
        handler = ErrorHandler(config=ErrorHandlerConfig(log_errors=False))

        with caplog.at_level(logging.DEBUG, logger="versindex.errors"):
            handler.handle(StorageError("quiet"), reraise=False)

        assert caplog.records == []

    def test_get_stats(self):
        """Test getting stats."""
        handler = ErrorHandler()

        handler.handle(ValueError("Test"), reraise=False)
        handler.handle(StorageError("Test"), reraise=False)

        stats = handler.get_stats()

        assert stats["total_errors"] == 2
        assert stats["error_counts"] == {"VersindexError": 1, "StorageError": 1}

    def test_get_recent_errors(self):
        """Test getting recent errors."""
        handler = ErrorHandler()

        for i in range(3):
            handler.handle(ValueError(f"Error {i}"), reraise=False)

        recent = handler.get_recent_errors(limit=2)

        assert [r["message"] for r in recent] == ["Error 1", "Error 2"]

    def test_clear_stats(self):
        """Test clearing stats."""
        handler = ErrorHandler()
        handler.handle(ValueError("Test"), reraise=False)

        handler.clear_stats()

        assert handler.get_stats()["total_errors"] == 0


# ============================================================
# Global Functions Tests
# ============================================================


class TestGlobalFunctions:
    """Global function tests."""

    def test_create_error_handler(self):
        """Test creating global handler."""
        handler = create_error_handler()

        assert isinstance(handler, ErrorHandler)
        assert get_error_handler() is handler
