# Utilities
"""versindex.utils - 共通ユーティリティ"""

from versindex.utils.logging import setup_logging

__all__ = ["setup_logging"]
