# Storage Module
"""
Storage components for versindex.

Provides abstraction for index data persistence:
- Parquet (local file storage under version directories)
"""

from versindex.storage.parquet import ParquetStorage

__all__ = [
    "ParquetStorage",
]
