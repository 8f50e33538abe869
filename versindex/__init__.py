# VERSINDEX - Versioned Indexes over File-Based Datasets
"""
VERSINDEX: change detection and incremental versioning for derived indexes

Maintains immutable, numbered index versions over external file-based datasets,
detects source changes with metadata signatures and refreshes indexes with a
quick (metadata only) or incremental (new version) refresh.
"""

__version__ = "0.1.0"
__author__ = "VERSINDEX Team"

__all__ = [
    "__version__",
    # Main API
    "Versindex",
    "VersindexConfig",
    "IndexConfig",
    "IndexStatistics",
    "RefreshResult",
]


# Lazy imports so that importing the package does not pull in pyarrow
def __getattr__(name):
    """Lazy import for the main API."""
    if name in ("Versindex", "create_versindex"):
        from versindex.api.versindex import Versindex, create_versindex
        return Versindex if name == "Versindex" else create_versindex
    if name in ("VersindexConfig", "RefreshResult"):
        from versindex.api.base import RefreshResult, VersindexConfig
        return {"VersindexConfig": VersindexConfig, "RefreshResult": RefreshResult}[name]
    if name == "IndexConfig":
        from versindex.index.types import IndexConfig
        return IndexConfig
    if name == "IndexStatistics":
        from versindex.index.version import IndexStatistics
        return IndexStatistics
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
