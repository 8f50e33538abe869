# Versindex API Module
"""
versindex.api - Python API (Versindex Facade)
"""

from versindex.api.base import RefreshResult, VersindexConfig
from versindex.api.config import DEFAULT_CONFIG_FILE, ConfigManager, load_config
from versindex.api.versindex import Versindex, create_versindex

__all__ = [
    # Data Classes
    "VersindexConfig",
    "RefreshResult",
    # Managers
    "ConfigManager",
    # Main API
    "Versindex",
    # Constants
    "DEFAULT_CONFIG_FILE",
    # Factory Functions
    "create_versindex",
    "load_config",
]
