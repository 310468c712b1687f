"""zshrug: a plugin manager for zsh."""

from .config import PluginSource, PluginSpec
from .errors import (
    BuildError,
    ConfigError,
    FetchError,
    InstallError,
    LockError,
    StorageCorrupt,
    StorageError,
    ZshrugError,
)
from .state import InstallState, StateStore
from .storage import Storage, StorageConfig

__version__ = "0.1.0"

__all__ = [
    "BuildError",
    "ConfigError",
    "FetchError",
    "InstallError",
    "InstallState",
    "LockError",
    "PluginSource",
    "PluginSpec",
    "StateStore",
    "Storage",
    "StorageConfig",
    "StorageCorrupt",
    "StorageError",
    "ZshrugError",
]
