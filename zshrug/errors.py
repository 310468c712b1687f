from __future__ import annotations


class ZshrugError(Exception):
    """Base class for every error raised by zshrug."""


class ConfigError(ZshrugError):
    pass


class StorageError(ZshrugError):
    pass


class StorageCorrupt(StorageError):
    """The state file exists but cannot be decoded.

    Never recovered from automatically: resetting the state could re-download
    plugins that are already built, or hide ones that are broken.
    """


class LockError(StorageError):
    pass


class InstallError(ZshrugError):
    """A single plugin could not be installed. Isolated by the orchestrator."""

    def __init__(self, message: str, *, plugin: str) -> None:
        super().__init__(message)
        self.plugin = plugin


class FetchError(InstallError):
    pass


class BuildError(InstallError):
    pass


__all__ = [
    "ZshrugError",
    "ConfigError",
    "StorageError",
    "StorageCorrupt",
    "LockError",
    "InstallError",
    "FetchError",
    "BuildError",
]
