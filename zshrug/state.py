"""Durable per-plugin install state.

The whole mapping is read on every lookup and rewritten as one snapshot on
every change. Lookups without the storage lock are allowed to be stale;
writes must only happen while the lock is held.
"""

from __future__ import annotations

import enum
import json
import os
import tempfile
from pathlib import Path
from typing import Dict

import structlog

from .errors import StorageCorrupt, StorageError

logger = structlog.get_logger()


class InstallState(str, enum.Enum):
    NOT_DOWNLOADED = "not_downloaded"
    DOWNLOADED = "downloaded"
    BUILT = "built"


StateData = Dict[str, InstallState]


class StateStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> StateData:
        try:
            raw_text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as error:
            raise StorageError(f"couldn't read state file '{self.path}'") from error

        if not raw_text.strip():
            return {}

        try:
            payload = json.loads(raw_text)
        except ValueError as error:
            raise StorageCorrupt(
                f"couldn't deserialize data from file '{self.path}'"
            ) from error

        if not isinstance(payload, dict):
            raise StorageCorrupt(
                f"state file '{self.path}' must hold a mapping, got {type(payload).__name__}"
            )

        data: StateData = {}
        for plugin_id, raw_state in payload.items():
            try:
                data[str(plugin_id)] = InstallState(raw_state)
            except ValueError as error:
                raise StorageCorrupt(
                    f"state file '{self.path}' has unknown state {raw_state!r} for {plugin_id}"
                ) from error
        return data

    def get(self, plugin_id: str) -> InstallState:
        return self.load().get(plugin_id, InstallState.NOT_DOWNLOADED)

    def set(self, plugin_id: str, state: InstallState) -> None:
        data = self.load()
        data[plugin_id] = state
        self._write(data)
        logger.debug("saved plugin state", id=plugin_id, state=state.value)

    def remove(self, plugin_id: str) -> None:
        data = self.load()
        if data.pop(plugin_id, None) is None:
            return
        self._write(data)
        logger.debug("forgot plugin state", id=plugin_id)

    def _write(self, data: StateData) -> None:
        serialized = json.dumps(
            {plugin_id: state.value for plugin_id, state in data.items()},
            indent=2,
            sort_keys=True,
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle, temp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(handle, "w", encoding="utf-8") as temp_file:
                    temp_file.write(serialized + "\n")
                    temp_file.flush()
                    os.fsync(temp_file.fileno())
                os.replace(temp_name, self.path)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as error:
            raise StorageError(f"couldn't save state file '{self.path}'") from error


__all__ = ["InstallState", "StateData", "StateStore"]
