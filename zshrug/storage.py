from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence, Set, Tuple

import structlog

from . import installer
from .config import PluginSpec
from .errors import InstallError, StorageError
from .lock import exclusive_lock
from .log import log_error_chain
from .state import InstallState, StateStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class StorageConfig:
    root: Path
    plugins_dirname: str = "plugins"
    state_filename: str = "state.json"
    lock_filename: str = "lock"

    @property
    def plugins_dir(self) -> Path:
        return self.root / self.plugins_dirname

    @property
    def state_path(self) -> Path:
        return self.root / self.state_filename

    @property
    def lock_path(self) -> Path:
        return self.root / self.lock_filename


class Storage:
    """Plugin directories, their install state and the lock guarding both."""

    def __init__(self, config: StorageConfig) -> None:
        self.config = config
        self.state = StateStore(config.state_path)

    @classmethod
    def init(cls, config: StorageConfig) -> "Storage":
        try:
            config.root.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise StorageError(
                f"couldn't create storage directory '{config.root}'"
            ) from error
        return cls(config)

    @property
    def root(self) -> Path:
        return self.config.root

    def plugin_dir(self, spec: PluginSpec) -> Path:
        if not spec.source.is_managed:
            return Path(spec.name)
        return self.config.plugins_dir / spec.id

    def plugin_state(self, spec: PluginSpec) -> InstallState:
        if not spec.source.is_managed:
            return InstallState.BUILT
        return self.state.get(spec.id)

    def plugin_states(self, specs: Iterable[PluginSpec]) -> List[Tuple[PluginSpec, InstallState]]:
        return [(spec, self.plugin_state(spec)) for spec in specs]

    def ensure_installed(self, specs: Sequence[PluginSpec]) -> List[PluginSpec]:
        """Install every spec that is not built yet.

        Returns the specs that ended up built, in input order. A plugin that
        fails to fetch or build is logged and left out; it is retried on the
        next invocation, not within this one.
        """
        candidates = [
            spec for spec in specs if self.plugin_state(spec) is not InstallState.BUILT
        ]
        if not candidates:
            return list(specs)

        attempted: Set[str] = set()
        failed: Set[str] = set()
        with exclusive_lock(self.config.lock_path):
            for spec in candidates:
                if spec.id in attempted:
                    continue
                attempted.add(spec.id)
                try:
                    self._install_locked(spec)
                except InstallError as error:
                    log_error_chain(error, plugin=spec.name)
                    failed.add(spec.id)

        return [
            spec
            for spec in specs
            if not spec.source.is_managed or spec.id not in failed
        ]

    def _install_locked(self, spec: PluginSpec) -> None:
        # Re-read under the lock: another process may have finished this
        # plugin while we were waiting.
        state = self.state.get(spec.id)
        if state is InstallState.BUILT:
            logger.info("another process has just installed this plugin", plugin=spec.name)
            return

        plugin_dir = self.plugin_dir(spec)
        if state is InstallState.NOT_DOWNLOADED:
            installer.fetch(spec, plugin_dir)
            self.state.set(spec.id, InstallState.DOWNLOADED)
            state = InstallState.DOWNLOADED

        if state is InstallState.DOWNLOADED:
            installer.build(spec, plugin_dir)
            self.state.set(spec.id, InstallState.BUILT)

    def upgrade(self, specs: Sequence[PluginSpec]) -> List[PluginSpec]:
        """Re-fetch and rebuild every managed plugin in ``specs``."""
        with exclusive_lock(self.config.lock_path):
            for plugin_id in _managed_ids(specs):
                self.state.remove(plugin_id)
        return self.ensure_installed(specs)

    def cleanup(self, specs: Sequence[PluginSpec]) -> List[str]:
        """Delete plugin directories and state not referenced by ``specs``."""
        keep = _managed_ids(specs)
        removed: List[str] = []
        with exclusive_lock(self.config.lock_path):
            stale = set(self.state.load()) - keep
            plugins_dir = self.config.plugins_dir
            if plugins_dir.is_dir():
                stale.update(
                    entry.name for entry in plugins_dir.iterdir() if entry.name not in keep
                )
            for plugin_id in sorted(stale):
                target = plugins_dir / plugin_id
                logger.info("removing unused plugin", id=plugin_id)
                self.state.remove(plugin_id)
                try:
                    if target.is_dir():
                        shutil.rmtree(target)
                    elif target.exists():
                        target.unlink()
                except OSError as error:
                    raise StorageError(f"couldn't remove plugin directory '{target}'") from error
                removed.append(plugin_id)
        return removed


def _managed_ids(specs: Iterable[PluginSpec]) -> Set[str]:
    return {spec.id for spec in specs if spec.source.is_managed}


__all__ = ["Storage", "StorageConfig"]
