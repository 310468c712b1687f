"""Shared fixtures: a throwaway storage root and fake fetch/build steps."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple

import pytest
import structlog

from zshrug import installer
from zshrug.config import PluginSource
from zshrug.errors import FetchError
from zshrug.storage import Storage, StorageConfig


class FakeFetcher:
    """Stands in for git/http: records calls and drops a plugin file."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Path]] = []
        self.failing: Set[str] = set()

    def __call__(self, name: str, directory: Path) -> None:
        self.calls.append((name, directory))
        (directory / "partial.tmp").write_text("half written")
        if name in self.failing:
            raise FetchError(f"couldn't fetch {name}", plugin=name)
        (directory / "plugin.zsh").write_text(f"# {name}\n")

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]


class FakeShell:
    """Replaces subprocess.run for build commands."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, dict]] = []
        self.failing: Set[str] = set()
        self.spawn_error: Optional[OSError] = None

    def __call__(self, command: Any, **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append((command, kwargs))
        if self.spawn_error is not None:
            raise self.spawn_error
        key = command if isinstance(command, str) else " ".join(command)
        returncode = 2 if key in self.failing else 0
        return subprocess.CompletedProcess(command, returncode)

    def commands(self) -> List[Any]:
        return [command for command, _ in self.calls]


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    return Storage.init(StorageConfig(root=tmp_path / "storage"))


@pytest.fixture
def fetcher(monkeypatch: pytest.MonkeyPatch) -> FakeFetcher:
    fake = FakeFetcher()
    monkeypatch.setitem(installer.FETCHERS, PluginSource.GIT, fake)
    monkeypatch.setitem(installer.FETCHERS, PluginSource.URL, fake)
    return fake


@pytest.fixture
def shell(monkeypatch: pytest.MonkeyPatch) -> FakeShell:
    fake = FakeShell()
    monkeypatch.setattr(installer.subprocess, "run", fake)
    return fake
