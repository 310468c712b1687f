"""Fetch and build steps for a single managed plugin.

Both phases only touch the plugin's own directory and spawn at most one
external process each. Callers persist the resulting state.
"""

from __future__ import annotations

import shutil
import subprocess
import urllib.parse
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional

import httpx
import structlog

from .config import PluginSource, PluginSpec
from .errors import BuildError, FetchError

logger = structlog.get_logger()

# Build output goes to the terminal's stderr; stdout is the init script.
STDERR_FD = 2
DEFAULT_DOWNLOAD_FILENAME = "index.html"
DOWNLOAD_CHUNK_SIZE = 64 * 1024

Fetcher = Callable[[str, Path], None]


def _run_command(command: List[str], *, plugin: str, cwd: Optional[Path] = None) -> None:
    try:
        completed = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            stdout=STDERR_FD,
            check=False,
        )
    except (OSError, ValueError) as error:
        raise FetchError(f"couldn't run {command[0]}", plugin=plugin) from error
    if completed.returncode != 0:
        raise FetchError(
            f"{Path(command[0]).name} has exited with an error (code {completed.returncode})",
            plugin=plugin,
        )


def clone_git_repository(repo: str, directory: Path) -> None:
    logger.info("cloning git repository", repo=repo)
    git_bin = shutil.which("git")
    if not git_bin:
        raise FetchError("git executable not found in PATH", plugin=repo)
    _run_command(
        [
            git_bin,
            "clone",
            "--depth=1",
            "--recurse-submodules",
            "--shallow-submodules",
            repo,
            str(directory),
        ],
        plugin=repo,
    )


def download_filename(url: str) -> str:
    path = urllib.parse.urlsplit(url).path
    name = PurePosixPath(urllib.parse.unquote(path)).name
    return name or DEFAULT_DOWNLOAD_FILENAME


def download_file(url: str, directory: Path, client: Optional[httpx.Client] = None) -> None:
    logger.info("downloading file", url=url)
    target = directory / download_filename(url)
    owns_client = client is None
    http = client or httpx.Client(follow_redirects=True, timeout=None)
    try:
        with http.stream("GET", url) as response:
            response.raise_for_status()
            with target.open("wb") as output:
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    output.write(chunk)
    except (httpx.HTTPError, OSError) as error:
        raise FetchError(f"couldn't download '{url}'", plugin=url) from error
    finally:
        if owns_client:
            http.close()


FETCHERS: Dict[PluginSource, Fetcher] = {
    PluginSource.GIT: clone_git_repository,
    PluginSource.URL: download_file,
}


def reset_directory(directory: Path, *, plugin: str) -> None:
    try:
        if directory.is_dir():
            shutil.rmtree(directory)
        elif directory.exists():
            directory.unlink()
        directory.mkdir(parents=True)
    except OSError as error:
        raise FetchError(
            f"couldn't prepare plugin directory '{directory}'", plugin=plugin
        ) from error


def fetch(spec: PluginSpec, plugin_dir: Path) -> None:
    """Download ``spec`` into a fresh, empty ``plugin_dir``."""
    fetcher = FETCHERS.get(spec.source)
    if fetcher is None:
        raise ValueError(f"plugins from {spec.source.value!r} sources are never fetched")

    logger.info("downloading plugin", plugin=spec.name, source=spec.source.value)
    reset_directory(plugin_dir, plugin=spec.name)
    try:
        fetcher(spec.name, plugin_dir)
    except FetchError:
        shutil.rmtree(plugin_dir, ignore_errors=True)
        raise


def build(spec: PluginSpec, plugin_dir: Path) -> None:
    if not spec.build:
        return

    logger.info("building plugin", plugin=spec.name, command=spec.build)
    try:
        completed = subprocess.run(
            spec.build,
            shell=True,
            cwd=str(plugin_dir),
            stdout=STDERR_FD,
            check=False,
        )
    except (OSError, ValueError) as error:
        raise BuildError(
            f"couldn't run build command for plugin '{spec.name}'", plugin=spec.name
        ) from error

    if completed.returncode != 0:
        raise BuildError(
            f"build command for plugin '{spec.name}' has exited with an error "
            f"(code {completed.returncode})",
            plugin=spec.name,
        )


__all__ = [
    "FETCHERS",
    "build",
    "clone_git_repository",
    "download_file",
    "download_filename",
    "fetch",
    "reset_directory",
]
