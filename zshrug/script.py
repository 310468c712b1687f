"""Generation of the zsh init script for installed plugins."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Iterator, List, Sequence

import structlog

from .config import PluginSpec
from .storage import Storage

logger = structlog.get_logger()

PLUGIN_DIR_VAR = "zshrug_plugin_dir"


def quote_path(path: Path) -> str:
    return "'{}'".format(str(path).replace("'", "'\\''"))


def _walk_files(root: Path) -> Iterator[Path]:
    for entry in sorted(root.iterdir(), key=lambda item: item.name):
        if entry.is_dir() and not entry.is_symlink():
            yield from _walk_files(entry)
        elif entry.is_file():
            yield entry


def _matches(relative: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatchcase(relative, pattern) for pattern in patterns)


def matching_files(plugin_dir: Path, load: Sequence[str], ignore: Sequence[str]) -> List[Path]:
    """Files under ``plugin_dir`` to source, grouped by ``load`` pattern order."""
    files = list(_walk_files(plugin_dir))
    selected: List[Path] = []
    for pattern in load:
        for path in files:
            relative = path.relative_to(plugin_dir).as_posix()
            if fnmatch.fnmatchcase(relative, pattern) and not _matches(relative, ignore):
                selected.append(path)
    return selected


class _ScriptWriter:
    def __init__(self) -> None:
        self.lines: List[str] = []

    def line(self, text: str = "") -> None:
        self.lines.append(text)

    def block(self, name: str, body: Sequence[str]) -> None:
        self.line(f"### {name}")
        for text in body:
            self.line(text)
        self.line(f"### end of {name}")
        self.line()

    def hook(self, name: str, body: str) -> None:
        if body:
            self.block(name, [body])

    def render(self) -> str:
        return "\n".join(self.lines) + "\n"


def _array_prepend(name: str, plugin_dir: Path, entries: Sequence[str]) -> str:
    quoted = " ".join(quote_path(plugin_dir / entry) for entry in entries)
    return f"{name}=({quoted} ${name})"


def generate(storage: Storage, specs: Sequence[PluginSpec]) -> str:
    """Render the init script. ``specs`` must only hold installed plugins."""
    script = _ScriptWriter()

    for spec in specs:
        script.line(f'### plugin "{spec.name}" from {spec.source.value}')
        if spec.when:
            script.line(f"if {spec.when}; then")

        plugin_dir = storage.plugin_dir(spec).expanduser()
        script.line(f"{PLUGIN_DIR_VAR}={quote_path(plugin_dir)}")
        script.line()

        script.hook("before_load", spec.before_load)

        for array, entries in (("path", spec.path), ("fpath", spec.fpath), ("manpath", spec.manpath)):
            if entries:
                script.line(_array_prepend(array, plugin_dir, entries))

        sources: List[str] = []
        if spec.load:
            if plugin_dir.is_dir():
                sources = [
                    f"source {quote_path(path)}"
                    for path in matching_files(plugin_dir, spec.load, spec.ignore)
                ]
            else:
                logger.warning("plugin directory is missing", plugin=spec.name, path=str(plugin_dir))
        script.block("load", sources)

        script.hook("after_load", spec.after_load)

        if spec.when:
            script.line("fi")

    script.line(f"unset {PLUGIN_DIR_VAR}")
    return script.render()


__all__ = ["generate", "matching_files", "quote_path"]
