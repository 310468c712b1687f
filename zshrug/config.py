from __future__ import annotations

import enum
import hashlib
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple

import yaml
from platformdirs import user_data_dir

from .errors import ConfigError

APP_NAME = "zshrug"
STORAGE_ENV_VAR = "ZSHRUG_STORAGE"
CONFIG_ENV_VAR = "ZSHRUG_CONFIG"
DEBUG_ENV_VAR = "ZSHRUG_DEBUG"
DEFAULT_CONFIG_FILENAME = ".zshrug.yml"
STDIN_CONFIG = "-"


class PluginSource(str, enum.Enum):
    GIT = "git"
    URL = "url"
    LOCAL = "local"

    @property
    def is_managed(self) -> bool:
        return self is not PluginSource.LOCAL


@dataclass(frozen=True)
class PluginSpec:
    name: str
    source: PluginSource = PluginSource.GIT
    build: str = ""
    when: str = ""
    before_load: str = ""
    after_load: str = ""
    load: Tuple[str, ...] = ()
    ignore: Tuple[str, ...] = ()
    path: Tuple[str, ...] = ()
    fpath: Tuple[str, ...] = ()
    manpath: Tuple[str, ...] = ()

    @property
    def id(self) -> str:
        # Guard, hooks and patterns are not part of the identity: specs that
        # only differ in how they are loaded share one install slot.
        digest = hashlib.md5()
        for part in (self.source.value, self.name, self.build):
            digest.update(part.encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()


def _env_flag(name: str, *, default: bool) -> bool:
    raw = str(os.environ.get(name) or "").strip().lower()
    if not raw:
        return bool(default)
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return bool(default)


def resolve_storage_root() -> Path:
    override = str(os.environ.get(STORAGE_ENV_VAR, "")).strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path(user_data_dir(APP_NAME, appauthor=False)).resolve()


def resolve_config_path(explicit: Optional[str] = None) -> str:
    if explicit:
        return explicit
    override = str(os.environ.get(CONFIG_ENV_VAR, "")).strip()
    if override:
        return override
    return str(Path.home() / DEFAULT_CONFIG_FILENAME)


@dataclass
class Settings:
    storage_root: Path
    config_path: str
    debug: bool = False

    @classmethod
    def from_env(cls, config_path: Optional[str] = None, verbose: bool = False) -> "Settings":
        return cls(
            storage_root=resolve_storage_root(),
            config_path=resolve_config_path(config_path),
            debug=verbose or _env_flag(DEBUG_ENV_VAR, default=False),
        )


def _string_field(raw: Mapping[str, Any], key: str, index: int) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"plugins[{index}].{key} must be a string")
    return value


def _patterns_field(raw: Mapping[str, Any], key: str, index: int) -> Tuple[str, ...]:
    value = raw.get(key)
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ConfigError(f"plugins[{index}].{key} must be a string or a list of strings")


def parse_plugin(raw: Any, index: int = 0) -> PluginSpec:
    if not isinstance(raw, dict):
        raise ConfigError(f"plugins[{index}] must be a mapping")

    name = _string_field(raw, "name", index).strip()
    if not name:
        raise ConfigError(f"plugins[{index}] is missing required field: name")

    source_raw = _string_field(raw, "from", index).strip().lower() or PluginSource.GIT.value
    try:
        source = PluginSource(source_raw)
    except ValueError as error:
        supported = ", ".join(item.value for item in PluginSource)
        raise ConfigError(
            f"plugins[{index}].from must be one of: {supported} (got {source_raw!r})"
        ) from error

    return PluginSpec(
        name=name,
        source=source,
        build=_string_field(raw, "build", index),
        when=_string_field(raw, "when", index),
        before_load=_string_field(raw, "before_load", index),
        after_load=_string_field(raw, "after_load", index),
        load=_patterns_field(raw, "load", index),
        ignore=_patterns_field(raw, "ignore", index),
        path=_patterns_field(raw, "path", index),
        fpath=_patterns_field(raw, "fpath", index),
        manpath=_patterns_field(raw, "manpath", index),
    )


def parse_config(text: str) -> List[PluginSpec]:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as error:
        raise ConfigError("couldn't parse config") from error

    if document is None:
        return []
    if not isinstance(document, dict):
        raise ConfigError("config must be a mapping with a 'plugins' list")

    plugins: Any = document.get("plugins") or []
    if not isinstance(plugins, list):
        raise ConfigError("'plugins' must be a list")
    return [parse_plugin(raw, index) for index, raw in enumerate(plugins)]


def load_config(path: str) -> List[PluginSpec]:
    if path == STDIN_CONFIG:
        try:
            text = sys.stdin.read()
        except OSError as error:
            raise ConfigError("couldn't read config from stdin") from error
    else:
        try:
            text = Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as error:
            raise ConfigError(f"couldn't read config file '{path}'") from error
    return parse_config(text)


__all__ = [
    "PluginSource",
    "PluginSpec",
    "Settings",
    "parse_plugin",
    "parse_config",
    "load_config",
    "resolve_storage_root",
    "resolve_config_path",
]
