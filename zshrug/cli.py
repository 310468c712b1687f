"""Command line interface for zshrug."""

from __future__ import annotations

import argparse
import sys
from typing import Callable, Tuple

import structlog

from . import script
from .config import Settings, load_config
from .errors import ZshrugError
from .log import configure_logging, log_error_chain
from .storage import Storage, StorageConfig

logger = structlog.get_logger()


def _open_storage(settings: Settings) -> Storage:
    return Storage.init(StorageConfig(root=settings.storage_root))


def cmd_init(args: argparse.Namespace) -> int:
    settings: Settings = args.settings
    specs = load_config(settings.config_path)
    storage = _open_storage(settings)
    installed = storage.ensure_installed(specs)
    sys.stdout.write(script.generate(storage, installed))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    settings: Settings = args.settings
    specs = load_config(settings.config_path)
    storage = _open_storage(settings)
    for spec, state in storage.plugin_states(specs):
        print(f"{spec.name}\t{spec.source.value}\t{state.value}")
    return 0


def cmd_upgrade(args: argparse.Namespace) -> int:
    settings: Settings = args.settings
    specs = load_config(settings.config_path)
    storage = _open_storage(settings)
    installed = storage.upgrade(specs)
    return 0 if len(installed) == len(specs) else 1


def cmd_storage(args: argparse.Namespace) -> int:
    settings: Settings = args.settings
    print(settings.storage_root)
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    settings: Settings = args.settings
    specs = load_config(settings.config_path)
    storage = _open_storage(settings)
    removed = storage.cleanup(specs)
    logger.info("cleanup finished", removed=len(removed))
    return 0


def cmd_completion(args: argparse.Namespace) -> int:
    sys.stdout.write(zsh_completion())
    return 0


CONFIG_HELP = "plugin list in YAML; '-' reads stdin (default: $ZSHRUG_CONFIG or ~/.zshrug.yml)"
VERBOSE_HELP = "log debug messages"

COMMANDS: Tuple[Tuple[str, str, Callable[[argparse.Namespace], int]], ...] = (
    ("init", "generates initialization script", cmd_init),
    ("list", "lists configured plugins and their state", cmd_list),
    ("upgrade", "re-downloads and rebuilds configured plugins", cmd_upgrade),
    ("storage", "prints path to the storage directory", cmd_storage),
    ("cleanup", "deletes plugins missing from the config", cmd_cleanup),
    ("completion", "generates completion script", cmd_completion),
)


def zsh_completion() -> str:
    commands = "\n".join(f"    '{name}:{help_text}'" for name, help_text, _ in COMMANDS)
    return (
        "#compdef zshrug\n"
        "\n"
        "_zshrug() {\n"
        "  local -a commands\n"
        "  commands=(\n"
        f"{commands}\n"
        "  )\n"
        "  _arguments \\\n"
        "    '(-c --config)'{-c,--config}'[plugin list in YAML]:config file:_files' \\\n"
        f"    '(-v --verbose)'{{-v,--verbose}}'[{VERBOSE_HELP}]' \\\n"
        "    '1:command:->command' && return\n"
        "  case $state in\n"
        "    command) _describe -t commands 'zshrug command' commands ;;\n"
        "  esac\n"
        "}\n"
        "\n"
        '_zshrug "$@"\n'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zshrug", description="zsh plugin manager")
    parser.add_argument("-c", "--config", default=None, help=CONFIG_HELP)
    parser.add_argument("-v", "--verbose", action="store_true", help=VERBOSE_HELP)
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text, func in COMMANDS:
        command = sub.add_parser(name, help=help_text)
        command.set_defaults(func=func)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.settings = Settings.from_env(config_path=args.config, verbose=args.verbose)
    configure_logging(verbose=args.settings.debug)
    try:
        return int(args.func(args))
    except ZshrugError as error:
        log_error_chain(error)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
