"""structlog setup for zshrug.

Everything is rendered to stderr: stdout carries the generated init script
and is evaluated by the shell, so nothing else may ever be written there.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Iterator, Mapping

import structlog

logger = structlog.get_logger()

_PREFIX = "[zshrug]"
_LEVEL_WIDTH = 5


def _render(_logger: Any, method_name: str, event_dict: Mapping[str, Any]) -> str:
    values = dict(event_dict)
    level = str(values.pop("level", method_name))
    event = str(values.pop("event", ""))
    extras = " ".join(f"{key}={value!r}" for key, value in values.items())
    line = f"{_PREFIX} {level:>{_LEVEL_WIDTH}} {event}"
    if extras:
        line = f"{line} ({extras})"
    return line


def configure_logging(verbose: bool = False) -> None:
    threshold = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            _render,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Yield the exceptions chained below ``error``, nearest first."""
    seen = {id(error)}
    current: BaseException | None = error
    while current is not None:
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
        if current is None or id(current) in seen:
            return
        seen.add(id(current))
        yield current


def log_error_chain(error: BaseException, **context: Any) -> None:
    logger.error(str(error) or type(error).__name__, **context)
    for cause in iter_causes(error):
        logger.error(f"caused by: {str(cause) or type(cause).__name__}")


__all__ = ["configure_logging", "iter_causes", "log_error_chain"]
