"""structlog setup shared by the quiz server and its tests.

structlog events are handed to the stdlib root logger, so uvicorn and
starlette records go through the same formatter as ours.

Environment:
- LOG_FORMAT: "json" for machine-readable lines; "console" or unset for a
  human-readable layout.
- LOG_LEVEL: DEBUG, INFO (default), WARNING, ERROR or CRITICAL.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_LOG_FORMATS = ("json", "console", "")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Too chatty at INFO for a session server.
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _plain(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value


def _plain_values(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Render enums by value and UUIDs as strings, one level into dicts."""
    for key, value in event_dict.items():
        event_dict[key] = {k: _plain(v) for k, v in value.items()} if isinstance(value, dict) else _plain(value)
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    raw = os.environ.get(name, default)
    value = raw.upper() if name == "LOG_LEVEL" else raw.lower()
    if value not in choices:
        allowed = ", ".join(repr(c) for c in choices if c)
        raise ValueError(f"Invalid {name}={raw!r}. Expected one of {allowed} (or unset).")
    return value


def configure_structlog() -> None:
    """Install the processor chain that forwards structlog events to stdlib logging.

    Rendering (and exception formatting) happens in each handler's
    ProcessorFormatter.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _plain_values,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def build_formatter(*, json_mode: bool, colors: bool = False) -> logging.Formatter:
    renderer: Any = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def _add_handler(root: logging.Logger, handler: logging.Handler, *, json_mode: bool, colors: bool = False) -> None:
    handler.setFormatter(build_formatter(json_mode=json_mode, colors=colors))
    root.addHandler(handler)


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
) -> Path | None:
    """Configure structlog and the root logger.

    stdout is always a target. With log_dir (outside pytest) a log file named
    after the start time is added there; its path is returned.
    """
    json_mode = _env_choice("LOG_FORMAT", "", _LOG_FORMATS) == "json"
    if level is None:
        level = getattr(logging, _env_choice("LOG_LEVEL", "INFO", _LOG_LEVELS))

    configure_structlog()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _add_handler(root, logging.StreamHandler(sys.stdout), json_mode=json_mode, colors=sys.stdout.isatty())

    if log_dir is None or _is_test():
        return None

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    _add_handler(root, logging.FileHandler(log_path), json_mode=json_mode)
    return log_path
