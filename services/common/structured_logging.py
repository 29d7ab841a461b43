"""structlog setup shared by the soundboard processes.

Every record, whether it comes from a structlog logger or a plain stdlib
logger (uvicorn, discord.py), is rendered by one handler on the root logger,
either as a JSON line or in structlog's console format.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import IO, Any

import structlog


Processor = Callable[[Any, str, dict[str, Any]], dict[str, Any]]

# discord.py is chatty below these levels, even for healthy voice sessions
_LIBRARY_LEVELS: dict[str, int] = {
    "discord.client": logging.INFO,
    "discord.gateway": logging.INFO,
    "discord.http": logging.WARNING,
    "discord.player": logging.WARNING,
    "discord.voice_client": logging.WARNING,
    "discord.voice_state": logging.WARNING,
}


def _resolve_level(level: str) -> int:
    value = logging.getLevelName((level or "").upper())
    return value if isinstance(value, int) else logging.INFO


def _wants_full_tracebacks(explicit: bool | None, level: int) -> bool:
    if explicit is not None:
        return explicit
    env = os.getenv("LOG_FULL_TRACEBACKS", "").strip().lower()
    if env in ("1", "true", "yes"):
        return True
    if env in ("0", "false", "no"):
        return False
    return level <= logging.DEBUG


def _service_stamp(service_name: str | None) -> Processor:
    def stamp(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        if service_name:
            event_dict.setdefault("service", service_name)
        return event_dict

    return stamp


def configure_logging(
    level: str = "INFO",
    *,
    json_logs: bool = True,
    service_name: str | None = None,
    stream: IO[str] | None = None,
    full_tracebacks: bool | None = None,
) -> None:
    """Install the process-wide logging configuration.

    Args:
        level: Level name; unknown names fall back to INFO.
        json_logs: JSON lines when True, console rendering otherwise.
        service_name: Stamped as ``service`` on records that do not carry one.
        stream: Destination, ``sys.stdout`` by default. Tests pass a StringIO.
        full_tracebacks: Structured tracebacks instead of formatted text.
            Defaults to ``LOG_FULL_TRACEBACKS`` and otherwise to DEBUG only.
    """
    numeric_level = _resolve_level(level)

    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        _service_stamp(service_name),
        structlog.processors.dict_tracebacks
        if _wants_full_tracebacks(full_tracebacks, numeric_level)
        else structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)
    logging.captureWarnings(True)
    for name, library_level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(
    name: str,
    *,
    guild_id: str | None = None,
    service_name: str | None = None,
) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound with standard metadata.

    The logger stays lazy until first use, so module-level loggers created
    before ``configure_logging`` still pick up the final configuration.
    """
    initial_values: dict[str, Any] = {}
    if guild_id:
        initial_values["guild_id"] = guild_id
    if service_name:
        initial_values["service"] = service_name
    return structlog.stdlib.get_logger(name, **initial_values)


@contextmanager
def guild_context(
    guild_id: str | None,
) -> Generator[structlog.stdlib.BoundLogger, None, None]:
    """Attach ``guild_id`` to every record logged inside the block.

    Nested blocks restore the outer guild on exit::

        with guild_context("1234") as logger:
            logger.info("player.stop_requested")
    """
    if not guild_id:
        yield structlog.stdlib.get_logger()
        return

    tokens = structlog.contextvars.bind_contextvars(guild_id=guild_id)
    try:
        yield structlog.stdlib.get_logger()
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


__all__ = [
    "configure_logging",
    "get_logger",
    "guild_context",
]
