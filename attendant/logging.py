"""Logging setup for the attendant process.

Every module logs through loguru with bound context (``component``,
``provider``, ``node``). The orchestrator adds the refresh ``cycle`` to
everything logged while a cycle runs, so a failed key can be traced back
through the adapter and enrichment lines of the same cycle.

Example:
    from attendant.logging import LogConfig, setup_logging, teardown_logging

    handlers = setup_logging(LogConfig.from_settings(config.logging))
    ...
    teardown_logging(handlers)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Literal

from loguru import logger

if TYPE_CHECKING:
    from attendant.config import LoggingSettings

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

LOG_LEVELS: Final[tuple[str, ...]] = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR")

_CONTEXT_KEYS: Final[tuple[str, ...]] = ("cycle", "component", "provider", "key", "node")


def _format_context(record: Any) -> str:
    extra = record.get("extra", {})
    parts = [f"{k}={extra[k]}" for k in _CONTEXT_KEYS if k in extra]
    return f" [{' '.join(parts)}]" if parts else ""


def _patch(record: Any) -> None:
    record["extra"]["_ctx"] = _format_context(record)


def _own_records(record: Any) -> bool:
    """Keep attendant records plus library warnings (aiohttp, botocore, redis)."""
    name = record["name"] or ""
    return name.startswith("attendant") or record["level"].no >= logger.level("WARNING").no


CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>"
    "<dim>{extra[_ctx]}</dim> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line}{extra[_ctx]} - {message}"
)


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Sink configuration.

    Attributes:
        level: Minimum level for the console. The file sink always records DEBUG.
        file: Path to a log file, or None for console only.
        console: Whether to log to stderr.
        rotation: File rotation policy (e.g., "50 MB", "1 day").
        retention: Number of old log files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10

    @classmethod
    def from_settings(cls, settings: LoggingSettings, level: str | None = None) -> LogConfig:
        return cls(
            level=level or settings.level,  # type: ignore[arg-type]
            file=settings.file,
            console=settings.console,
        )


def setup_logging(config: LogConfig) -> list[int]:
    """Replace loguru's default sink and return handler IDs for cleanup."""
    logger.remove()
    logger.enable("attendant")
    logger.configure(patcher=_patch)
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(logger.add(
            sys.stderr,
            level=config.level,
            format=CONSOLE_FORMAT,
            colorize=True,
            filter=_own_records,
        ))

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(logger.add(
            config.file,
            level="DEBUG",
            format=FILE_FORMAT,
            filter=_own_records,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            diagnose=False,
        ))

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("attendant")
