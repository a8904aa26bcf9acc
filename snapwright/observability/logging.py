"""Logging configuration for snapwright.

Structured logging via loguru. Library code logs through
``logger.bind(component=...)``; nothing is emitted until a caller installs
handlers with ``setup_logging``.

Secrets never reach a sink through the build logger: ``Redactor`` is built
per build with the values to hide and produces a patched logger that steps
receive through ``BuildContext.log``.

Example:
    from snapwright.observability.logging import LogConfig, setup_logging

    handler_ids = setup_logging(LogConfig(level="DEBUG", console=True))
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

LogLevel: TypeAlias = Literal["DEBUG", "INFO", "WARNING", "ERROR", "TRACE"]

REDACTED = "<sensitive>"

_CONTEXT_KEYS = ("component", "provider", "step", "droplet_id", "region")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>"
    "<dim>{extra[_ctx]}</dim> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line}{extra[_ctx]} - {message}"
)


def _format_context(record: Any) -> str:
    extra = record.get("extra", {})
    parts = [f"{k}={extra[k]}" for k in _CONTEXT_KEYS if k in extra]
    return f" [{' '.join(parts)}]" if parts else ""


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration for a build.

    Attributes:
        level: Minimum log level for the console.
        file: Path to a log file, or None to skip file output.
        console: Whether to log to stderr.
        rotation: File rotation policy (e.g., "50 MB", "1 day").
        retention: Number of old log files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


class Redactor:
    """Replaces known secret values in log messages.

    Each build owns one; there is no process-wide filter.
    """

    __slots__ = ("_secrets",)

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        self._secrets: tuple[str, ...] = ()
        for secret in secrets:
            self.add(secret)

    def add(self, secret: str | None) -> None:
        if secret and secret not in self._secrets:
            # Longest first so a secret containing another is fully hidden.
            self._secrets = tuple(sorted((*self._secrets, secret), key=len, reverse=True))

    def scrub(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def _patch(self, record: Any) -> None:
        record["message"] = self.scrub(record["message"])

    def bind(self, **extras: object) -> Logger:
        """A logger whose messages pass through this redactor."""
        return logger.bind(**extras).patch(self._patch)


def setup_logging(config: LogConfig) -> list[int]:
    """Install handlers and return their ids for ``teardown_logging``."""
    logger.remove()
    logger.enable("snapwright")
    logger.configure(patcher=lambda r: r["extra"].update(_ctx=_format_context(r)))

    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(
            logger.add(
                sys.stderr,
                level=config.level,
                format=CONSOLE_FORMAT,
                colorize=True,
                filter="snapwright",
            )
        )

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(
            logger.add(
                config.file,
                level="DEBUG",
                format=FILE_FORMAT,
                rotation=config.rotation,
                retention=config.retention,
                compression="zip",
                diagnose=False,
                filter="snapwright",
            )
        )

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("snapwright")


__all__ = [
    "LogConfig",
    "Redactor",
    "setup_logging",
    "teardown_logging",
]
