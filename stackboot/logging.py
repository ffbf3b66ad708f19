"""Logging for provisioning runs.

stackboot logs through loguru and stays silent until ``setup_logging`` is
called. Every record carries the context its logger was bound with
(component, cluster, instance ID, poll target), rendered as a short scope
such as ``provisioner[c1/1001]`` or ``poller[instance 1001 to be Running]``
so interleaved concurrent runs stay readable.

Example:
    from stackboot.logging import LogConfig, setup_logging, teardown_logging

    handler_ids = setup_logging(LogConfig(level="DEBUG", file="stackboot.log"))
    try:
        state = await provisioner.provision(spec)
    finally:
        teardown_logging(handler_ids)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from loguru import logger

logger.disable("stackboot")

LogLevel: TypeAlias = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

_SCOPE_KEYS = ("cluster", "instance_id", "label", "target")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[scope]}</cyan> - "
    "<level>{message}</level>\n{exception}"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[scope]} | "
    "{name}:{line} - {message}\n{exception}"
)


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration.

    Attributes:
        level: Minimum console log level. Per-attempt poll detail is at DEBUG
            and TRACE.
        file: Path to a log file. The file always records DEBUG and above.
        console: Whether to log to stderr. Defaults to True.
        json: Write the file as JSON lines (one object per record, bound
            context under ``record.extra``) instead of text.
        rotation: File rotation policy (e.g., "50 MB", "1 day").
        retention: Number of rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    json: bool = False
    rotation: str = "50 MB"
    retention: int = 10


def scope(extra: dict[str, Any], default: str = "stackboot") -> str:
    """Render bound context as ``component[cluster/instance_id/...]``."""
    component = extra.get("component", default)
    values = [str(extra[k]) for k in _SCOPE_KEYS if extra.get(k) is not None]
    return f"{component}[{'/'.join(values)}]" if values else component


def _with_scope(fmt: str):
    def formatter(record: dict[str, Any]) -> str:
        record["extra"]["scope"] = scope(record["extra"], record["name"])
        return fmt

    return formatter


def setup_logging(config: LogConfig) -> list[int]:
    """Enable stackboot logging and return handler IDs for ``teardown_logging``."""
    logger.enable("stackboot")
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(
            logger.add(
                sys.stderr,
                level=config.level,
                format=_with_scope(CONSOLE_FORMAT),
                colorize=True,
                filter="stackboot",
            )
        )

    if config.file:
        handler_ids.append(
            logger.add(
                config.file,
                level="DEBUG",
                format=_with_scope(FILE_FORMAT),
                serialize=config.json,
                rotation=config.rotation,
                retention=config.retention,
                diagnose=False,  # tracebacks would show root passwords
                enqueue=True,
                filter="stackboot",
            )
        )

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    """Remove handlers (flushing queued records) and silence stackboot again."""
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("stackboot")
