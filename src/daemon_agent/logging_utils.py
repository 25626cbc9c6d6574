"""Runtime logging helpers."""

from __future__ import annotations

import os
import sys
from logging import Handler
from typing import Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

_DEFAULT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<6} | {name}:{function}:{line} | run={extra[run_id]} | {message}"
)
_CONFIGURED_PROFILE: LogProfile | None = None


def _build_chat_handler() -> Handler:
    return RichHandler(
        console=get_console(),
        show_level=True,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )


def configure_logging(*, profile: LogProfile = "default") -> None:
    """Configure process-level logging once per profile."""
    from daemon_agent.core.turn_runner import current_run_id

    def inject_context(record: loguru.Record) -> None:
        record["extra"]["run_id"] = current_run_id() or "-"

    global _CONFIGURED_PROFILE
    if profile == _CONFIGURED_PROFILE:
        return

    # The chat prompt stays readable: only warnings and above reach the terminal by default.
    default_level = "WARNING" if profile == "chat" else "INFO"
    level = os.getenv("DAEMON_LOG_LEVEL", default_level).upper()
    logger.remove()
    logger.configure(patcher=inject_context)
    if profile == "chat":
        logger.add(
            _build_chat_handler(),
            level=level,
            format="{message}",
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stderr,
            level=level,
            format=_DEFAULT_FORMAT,
            backtrace=False,
            diagnose=False,
        )
    _CONFIGURED_PROFILE = profile
