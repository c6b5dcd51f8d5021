"""structlog setup for the finder scripts and their invocation log."""

from __future__ import annotations

import datetime as dt
import getpass
import logging
import shlex
import sys
from pathlib import Path
from typing import Any, Mapping, Sequence

import structlog


def _diagnostic_handlers(log_file: str | None) -> list[logging.Handler]:
    # stdout carries the path listing, so diagnostics never go there
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    return handlers


def configure_logging(settings: Mapping[str, Any], script_name: str | None = None) -> None:
    """Route pathfind diagnostics through structlog.

    Parameters
    ----------
    settings:
        The ``logging`` section of the configuration: ``level`` (str, default
        ``warning`` so a plain search prints nothing but paths), ``json_logs``
        (bool) and ``log_file`` (optional str, written in addition to stderr).
    script_name:
        Bound as ``script`` on every event so that a shared log file shows
        which finder emitted it.
    """

    level = getattr(logging, str(settings.get("level", "warning")).upper(), logging.WARNING)
    if settings.get("json_logs", False):
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.processors.KeyValueRenderer(
            key_order=["event", "level", "script"], drop_missing=True
        )

    logging.basicConfig(
        level=level,
        handlers=_diagnostic_handlers(settings.get("log_file")),
        format="%(message)s",
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(key="timestamp", fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    if script_name:
        structlog.contextvars.bind_contextvars(script=script_name)


def get_logger(name: str = "pathfind") -> structlog.stdlib.BoundLogger:
    """Return a logger bound to the pathfind namespace."""

    return structlog.get_logger(name)


def log_invocation(log_file: str | Path, script_name: str, args: Sequence[str]) -> bool:
    """Append one line describing a command line invocation to ``log_file``.

    Returns ``False`` when the log could not be written; a missing audit line
    never stops a search.
    """

    try:
        user = getpass.getuser()
    except (OSError, KeyError):
        user = "unknown"
    line = "\t".join(
        [
            dt.datetime.now().isoformat(timespec="seconds"),
            user,
            " ".join([script_name, *(shlex.quote(arg) for arg in args)]),
        ]
    )
    try:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
    except OSError as exc:
        get_logger(__name__).warning("invocation_log.failed", log_file=str(log_file), error=str(exc))
        return False
    return True


__all__ = ["configure_logging", "get_logger", "log_invocation"]
