"""Loguru setup for the engine: stdout sink, stdlib bridge and run context."""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from os import PathLike
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from fxengine.settings import get_runtime_settings

PathLikeArg = Union[str, PathLike]

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "run={extra[run_id]} | strat={extra[strategy]} | "
    "env={extra[environment]} | ver={extra[version]} | {message}"
)

# Fields every record carries, with their fallback when nothing is bound.
_FIELD_DEFAULTS = {
    "run_id": "-",
    "strategy": "-",
    "environment": "local",
    "version": "unknown",
}

_CONTEXT_VARS: Dict[str, ContextVar[str]] = {
    name: ContextVar(f"fxengine_log_{name}", default=default)
    for name, default in _FIELD_DEFAULTS.items()
}


def _inject_context(record: Dict[str, Any]) -> None:
    extra = record["extra"]
    for name, var in _CONTEXT_VARS.items():
        extra.setdefault(name, var.get())


def _bridge_to_stdlib(message) -> None:
    """Re-emit a loguru record through ``logging`` so pytest and stdlib handlers see it."""
    rec = message.record
    exc = rec["exception"]
    std = logging.LogRecord(
        name=rec["name"] or "fxengine",
        level=rec["level"].no,
        pathname=rec["file"].path,
        lineno=rec["line"],
        msg=rec["message"],
        args=(),
        exc_info=(exc.type, exc.value, exc.traceback) if exc else None,
        func=rec["function"],
    )
    std.__dict__.update(rec["extra"])
    logging.getLogger(std.name).handle(std)


def _add_sink(sink: Any, level: str, **kwargs: Any) -> int:
    return logger.add(
        sink,
        level=level,
        enqueue=False,
        backtrace=False,
        diagnose=False,
        **kwargs,
    )


def setup_logging(*, force: bool = False, level: str | None = None) -> None:
    """Configure loguru once per process (``force`` reconfigures).

    The level comes from ``level``, else ``LOG_LEVEL`` via runtime settings.
    """
    if getattr(setup_logging, "_configured", False) and not force:
        return

    runtime = get_runtime_settings()
    effective = (level or runtime.log_level or "INFO").upper()

    logger.remove()
    logger.configure(
        extra={
            **_FIELD_DEFAULTS,
            "environment": runtime.environment,
            "version": runtime.version,
        },
        patcher=_inject_context,
    )
    _CONTEXT_VARS["environment"].set(runtime.environment)
    _CONTEXT_VARS["version"].set(runtime.version)

    _add_sink(sys.stdout, effective, format=_LOG_FORMAT)
    _add_sink(_bridge_to_stdlib, effective)

    root = logging.getLogger()
    root.setLevel(getattr(logging, effective, logging.INFO))
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stdout))
    setup_logging._configured = True  # type: ignore[attr-defined]


def _split_test_arg(arg: Optional[PathLikeArg]) -> tuple[Optional[str], Optional[Path]]:
    """A positional test-logging argument is a level name or a log path."""
    if arg is None:
        return None, None
    if hasattr(arg, "__fspath__"):
        return None, Path(arg)  # type: ignore[arg-type]
    text = str(arg)
    if os.sep in text or "/" in text or text.endswith(".log"):
        return None, Path(text)
    return text, None


def setup_test_logging(
    arg: Optional[PathLikeArg] = None,
    *,
    level: Optional[str] = None,
    file: Optional[PathLikeArg] = None,
    filename: str = "pytest.log",
) -> None:
    """
    Logging for test sessions.

    ``arg`` may be a level ("DEBUG") or a file/directory path; a directory
    receives ``filename``. ``PYTEST_LOGLEVEL`` applies when no level is given.
    """
    arg_level, arg_path = _split_test_arg(arg)
    effective = (level or arg_level or os.getenv("PYTEST_LOGLEVEL") or "INFO").upper()
    setup_logging(force=True, level=effective)

    target = Path(file) if file is not None else arg_path
    if target is None:
        return
    if target.is_dir():
        target = target / filename
    target.parent.mkdir(parents=True, exist_ok=True)
    _add_sink(str(target), effective, format=_LOG_FORMAT)


@contextmanager
def logging_context(**values: str):
    """Bind fields such as ``run_id`` or ``strategy`` to every record in the block."""
    tokens = [
        (_CONTEXT_VARS[key], _CONTEXT_VARS[key].set(value or "-"))
        for key, value in values.items()
        if key in _CONTEXT_VARS
    ]
    try:
        with logger.contextualize(**values):
            yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


__all__ = ["setup_logging", "setup_test_logging", "logging_context"]
