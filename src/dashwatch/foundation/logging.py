"""Logging configuration for Dashwatch.

Console output goes to stderr at WARNING unless asked otherwise. With
``persist=True`` (``dashwatch --log-file``) every record, DEBUG included, is
also written to a per-session file under ``.dashwatch/logs/``; only the most
recent sessions are kept.

Priority for level resolution (highest to lowest):
    1. Explicit `level` parameter (programmatic override)
    2. DASHWATCH_LOG_LEVEL env var (any level: DEBUG, INFO, WARNING, etc.)
    3. DASHWATCH_DEBUG=true env var (simple boolean)
    4. `debug=True` parameter (--debug flag)
    5. WARNING (default)
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

_DEBUG_FORMAT = "%(asctime)s %(name)s [%(levelname)s] %(message)s"
_DEFAULT_FORMAT = "%(name)s: %(message)s"

# A refresh pass issues several requests; their per-request chatter stays out
_NOISY_LOGGERS = ("httpx", "httpcore", "websockets", "asyncio")

MAX_LOG_SESSIONS = 10


def session_log_dir(base: Path | None = None) -> Path:
    """``<base>/.dashwatch/logs``, created on demand. ``base`` defaults to cwd."""
    log_dir = (base or Path.cwd()) / ".dashwatch" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def prune_sessions(log_dir: Path, keep: int = MAX_LOG_SESSIONS) -> list[Path]:
    """Delete all but the newest ``keep`` session files; return what was removed."""
    sessions = sorted(log_dir.glob("session_*.log"), key=lambda p: p.stat().st_mtime)
    stale = sessions[: max(len(sessions) - keep, 0)]
    for path in stale:
        path.unlink(missing_ok=True)
    return stale


def resolve_level(*, debug: bool = False, level: int | str | None = None) -> int:
    """Resolve the effective console log level (see module docstring)."""
    if level is not None:
        return _parse_level(level)
    if env_level := os.environ.get("DASHWATCH_LOG_LEVEL"):
        return _parse_level(env_level)
    if os.environ.get("DASHWATCH_DEBUG", "").lower() in ("true", "1", "yes"):
        return logging.DEBUG
    if debug:
        return logging.DEBUG
    return logging.WARNING


def configure_logging(
    *,
    debug: bool = False,
    level: int | str | None = None,
    stream: TextIO | None = None,
    persist: bool = False,
    log_base: Path | None = None,
) -> Path | None:
    """Configure the root logger for the Dashwatch CLI.

    Args:
        debug: Enable DEBUG level with detailed format
        level: Override log level (int or string like "DEBUG", "INFO")
        stream: Console stream (default: stderr)
        persist: Also write a session file under .dashwatch/logs/
        log_base: Directory holding .dashwatch/ (default: cwd)

    Returns:
        The session log file, when one was opened.
    """
    console_level = resolve_level(debug=debug, level=level)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if persist else console_level)

    console = logging.StreamHandler(stream or sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter(_DEBUG_FORMAT if console_level <= logging.DEBUG else _DEFAULT_FORMAT)
    )
    root.addHandler(console)

    log_file = None
    if persist:
        try:
            log_file = _open_session(root, session_log_dir(log_base))
        except OSError as e:
            logging.getLogger(__name__).warning("Could not enable persistent logging: %s", e)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured: level=%s, session log=%s",
        logging.getLevelName(console_level),
        log_file,
    )
    return log_file


def _open_session(root: logging.Logger, log_dir: Path) -> Path:
    # Prune first so the new session always survives
    prune_sessions(log_dir, keep=MAX_LOG_SESSIONS - 1)
    log_file = log_dir / f"session_{datetime.now():%Y-%m-%d_%H-%M-%S}.log"
    handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_DEBUG_FORMAT))
    root.addHandler(handler)
    return log_file


def _parse_level(level: int | str) -> int:
    """Parse log level from int or string."""
    if isinstance(level, int):
        return level
    numeric = getattr(logging, level.upper(), None)
    if isinstance(numeric, int):
        return numeric
    try:
        return int(level)
    except ValueError:
        return logging.WARNING
