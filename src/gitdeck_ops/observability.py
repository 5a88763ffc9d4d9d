from __future__ import annotations

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from gitdeck.config_schema import LoggingConfig


LOGGER_NAME = "gitdeck"

# Environment variables for configuration
ENV_LOG_DIR = "GITDECK_LOG_DIR"
ENV_LOG_LEVEL = "GITDECK_LOG_LEVEL"
ENV_LOG_MAX_BYTES = "GITDECK_LOG_MAX_BYTES"
ENV_LOG_BACKUP_COUNT = "GITDECK_LOG_BACKUP_COUNT"
ENV_LOG_DISABLE_FILE = "GITDECK_LOG_DISABLE_FILE"

# Defaults
DEFAULT_LOG_DIR = Path.home() / ".gitdeck" / "logs"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_logger_initialized = False
_session_start: Optional[str] = None
_settings: Optional[LoggingConfig] = None


def configure(settings: Optional[LoggingConfig]) -> None:
    """Use a loaded logging config instead of raw environment variables.

    Handlers are rebuilt on the next log call. Passing None goes back to the
    environment.
    """
    global _settings, _logger_initialized
    _settings = settings
    _logger_initialized = False


def _session_stamp() -> str:
    global _session_start
    if _session_start is None:
        _session_start = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H%M%S")
    return _session_start


def _get_log_level() -> int:
    """Get log level from config or environment, defaulting to INFO."""
    if _settings is not None:
        level_name = _settings.level
    else:
        level_name = os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()
    if level_name not in _VALID_LEVELS:
        print(
            f"gitdeck: Invalid log level {level_name!r}, using {DEFAULT_LOG_LEVEL}",
            file=sys.stderr,
        )
        return logging.INFO
    return getattr(logging, level_name)


def _file_logging_disabled() -> bool:
    if _settings is not None:
        return _settings.disable_file
    return os.getenv(ENV_LOG_DISABLE_FILE, "").lower() in ("1", "true", "yes")


def _get_log_file_path() -> Optional[Path]:
    """Get the log file path, creating directories if needed.

    Returns None if file logging is disabled or the directory cannot be made.
    """
    if _file_logging_disabled():
        return None

    if _settings is not None and _settings.dir:
        log_dir = Path(_settings.dir).expanduser()
    else:
        log_dir = Path(os.getenv(ENV_LOG_DIR, DEFAULT_LOG_DIR)).expanduser()

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"gitdeck: Could not create log directory {log_dir}: {e}", file=sys.stderr)
        return None

    # Session-based filename: gitdeck_2024-01-15_143022.log
    return log_dir / f"gitdeck_{_session_stamp()}.log"


def _rotation_settings() -> tuple[int, int]:
    if _settings is not None:
        return _settings.max_bytes, _settings.backup_count
    return (
        int(os.getenv(ENV_LOG_MAX_BYTES, DEFAULT_MAX_BYTES)),
        int(os.getenv(ENV_LOG_BACKUP_COUNT, DEFAULT_BACKUP_COUNT)),
    )


def _get_logger() -> logging.Logger:
    """Get or initialize the gitdeck logger.

    By default, logs to ~/.gitdeck/logs/gitdeck_<session>.log

    Configuration via environment variables (or a loaded ``LoggingConfig``):
    - GITDECK_LOG_DIR: Directory for log files (default: ~/.gitdeck/logs/)
    - GITDECK_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - GITDECK_LOG_MAX_BYTES: Max log file size before rotation (default: 10MB)
    - GITDECK_LOG_BACKUP_COUNT: Number of backup files to keep (default: 5)
    - GITDECK_LOG_DISABLE_FILE: Set to 1 to disable file logging (stderr only)
    """
    global _logger_initialized
    logger = logging.getLogger(LOGGER_NAME)

    if not _logger_initialized:
        _logger_initialized = True
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        log_level = _get_log_level()
        logger.setLevel(log_level)

        formatter = logging.Formatter(
            "[%(levelname)s %(asctime)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S"
        )

        log_file = _get_log_file_path()
        if log_file:
            max_bytes, backup_count = _rotation_settings()
            file_handler = RotatingFileHandler(
                str(log_file),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(log_level)
            logger.addHandler(file_handler)

        # stderr gets warnings and above
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(max(log_level, logging.WARNING))
        logger.addHandler(stream_handler)

    return logger


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def log_action(
    action: str,
    /,
    *,
    outcome: str = "ok",
    duration_ms: Optional[float] = None,
    **fields: Any,
) -> None:
    """Emit a structured log line for an action.

    Fields are serialized to JSON; values that are not JSON types are
    rendered with ``str``.

    Args:
        action: Name of the action being logged (``git.merge``)
        outcome: Result status (``ok``, ``noop``, ``cancelled``, ``conflicts``, ``error``)
        duration_ms: How long the action took in milliseconds
        **fields: Additional fields to include
    """
    payload: Dict[str, Any] = {
        "ts": _now_iso(),
        "action": action,
        "outcome": outcome,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    if fields:
        payload.update(fields)

    _get_logger().info(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))


def _with_fields(message: str, fields: Dict[str, Any]) -> str:
    if not fields:
        return message
    return f"{message} " + json.dumps(fields, separators=(",", ":"), sort_keys=True, default=str)


def log_debug(message: str, /, **fields: Any) -> None:
    """Log a debug message with optional structured fields.

    Only emitted when log level is DEBUG.
    """
    logger = _get_logger()
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(_with_fields(message, fields))


def log_info(message: str, /, **fields: Any) -> None:
    _get_logger().info(_with_fields(message, fields))


def log_warning(message: str, /, **fields: Any) -> None:
    """Log a warning message with optional structured fields."""
    _get_logger().warning(_with_fields(message, fields))


def log_error(message: str, /, **fields: Any) -> None:
    """Log an error message with optional structured fields."""
    _get_logger().error(_with_fields(message, fields))


@contextmanager
def timeit(action: str, /, **fields: Any):
    """Time a block and emit a structured log on exit.

    On exception, logs outcome="error" and re-raises.

    Yields:
        A dict whose entries are added to the log line
    """
    start = time.perf_counter()
    result_info: Dict[str, Any] = {}
    try:
        yield result_info
    except Exception:
        duration_ms = (time.perf_counter() - start) * 1000.0
        log_action(action, outcome="error", duration_ms=duration_ms, **fields)
        raise
    duration_ms = (time.perf_counter() - start) * 1000.0
    log_action(action, outcome="ok", duration_ms=duration_ms, **{**fields, **result_info})
