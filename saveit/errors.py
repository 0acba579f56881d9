"""
Error logging for the saveit CLI.

Full stack traces go to a file; users see a one-line message.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


def _error_log_path() -> Path:
    """Resolve error log path, respecting SAVEIT_CONFIG_DIR."""
    config_dir = os.environ.get("SAVEIT_CONFIG_DIR")
    if config_dir:
        return Path(config_dir).expanduser() / "saveit-errors.log"
    return Path.home() / ".saveit" / "saveit-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Append the exception's traceback to the error log.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'=' * 60}\n[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}: {exc}\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Unwritable log must not mask the original error
    return log_path
