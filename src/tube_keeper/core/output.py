"""
Unified output system using Loguru.
Routes user-facing messages to the shared Rich console and everything to the
log file.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"

_console: Optional[Console] = None

# Console colors per log level
_LEVEL_STYLES = {
    "debug": "cyan",
    "info": None,
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


def get_console() -> Console:
    """Shared console, so CLI tables and log lines interleave."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def get_log_file_path(data_dir: Path) -> Path:
    """Get the default log file path inside the data directory."""
    return data_dir / "tube-keeper.log"


def setup_loguru(
    log_file: Path,
    level: str = "INFO",
    max_file_size_mb: int = 10,
    backup_count: int = 5,
    console_output: bool = False,
) -> None:
    """
    Configure loguru with a rotating file sink and optional stderr sink.

    Args:
        log_file: Path to log file
        level: Minimum level for logging (DEBUG, INFO, WARNING, ERROR)
        max_file_size_mb: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
        console_output: Whether to also log to stderr
    """
    # Remove default handler
    logger.remove()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation=f"{max_file_size_mb} MB",
        retention=backup_count,
        level=level,
        format=LOG_FORMAT,
        enqueue=False,  # Synchronous writes
    )

    if console_output:
        logger.add(sys.stderr, level=level, format="{level}: {message}")

    logger.info(f"Loguru initialized: {log_file} (level={level})")


def log(message: str, level: str = "info", quiet: bool = False) -> None:
    """
    Unified logging: writes to the log file AND prints to the console.

    Use this instead of print() for user-facing messages that should also be logged.

    Args:
        message: User-facing message (can include emojis)
        level: Log level (debug, info, success, warning, error)
        quiet: Log only, do not print
    """
    log_func = getattr(logger.opt(depth=1), level)
    log_func(message)

    if quiet or level == "debug":
        return

    style = _LEVEL_STYLES.get(level)
    get_console().print(message, style=style, markup=False, highlight=False)
