"""Logging configuration for StoryIntake."""

import logging
import sys
from pathlib import Path
from datetime import datetime, timedelta
from typing import Any, Optional

from .session_logger import get_session_logger


def cleanup_old_logs(log_dir: Path = None, days_to_keep: int = 1) -> int:
    """
    Clean up log files older than specified days.

    Args:
        log_dir: Directory containing logs (defaults to ~/.storyintake/logs)
        days_to_keep: Number of days to keep logs (default 1)

    Returns:
        Number of files deleted
    """
    if log_dir is None:
        log_dir = Path.home() / ".storyintake" / "logs"

    if not log_dir.exists():
        return 0

    cutoff_time = datetime.now() - timedelta(days=days_to_keep)
    files_deleted = 0

    for pattern in ["*.log", "*.jsonl"]:
        for log_file in log_dir.glob(pattern):
            try:
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
                if file_mtime < cutoff_time:
                    log_file.unlink()
                    files_deleted += 1
            except OSError:
                # File vanished or is locked; try again next startup
                continue

    return files_deleted


def setup_logging(
    log_file: Optional[Path] = None,
    level: str = "INFO",
    console_output: bool = False
) -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        log_file: Path to log file (defaults to ~/.storyintake/logs/storyintake_YYYYMMDD.log)
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        console_output: Whether to also output to console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("storyintake")
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    logger.handlers.clear()

    files_deleted = 0
    if log_file is None:
        log_dir = Path.home() / ".storyintake" / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        files_deleted = cleanup_old_logs(log_dir, days_to_keep=1)

        timestamp = datetime.now().strftime("%Y%m%d")
        log_file = log_dir / f"storyintake_{timestamp}.log"

    log_file.parent.mkdir(parents=True, exist_ok=True)

    # File handler with detailed format
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(file_format)
    logger.addHandler(file_handler)

    # Console handler if requested (simpler format)
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_format = logging.Formatter('%(levelname)s: %(message)s')
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

    logger.info("=" * 60)
    logger.info(f"StoryIntake logging started - Level: {level}")
    logger.info(f"Log file: {log_file}")
    if files_deleted > 0:
        logger.info(f"Cleaned up {files_deleted} old log files")
    logger.info("=" * 60)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance. If the logger hasn't been set up yet, sets it up with default configuration.

    Args:
        name: Logger name (defaults to 'storyintake')

    Returns:
        Logger instance
    """
    logger_name = f"storyintake.{name}" if name else "storyintake"
    logger = logging.getLogger(logger_name)

    root_logger = logging.getLogger("storyintake")
    if not root_logger.handlers:
        setup_logging(level="DEBUG")

    return logger


# Structured API events: {component, status, detail}

def _emit(
    logger: Optional[logging.Logger],
    level: int,
    message: str,
    component: str,
    status: str,
    **detail: Any
) -> None:
    if logger:
        logger.log(
            level,
            f"{message} [{component}] {status}" + (f" {detail}" if detail else ""),
            extra={"component": component, "status": status, "detail": detail}
        )

    session_logger = get_session_logger()
    if session_logger:
        session_logger.log_event(component=component, status=status, detail=detail)


def log_api_success(logger: Optional[logging.Logger], component: str, **detail: Any) -> None:
    """Log a completed generation call."""
    _emit(logger, logging.INFO, "API call complete", component, "success", **detail)


def log_api_error(logger: Optional[logging.Logger], component: str, error: str, **detail: Any) -> None:
    """Log a failed generation call."""
    _emit(logger, logging.ERROR, "API call failed", component, "error", error=error, **detail)


def log_rate_limit(logger: Optional[logging.Logger], component: str, retry_after_ms: int) -> None:
    """Log a rate limit that carried an explicit wait duration."""
    _emit(logger, logging.WARNING, "Rate limited", component, "rate_limited", retry_after_ms=retry_after_ms)
