"""Loguru configuration for pipeline processes.

Console output for interactive use, JSON to stdout otherwise. Every record
carries a ``component`` and a ``run_id`` (``-`` outside a pipeline run), so
lines from one run can be grepped out of a long-lived scheduler's output.
An optional run log file keeps JSON records on disk for as long as run
history is retained.
"""

import sys
from typing import Optional

from loguru import logger

from civic_pipeline.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> | <magenta>{extra[run_id]}</magenta> | "
    "<level>{message}</level>"
)


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure loguru for this process.

    Args:
        level: Overrides CIVIC_LOG_LEVEL (e.g. from the CLI)
        log_file: Overrides CIVIC_LOG_FILE; None falls back to settings
    """
    level = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    logger.remove()
    logger.configure(extra={"component": "civic_pipeline", "run_id": "-"})

    if sys.stderr.isatty() and settings.log_format.lower() == "console":
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)
    else:
        logger.add(
            sys.stdout,
            format="{message}",
            level=level,
            serialize=True,
            diagnose=False,
        )

    if log_file:
        logger.add(
            log_file,
            format="{message}",
            level=level,
            serialize=True,
            diagnose=False,
            rotation=settings.log_rotation,
            retention=f"{settings.retain_runs_days} days",
            encoding="utf-8",
        )


def get_logger(component: str):
    """
    Get a logger instance bound to a specific component name.

    Example:
        >>> log = get_logger("orchestrator")
        >>> log.info("Step started", run_id=run.id, step="fetch")
    """
    return logger.bind(component=component)


configure_logging()

__all__ = ["logger", "get_logger", "configure_logging"]
