"""
Utility functions for noxium.

Includes logging setup and console output helpers.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from noxium.config import NoxiumConfig


# Global consoles for pretty output
console = Console()
err_console = Console(stderr=True)

# LogRecord attributes copied into structured output when present
_EXTRA_FIELDS = ("event", "job_id", "kind", "stage_index")


def setup_logging(
    log_file: Optional[Path] = None,
    log_level: str = "INFO",
    log_format: str = "pretty",
    console_output: bool = True,
) -> logging.Logger:
    """
    Set up logging for the "noxium" logger hierarchy.

    Args:
        log_file: Path to log file (no file handler when None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON) or "pretty" (human-readable)
        console_output: Also log to console (stderr)

    Returns:
        Configured logger
    """
    logger = logging.getLogger("noxium")
    logger.setLevel(getattr(logging, log_level.upper()))
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        if log_format == "structured":
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        logger.addHandler(file_handler)

    if console_output:
        if log_format == "pretty":
            console_handler: logging.Handler = RichHandler(
                console=err_console, rich_tracebacks=True, show_time=False
            )
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(StructuredFormatter())
        logger.addHandler(console_handler)

    return logger


def setup_logging_from_config(config: "NoxiumConfig", verbose: bool = False) -> logging.Logger:
    """Configure logging from the `logging` section of a NoxiumConfig."""
    return setup_logging(
        log_file=config.get_log_file_path(),
        log_level="DEBUG" if verbose else config.get_log_level(),
        log_format=config.get_log_format(),
        console_output=config.should_log_to_console(),
    )


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def format_duration(milliseconds: Optional[int]) -> str:
    """
    Format a duration for console output.

    Args:
        milliseconds: Duration in ms (None renders as "-")

    Returns:
        Formatted string (e.g., "820ms", "4.2s", "1m 23s")
    """
    if milliseconds is None:
        return "-"
    if milliseconds < 1000:
        return f"{milliseconds}ms"

    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    return f"{minutes}m {int(seconds % 60)}s"

