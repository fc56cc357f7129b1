"""
Logging configuration for the telemetry bridge.

Console logging always; rotating file logs when a log directory is given.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON for better parsing."""
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "agent_id"):
            log_obj["agent_id"] = record.agent_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console and file logs."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        """Initialize formatter with optional color support."""
        self.use_colors = use_colors
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format with optional colors for console output."""
        if not self.use_colors or record.levelname not in self.COLORS:
            return super().format(record)

        levelname = record.levelname
        record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(
    console_level: str = "INFO",
    log_dir: Optional[str] = None,
    file_level: str = "DEBUG",
    use_json: bool = False,
    use_colors: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for the bridge.

    Args:
        console_level: Console logging level
        log_dir: Directory for rotating log files; console only if None
        file_level: File logging level
        use_json: Use JSON formatting for files
        use_colors: Colour the console level names
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep

    Raises:
        PermissionError: log_dir cannot be created or written
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, console_level.upper()))
    console_handler.setFormatter(HumanReadableFormatter(use_colors=use_colors))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_formatter = StructuredFormatter() if use_json else HumanReadableFormatter()

        main_handler = logging.handlers.RotatingFileHandler(
            log_path / "bridge.log", maxBytes=max_bytes, backupCount=backup_count
        )
        main_handler.setLevel(getattr(logging, file_level.upper()))
        main_handler.setFormatter(file_formatter)
        root_logger.addHandler(main_handler)

        # Error-only log for monitoring
        error_handler = logging.handlers.RotatingFileHandler(
            log_path / "error.log", maxBytes=max_bytes, backupCount=backup_count
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)

    # Per-request logs from the client libraries are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("nats").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized - Console: {console_level}, File: {file_level if log_dir else 'off'}, "
        f"Directory: {log_dir}, JSON: {use_json}"
    )
