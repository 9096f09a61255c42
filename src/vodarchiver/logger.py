"""
Logging module for VOD Archiver.
Console output is colored, file output is rotated; both show the pipeline
stage (child logger name) and, for per-VOD work, the VOD id.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Tuple


LOGGER_NAME = 'vod_archiver'

# Libraries that log request details at INFO/DEBUG
NOISY_LOGGERS = ('aiohttp.access', 'aiohttp.client', 'google.auth', 'urllib3')


class Colors:
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


def _context(record: logging.LogRecord) -> Tuple[str, Optional[str]]:
    """(stage, vod id) of a record; stage is the child logger suffix."""
    stage = record.name[len(LOGGER_NAME) + 1:] if record.name.startswith(f"{LOGGER_NAME}.") else ''
    return stage, getattr(record, 'vod', None)


class ColoredFormatter(logging.Formatter):
    """Console formatter: ``HH:MM:SS LEVEL stage [vod id] message``."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.MAGENTA,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        stage, vod = _context(record)

        parts = [
            f"{Colors.GRAY}{timestamp}{Colors.RESET}",
            f"{color}{record.levelname:8}{Colors.RESET}",
        ]
        if stage:
            parts.append(f"{Colors.BLUE}{stage}{Colors.RESET}")
        if vod:
            parts.append(f"{Colors.CYAN}[vod {vod}]{Colors.RESET}")
        parts.append(record.getMessage())
        message = " ".join(parts)

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


class FileFormatter(logging.Formatter):
    """Plain fixed-column formatter for the rotating log file."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        stage, vod = _context(record)

        message = (
            f"{timestamp} | {record.levelname:8} | {stage or '-':10} | "
            f"{vod or '-':12} | {record.getMessage()}"
        )
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


class VodLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the Twitch VOD it belongs to."""

    def __init__(self, logger: logging.Logger, vod_id: str):
        super().__init__(logger, {'vod': vod_id})

    def process(self, msg, kwargs):
        kwargs.setdefault('extra', {})
        kwargs['extra']['vod'] = self.extra['vod']
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up the main application logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_file: Path to log file. If None, logs only to console.
        max_size_mb: Maximum log file size before rotation.
        backup_count: Number of backup log files to keep.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter())
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Application logger, or the child logger for a pipeline stage."""
    if name:
        return logging.getLogger(f'{LOGGER_NAME}.{name}')
    return logging.getLogger(LOGGER_NAME)


def get_vod_logger(vod_id: str, stage: Optional[str] = None) -> VodLoggerAdapter:
    """
    Get a logger adapter for a specific Twitch VOD.

    Args:
        vod_id: Twitch VOD id.
        stage: Optional pipeline stage name.

    Returns:
        VodLoggerAdapter with VOD context.
    """
    return VodLoggerAdapter(get_logger(stage), str(vod_id))
