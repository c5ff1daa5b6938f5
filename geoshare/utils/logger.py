"""
Logging setup for GeoShare.

Main application log ('geoshare') + protocol library log ('geoloc-xmpp.*')
in the same rotating file, plus an optional raw XML protocol log.
"""

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .paths import get_paths


# Log format
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Maximum log file size before rotation (10 MB)
MAX_LOG_SIZE = 10 * 1024 * 1024

# Number of backup files to keep
BACKUP_COUNT = 5


def _configure(logger: logging.Logger, level: int, console: bool, log_path: Optional[Path]):
    logger.setLevel(level)
    logger.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_path is not None:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())


def setup_main_logger(log_level: str = 'INFO', console: bool = True,
                      log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup the main application logger and the protocol library logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console: Also log to stdout
        log_path: Rotating log file (None = no file log)

    Returns:
        Main logger instance
    """
    level = getattr(logging, log_level.upper())

    logger = logging.getLogger('geoshare')
    _configure(logger, level, console, log_path)
    logger.info(f"Main logger initialized (level: {log_level}, log: {log_path or 'console only'})")

    # geoloc-xmpp library logger writes to the same file with facility geoloc-xmpp.*
    library_logger = logging.getLogger('geoloc-xmpp')
    _configure(library_logger, level, console, log_path)
    library_logger.propagate = False
    logger.info("Protocol library logger configured (facility: geoloc-xmpp.*)")

    def exception_hook(exc_type, exc_value, exc_traceback):
        """Log uncaught exceptions instead of just printing them to stderr."""
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Uncaught exception:", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = exception_hook
    logger.debug("Global exception hook configured")

    return logger


def setup_xml_logger(log_path: Path) -> logging.Logger:
    """
    Send slixmpp's SEND/RECV stream log to its own rotating file.

    Args:
        log_path: XML protocol log file

    Returns:
        The slixmpp XML stream logger
    """
    slixmpp_root = logging.getLogger('slixmpp')
    slixmpp_root.setLevel(logging.DEBUG)

    xml_logger = logging.getLogger('slixmpp.xmlstream.xmlstream')
    xml_logger.setLevel(logging.DEBUG)
    xml_logger.propagate = False
    xml_logger.handlers.clear()

    xml_handler = RotatingFileHandler(
        log_path,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding='utf-8'
    )
    xml_handler.setLevel(logging.DEBUG)
    xml_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
    xml_logger.addHandler(xml_handler)

    return xml_logger


def cleanup_old_logs(retention_days: int, log_dir: Optional[Path] = None) -> int:
    """
    Delete log files older than the retention period.

    Args:
        retention_days: Number of days to retain logs (0 = keep forever)
        log_dir: Directory to clean (default: profile log dir)

    Returns:
        Number of deleted files
    """
    if retention_days <= 0:
        return 0

    log_dir = log_dir or get_paths().log_dir
    cutoff_time = time.time() - (retention_days * 86400)
    logger = logging.getLogger('geoshare')

    deleted_count = 0
    for log_file in log_dir.glob('*.log*'):
        if log_file.stat().st_mtime < cutoff_time:
            try:
                log_file.unlink()
                deleted_count += 1
            except OSError as e:
                logger.warning(f"Failed to delete old log {log_file}: {e}")

    if deleted_count > 0:
        logger.info(f"Cleaned up {deleted_count} old log files (retention: {retention_days} days)")
    return deleted_count
