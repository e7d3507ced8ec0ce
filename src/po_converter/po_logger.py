"""
Structured Logging for the Purchase Order Converter
Rotating file logs plus console output with a component prefix per message.
"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import po_config as cfg


class POLogger:
    """Centralized logging with rotation and formatting"""

    def __init__(self, name="PO-Converter", log_dir=None, log_level=None):
        """
        Initialize logger with rotating file handlers

        Args:
            name: Logger name
            log_dir: Directory for log files (defaults to PO_LOG_DIR)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        log_dir = log_dir or cfg.LOG_DIR
        log_level = (log_level or cfg.LOG_LEVEL).upper()

        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level, logging.INFO))
        self.logger.handlers.clear()
        self.logger.propagate = False

        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        log_format = logging.Formatter(
            '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # 1. Main rotating file handler
        main_handler = RotatingFileHandler(
            log_path / 'po_converter.log',
            maxBytes=cfg.LOG_MAX_MB * 1024 * 1024,
            backupCount=cfg.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        main_handler.setLevel(logging.DEBUG)
        main_handler.setFormatter(log_format)
        self.logger.addHandler(main_handler)

        # 2. Error-only log file (5MB per file, keep 3 files)
        error_handler = RotatingFileHandler(
            log_path / 'errors.log',
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(log_format)
        self.logger.addHandler(error_handler)

        # 3. Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(log_format)
        self.logger.addHandler(console_handler)

    def debug(self, message, component=""):
        """Log debug message"""
        self._log(logging.DEBUG, message, component)

    def info(self, message, component=""):
        """Log info message"""
        self._log(logging.INFO, message, component)

    def warning(self, message, component=""):
        """Log warning message"""
        self._log(logging.WARNING, message, component)

    def error(self, message, component="", exc_info=False):
        """Log error message"""
        self._log(logging.ERROR, message, component, exc_info=exc_info)

    def _log(self, level, message, component="", exc_info=False):
        """Internal logging method with component prefix"""
        if component:
            message = f"[{component}] {message}"
        self.logger.log(level, message, exc_info=exc_info)

    def log_conversion_start(self, source_name, row_count, mapping_mode):
        """Log the start of a conversion run"""
        self.info(
            f"Converting '{source_name}' - {row_count} row(s), {mapping_mode} mapping",
            component="Converter"
        )

    def log_conversion_complete(self, file_name, processed, total, state):
        """Log a finished conversion run"""
        self.info(
            f"Generated '{file_name}' - {processed}/{total} row(s) written ({state} document)",
            component="Converter"
        )

    def log_email_sent(self, to, attachment_name, status):
        """Log an email delivery attempt"""
        self.info(
            f"Email to {to} with '{attachment_name}' - Status: {status}",
            component="Email"
        )


_global_logger = None


def get_logger(log_level=None):
    """Get or create global logger instance"""
    global _global_logger
    if _global_logger is None:
        _global_logger = POLogger(log_level=log_level)
    return _global_logger
