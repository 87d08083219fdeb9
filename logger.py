"""Structured logging infrastructure with verbosity levels and progress tracking."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, Optional

import colorlog

LOGGER_NAME = 'onenote_markdown_exporter'


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with configurable verbosity levels.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit log level string (overrides verbosity)

    Returns:
        Configured logger instance
    """
    if level:
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level_upper = level.upper()
        if level_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(allowed_levels)}"
            )
        log_level = getattr(logging, level_upper)
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    if log_format is None:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    if date_format is None:
        date_format = '%Y-%m-%d %H:%M:%S'

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)

            logger.info(f"Logging to file: {log_file}")
            logger.info(f"Log level: {logging.getLevelName(log_level)}")
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {str(e)}")
    else:
        logger.info(f"Console logging only. Level: {logging.getLevelName(log_level)}")

    return logger


class ProgressTracker:
    """Counts exported and failed pages of one section and logs the outcome."""

    def __init__(self, total_items: int, item_type: str = "pages", scope: Optional[str] = None):
        """
        Args:
            total_items: Pages listed in the section
            item_type: Noun used in log lines
            scope: Section name shown in log lines
        """
        self.total_items = total_items
        self.item_type = item_type
        self.scope = scope
        self.processed_items = 0
        self.successful_items = 0
        self.failed_items = 0
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(LOGGER_NAME)

    @property
    def label(self) -> str:
        return f"section '{self.scope}'" if self.scope else "export"

    def __enter__(self) -> 'ProgressTracker':
        self.start_time = time.time()
        self.logger.info(f"Exporting {self.total_items} {self.item_type} from {self.label}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return

        elapsed = time.time() - self.start_time
        stats = self.get_stats()

        if self.failed_items > 0 and self.failed_items == self.total_items:
            log_method = self.logger.error
        elif self.failed_items > 0 or exc_type is not None:
            log_method = self.logger.warning
        else:
            log_method = self.logger.info

        outcome = "interrupted" if exc_type is not None else "finished"
        log_method(
            f"{self.label.capitalize()} {outcome}: {self.successful_items}/{self.total_items} "
            f"{self.item_type} written, {self.failed_items} skipped "
            f"({stats['success_rate']:.1f}%) in {self._format_elapsed(elapsed)}"
        )
        unvisited = self.total_items - self.processed_items
        if unvisited > 0:
            log_method(f"{unvisited} {self.item_type} in {self.label} were not reached")

    def increment(self, success: bool = True) -> None:
        """Record one page as written (``success``) or skipped."""
        self.processed_items += 1

        if success:
            self.successful_items += 1
        else:
            self.failed_items += 1

        # Every tenth page, and every skipped one
        if self.processed_items % 10 == 0 or not success:
            result = "written" if success else "skipped"
            self.logger.info(
                f"{self.label.capitalize()}: {self.processed_items}/{self.total_items} "
                f"{self.item_type} done, last one {result}"
            )

    def get_stats(self) -> Dict[str, Any]:
        """Get current counts for the section."""
        elapsed = 0.0 if self.start_time is None else time.time() - self.start_time

        return {
            'total': self.total_items,
            'processed': self.processed_items,
            'successful': self.successful_items,
            'failed': self.failed_items,
            'success_rate': (self.successful_items / self.total_items * 100)
                            if self.total_items > 0 else 0,
            'elapsed_time': elapsed,
            'elapsed_time_formatted': self._format_elapsed(elapsed)
        }

    @staticmethod
    def _format_elapsed(seconds: float) -> str:
        if seconds < 60:
            return f"{seconds:.1f}s"

        minutes = int(seconds // 60)
        seconds = int(seconds % 60)

        if minutes < 60:
            return f"{minutes}m {seconds}s"

        hours = minutes // 60
        minutes = minutes % 60

        return f"{hours}h {minutes}m {seconds}s"


def log_section(title: str) -> None:
    """Log a banner that separates phases of an export run."""
    logger = logging.getLogger(LOGGER_NAME)

    rule = "-" * 60
    logger.info(rule)
    logger.info(f"onenote2md | {title}")
    logger.info(rule)


def log_config(config: Dict[str, Any]) -> None:
    """
    Log sanitized configuration for debugging.

    Args:
        config: Configuration dictionary to log
    """
    logger = logging.getLogger(LOGGER_NAME)

    sanitized_config = _sanitize_config(config)

    log_section("Configuration")

    source = sanitized_config.get('source', {})
    logger.info(f"Export Path: {source.get('export_path', 'Not Set')}")
    logger.info("")

    migration = sanitized_config.get('migration', {})
    logger.info(f"Notebooks: {migration.get('notebooks') or 'All Notebooks'}")
    logger.info(f"Section: {migration.get('section') or 'Not Set'}")
    logger.info(f"Page ID: {migration.get('page_id') or 'Not Set'}")
    logger.info(f"Dry Run: {migration.get('dry_run', False)}")
    logger.info("")

    export_settings = sanitized_config.get('export', {})
    logger.info(f"Output Directory: {export_settings.get('output_directory', './markdown-export')}")
    logger.info(f"Media Directory: {export_settings.get('media_directory', 'media')}")
    logger.info(f"Default Image Format: {export_settings.get('default_image_format', 'png')}")
    logger.info(f"Max Workers: {export_settings.get('max_workers', 1)}")
    logger.info("")

    media = sanitized_config.get('media', {})
    logger.info(f"Fetch Timeout: {media.get('fetch_timeout', 30)}")
    logger.info(f"Fetch Attempts: {media.get('fetch_attempts', 1)}")


def _sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a sanitized copy of configuration with sensitive fields masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    sanitized = copy.deepcopy(config)

    sensitive_fields = {
        'password', 'secret', 'api_key', 'token', 'auth_header'
    }

    def mask_sensitive(data: Any) -> Any:
        """Recursively mask sensitive fields."""
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                is_sensitive = any(sensitive in str(key).lower() for sensitive in sensitive_fields)
                if is_sensitive and isinstance(value, str):
                    masked[key] = "***REDACTED***"
                else:
                    masked[key] = mask_sensitive(value)
            return masked
        elif isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        else:
            return data

    return mask_sensitive(sanitized)


__all__ = [
    'LOGGER_NAME',
    'ProgressTracker',
    'log_config',
    'log_section',
    'setup_logging'
]
