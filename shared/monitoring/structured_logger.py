"""
Structured Logging Module

JSON logging for the gem scorer. Scan and symbol context variables are
attached to every record so a scan's log lines can be grouped after the fact.
"""

import logging
import sys
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Any, Iterator, Optional
from contextvars import ContextVar
from pathlib import Path
import os

from pythonjsonlogger import jsonlogger


scan_id_var: ContextVar[Optional[str]] = ContextVar('scan_id', default=None)
symbol_var: ContextVar[Optional[str]] = ContextVar('symbol', default=None)


class ContextFilter(logging.Filter):
    """Adds scan and symbol context to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "scan_id", None) is None:
            record.scan_id = scan_id_var.get()
        if getattr(record, "symbol", None) is None:
            record.symbol = symbol_var.get()
        record.service_name = os.getenv('SERVICE_NAME', 'gem-scorer')
        record.environment = os.getenv('ENVIRONMENT', 'development')
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with timestamp, location and context fields"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['file'] = f"{record.filename}:{record.lineno}"

        for key in ('scan_id', 'symbol'):
            value = getattr(record, key, None)
            if value:
                log_record[key] = value
            else:
                log_record.pop(key, None)

        if hasattr(record, 'service_name'):
            log_record['service_name'] = record.service_name
        if hasattr(record, 'environment'):
            log_record['environment'] = record.environment

        if record.exc_info and record.exc_info[0] is not None:
            log_record['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }


class StructuredLogger:
    """
    Structured logger with JSON or text output.

    Usage:
        logger = StructuredLogger.get_logger("gem_scanner")
        logger.info("Batch finished", extra={"succeeded": 5, "failed": 0})
    """

    _loggers: Dict[str, logging.Logger] = {}

    @classmethod
    def get_logger(
        cls,
        name: str,
        level: int = logging.INFO,
        log_file: Optional[Path] = None,
        json_format: bool = True
    ) -> logging.Logger:
        """
        Get or create a configured logger.

        Args:
            name: Logger name
            level: Logging level
            log_file: Optional file path for file logging
            json_format: Use JSON format

        Returns:
            Configured logger instance
        """
        if name in cls._loggers:
            return cls._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers = []
        context_filter = ContextFilter()

        if json_format:
            formatter: logging.Formatter = CustomJsonFormatter(
                '%(timestamp)s %(level)s %(service_name)s %(logger)s %(message)s'
            )
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(context_filter)
        logger.addHandler(console_handler)

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(context_filter)
            logger.addHandler(file_handler)

        cls._loggers[name] = logger
        return logger

    @classmethod
    def set_context(cls, scan_id: Optional[str] = None, symbol: Optional[str] = None):
        if scan_id:
            scan_id_var.set(scan_id)
        if symbol:
            symbol_var.set(symbol)

    @classmethod
    def clear_context(cls):
        scan_id_var.set(None)
        symbol_var.set(None)


@contextmanager
def log_context(scan_id: Optional[str] = None, symbol: Optional[str] = None) -> Iterator[None]:
    """Bind scan/symbol context for the duration of a block."""
    scan_token = scan_id_var.set(scan_id) if scan_id else None
    symbol_token = symbol_var.set(symbol) if symbol else None
    try:
        yield
    finally:
        if symbol_token is not None:
            symbol_var.reset(symbol_token)
        if scan_token is not None:
            scan_id_var.reset(scan_token)


def get_logger(
    name: str,
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    json_format: bool = True
) -> logging.Logger:
    return StructuredLogger.get_logger(name, level, log_file, json_format)


def setup_service_logger(
    service_name: str,
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True
) -> logging.Logger:
    """
    Configure logging for a service.

    The named logger and the "services" and "shared" package loggers share
    the handlers, so module loggers created with logging.getLogger(__name__)
    emit through the same formatter.

    Args:
        service_name: Name of the service
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        json_format: Use JSON format

    Returns:
        Configured logger
    """
    os.environ['SERVICE_NAME'] = service_name
    log_level = getattr(logging, level.upper(), logging.INFO)
    path = Path(log_file) if log_file else None

    service_logger = get_logger(service_name, log_level, path, json_format)
    for package in ('services', 'shared'):
        package_logger = logging.getLogger(package)
        package_logger.setLevel(log_level)
        package_logger.handlers = list(service_logger.handlers)
        package_logger.propagate = False
    return service_logger


def log_performance(logger: logging.Logger, operation: str, duration_ms: float, **kwargs):
    logger.info(
        f"Performance: {operation}",
        extra={
            "operation": operation,
            "duration_ms": duration_ms,
            "metric_type": "performance",
            **kwargs
        }
    )


def log_business_event(logger: logging.Logger, event_type: str, **kwargs):
    logger.info(
        f"Business Event: {event_type}",
        extra={
            "event_type": event_type,
            "metric_type": "business_event",
            **kwargs
        }
    )


def log_error(logger: logging.Logger, error: Exception, context: Optional[Dict[str, Any]] = None):
    """Log an exception with its type, message and caller context"""
    extra = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "metric_type": "error"
    }
    if context:
        extra.update(context)

    logger.error(
        f"Error occurred: {error}",
        exc_info=error,
        extra=extra
    )
