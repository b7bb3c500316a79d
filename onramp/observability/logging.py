# ==== STRUCTURED LOGGING WITH LOGURU ==== #

"""
Structured logging with loguru for the onramp order engine.

This module provides JSON logging with rotation, interception of standard
library logging and a contextual logger that binds keyword context and the
active OpenTelemetry trace identifiers to every record.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace
from opentelemetry.instrumentation.logging import LoggingInstrumentor


# ==== LOGGING INITIALIZATION ==== #


class InterceptHandler(logging.Handler):
    """Route standard library log records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def init_logging(level: str = "INFO", log_dir: str | None = "logs") -> None:
    """Initialize structured logging with loguru.
    
    Configures a JSON stdout sink, rotating JSON file sinks (general and
    errors-only) and intercepts standard library logging.
    
    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating log files, None disables file sinks
    """
    logger.remove()
    
    # Console handler with JSON formatting for production
    logger.add(
        sys.stdout,
        format="{message}",
        serialize=True,
        level=level.upper(),
        enqueue=True,
        colorize=False,
        backtrace=True,
        diagnose=False,
    )
    
    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(exist_ok=True)
        
        logger.add(
            logs_dir / "onramp_{time:YYYY-MM-DD}.log",
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            serialize=True,
            level="DEBUG",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )
        
        # Error-specific log file for failed settlements and deliveries
        logger.add(
            logs_dir / "onramp_errors_{time:YYYY-MM-DD}.log",
            rotation="50 MB",
            retention="90 days",
            compression="gz",
            serialize=True,
            level="ERROR",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )
    
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    
    try:
        LoggingInstrumentor().instrument(set_logging_format=False)
    except Exception as e:
        logger.warning(f"Failed to setup OpenTelemetry logging: {e}")
    
    logger.info("Structured logging initialized", level=level)


# ==== CONTEXTUAL LOGGER ==== #


class ContextualLogger:
    """Logger using loguru with automatic context injection.
    
    Keyword arguments passed to any log method are bound to the record,
    together with the logger name and the current trace/span ids.
    """
    
    def __init__(self, name: str):
        """Initialize contextual logger.
        
        Args:
            name: Logger name (typically __name__)
        """
        self.name = name
        self.logger = logger.bind(logger_name=name)
    
    def _add_context(self, extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """Add contextual information to log record.
        
        Args:
            extra: Additional fields to include
            
        Returns:
            Dictionary with context fields
        """
        context: Dict[str, Any] = {"logger_name": self.name}
        
        if extra:
            context.update(extra)
        
        span = trace.get_current_span()
        if span is not None and span.is_recording():
            span_context = span.get_span_context()
            if span_context.is_valid:
                context['trace_id'] = format(span_context.trace_id, '032x')
                context['span_id'] = format(span_context.span_id, '016x')
            
        return context
    
    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log debug message with context."""
        self.logger.bind(**self._add_context(kwargs)).debug(msg)
    
    def info(self, msg: str, **kwargs: Any) -> None:
        """Log info message with context."""
        self.logger.bind(**self._add_context(kwargs)).info(msg)
    
    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log warning message with context."""
        self.logger.bind(**self._add_context(kwargs)).warning(msg)
    
    def error(self, msg: str, **kwargs: Any) -> None:
        """Log error message with context."""
        self.logger.bind(**self._add_context(kwargs)).error(msg)
    
    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log exception with full traceback and context."""
        self.logger.bind(**self._add_context(kwargs)).exception(msg)


def get_logger(name: str) -> ContextualLogger:
    """Get a contextual logger instance.
    
    Args:
        name: Logger name (typically __name__)
        
    Returns:
        ContextualLogger instance
    """
    return ContextualLogger(name)


def log_business_event(event_type: str, business_id: str, **context: Any) -> None:
    """Log a merchant-visible business event with structured data.
    
    Args:
        event_type: Type of business event (order.created, order.completed, ...)
        business_id: Merchant identifier
        **context: Additional business context
    """
    logger.bind(
        event_type=event_type,
        business_id=business_id,
        business_event=True,
        **context
    ).info(f"Business event: {event_type}")
