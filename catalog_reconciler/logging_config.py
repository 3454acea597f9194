"""
Structured logging configuration with run ID support.
Provides JSON logging format suitable for log aggregation.
"""

import functools
import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

run_id_var: ContextVar[str] = ContextVar("run_id", default="")
stage_var: ContextVar[str] = ContextVar("stage", default="")


def generate_run_id() -> str:
    """Generate a new run ID."""
    return str(uuid.uuid4())


def set_run_id(run_id: Optional[str] = None) -> str:
    """Set run ID for the current context."""
    rid = run_id or generate_run_id()
    run_id_var.set(rid)
    return rid


def get_run_id() -> str:
    """Get run ID for the current context."""
    return run_id_var.get()


def set_stage(stage: str) -> None:
    """Set the pipeline stage for the current context."""
    stage_var.set(stage)


def get_stage() -> str:
    """Get the pipeline stage for the current context."""
    return stage_var.get()


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Emits one JSON object per line with run context attached.
    """

    def __init__(self, service_name: str = "catalog-reconciler"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "run_id": get_run_id(),
            "stage": get_stage(),
        }

        if record.funcName:
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        for key in ("product_id", "manufacturer_id", "sku", "source"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if hasattr(record, "error") and isinstance(record.error, dict):
            log_data["error"] = record.error

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        if hasattr(record, "duration_ms"):
            log_data["duration_ms"] = record.duration_ms
        if hasattr(record, "metrics"):
            log_data["metrics"] = record.metrics

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str = "INFO",
    log_format: str = "text",
    service_name: str = "catalog-reconciler",
) -> logging.Logger:
    """
    Configure root logging for a pipeline run.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_format: ``json`` for structured output, anything else for text
        service_name: Name of the service for log identification

    Returns:
        The configured root logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if log_format == "json":
        handler.setFormatter(StructuredJsonFormatter(service_name))
    else:
        handler.setFormatter(
            logging.Formatter(
                "[%(levelname)s] %(asctime)s - %(name)s - %(message)s"
            )
        )

    root_logger.addHandler(handler)

    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return root_logger


def log_execution_time(logger: logging.Logger):
    """
    Decorator to log function execution time.

    Example:
        @log_execution_time(logger)
        def run(self, source):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.info(
                    f"{func.__name__} completed",
                    extra={"duration_ms": round(duration_ms, 2)},
                )
                return result
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"{func.__name__} failed after {duration_ms:.2f}ms: {e}",
                    extra={"duration_ms": round(duration_ms, 2)},
                    exc_info=True,
                )
                raise
        return wrapper
    return decorator
