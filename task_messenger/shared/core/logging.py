"""
Logging Configuration with Run ID Support and Secret Redaction

This module provides:
1. A context variable to store the current orchestration run's ID
2. A log filter that injects the run ID into every record
3. A log filter that scrubs bearer tokens and authorization values
4. setup_logging() to wire both into the root logger
"""
import logging
import re
import uuid
from contextvars import ContextVar
from typing import Optional, Union

# Context variable holding the current run ID (works across asyncio tasks)
run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+")
_AUTH_RE = re.compile(r"(authorization['\"]?\s*:\s*)(\"[^\"]*\"|'[^']*')", re.IGNORECASE)


def get_run_id() -> Optional[str]:
    """Get the current run's ID."""
    return run_id_var.get()


def set_run_id(run_id: Optional[str] = None) -> str:
    """
    Set the run ID for the current context.
    If not provided, generates a new one.

    Returns the run ID that was set.
    """
    if run_id is None:
        run_id = f"run-{uuid.uuid4().hex[:8]}"
    run_id_var.set(run_id)
    return run_id


def redact_secrets(text: str) -> str:
    """Replace bearer tokens and authorization header values with a marker."""
    text = _BEARER_RE.sub("Bearer [REDACTED]", text)
    return _AUTH_RE.sub(lambda m: f'{m.group(1)}"[REDACTED]"', text)


class RunIdFilter(logging.Filter):
    """Adds run_id to log records so the formatter can print it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = get_run_id() or "no-run"
        return True


class RedactionFilter(logging.Filter):
    """Scrubs credentials out of the fully formatted message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        scrubbed = redact_secrets(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure the logging system with run ID support.

    Format includes:
    - Timestamp
    - Run ID
    - Logger name
    - Log level
    - Message
    """
    log_format = "%(asctime)s | [%(run_id)s] | %(name)s | %(levelname)s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    formatter = logging.Formatter(log_format, datefmt=date_format)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(RunIdFilter())
    handler.addFilter(RedactionFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicate logs
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)

    # httpx logs every request URL at INFO; keep it quieter
    logging.getLogger("httpx").setLevel(logging.WARNING)
