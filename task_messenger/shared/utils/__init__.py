"""
Shared Utility Functions
"""
from task_messenger.shared.utils.json_utils import safe_json_parse, parse_primitive_object
from task_messenger.shared.utils.phone_utils import (
    validate_phone,
    mask,
    mask_phone_numbers,
    PhoneNormalizer,
    PhoneValidationResult
)
from task_messenger.shared.utils.date_utils import today, format_iso, format_he, utc_now_iso
from task_messenger.shared.utils.http_client import HTTPClientManager
from task_messenger.shared.utils.rate_limiter import RateLimiter
from task_messenger.shared.utils.offload import run_with_timeout, OffloadTimeoutError
from task_messenger.shared.utils.retry import async_retrying, backoff_wait, clamp_attempts

__all__ = [
    "safe_json_parse",
    "parse_primitive_object",
    # Phone utilities
    "validate_phone",
    "mask",
    "mask_phone_numbers",
    "PhoneNormalizer",
    "PhoneValidationResult",
    # Dates
    "today",
    "format_iso",
    "format_he",
    "utc_now_iso",
    # Transport
    "HTTPClientManager",
    "RateLimiter",
    "run_with_timeout",
    "OffloadTimeoutError",
    # Retry policy
    "async_retrying",
    "backoff_wait",
    "clamp_attempts",
]
