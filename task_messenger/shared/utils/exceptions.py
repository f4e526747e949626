"""
Custom Exceptions for the Task Messenger.

These exceptions map to the failure classes the pipeline distinguishes:
authoring problems (validation, sanitization, missing templates), data
problems (phone unavailable), template resource problems (load time, fatal
to a batch) and upstream problems (provider or CRM).
"""
from typing import List, Optional


class TaskMessengerError(Exception):
    """Base class carrying a stable error code and an actionable hint."""
    code = "TASK_MESSENGER_ERROR"
    hint: Optional[str] = None

    def __init__(self, message: str, hint: Optional[str] = None):
        self.message = message
        if hint is not None:
            self.hint = hint
        super().__init__(message)


class ValidationError(TaskMessengerError):
    """
    Raised for bad template data: unknown placeholder names, malformed or
    oversized links. Never retryable; fix the template or the task data.
    """
    code = "VALIDATION_ERROR"
    hint = "Review template placeholders and task data"

    def __init__(self, message: str, details: Optional[List[str]] = None):
        self.details = details or []
        super().__init__(message)


class SanitizationError(TaskMessengerError):
    """Raised when template content is unsafe or exceeds limits."""
    code = "SANITIZATION_ERROR"
    hint = "Content contains unsafe characters or exceeds limits"


class TemplateNotFoundError(TaskMessengerError):
    """Raised when no template mapping exists for a task key."""
    code = "TEMPLATE_NOT_FOUND"
    hint = "Add a row for this task type to the mapping spreadsheet"

    def __init__(self, task_key: str):
        self.task_key = task_key
        super().__init__(f"Template not found: {task_key}")


class TemplateLoadError(TaskMessengerError):
    """Base class for failures loading the template mapping resource."""
    code = "TEMPLATE_LOAD_ERROR"
    hint = "Check XLSX_MAPPING_PATH and the spreadsheet layout"


class TemplateResourceNotFoundError(TemplateLoadError):
    """Raised when the mapping file does not exist."""
    code = "TEMPLATE_RESOURCE_NOT_FOUND"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Template mapping file not found: {path}")


class TemplateColumnsError(TemplateLoadError):
    """Raised when required columns are missing after alias resolution."""
    code = "TEMPLATE_COLUMNS_MISSING"

    def __init__(self, missing: List[str], found: List[str]):
        self.missing = missing
        self.found = found
        super().__init__(
            f"Missing required columns: {', '.join(missing)}. "
            f"Expected one of the aliases for each column. "
            f"Available columns: {', '.join(found)}"
        )


class TemplateParseTimeoutError(TemplateLoadError):
    """Raised when an offloaded spreadsheet parse exceeds its time budget."""
    code = "TEMPLATE_PARSE_TIMEOUT"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Template parsing timed out after {timeout_seconds:g}s")


class PhoneUnavailableError(TaskMessengerError):
    """Raised when a task has no usable destination phone number."""
    code = "PHONE_UNAVAILABLE"
    hint = "Verify phone number format and country code on the task's contact"

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Missing or invalid phone (source: {source})")


class SendError(TaskMessengerError):
    """
    Raised when the provider rejects a send or retries are exhausted.

    The message is always redacted and truncated before it gets here.
    """
    code = "SEND_ERROR"
    hint = "Check provider auth and payload"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retryable: bool = False,
        attempts: int = 1,
        truncated: bool = False
    ):
        self.status = status
        self.retryable = retryable
        self.attempts = attempts
        self.truncated = truncated
        super().__init__(message)


class CRMUpdateError(TaskMessengerError):
    """Raised by CRM collaborators when a write-back fails."""
    code = "CRM_UPDATE_ERROR"

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)
