"""
Glassix Dispatch Client
Sends rendered WhatsApp messages through the Glassix HTTP API.

Handles:
- Authentication via Bearer token
- Idempotency-Key header (the task id) so the provider dedupes retried sends
- Two API modes: messages (free text or template) and protocols (uniform envelope)
- Lenient response parsing across provider response shapes
- Dry run without any network call

Retry Strategy:
- Up to RETRY_ATTEMPTS attempts (hard ceiling 5)
- Backoff base × 2^(attempt-1) plus 0-100 ms jitter
- Only retries on: 429, 502, 503, 504
- Does NOT retry on: other 4xx/5xx statuses or transport errors

Rate Limiting:
- Every send holds a RateLimiter slot for its whole retry loop
  (DISPATCH_MAX_CONCURRENT in flight, DISPATCH_MIN_INTERVAL_MS between starts)
"""
import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from task_messenger.shared.core.config import Settings, settings as default_settings
from task_messenger.shared.core.constants import (
    DRY_RUN_PROVIDER_ID,
    GLASSIX_MESSAGES_ENDPOINT,
    GLASSIX_PROTOCOLS_ENDPOINT,
    GLASSIX_TEMPLATE_ENDPOINT,
    MAX_ERROR_LENGTH,
    RETRYABLE_STATUS_CODES,
)
from task_messenger.shared.core.logging import redact_secrets
from task_messenger.shared.utils.exceptions import SendError, ValidationError
from task_messenger.shared.utils.http_client import HTTPClientManager
from task_messenger.shared.utils.phone_utils import mask, mask_phone_numbers
from task_messenger.shared.utils.rate_limiter import RateLimiter
from task_messenger.shared.utils.retry import async_retrying, clamp_attempts
from task_messenger.modules.whatsapp_dispatch.constants import DispatchMode
from task_messenger.modules.whatsapp_dispatch.schemas import SendRequest, SendResult

logger = logging.getLogger("dispatch_client")

E164_RE = re.compile(r"^\+[1-9]\d{7,14}$")
TRUNCATION_MARKER = "… (truncated)"


# ============================================
# CUSTOM EXCEPTIONS FOR RETRY LOGIC
# ============================================

class GlassixRetryableError(Exception):
    """Provider answered with a status worth retrying (429/502/503/504)."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class GlassixNonRetryableError(Exception):
    """Provider rejected the request, or the request never got a response."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


# ============================================
# HELPERS
# ============================================

def truncate_error(message: str, max_length: int = MAX_ERROR_LENGTH) -> Tuple[str, bool]:
    """Cut message to max_length, appending a marker. Returns (text, was_truncated)."""
    if len(message) <= max_length:
        return message, False
    return message[:max_length] + TRUNCATION_MARKER, True


def build_payload(mode: DispatchMode, request: SendRequest) -> Tuple[str, Dict[str, Any]]:
    """
    Shape the request body for the configured API mode.

    Returns:
        (endpoint path, JSON body)
    """
    if mode == DispatchMode.MESSAGES:
        if request.template_id:
            return GLASSIX_TEMPLATE_ENDPOINT, {
                "channel": "whatsapp",
                "to": request.to_e164,
                "templateId": request.template_id,
                "variables": request.variables or {},
            }
        return GLASSIX_MESSAGES_ENDPOINT, {
            "channel": "whatsapp",
            "to": request.to_e164,
            "type": "text",
            "text": request.text,
        }

    payload: Dict[str, Any] = {
        "protocol": "whatsapp",
        "to": request.to_e164,
        "content": {"type": "text", "text": request.text},
    }
    if request.template_id:
        payload["templateId"] = request.template_id
    if request.variables:
        payload["variables"] = request.variables
    return GLASSIX_PROTOCOLS_ENDPOINT, payload


def _first_string(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def parse_send_response(data: Any) -> SendResult:
    """
    Pull the provider message id and conversation URL out of a response body.
    Missing fields are fine; first match wins.
    """
    if not isinstance(data, dict):
        return SendResult()

    conversation = data.get("conversation")
    if not isinstance(conversation, dict):
        conversation = {}

    return SendResult(
        provider_id=_first_string(
            data.get("id"),
            data.get("messageId"),
            data.get("message_id"),
            conversation.get("id"),
        ),
        conversation_url=_first_string(
            data.get("conversationUrl"),
            data.get("conversation_url"),
            conversation.get("url"),
        ),
    )


class DispatchClient:
    """
    Glassix API client for WhatsApp sends.

    Usage:
        client = DispatchClient(settings)
        result = await client.send(SendRequest(to_e164="+972502345678", text="...", idempotency_key=task_id))
        await client.aclose()
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        limiter: Optional[RateLimiter] = None
    ):
        self.settings = settings
        self.mode = DispatchMode(settings.GLASSIX_API_MODE)
        self.dry_run = settings.DRY_RUN
        self.max_attempts = clamp_attempts(settings.RETRY_ATTEMPTS)
        self.base_seconds = settings.RETRY_BASE_MS / 1000.0
        self.allowed_prefixes = settings.allowed_phone_prefixes
        self.api_key = settings.GLASSIX_API_KEY
        self.retry_count = 0

        self._sleep = sleep
        self._http = HTTPClientManager(
            base_url=settings.GLASSIX_BASE_URL,
            timeout=settings.DISPATCH_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport
        )
        self.limiter = limiter or RateLimiter(
            max_concurrent=settings.DISPATCH_MAX_CONCURRENT,
            min_interval_ms=settings.DISPATCH_MIN_INTERVAL_MS
        )

        if not self.api_key and not self.dry_run:
            logger.warning("GLASSIX_API_KEY not configured")

    def _get_headers(self, idempotency_key: str) -> Dict[str, str]:
        """Headers for one send. The key may or may not already carry 'Bearer '."""
        token = self.api_key
        auth_value = token if token.startswith("Bearer ") else f"Bearer {token}"

        return {
            "Authorization": auth_value,
            "Idempotency-Key": idempotency_key
        }

    def _scrub(self, message: str) -> str:
        """Strip credentials and destination numbers from provider or transport error text."""
        if self.api_key:
            message = message.replace(self.api_key, "[REDACTED]")
        return mask_phone_numbers(redact_secrets(message))

    def validate_destination(self, to_e164: str) -> None:
        """
        Raises:
            ValidationError: not E.164 or outside the allowed country prefixes
        """
        if not to_e164 or not E164_RE.match(to_e164):
            raise ValidationError(f"Destination is not E.164: {mask(to_e164)}")

        if self.allowed_prefixes and not any(to_e164.startswith(p) for p in self.allowed_prefixes):
            raise ValidationError(
                f"Destination {mask(to_e164)} is outside allowed prefixes: {', '.join(self.allowed_prefixes)}"
            )

    # ============================================
    # SEND
    # ============================================

    async def send(self, request: SendRequest) -> SendResult:
        """
        Send one message, retrying transient provider failures.

        Args:
            request: Destination, text, idempotency key and optional template reference

        Returns:
            SendResult with whatever ids the provider returned

        Raises:
            ValidationError: bad destination (checked before any network call)
            SendError: non-retryable rejection or retries exhausted
        """
        self.validate_destination(request.to_e164)

        if self.dry_run:
            logger.info(
                f"[DRY RUN] Would send to {mask(request.to_e164)} "
                f"(mode={self.mode.value}, template={bool(request.template_id)}, chars={len(request.text)})"
            )
            return SendResult(provider_id=DRY_RUN_PROVIDER_ID)

        async with self.limiter:
            return await self._send_with_retry(request)

    async def _send_with_retry(self, request: SendRequest) -> SendResult:
        endpoint, payload = build_payload(self.mode, request)
        headers = self._get_headers(request.idempotency_key)
        attempts = 0

        retrying = async_retrying(
            self.max_attempts, self.base_seconds, GlassixRetryableError, logger, sleep=self._sleep
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self._post_once(endpoint, payload, headers)
        except (GlassixRetryableError, GlassixNonRetryableError) as e:
            self.retry_count += attempts - 1
            retryable = isinstance(e, GlassixRetryableError)
            message, truncated = truncate_error(self._scrub(str(e)))
            logger.error(
                f"Send to {mask(request.to_e164)} failed after {attempts} attempt(s): {message}"
            )
            raise SendError(message, status=e.status, retryable=retryable, attempts=attempts, truncated=truncated)

        self.retry_count += attempts - 1
        logger.info(
            f"Message sent to {mask(request.to_e164)} "
            f"(provId={result.provider_id}, attempts={attempts})"
        )
        return result

    async def _post_once(self, endpoint: str, payload: Dict[str, Any], headers: Dict[str, str]) -> SendResult:
        client = self._http.get_client()
        try:
            response = await client.post(endpoint, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise GlassixNonRetryableError(self._scrub(f"Network error: {type(e).__name__}: {e}"))

        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = None
            return parse_send_response(data)

        detail = response.text or "(empty body)"
        # the retry hook logs this text between attempts
        message = self._scrub(f"{response.status_code} {response.reason_phrase} :: {detail}")
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise GlassixRetryableError(message, status=response.status_code)
        raise GlassixNonRetryableError(message, status=response.status_code)

    async def aclose(self) -> None:
        await self._http.close()

    def get_status(self) -> Dict[str, Any]:
        """Get client state for monitoring."""
        return {
            "mode": self.mode.value,
            "dry_run": self.dry_run,
            "max_attempts": self.max_attempts,
            "retry_count": self.retry_count,
            "limiter": self.limiter.get_status(),
            "http": self._http.get_status(),
        }
