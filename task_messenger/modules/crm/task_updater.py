"""
Task Updater
Writes dispatch outcomes back onto CRM tasks.

Success: Status=Completed, Delivery_Status__c=SENT, Last_Sent_At__c,
Glassix_Conversation_URL__c and an appended audit line.
Failure: Status='Waiting on External', Failure_Reason__c and optionally
Ready_for_Automation__c so the task is picked up again.

Neither operation raises: a message that was sent stays sent even when the
CRM refuses the write-back.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from task_messenger.shared.core.config import Settings, settings as default_settings
from task_messenger.shared.core.constants import (
    GLASSIX_CONVERSATION_URL,
    MAX_AUDIT_LENGTH,
    MAX_AUDIT_LINES,
    MAX_FAILURE_REASON,
)
from task_messenger.shared.utils.date_utils import utc_now_iso
from task_messenger.shared.utils.exceptions import CRMUpdateError
from task_messenger.shared.utils.phone_utils import mask, mask_phone_numbers
from task_messenger.shared.utils.retry import async_retrying
from task_messenger.modules.crm.client import CRMClient
from task_messenger.modules.crm.constants import (
    TASK_FIELD_AUDIT_TRAIL,
    TASK_FIELD_CONVERSATION_URL,
    TASK_FIELD_DELIVERY_STATUS,
    TASK_FIELD_DESCRIPTION,
    TASK_FIELD_FAILURE_REASON,
    TASK_FIELD_LAST_SENT,
    TASK_FIELD_READY,
    TASK_FIELD_STATUS,
)
from task_messenger.modules.crm.models import TaskRecord
from task_messenger.modules.whatsapp_dispatch.constants import DeliveryStatus, TaskStatus
from task_messenger.modules.whatsapp_dispatch.schemas import SendResult

logger = logging.getLogger("task_updater")


@dataclass
class TaskFieldMap:
    """Which optional task fields exist in the org and may be written."""
    delivery_status: bool = True
    last_sent: bool = True
    conversation_url: bool = True
    failure_reason: bool = True
    ready_for_automation: bool = True
    audit_trail: bool = True

    @classmethod
    def from_available_fields(cls, fields: Iterable[str]) -> "TaskFieldMap":
        available = set(fields)
        return cls(
            delivery_status=TASK_FIELD_DELIVERY_STATUS in available,
            last_sent=TASK_FIELD_LAST_SENT in available,
            conversation_url=TASK_FIELD_CONVERSATION_URL in available,
            failure_reason=TASK_FIELD_FAILURE_REASON in available,
            ready_for_automation=TASK_FIELD_READY in available,
            audit_trail=TASK_FIELD_AUDIT_TRAIL in available,
        )


def truncate_audit_trail(audit: str, max_length: int = MAX_AUDIT_LENGTH) -> str:
    """
    Bound the audit text to max_length.

    Short histories (at most MAX_AUDIT_LINES lines) are tail-trimmed. Longer
    ones keep the first line, a "..." separator and the last
    MAX_AUDIT_LINES - 2 lines, then get tail-trimmed if still too long.
    """
    if len(audit) <= max_length:
        return audit

    lines = audit.split("\n")
    if len(lines) <= MAX_AUDIT_LINES:
        return audit[-max_length:]

    result = "\n".join([lines[0], "..."] + lines[-(MAX_AUDIT_LINES - 2):])
    if len(result) > max_length:
        return result[-max_length:]
    return result


class TaskUpdater:
    """
    Usage:
        updater = TaskUpdater(crm, settings)
        await updater.mark_completed(task, "+972502345678", send_result)
        await updater.mark_failed(task.id, "Template not found: X")
    """

    def __init__(
        self,
        crm: CRMClient,
        settings: Settings = default_settings,
        field_map: Optional[TaskFieldMap] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.crm = crm
        self.settings = settings
        self.field_map = field_map or TaskFieldMap()
        self._sleep = sleep

    async def _update_with_retry(self, item_id: str, fields: Dict[str, Any]) -> None:
        retrying = async_retrying(
            self.settings.RETRY_ATTEMPTS,
            self.settings.RETRY_BASE_MS / 1000.0,
            CRMUpdateError,
            logger,
            sleep=self._sleep,
            should_retry=lambda e: e.retryable
        )
        async for attempt in retrying:
            with attempt:
                await self.crm.update_item(item_id, fields)

    # ============================================
    # SUCCESS
    # ============================================

    async def mark_completed(self, item: TaskRecord, phone_e164: str, send_result: SendResult) -> bool:
        """
        Record a successful send. Returns False when the write-back failed.
        """
        now = utc_now_iso()
        masked_phone = mask(phone_e164)
        provider_id = send_result.provider_id or "n/a"
        audit_line = f"[{now}] WhatsApp → {masked_phone} (provId={provider_id})"

        target_field = TASK_FIELD_AUDIT_TRAIL if self.field_map.audit_trail else TASK_FIELD_DESCRIPTION
        previous = (item.audit_trail if self.field_map.audit_trail else item.description) or ""
        combined = f"{previous}\n{audit_line}" if previous else audit_line

        fields: Dict[str, Any] = {TASK_FIELD_STATUS: TaskStatus.COMPLETED.value}
        if self.field_map.delivery_status:
            fields[TASK_FIELD_DELIVERY_STATUS] = DeliveryStatus.SENT.value
        if self.field_map.last_sent:
            fields[TASK_FIELD_LAST_SENT] = now
        if self.field_map.conversation_url:
            fields[TASK_FIELD_CONVERSATION_URL] = (
                send_result.conversation_url or GLASSIX_CONVERSATION_URL.format(provider_id=provider_id)
            )
        fields[target_field] = truncate_audit_trail(combined)

        try:
            await self._update_with_retry(item.id, fields)
        except Exception as e:
            logger.warning(f"Failed to update task {item.id} to Completed (non-fatal): {mask_phone_numbers(str(e))}")
            return False

        logger.debug(f"Task {item.id} marked completed ({masked_phone}, provId={provider_id})")
        return True

    # ============================================
    # FAILURE
    # ============================================

    async def mark_failed(self, item_id: str, reason: str) -> bool:
        """
        Record a failed or skipped task. Returns False when the write-back failed.
        """
        clean_reason = mask_phone_numbers(reason or "")[:MAX_FAILURE_REASON]

        fields: Dict[str, Any] = {TASK_FIELD_STATUS: TaskStatus.WAITING_ON_EXTERNAL.value}
        if self.field_map.failure_reason:
            fields[TASK_FIELD_FAILURE_REASON] = clean_reason
        if self.settings.KEEP_READY_ON_FAIL and self.field_map.ready_for_automation:
            fields[TASK_FIELD_READY] = True

        try:
            await self._update_with_retry(item_id, fields)
        except Exception as e:
            logger.warning(f"Failed to mark task {item_id} as failed (non-fatal): {mask_phone_numbers(str(e))}")
            return False

        logger.debug(f"Task {item_id} marked failed: {clean_reason}")
        return True
