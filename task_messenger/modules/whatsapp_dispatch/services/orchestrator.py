"""
Dispatch Orchestrator
Runs one pass over pending CRM tasks: template lookup, target resolution,
rendering, sending and write-back.

Per-item failures are isolated: each task ends up in exactly one of
sent / previewed / failed / skipped and the pass carries on. Only a failure
to load the template mapping aborts the pass.
"""
import asyncio
import logging
import time
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from task_messenger.shared.core.config import Settings, settings as default_settings
from task_messenger.shared.core.logging import set_run_id
from task_messenger.shared.utils.exceptions import (
    PhoneUnavailableError,
    TaskMessengerError,
    TemplateLoadError,
    TemplateNotFoundError,
)
from task_messenger.shared.utils.phone_utils import PhoneNormalizer, mask, mask_phone_numbers
from task_messenger.modules.crm.client import CRMClient, supports_paging
from task_messenger.modules.crm.models import TaskRecord, coerce_task
from task_messenger.modules.crm.target_resolution import derive_task_key, parse_context, resolve_target
from task_messenger.modules.crm.task_updater import TaskUpdater
from task_messenger.modules.whatsapp_dispatch.constants import ItemOutcome, Placeholder
from task_messenger.modules.whatsapp_dispatch.schemas import BatchStats, SendRequest
from task_messenger.modules.whatsapp_dispatch.services.dispatch_client import DispatchClient
from task_messenger.modules.whatsapp_dispatch.services.renderer import render_message
from task_messenger.modules.whatsapp_dispatch.services.template_store import TemplateStore

logger = logging.getLogger("orchestrator")

SHUTDOWN_REASON = "Shutdown requested"
UNKNOWN_ITEM_ID = "unknown"

ItemResult = Tuple[ItemOutcome, Optional[str]]


class Orchestrator:
    """
    Usage:
        orchestrator = Orchestrator(crm, TemplateStore(settings), DispatchClient(settings), settings)
        stats = await orchestrator.run_once()
    """

    def __init__(
        self,
        crm: CRMClient,
        store: TemplateStore,
        client: DispatchClient,
        settings: Settings = default_settings,
        updater: Optional[TaskUpdater] = None,
        normalizer: Optional[PhoneNormalizer] = None
    ):
        self.crm = crm
        self.store = store
        self.client = client
        self.settings = settings
        self.updater = updater or TaskUpdater(crm, settings)
        self.normalizer = normalizer or PhoneNormalizer(
            default_country=settings.DEFAULT_COUNTRY,
            permit_landlines=settings.PERMIT_LANDLINES
        )
        self._shutdown = asyncio.Event()

    # ============================================
    # LIFECYCLE
    # ============================================

    def request_shutdown(self) -> None:
        """Stop starting new items; in-flight items run to completion."""
        if not self._shutdown.is_set():
            logger.info("Shutdown requested, no new tasks will be started")
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown.wait()

    # ============================================
    # BATCH
    # ============================================

    async def run_once(self) -> BatchStats:
        """
        Process all pending tasks once.

        Returns:
            BatchStats for the pass

        Raises:
            TemplateLoadError: the mapping could not be loaded (or is empty
                while FAIL_ON_EMPTY_TEMPLATES is set)
        """
        run_id = set_run_id()
        started = time.monotonic()
        retries_before = self.client.retry_count
        stats = BatchStats()

        mappings = await self.store.load()
        if not mappings:
            if self.settings.FAIL_ON_EMPTY_TEMPLATES:
                raise TemplateLoadError("Template mapping contains no usable rows")
            logger.warning("Template mapping contains no usable rows; every task will be skipped")

        items = await self._fetch_items()
        stats.total = len(items)
        if not items:
            logger.info(f"No pending tasks ({run_id})")
            stats.duration_ms = int((time.monotonic() - started) * 1000)
            return stats

        logger.info(f"Processing {len(items)} tasks (concurrency={self.settings.BATCH_CONCURRENCY})")
        semaphore = asyncio.Semaphore(self.settings.BATCH_CONCURRENCY)

        async def bounded(item: Any) -> Tuple[str, ItemResult]:
            async with semaphore:
                if self.shutdown_requested:
                    return _item_id(item), (ItemOutcome.SKIPPED, SHUTDOWN_REASON)
                return _item_id(item), await self._process_item_safely(item, mappings)

        results = await asyncio.gather(*(bounded(item) for item in items))

        for item_id, (outcome, reason) in results:
            if outcome == ItemOutcome.SENT:
                stats.sent += 1
            elif outcome == ItemOutcome.PREVIEWED:
                stats.previewed += 1
            elif outcome == ItemOutcome.SKIPPED:
                stats.skipped += 1
                stats.errors.append((item_id, reason or "skipped"))
            else:
                stats.failed += 1
                stats.errors.append((item_id, reason or "failed"))

        stats.retry_count = self.client.retry_count - retries_before
        stats.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            f"Batch complete: total={stats.total} sent={stats.sent} previewed={stats.previewed} "
            f"failed={stats.failed} skipped={stats.skipped} retries={stats.retry_count} "
            f"duration={stats.duration_ms}ms"
        )
        return stats

    async def _fetch_items(self) -> List[Any]:
        limit = self.settings.TASKS_QUERY_LIMIT
        if self.settings.PAGED and supports_paging(self.crm):
            items: List[Any] = []
            async for page in self.crm.iter_pending_pages(limit):
                items.extend(page)
                logger.debug(f"Fetched page of {len(page)} tasks ({len(items)} total)")
                if len(items) >= limit or self.shutdown_requested:
                    break
            return items[:limit]

        return list(await self.crm.fetch_pending_items(limit))

    # ============================================
    # PER ITEM
    # ============================================

    async def _annotate_failure(self, item_id: str, reason: str) -> None:
        """Write the failure reason back, except in dry run where the CRM is left untouched."""
        if self.settings.DRY_RUN:
            return
        if item_id == UNKNOWN_ITEM_ID:
            logger.warning(f"Cannot write failure back for a task without an Id: {reason}")
            return
        await self.updater.mark_failed(item_id, reason)

    async def _process_item_safely(self, item: Any, mappings) -> ItemResult:
        """Item boundary: nothing raised here escapes to sibling items."""
        item_id = _item_id(item)
        try:
            return await self._process_item(item, mappings)
        except TaskMessengerError as e:
            reason = mask_phone_numbers(e.message)
        except PydanticValidationError as e:
            reason = f"Unexpected error: {describe_validation_error(e)}"
            logger.error(f"Unexpected error processing task {item_id}: {reason}")
        except Exception as e:
            reason = f"Unexpected error: {type(e).__name__}: {mask_phone_numbers(str(e))}"
            logger.error(f"Unexpected error processing task {item_id}: {reason}")

        await self._annotate_failure(item_id, reason)
        return ItemOutcome.FAILED, reason

    async def _process_item(self, raw_item: Any, mappings) -> ItemResult:
        item: TaskRecord = coerce_task(raw_item)

        # 1. Template
        key = derive_task_key(item)
        mapping = self.store.lookup(key, mappings)
        if mapping is None:
            reason = TemplateNotFoundError(key).message
            logger.warning(f"Task {item.id}: {reason}")
            await self._annotate_failure(item.id, reason)
            return ItemOutcome.SKIPPED, reason

        # 2. Destination
        target = resolve_target(item, self.settings.TASK_CUSTOM_PHONE_FIELD, self.normalizer)
        if not target.phone_e164:
            reason = PhoneUnavailableError(target.source.value).message
            logger.warning(f"Task {item.id}: {reason}")
            await self._annotate_failure(item.id, reason)
            return ItemOutcome.SKIPPED, reason

        # 3. Render
        context = parse_context(item)
        if target.first_name and not context.get(Placeholder.FIRST_NAME.value):
            context[Placeholder.FIRST_NAME.value] = target.first_name
        if target.account_name and not context.get(Placeholder.ACCOUNT_NAME.value):
            context[Placeholder.ACCOUNT_NAME.value] = target.account_name

        rendered = render_message(
            mapping,
            context,
            default_language=self.settings.DEFAULT_LANG,
            tz_name=self.settings.TIMEZONE
        )

        # 4. Dry run
        if self.settings.DRY_RUN:
            logger.info(
                f"[DRY RUN] Task {item.id} ({key}) → {mask(target.phone_e164)}: "
                f"{len(rendered.text)} chars, template={rendered.provider_template_id or 'none'}"
            )
            return ItemOutcome.PREVIEWED, None

        # 5. Send + write-back
        request = SendRequest(
            to_e164=target.phone_e164,
            text=rendered.text,
            idempotency_key=item.id,
            template_id=rendered.provider_template_id,
            variables={name: "" if value is None else str(value) for name, value in context.items()},
        )
        result = await self.client.send(request)
        await self.updater.mark_completed(item, target.phone_e164, result)
        return ItemOutcome.SENT, None


def _item_id(item: Any) -> str:
    if isinstance(item, TaskRecord):
        return item.id
    if isinstance(item, dict):
        return str(item.get("Id") or item.get("id") or UNKNOWN_ITEM_ID)
    return str(getattr(item, "id", UNKNOWN_ITEM_ID))


def describe_validation_error(e: PydanticValidationError) -> str:
    """Field locations and messages only; pydantic's own text echoes the offending input values."""
    parts = []
    for err in e.errors(include_url=False):
        loc = ".".join(str(p) for p in err.get("loc", ())) or "(root)"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return f"ValidationError: {'; '.join(parts)}"
