"""
CRM Client Interface
The dispatch pipeline only needs to read pending tasks and write fields back.

Any object with these coroutines works; iter_pending_pages is optional and
used when PAGED is set.
"""
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger("crm_client")


@runtime_checkable
class CRMClient(Protocol):
    async def fetch_pending_items(self, limit: int) -> List[Any]:
        """Return up to limit pending tasks (TaskRecord or raw dicts)."""
        ...

    async def update_item(self, item_id: str, fields: Dict[str, Any]) -> None:
        """
        Write fields to one task.

        Raises:
            CRMUpdateError: retryable=True for lock contention or 5xx
        """
        ...


def supports_paging(crm: Any) -> bool:
    """True when the client also offers iter_pending_pages(limit)."""
    return callable(getattr(type(crm), "iter_pending_pages", None))


class InMemoryCRMClient:
    """
    CRM client over a list of task dicts.

    Used for local rehearsals (DRY_RUN against an exported task list) and tests.
    Updates are recorded in `updates` and merged into the stored task.
    """

    def __init__(self, tasks: Optional[List[Dict[str, Any]]] = None, page_size: Optional[int] = None):
        self.tasks: List[Dict[str, Any]] = list(tasks or [])
        self.updates: List[Dict[str, Any]] = []
        self.page_size = page_size

    async def fetch_pending_items(self, limit: int) -> List[Dict[str, Any]]:
        return self.tasks[:limit]

    async def iter_pending_pages(self, limit: int) -> AsyncIterator[List[Dict[str, Any]]]:
        pending = self.tasks[:limit]
        size = self.page_size or len(pending) or 1
        for start in range(0, len(pending), size):
            yield pending[start:start + size]

    async def update_item(self, item_id: str, fields: Dict[str, Any]) -> None:
        self.updates.append({"Id": item_id, **fields})
        for task in self.tasks:
            if task.get("Id") == item_id:
                task.update(fields)
                break
        else:
            logger.warning(f"Update for unknown task {item_id}")
