"""
WhatsApp Dispatch - Data Shapes
Plain dataclasses passed between the loader, renderer, client and orchestrator.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple, Union

Primitive = Union[str, int, float, bool, None]
RenderContext = Dict[str, Primitive]


@dataclass(frozen=True)
class TemplateMapping:
    """One row of the mapping spreadsheet, keyed by normalized task key."""
    key: str
    body: str
    link: Optional[str] = None
    provider_template_id: Optional[str] = None


@dataclass
class RenderResult:
    """Rendered text; provider_template_id set means send as a provider template."""
    text: str
    provider_template_id: Optional[str] = None


@dataclass
class SendRequest:
    """One logical outbound message. idempotency_key is the task id."""
    to_e164: str
    text: str
    idempotency_key: str
    template_id: Optional[str] = None
    variables: Optional[Dict[str, str]] = None


@dataclass
class SendResult:
    provider_id: Optional[str] = None
    conversation_url: Optional[str] = None


@dataclass
class BatchStats:
    """
    Aggregate outcome of one orchestration pass.

    sent + previewed + failed + skipped always equals total, and every
    failed or skipped item has an (item_id, reason) entry in errors.
    """
    total: int = 0
    sent: int = 0
    previewed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)
    retry_count: int = 0
    duration_ms: int = 0

    def is_balanced(self) -> bool:
        return self.sent + self.previewed + self.failed + self.skipped == self.total

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["errors"] = [{"item_id": item_id, "reason": reason} for item_id, reason in self.errors]
        return data
