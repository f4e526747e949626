"""
WhatsApp Dispatch Services

Leaf services of the dispatch pipeline. The orchestrator is imported from
its own module since it depends on the CRM module.
"""

from .key_normalizer import normalize_task_key
from .template_store import TemplateStore
from .renderer import render_message
from .dispatch_client import DispatchClient

__all__ = [
    "normalize_task_key",
    "TemplateStore",
    "render_message",
    "DispatchClient",
]
