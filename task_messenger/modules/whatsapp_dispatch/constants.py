"""
WhatsApp Dispatch Constants
Centralized enums for the dispatch module.

Enums inherit from str so they compare equal to the raw configuration and
CRM values without .value conversion.
"""
from enum import Enum
from typing import FrozenSet


class DispatchMode(str, Enum):
    """Which Glassix API family the client talks to."""
    MESSAGES = "messages"    # /api/messages, /api/messages/template
    PROTOCOLS = "protocols"  # /v1/protocols/send


class Language(str, Enum):
    """Rendering language. Hebrew is the local one and gets the date suffix."""
    HE = "he"
    EN = "en"

    @classmethod
    def is_local(cls, value: str) -> bool:
        return value == cls.HE


class Placeholder(str, Enum):
    """
    Names a template body or render context may reference.

    Anything outside this set fails rendering, so a context key can never
    inject text the template author did not ask for.
    """
    FIRST_NAME = "first_name"
    ACCOUNT_NAME = "account_name"
    DEVICE_MODEL = "device_model"
    IMEI = "imei"
    DATE_ISO = "date_iso"
    DATE_HE = "date_he"
    DATE = "date"
    LINK = "link"

    @classmethod
    def names(cls) -> FrozenSet[str]:
        return frozenset(member.value for member in cls)

    @classmethod
    def date_names(cls) -> FrozenSet[str]:
        return frozenset({cls.DATE.value, cls.DATE_HE.value, cls.DATE_ISO.value})


class ItemOutcome(str, Enum):
    """
    Per-item result of one orchestration pass.

    Flow:
    (start) → SENT | PREVIEWED | FAILED | SKIPPED
    """
    SENT = "sent"
    PREVIEWED = "previewed"  # Dry run, rendered but not dispatched
    FAILED = "failed"
    SKIPPED = "skipped"


class DeliveryStatus(str, Enum):
    """Values written to the task's Delivery_Status__c field."""
    SENT = "SENT"
    FAILED = "FAILED"


class TaskStatus(str, Enum):
    """CRM task Status picklist values set on write-back."""
    COMPLETED = "Completed"
    WAITING_ON_EXTERNAL = "Waiting on External"
