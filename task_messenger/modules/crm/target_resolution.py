"""
Target Resolution
Works out who a task's message goes to and which names fill the template.

Phone priority:
1) Task custom phone field (TASK_CUSTOM_PHONE_FIELD)
2) Who is Contact: MobilePhone, then Phone
3) Who is Lead: MobilePhone, then Phone
4) What is Account: Phone
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from task_messenger.shared.utils.json_utils import Primitive, parse_primitive_object
from task_messenger.shared.utils.phone_utils import PhoneNormalizer, mask
from task_messenger.modules.crm.constants import PhoneSource, RecordType
from task_messenger.modules.crm.models import TaskRecord, get_custom_phone
from task_messenger.modules.whatsapp_dispatch.services.key_normalizer import normalize_task_key

logger = logging.getLogger("target_resolution")


@dataclass
class TargetResolution:
    first_name: Optional[str] = None
    account_name: Optional[str] = None
    phone_raw: Optional[str] = None
    phone_e164: Optional[str] = None
    source: PhoneSource = PhoneSource.NONE


def derive_task_key(item: TaskRecord) -> str:
    """Type key field first, then template key field, then subject; normalized."""
    raw = item.task_type_key or item.message_template_key or item.subject or ""
    return normalize_task_key(raw)


def parse_context(item: TaskRecord) -> Dict[str, Primitive]:
    """Context_JSON__c as a flat dict; malformed JSON yields {}."""
    context = parse_primitive_object(item.context_json)
    if item.context_json and not context:
        logger.warning(f"Context_JSON__c on task {item.id} is not a usable JSON object")
    return context


def resolve_target(
    item: TaskRecord,
    custom_phone_field: str,
    normalizer: PhoneNormalizer
) -> TargetResolution:
    """Pick the destination phone and display names for a task."""
    who, what = item.who, item.what
    contact = who if who is not None and who.is_type(RecordType.CONTACT) else None
    lead = who if who is not None and who.is_type(RecordType.LEAD) else None
    account = what if what is not None and what.is_type(RecordType.ACCOUNT) else None

    result = TargetResolution()

    custom_phone = get_custom_phone(item, custom_phone_field)
    if custom_phone:
        result.phone_raw = custom_phone
        result.source = PhoneSource.TASK_CUSTOM_PHONE

    if not result.phone_raw and contact is not None:
        result.first_name = contact.first_name
        result.account_name = contact.account.name if contact.account else None
        if contact.mobile_phone:
            result.phone_raw, result.source = contact.mobile_phone, PhoneSource.CONTACT_MOBILE
        elif contact.phone:
            result.phone_raw, result.source = contact.phone, PhoneSource.CONTACT_PHONE

    if not result.phone_raw and lead is not None:
        result.first_name = lead.first_name
        if lead.mobile_phone:
            result.phone_raw, result.source = lead.mobile_phone, PhoneSource.LEAD_MOBILE
        elif lead.phone:
            result.phone_raw, result.source = lead.phone, PhoneSource.LEAD_PHONE

    if not result.phone_raw and account is not None:
        # Falling back to the account also makes its name the displayed one
        if account.name:
            result.account_name = account.name
        if account.phone:
            result.phone_raw, result.source = account.phone, PhoneSource.ACCOUNT_PHONE

    # Names still missing: fill from whatever Who/What carries
    if not result.first_name and (contact or lead) is not None:
        result.first_name = (contact or lead).first_name
    if not result.account_name and contact is not None and contact.account:
        result.account_name = contact.account.name
    if not result.account_name and account is not None:
        result.account_name = account.name

    if result.phone_raw:
        result.phone_e164 = normalizer.normalize(result.phone_raw)

    logger.debug(
        f"Resolved target for task {item.id}: source={result.source.value}, "
        f"phone={mask(result.phone_e164 or result.phone_raw or '')}"
    )
    return result
