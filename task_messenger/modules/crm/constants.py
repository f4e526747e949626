"""
CRM Constants
"""
from enum import Enum


class RecordType(str, Enum):
    """attributes.type of a polymorphic Who/What reference."""
    CONTACT = "Contact"
    LEAD = "Lead"
    ACCOUNT = "Account"


class PhoneSource(str, Enum):
    """
    Where a task's destination phone came from.

    Priority order:
    TaskCustomPhone → ContactMobile → ContactPhone → LeadMobile → LeadPhone → AccountPhone
    """
    TASK_CUSTOM_PHONE = "TaskCustomPhone"
    CONTACT_MOBILE = "ContactMobile"
    CONTACT_PHONE = "ContactPhone"
    LEAD_MOBILE = "LeadMobile"
    LEAD_PHONE = "LeadPhone"
    ACCOUNT_PHONE = "AccountPhone"
    NONE = "None"


# Task fields written back after a send
TASK_FIELD_STATUS = "Status"
TASK_FIELD_DELIVERY_STATUS = "Delivery_Status__c"
TASK_FIELD_LAST_SENT = "Last_Sent_At__c"
TASK_FIELD_CONVERSATION_URL = "Glassix_Conversation_URL__c"
TASK_FIELD_FAILURE_REASON = "Failure_Reason__c"
TASK_FIELD_READY = "Ready_for_Automation__c"
TASK_FIELD_AUDIT_TRAIL = "Audit_Trail__c"
TASK_FIELD_DESCRIPTION = "Description"
