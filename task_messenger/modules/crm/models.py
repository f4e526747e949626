"""
CRM - Pydantic Models
Shapes of the task records handed over by the CRM collaborator.

Field aliases follow the CRM's API names (Id, Subject, Task_Type_Key__c, ...).
Unknown fields are kept so a configurable custom phone field can be read
through get_custom_phone().
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from task_messenger.modules.crm.constants import RecordType


class RecordAttributes(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None


class AccountRef(BaseModel):
    """Account reached through a Contact (Contact.Account.Name)."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Optional[str] = Field(default=None, alias="Name")


class RelatedRecord(BaseModel):
    """Polymorphic Who (Contact/Lead) or What (Account) reference."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    attributes: Optional[RecordAttributes] = None
    first_name: Optional[str] = Field(default=None, alias="FirstName")
    last_name: Optional[str] = Field(default=None, alias="LastName")
    mobile_phone: Optional[str] = Field(default=None, alias="MobilePhone")
    phone: Optional[str] = Field(default=None, alias="Phone")
    name: Optional[str] = Field(default=None, alias="Name")
    account: Optional[AccountRef] = Field(default=None, alias="Account")

    @property
    def record_type(self) -> Optional[str]:
        return self.attributes.type if self.attributes else None

    def is_type(self, record_type: RecordType) -> bool:
        return self.record_type == record_type.value


class TaskRecord(BaseModel):
    """A pending CRM task."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(alias="Id")
    subject: Optional[str] = Field(default=None, alias="Subject")
    task_type_key: Optional[str] = Field(default=None, alias="Task_Type_Key__c")
    message_template_key: Optional[str] = Field(default=None, alias="Message_Template_Key__c")
    context_json: Optional[Any] = Field(default=None, alias="Context_JSON__c")
    description: Optional[str] = Field(default=None, alias="Description")
    audit_trail: Optional[str] = Field(default=None, alias="Audit_Trail__c")
    who: Optional[RelatedRecord] = Field(default=None, alias="Who")
    what: Optional[RelatedRecord] = Field(default=None, alias="What")


def coerce_task(item: Any) -> TaskRecord:
    """Accept either a TaskRecord or the raw dict the CRM returned."""
    if isinstance(item, TaskRecord):
        return item
    return TaskRecord.model_validate(item)


def get_custom_phone(item: TaskRecord, field_name: str) -> Optional[str]:
    """Read a configurable phone field from the task by its CRM API name."""
    if not field_name:
        return None
    value = item.model_dump(by_alias=True).get(field_name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None
