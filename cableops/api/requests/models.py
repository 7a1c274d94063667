# cableops/api/requests/models.py
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ...models.customer import StatusLog


class ActionRequestRead(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    customer_name: str
    vc_number: str | None = None
    selected_vcs: list[str] = Field(default_factory=list)
    action_type: str
    requested_status: str | None = None
    current_status: str | None = None
    vc_statuses: dict[str, str] = Field(default_factory=dict)
    current_plan: str | None = None
    requested_plan: str | None = None
    requested_by: str
    requested_by_name: str | None = None
    requested_at: datetime
    reason: str = ""
    status: str
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    model_config = ConfigDict(from_attributes=True)


class ApprovalNotes(BaseModel):
    notes: str = ""


class Denial(BaseModel):
    reason: str


class ApprovalResult(BaseModel):
    request: ActionRequestRead
    logs: list[StatusLog] = Field(default_factory=list)


class DenialResult(BaseModel):
    request_id: uuid.UUID
    resolved_by: str
    resolved_at: datetime
    reason: str
