# cableops/models/action_request.py
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..core.constants import RequestStatus
from .customer import utcnow


class ActionRequest(SQLModel, table=True):
    """
    A change raised by an employee that waits for an admin decision.

    vc_statuses is the snapshot of each targeted VC's status when the request was
    raised; approval compares it with the live state before applying anything.
    """

    __tablename__ = "action_requests"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    customer_id: uuid.UUID = Field(foreign_key="customers.id", nullable=False, index=True)
    customer_name: str = Field(default="")
    vc_number: Optional[str] = Field(default=None)
    selected_vcs: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    action_type: str = Field(nullable=False)
    requested_status: Optional[str] = Field(default=None)
    current_status: Optional[str] = Field(default=None)
    vc_statuses: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    current_plan: Optional[str] = Field(default=None)
    requested_plan: Optional[str] = Field(default=None)
    requested_by: str = Field(nullable=False, index=True)
    requested_by_name: Optional[str] = Field(default=None)
    requested_at: datetime = Field(default_factory=utcnow)
    reason: str = Field(default="")
    status: str = Field(default=RequestStatus.PENDING.value, nullable=False, index=True)
    resolved_by: Optional[str] = Field(default=None)
    resolved_at: Optional[datetime] = Field(default=None)
    resolution_notes: Optional[str] = Field(default=None)

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING.value
