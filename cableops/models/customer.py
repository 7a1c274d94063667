# cableops/models/customer.py
"""
Customer model for cable-TV subscriber management.

Connections and status logs are stored as embedded JSON documents on the
customer row, so a status change (connections + logs + aggregate status) is
persisted in a single write.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..core.constants import CustomerStatus, LogScope


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Connection(BaseModel):
    """One VC (set-top box / viewing card) attached to a customer."""

    id: str = PydanticField(default_factory=lambda: uuid.uuid4().hex)
    vc_number: str
    is_primary: bool = False
    plan_name: Optional[str] = None
    plan_price: Decimal = Decimal("0")
    is_custom_plan: bool = False
    status: CustomerStatus = CustomerStatus.ACTIVE
    previous_outstanding: Decimal = Decimal("0")
    current_outstanding: Decimal = Decimal("0")
    cycle_payments: Decimal = Decimal("0")
    assigned_at: datetime = PydanticField(default_factory=utcnow)
    released_at: Optional[datetime] = None

    @property
    def is_released(self) -> bool:
        return self.released_at is not None


class StatusLog(BaseModel):
    """Immutable audit entry for one discrete status transition."""

    model_config = ConfigDict(frozen=True)

    id: str = PydanticField(default_factory=lambda: uuid.uuid4().hex)
    previous_status: CustomerStatus
    new_status: CustomerStatus
    changed_by: str
    changed_at: datetime = PydanticField(default_factory=utcnow)
    reason: str = ""
    request_id: Optional[str] = None
    vc_number: Optional[str] = None
    scope: LogScope = LogScope.CONNECTION


class Customer(SQLModel, table=True):
    """
    Customer model representing cable-TV subscribers.

    Fields:
    - status: account-level status (active, inactive, demo); single source of truth
    - vc_number: legacy primary VC, older records may carry no explicit connections
    - package_amount / previous_outstanding / current_outstanding / cycle_payments:
      signed amounts, negative means the customer is in credit
    - bill_due_date: day of month for billing (1-31)
    - connections: embedded Connection documents
    - status_logs: embedded, append-only StatusLog documents
    """

    __tablename__ = "customers"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    name: str = Field(nullable=False, index=True)
    phone_number: str = Field(nullable=False, index=True)
    email: Optional[str] = Field(default=None)
    address: Optional[str] = Field(default=None)
    area: str = Field(nullable=False, index=True)
    collector_name: Optional[str] = Field(default=None)
    vc_number: Optional[str] = Field(default=None, index=True)
    package_name: Optional[str] = Field(default=None)
    status: str = Field(default=CustomerStatus.ACTIVE.value, nullable=False)

    package_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    previous_outstanding: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    current_outstanding: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    cycle_payments: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    bill_due_date: int = Field(default=1, ge=1, le=31)
    # Cycle label (YYYY-MM) of the last roll-over applied to this customer
    billing_cycle: Optional[str] = Field(default=None)

    connections: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    status_logs: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    activated_at: Optional[datetime] = Field(default=None)
    deactivated_at: Optional[datetime] = Field(default=None)
    disabled_at: Optional[datetime] = Field(default=None)

    @property
    def is_active(self) -> bool:
        return CustomerStatus(self.status) != CustomerStatus.INACTIVE

    @property
    def is_disabled(self) -> bool:
        return self.disabled_at is not None

    # The embedded lists are always replaced, never mutated in place, so the
    # ORM sees the change.
    def get_connections(self, include_released: bool = False) -> list[Connection]:
        parsed = [Connection.model_validate(c) for c in (self.connections or [])]
        if include_released:
            return parsed
        return [c for c in parsed if not c.is_released]

    def set_connections(self, connections: list[Connection]) -> None:
        self.connections = [c.model_dump(mode="json") for c in connections]

    def get_status_logs(self) -> list[StatusLog]:
        return [StatusLog.model_validate(entry) for entry in (self.status_logs or [])]

    def add_status_logs(self, entries: list[StatusLog]) -> None:
        self.status_logs = [*(self.status_logs or []), *(e.model_dump(mode="json") for e in entries)]

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}', status='{self.status}')>"
