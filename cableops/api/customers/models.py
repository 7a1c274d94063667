# cableops/api/customers/models.py
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ...models.customer import Connection, Customer, StatusLog
from ...services.status_engine import aggregate_status, has_multiple_vcs
from ..requests.models import ActionRequestRead


# --- Pydantic models (Customer) ---
class CustomerRead(BaseModel):
    id: uuid.UUID
    name: str
    phone_number: str
    email: str | None = None
    address: str | None = None
    area: str
    collector_name: str | None = None
    vc_number: str | None = None
    package_name: str | None = None
    status: str
    display_status: str
    is_active: bool
    has_multiple_vcs: bool
    package_amount: Decimal
    previous_outstanding: Decimal
    current_outstanding: Decimal
    cycle_payments: Decimal
    bill_due_date: int
    connections: list[Connection] = Field(default_factory=list)
    status_logs: list[StatusLog] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    disabled_at: datetime | None = None

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerRead":
        return cls(
            **customer.model_dump(exclude={"connections", "status_logs"}),
            display_status=aggregate_status(customer).value,
            is_active=customer.is_active,
            has_multiple_vcs=has_multiple_vcs(customer),
            connections=customer.get_connections(include_released=True),
            status_logs=customer.get_status_logs(),
        )


class StatusChange(BaseModel):
    status: str
    # Required when the customer has more than one VC
    vc_numbers: list[str] | None = None
    reason: str = ""


class StatusChangeResult(BaseModel):
    applied: bool
    logs: list[StatusLog] = Field(default_factory=list)
    request: ActionRequestRead | None = None


class EligibleVC(BaseModel):
    vc_number: str
    status: str
    is_primary: bool


class EligibleVCs(BaseModel):
    target: str
    aggregate_status: str
    has_multiple_vcs: bool
    eligible: list[EligibleVC]


class PlanChange(BaseModel):
    package_name: str
    reason: str = ""


class PlanChangeResult(BaseModel):
    applied: bool
    customer: CustomerRead | None = None
    request: ActionRequestRead | None = None


# --- Pydantic models (Billing) ---
class BalanceRead(BaseModel):
    previous_outstanding: Decimal
    current_outstanding: Decimal
    cycle_payments: Decimal


class PaymentCreate(BaseModel):
    amount: Decimal
    vc_number: str | None = None
    method: str | None = None
    notes: str | None = None


class Payment(BaseModel):
    id: int
    customer_id: uuid.UUID
    vc_number: str | None = None
    amount: Decimal
    paid_at: datetime
    cycle: str
    method: str | None = None
    notes: str | None = None
    recorded_by: str | None = None
    model_config = ConfigDict(from_attributes=True)


class PaymentReceipt(BaseModel):
    payment: Payment
    balance: BalanceRead


class CreditCreate(BaseModel):
    amount: Decimal
    reason: str
    vc_number: str | None = None


class CycleOutcomeRead(BaseModel):
    customer_id: uuid.UUID
    cycle: str
    ok: bool
    balance: BalanceRead | None = None
    bill_id: uuid.UUID | None = None
    error: str | None = None


class CycleRunRead(BaseModel):
    cycle: str
    total_customers: int
    bills_generated: int
    failed: int
    total_amount: Decimal
    outcomes: list[CycleOutcomeRead]


class MonthlyBillRead(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    customer_name: str
    month: str
    vc_breakdown: list[dict[str, Any]]
    total_amount: Decimal
    bill_due_date: date
    status: str
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BillStatusUpdate(BaseModel):
    status: str


class FinancialSummaryRead(BaseModel):
    customer_id: uuid.UUID
    previous_outstanding: Decimal
    current_outstanding: Decimal
    total_unpaid_bills: Decimal
    total_payments: Decimal
    active_vc_count: int
    monthly_amount: Decimal
    last_billed_date: datetime | None = None
    next_due_date: date


# --- Pydantic models (Connections / Bulk) ---
class ConnectionCreate(BaseModel):
    vc_number: str
    plan_name: str | None = None
    plan_price: Decimal | None = None
    make_primary: bool = False


class ConnectionRelease(BaseModel):
    reason: str = ""


class BulkAreaUpdate(BaseModel):
    customer_ids: list[uuid.UUID]
    area: str


class BulkPackageUpdate(BaseModel):
    customer_ids: list[uuid.UUID]
    package_name: str


class BulkOutcomeRead(BaseModel):
    customer_id: uuid.UUID
    ok: bool
    error: str | None = None
