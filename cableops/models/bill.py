# cableops/models/bill.py
"""
Monthly bill model: one record per customer and billing cycle.
"""
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from ..core.constants import BillStatus
from .customer import utcnow


class MonthlyBill(SQLModel, table=True):
    """
    Bill issued when a customer's cycle rolls over.

    Fields:
    - month: billing cycle (format: 'YYYY-MM'), unique per customer
    - vc_breakdown: live VCs at billing time, each {vc_number, plan_name, amount}
    - total_amount: amount the cycle charged the account (its package amount)
    - bill_due_date: due date of the cycle
    - status: generated, partial, paid
    """

    __tablename__ = "monthly_bills"
    __table_args__ = (UniqueConstraint("customer_id", "month", name="uq_monthly_bills_customer_month"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    customer_id: uuid.UUID = Field(foreign_key="customers.id", nullable=False, index=True)
    customer_name: str = Field(default="")
    month: str = Field(nullable=False, index=True)
    vc_breakdown: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    total_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    bill_due_date: date = Field(nullable=False)
    status: str = Field(default=BillStatus.GENERATED.value, nullable=False, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
