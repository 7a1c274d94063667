# cableops/models/payment.py
"""
Payment model for customer payment tracking.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlmodel import Field, SQLModel

from .customer import utcnow


class Payment(SQLModel, table=True):
    """
    Payment model representing customer payments.

    Fields:
    - customer_id: customer that paid (required)
    - vc_number: connection the payment was applied to, when not the whole account
    - amount: payment amount (required)
    - paid_at: payment timestamp
    - cycle: billing cycle (format: 'YYYY-MM', required)
    - method: cash, card, bank_transfer, online
    - notes: additional notes
    - recorded_by: id of the user that took the payment
    """

    __tablename__ = "payments"

    id: int | None = Field(default=None, primary_key=True)
    customer_id: uuid.UUID = Field(foreign_key="customers.id", nullable=False, index=True)
    vc_number: str | None = Field(default=None)
    amount: Decimal = Field(nullable=False, max_digits=12, decimal_places=2)
    paid_at: datetime = Field(default_factory=utcnow)
    cycle: str = Field(nullable=False, index=True)
    method: str | None = Field(default=None)
    notes: str | None = Field(default=None)
    recorded_by: str | None = Field(default=None)
