# cableops/models/vc_inventory.py
"""
VC inventory: every viewing card the operator owns, assigned or not.
"""
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..core.constants import VCStatus
from .customer import utcnow


class VCInventoryItem(SQLModel, table=True):
    """
    Fields:
    - vc_number: unique across the whole system
    - status: available (free), active (assigned to a customer), inactive (withdrawn)
    - customer_id / customer_name: current owner, if any
    - status_history: [{status, changed_at, reason}]
    - ownership_history: [{customer_id, customer_name, start_date, end_date}]
    """

    __tablename__ = "vc_inventory"

    id: Optional[int] = Field(default=None, primary_key=True)
    vc_number: str = Field(unique=True, index=True, nullable=False)
    status: str = Field(default=VCStatus.AVAILABLE.value, nullable=False, index=True)
    customer_id: Optional[uuid.UUID] = Field(default=None, index=True)
    customer_name: Optional[str] = Field(default=None)
    status_history: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    ownership_history: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
