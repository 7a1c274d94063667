from decimal import Decimal
from typing import Optional

from sqlmodel import Field, SQLModel


class Package(SQLModel, table=True):
    __tablename__ = "packages"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True, nullable=False)
    price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    description: Optional[str] = Field(default=None)
    channels: int = Field(default=0)
    is_active: bool = Field(default=True)
    # Amount billed by the broadcaster portal for this package
    portal_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
