from typing import Optional

from sqlmodel import Field, SQLModel


class Area(SQLModel, table=True):
    __tablename__ = "areas"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    description: Optional[str] = None
