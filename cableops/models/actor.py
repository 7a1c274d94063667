# cableops/models/actor.py
"""
Acting user. Authentication happens upstream; the core only needs to know who
is acting and whether they may change customer state directly.
"""
from pydantic import BaseModel

from ..core.constants import ActorRole


class Actor(BaseModel):
    id: str
    name: str = ""
    role: ActorRole = ActorRole.EMPLOYEE

    @property
    def has_authority(self) -> bool:
        return self.role == ActorRole.ADMIN
