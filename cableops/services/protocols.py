# cableops/services/protocols.py
"""
Collaborator interfaces consumed by the reconciliation core.

The SQLModel-backed services in this package implement them; anything else that
satisfies the same shape (a remote document store client, a test double) can
be passed in instead.
"""
import uuid
from typing import Optional, Protocol, Sequence

from ..models.action_request import ActionRequest
from ..models.customer import Customer, StatusLog
from ..models.package import Package
from ..models.vc_inventory import VCInventoryItem


class AreaRegistry(Protocol):
    async def list_names(self) -> Sequence[str]: ...


class PackageRegistry(Protocol):
    async def list_packages(self) -> Sequence[Package]: ...

    async def list_active(self) -> Sequence[Package]: ...


class VCInventory(Protocol):
    async def list_all(self) -> Sequence[VCInventoryItem]: ...

    async def lookup(self, vc_number: str) -> Optional[VCInventoryItem]: ...

    async def assign(self, vc_number: str, customer_id: uuid.UUID, customer_name: str) -> VCInventoryItem: ...

    async def release(self, vc_number: str, reason: str = "") -> VCInventoryItem: ...


class CustomerStore(Protocol):
    async def get(self, customer_id: uuid.UUID) -> Customer: ...

    async def save(self, customer: Customer) -> Customer: ...

    async def append_status_log(self, customer_id: uuid.UUID, entries: Sequence[StatusLog]) -> Customer: ...


class RequestStore(Protocol):
    async def get(self, request_id: uuid.UUID) -> ActionRequest: ...

    async def save(self, request: ActionRequest) -> ActionRequest: ...
