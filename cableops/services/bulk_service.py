# cableops/services/bulk_service.py
"""
Bulk management: move many customers to another area or package at once.

One write per customer, all awaited concurrently. There is no rollback across
customers: the caller gets one outcome per customer and re-queries on failure.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from ..core.audit import log_action
from ..core.exceptions import AuthorizationError, ValidationError
from ..models.actor import Actor
from ..models.customer import Customer
from .protocols import AreaRegistry, CustomerStore, PackageRegistry
from .status_engine import apply_plan_change, get_active_package

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkOutcome:
    customer_id: uuid.UUID
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BulkService:
    def __init__(self, customers: CustomerStore, areas: AreaRegistry, packages: PackageRegistry):
        self.customers = customers
        self.areas = areas
        self.packages = packages

    async def bulk_update_area(self, customer_ids: Sequence[uuid.UUID], area: str, actor: Actor) -> List[BulkOutcome]:
        self._require_authority(actor)
        area = area.strip()
        if area not in await self.areas.list_names():
            raise ValidationError(f'Invalid area "{area}"')

        def change(customer: Customer) -> None:
            customer.area = area

        return await self._fan_out("BULK_AREA_UPDATE", customer_ids, change, actor, {"area": area})

    async def bulk_update_package(
        self, customer_ids: Sequence[uuid.UUID], package_name: str, actor: Actor
    ) -> List[BulkOutcome]:
        """Switch customers to an active package, recomputing each balance."""
        self._require_authority(actor)
        package = await get_active_package(self.packages, package_name.strip())

        def change(customer: Customer) -> None:
            apply_plan_change(customer, package.name, package.price)

        return await self._fan_out("BULK_PACKAGE_UPDATE", customer_ids, change, actor, {"package": package.name})

    @staticmethod
    def _require_authority(actor: Actor) -> None:
        if not actor.has_authority:
            raise AuthorizationError(f"User {actor.id} cannot run bulk updates.")

    async def _fan_out(
        self,
        action: str,
        customer_ids: Sequence[uuid.UUID],
        change: Callable[[Customer], None],
        actor: Actor,
        details: dict,
    ) -> List[BulkOutcome]:
        ids = list(dict.fromkeys(customer_ids))
        if not ids:
            raise ValidationError("No customers selected.")

        async def update_one(customer_id: uuid.UUID) -> Customer:
            customer = await self.customers.get(customer_id)
            change(customer)
            return await self.customers.save(customer)

        tasks: List[Awaitable[Customer]] = [update_one(cid) for cid in ids]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes = []
        for customer_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.error(f"{action} failed for customer {customer_id}: {result}")
                outcomes.append(BulkOutcome(customer_id, error=str(result)))
            else:
                outcomes.append(BulkOutcome(customer_id))

        failed = [str(o.customer_id) for o in outcomes if not o.ok]
        log_action(
            action,
            "customer",
            "bulk",
            actor=actor,
            details={**details, "requested": len(ids), "failed": failed},
            status="success" if not failed else "failure",
        )
        logger.info(f"{action}: {len(ids) - len(failed)}/{len(ids)} customers updated.")
        return outcomes
