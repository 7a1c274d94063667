# cableops/services/vc_inventory_service.py
"""
VC inventory service.
Flips inventory items between available and active when they are assigned to
or released from a customer, keeping status and ownership history.
"""
import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from ..core.constants import VCStatus
from ..core.exceptions import (
    ConflictError,
    NotFoundError,
    RegistryUnavailableError,
    StoreWriteError,
    VCUnavailableError,
)
from ..db.engine import SessionFactory
from ..models.customer import utcnow
from ..models.vc_inventory import VCInventoryItem

logger = logging.getLogger(__name__)


class VCInventoryService:
    """
    Service layer for VC inventory operations.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def list_all(self) -> List[VCInventoryItem]:
        try:
            async with self.session_factory() as session:
                result = await session.exec(select(VCInventoryItem).order_by(VCInventoryItem.vc_number))
                return list(result.all())
        except SQLAlchemyError as e:
            raise RegistryUnavailableError(f"Could not load VC inventory: {e}")

    async def list_available(self) -> List[VCInventoryItem]:
        return [item for item in await self.list_all() if item.status == VCStatus.AVAILABLE.value]

    async def list_for_customer(self, customer_id: uuid.UUID) -> List[VCInventoryItem]:
        async with self.session_factory() as session:
            statement = (
                select(VCInventoryItem)
                .where(VCInventoryItem.customer_id == customer_id)
                .order_by(VCInventoryItem.vc_number)
            )
            result = await session.exec(statement)
            return list(result.all())

    async def lookup(self, vc_number: str) -> Optional[VCInventoryItem]:
        async with self.session_factory() as session:
            result = await session.exec(select(VCInventoryItem).where(VCInventoryItem.vc_number == vc_number))
            return result.first()

    async def create_many(self, vc_numbers: Iterable[str], reason: str = "Added to inventory") -> List[VCInventoryItem]:
        """
        Bulk-create available inventory items.

        Raises:
            ConflictError: if any VC number already exists.
        """
        now = utcnow()
        items = [
            VCInventoryItem(
                vc_number=vc.strip(),
                status=VCStatus.AVAILABLE.value,
                status_history=[{"status": VCStatus.AVAILABLE.value, "changed_at": now.isoformat(), "reason": reason}],
            )
            for vc in vc_numbers
            if vc and vc.strip()
        ]
        async with self.session_factory() as session:
            try:
                session.add_all(items)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(f"VC number already exists in inventory: {e.orig}")
        logger.info(f"{len(items)} VC numbers added to inventory.")
        return items

    async def assign(self, vc_number: str, customer_id: uuid.UUID, customer_name: str) -> VCInventoryItem:
        """
        Assign an available VC to a customer.

        Raises:
            VCUnavailableError: if the VC is unknown or not available.
        """
        async with self.session_factory() as session:
            result = await session.exec(select(VCInventoryItem).where(VCInventoryItem.vc_number == vc_number))
            item = result.first()
            if not item:
                raise VCUnavailableError(vc_number)
            if item.status != VCStatus.AVAILABLE.value:
                raise VCUnavailableError(vc_number, status=item.status, customer_name=item.customer_name)

            now = utcnow()
            item.status = VCStatus.ACTIVE.value
            item.customer_id = customer_id
            item.customer_name = customer_name
            item.updated_at = now
            item.status_history = [
                *item.status_history,
                {"status": VCStatus.ACTIVE.value, "changed_at": now.isoformat(), "reason": f"Assigned to {customer_name}"},
            ]
            item.ownership_history = [
                *item.ownership_history,
                {
                    "customer_id": str(customer_id),
                    "customer_name": customer_name,
                    "start_date": now.isoformat(),
                    "end_date": None,
                },
            ]
            try:
                session.add(item)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreWriteError(f"Failed to assign VC {vc_number}: {e}")

        logger.info(f"VC {vc_number} assigned to customer {customer_id} ({customer_name}).")
        return item

    async def release(self, vc_number: str, reason: str = "Released to inventory") -> VCInventoryItem:
        """Return a VC to the pool of available numbers, closing its ownership record."""
        async with self.session_factory() as session:
            result = await session.exec(select(VCInventoryItem).where(VCInventoryItem.vc_number == vc_number))
            item = result.first()
            if not item:
                raise NotFoundError(f'VC number "{vc_number}" does not exist in inventory')

            now = utcnow()
            previous_owner = item.customer_id
            item.status = VCStatus.AVAILABLE.value
            item.customer_id = None
            item.customer_name = None
            item.updated_at = now
            item.status_history = [
                *item.status_history,
                {"status": VCStatus.AVAILABLE.value, "changed_at": now.isoformat(), "reason": reason},
            ]
            item.ownership_history = [
                {**entry, "end_date": now.isoformat()} if entry.get("end_date") is None else entry
                for entry in item.ownership_history
            ]
            try:
                session.add(item)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreWriteError(f"Failed to release VC {vc_number}: {e}")

        logger.info(f"VC {vc_number} released from customer {previous_owner}.")
        return item
