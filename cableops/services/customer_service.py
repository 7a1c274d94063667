# cableops/services/customer_service.py
"""
Customer store backed by SQLModel.

Every method opens its own session, so independent customers can be written
concurrently. There is no locking on customer rows: two direct writers racing
on the same customer resolve as last-write-wins.
"""
import logging
import uuid
from typing import List, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from ..core.exceptions import ConflictError, NotFoundError, StoreWriteError
from ..db.engine import SessionFactory
from ..models.customer import Customer, StatusLog, utcnow

logger = logging.getLogger(__name__)


class CustomerService:
    """
    Service layer for Customer persistence.
    """

    def __init__(self, session_factory: SessionFactory):
        """
        Args:
            session_factory: async_sessionmaker producing AsyncSession objects
        """
        self.session_factory = session_factory

    async def get(self, customer_id: uuid.UUID) -> Customer:
        """Get a single customer by ID. Raises NotFoundError."""
        async with self.session_factory() as session:
            customer = await session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError(f"Customer {customer_id} not found.")
        return customer

    async def list_all(self, include_disabled: bool = False) -> List[Customer]:
        statement = select(Customer).order_by(Customer.name)
        if not include_disabled:
            statement = statement.where(Customer.disabled_at == None)  # noqa: E711
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return list(result.all())

    async def save(self, customer: Customer) -> Customer:
        """
        Insert or update the whole customer document (connections, status logs
        and balances included) in one commit.

        Raises:
            ConflictError: on unique constraint violations.
            StoreWriteError: for any other database failure.
        """
        customer.updated_at = utcnow()
        async with self.session_factory() as session:
            try:
                await session.merge(customer)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.error(f"Integrity error saving customer {customer.id}: {e}", exc_info=True)
                raise ConflictError(f"Conflict saving customer {customer.id}: {e.orig}")
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database error saving customer {customer.id}: {e}", exc_info=True)
                raise StoreWriteError(f"Failed to save customer {customer.id}: {e}")
        logger.debug(f"Customer {customer.id} saved.")
        return customer

    async def append_status_log(self, customer_id: uuid.UUID, entries: Sequence[StatusLog]) -> Customer:
        """Append status log entries to a stored customer without touching anything else."""
        if not entries:
            return await self.get(customer_id)
        async with self.session_factory() as session:
            customer = await session.get(Customer, customer_id)
            if not customer:
                raise NotFoundError(f"Customer {customer_id} not found.")
            customer.add_status_logs(list(entries))
            customer.updated_at = utcnow()
            try:
                session.add(customer)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreWriteError(f"Failed to append status log for customer {customer_id}: {e}")
        logger.info(f"{len(entries)} status log entries appended to customer {customer_id}.")
        return customer

    async def disable(self, customer_id: uuid.UUID) -> Customer:
        """
        Soft-disable a customer. Customers with billing history are never
        hard-deleted.
        """
        customer = await self.get(customer_id)
        if customer.disabled_at is None:
            customer.disabled_at = utcnow()
            await self.save(customer)
            logger.info(f"Customer {customer_id} disabled.")
        return customer
