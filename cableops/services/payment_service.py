# cableops/services/payment_service.py
"""
Payment service layer using SQLModel ORM.
Payments are recorded here; their effect on outstanding balances is applied by
the billing service through the balance calculator.
"""
import logging
import uuid
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from ..core.exceptions import StoreWriteError
from ..db.engine import SessionFactory
from ..models.payment import Payment

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Service layer for Payment operations using SQLModel ORM.
    """

    def __init__(self, session_factory: SessionFactory):
        """
        Args:
            session_factory: async_sessionmaker producing AsyncSession objects
        """
        self.session_factory = session_factory

    async def get_payments_for_customer(self, customer_id: uuid.UUID, cycle: Optional[str] = None) -> List[Payment]:
        """All payments of a customer, most recent first, optionally for one cycle."""
        statement = select(Payment).where(Payment.customer_id == customer_id)
        if cycle:
            statement = statement.where(Payment.cycle == cycle)
        statement = statement.order_by(Payment.paid_at.desc())
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return list(result.all())

    async def create_payment(self, payment: Payment) -> Payment:
        async with self.session_factory() as session:
            try:
                session.add(payment)
                await session.commit()
                await session.refresh(payment)
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database error recording payment for {payment.customer_id}: {e}")
                raise StoreWriteError(f"Failed to record payment: {e}")
        return payment

    async def check_payment_exists(self, customer_id: uuid.UUID, billing_cycle: str) -> bool:
        """
        Check if a payment already exists for a customer and billing cycle ('YYYY-MM').
        """
        statement = (
            select(Payment)
            .where(Payment.customer_id == customer_id, Payment.cycle == billing_cycle)
            .limit(1)
        )
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return result.first() is not None
