# cableops/services/bill_service.py
"""
Monthly bill store. Bills are created by the billing cycle run; their status
follows the payments applied to the cycle they belong to.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from ..core.constants import BillStatus
from ..core.exceptions import ConflictError, NotFoundError, StoreWriteError, ValidationError
from ..db.engine import SessionFactory
from ..models.bill import MonthlyBill
from ..models.customer import utcnow

logger = logging.getLogger(__name__)


def bill_status_for(total_amount: Decimal, paid: Decimal) -> BillStatus:
    if paid >= total_amount:
        return BillStatus.PAID
    if paid > 0:
        return BillStatus.PARTIAL
    return BillStatus.GENERATED


class BillService:
    """
    Service layer for MonthlyBill records.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def get_bill(self, bill_id: uuid.UUID) -> MonthlyBill:
        async with self.session_factory() as session:
            bill = await session.get(MonthlyBill, bill_id)
        if not bill:
            raise NotFoundError(f"Bill {bill_id} not found.")
        return bill

    async def get_bills_for_customer(self, customer_id: uuid.UUID) -> List[MonthlyBill]:
        """Bills of a customer, newest month first."""
        statement = (
            select(MonthlyBill)
            .where(MonthlyBill.customer_id == customer_id)
            .order_by(MonthlyBill.month.desc())
        )
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return list(result.all())

    async def get_bills_for_month(self, month: str) -> List[MonthlyBill]:
        statement = select(MonthlyBill).where(MonthlyBill.month == month).order_by(MonthlyBill.customer_name)
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return list(result.all())

    async def find_bill(self, customer_id: uuid.UUID, month: str) -> Optional[MonthlyBill]:
        statement = select(MonthlyBill).where(MonthlyBill.customer_id == customer_id, MonthlyBill.month == month)
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return result.first()

    async def create_bill(self, bill: MonthlyBill) -> MonthlyBill:
        """
        Raises:
            ConflictError: the customer already has a bill for that month.
        """
        async with self.session_factory() as session:
            try:
                session.add(bill)
                await session.commit()
                await session.refresh(bill)
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(f"Bill for customer {bill.customer_id} and {bill.month} already exists: {e.orig}")
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database error creating bill for {bill.customer_id}: {e}")
                raise StoreWriteError(f"Failed to create bill: {e}")
        logger.info(f"Bill {bill.month} of {bill.total_amount} created for customer {bill.customer_id}.")
        return bill

    async def update_bill_status(self, bill_id: uuid.UUID, status: str) -> MonthlyBill:
        try:
            status = BillStatus(status).value
        except ValueError:
            raise ValidationError(f"Invalid bill status '{status}'.")
        async with self.session_factory() as session:
            bill = await session.get(MonthlyBill, bill_id)
            if not bill:
                raise NotFoundError(f"Bill {bill_id} not found.")
            if bill.status == status:
                return bill
            bill.status = status
            bill.updated_at = utcnow()
            try:
                session.add(bill)
                await session.commit()
                await session.refresh(bill)
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreWriteError(f"Failed to update bill {bill_id}: {e}")
        logger.info(f"Bill {bill_id} status updated to {status}.")
        return bill
