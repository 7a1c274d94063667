# cableops/services/billing_service.py
"""
Billing service: payments, credits, monthly cycle roll-over and bills.

Every mutation goes through the balance calculator, which is the only writer
of the outstanding fields. A roll-over issues the customer's MonthlyBill for
the cycle; payments and credits move that bill from generated to partial to
paid.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from ..core.audit import log_action
from ..core.constants import BillStatus, CustomerStatus, PaymentMethod
from ..core.exceptions import AuthorizationError, StoreWriteError, ValidationError
from ..models.actor import Actor
from ..models.bill import MonthlyBill
from ..models.customer import Customer
from ..models.payment import Payment
from .balance import (
    BalanceResult,
    CycleEvent,
    apply_balance,
    apply_connection_balance,
    billing_cycle_label,
    cycle_due_date,
    is_cycle_pending,
    next_billing_date,
    recompute_balance,
    recompute_connection_balance,
    to_decimal,
)
from .bill_service import BillService, bill_status_for
from .customer_service import CustomerService
from .payment_service import PaymentService
from .status_engine import list_vc_slots

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentReceipt:
    payment: Payment
    balance: BalanceResult


@dataclass(frozen=True)
class CycleOutcome:
    customer_id: uuid.UUID
    cycle: str
    balance: Optional[BalanceResult] = None
    bill: Optional[MonthlyBill] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CycleRunSummary:
    cycle: str
    total_customers: int
    bills_generated: int
    failed: int
    total_amount: Decimal


@dataclass(frozen=True)
class FinancialSummary:
    customer_id: uuid.UUID
    previous_outstanding: Decimal
    current_outstanding: Decimal
    total_unpaid_bills: Decimal
    total_payments: Decimal
    active_vc_count: int
    monthly_amount: Decimal
    last_billed_date: Optional[datetime]
    next_due_date: date


def summarize_cycle_run(cycle: str, outcomes: List[CycleOutcome]) -> CycleRunSummary:
    bills = [o.bill for o in outcomes if o.ok and o.bill is not None]
    return CycleRunSummary(
        cycle=cycle,
        total_customers=len(outcomes),
        bills_generated=len(bills),
        failed=sum(1 for o in outcomes if not o.ok),
        total_amount=sum((to_decimal(b.total_amount) for b in bills), Decimal("0")),
    )


def build_monthly_bill(customer: Customer, cycle: str, today: date) -> MonthlyBill:
    """
    The bill a roll-over issues: the account's package amount, with the live
    VCs and their plans listed for reference.
    """
    breakdown = [
        {
            "vc_number": slot.vc_number,
            "plan_name": slot.connection.plan_name if slot.connection else customer.package_name,
            "amount": str(to_decimal(slot.connection.plan_price if slot.connection else customer.package_amount)),
        }
        for slot in list_vc_slots(customer)
    ]
    return MonthlyBill(
        customer_id=customer.id,
        customer_name=customer.name,
        month=cycle,
        vc_breakdown=breakdown,
        total_amount=to_decimal(customer.package_amount, "package_amount"),
        bill_due_date=cycle_due_date(customer, today),
    )


def _apply_event(customer: Customer, event: CycleEvent, vc_number: Optional[str] = None) -> BalanceResult:
    """Fold one event into the customer (and, if given, into that connection)."""
    result = recompute_balance(customer, [event])
    if vc_number:
        connections = customer.get_connections(include_released=True)
        if not any(c.vc_number == vc_number and not c.is_released for c in connections):
            raise ValidationError(f"VC {vc_number} is not an active connection of customer {customer.id}.")
        customer.set_connections(
            [
                apply_connection_balance(c, recompute_connection_balance(c, [event]))
                if c.vc_number == vc_number and not c.is_released
                else c
                for c in connections
            ]
        )
    apply_balance(customer, result)
    return result


class BillingService:
    """
    Service for billing operations.

    Args:
        customers: customer store
        payments: payment records
        bills: monthly bill records
    """

    def __init__(self, customers: CustomerService, payments: PaymentService, bills: BillService):
        self.customers = customers
        self.payments = payments
        self.bills = bills

    async def record_payment(
        self,
        customer_id: uuid.UUID,
        amount,
        actor: Actor,
        vc_number: Optional[str] = None,
        method: Optional[str] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> PaymentReceipt:
        """
        Register a payment and subtract it from the current cycle.

        Raises:
            BalanceInputError: amount is not a valid, non-negative number.
            ValidationError: zero amount, unknown method or a VC that is not the customer's.
        """
        value = to_decimal(amount, "payment amount")
        if value <= 0:
            raise ValidationError("Payment amount must be greater than zero.")
        if method is not None:
            try:
                method = PaymentMethod(method).value
            except ValueError:
                raise ValidationError(f"Invalid payment method '{method}'.")

        customer = await self.customers.get(customer_id)
        before = BalanceResult(
            previous_outstanding=customer.previous_outstanding,
            current_outstanding=customer.current_outstanding,
            cycle_payments=customer.cycle_payments,
        )
        connections_before = list(customer.connections or [])
        balance = _apply_event(customer, CycleEvent.payment(value, notes or ""), vc_number)

        # Balance first: a failed customer write leaves no payment row behind.
        await self.customers.save(customer)
        try:
            payment = await self.payments.create_payment(
                Payment(
                    customer_id=customer.id,
                    vc_number=vc_number,
                    amount=value,
                    cycle=billing_cycle_label(today),
                    method=method,
                    notes=notes,
                    recorded_by=actor.id,
                )
            )
        except Exception:
            logger.error(f"Recording payment for customer {customer.id} failed; restoring its balance.")
            apply_balance(customer, before)
            customer.connections = connections_before
            await self.customers.save(customer)
            raise
        logger.info(f"Payment (ID: {payment.id}) of {value} recorded for customer {customer.id}.")
        await self._sync_bill_status(customer)

        log_action(
            "PAYMENT",
            "customer",
            customer.id,
            actor=actor,
            details={"payment_id": payment.id, "amount": str(value), "vc_number": vc_number},
        )
        return PaymentReceipt(payment=payment, balance=balance)

    async def apply_credit(
        self,
        customer_id: uuid.UUID,
        amount,
        actor: Actor,
        reason: str,
        vc_number: Optional[str] = None,
    ) -> BalanceResult:
        """Grant a credit (discount, refund) against the current cycle."""
        if not actor.has_authority:
            raise AuthorizationError(f"User {actor.id} cannot grant credits.")
        value = to_decimal(amount, "credit amount")
        if value <= 0:
            raise ValidationError("Credit amount must be greater than zero.")

        customer = await self.customers.get(customer_id)
        balance = _apply_event(customer, CycleEvent.credit(value, reason), vc_number)
        await self.customers.save(customer)
        await self._sync_bill_status(customer)
        log_action(
            "CREDIT",
            "customer",
            customer.id,
            actor=actor,
            details={"amount": str(value), "reason": reason, "vc_number": vc_number},
        )
        return balance

    async def recompute(self, customer_id: uuid.UUID) -> BalanceResult:
        """Re-derive the current outstanding from the stored components."""
        customer = await self.customers.get(customer_id)
        balance = recompute_balance(customer)
        if customer.current_outstanding is None or Decimal(customer.current_outstanding) != balance.current_outstanding:
            logger.warning(
                f"Customer {customer.id} outstanding was {customer.current_outstanding}, "
                f"recomputed {balance.current_outstanding}."
            )
        apply_balance(customer, balance)
        await self.customers.save(customer)
        return balance

    async def process_due_cycles(self, today: Optional[date] = None) -> List[CycleOutcome]:
        """
        Roll over every customer whose due date has been reached this month.

        One write per customer, awaited concurrently; each customer gets its own
        outcome and a failed write is reported, never swallowed.
        """
        today = today or date.today()
        cycle = billing_cycle_label(today)
        due = [c for c in await self.customers.list_all() if is_cycle_pending(c, today)]
        logger.info(f"Processing billing cycle {cycle}: {len(due)} customers due.")

        results = await asyncio.gather(*(self._roll_over(c, cycle, today) for c in due), return_exceptions=True)

        outcomes = []
        for customer, result in zip(due, results):
            if isinstance(result, BaseException):
                logger.error(f"Cycle roll-over failed for customer {customer.id}: {result}")
                outcomes.append(CycleOutcome(customer.id, cycle, error=str(result)))
            else:
                balance, bill = result
                outcomes.append(CycleOutcome(customer.id, cycle, balance=balance, bill=bill))

        summary = summarize_cycle_run(cycle, outcomes)
        logger.info(
            f"✅ Billing cycle {cycle}: {summary.bills_generated} bills, "
            f"total {summary.total_amount}, {summary.failed} failed."
        )
        log_action(
            "BILLING_CYCLE",
            "billing",
            cycle,
            details={
                "processed": summary.total_customers,
                "bills": summary.bills_generated,
                "total_amount": str(summary.total_amount),
                "failed": summary.failed,
            },
            status="success" if not summary.failed else "failure",
        )
        return outcomes

    async def _roll_over(self, customer: Customer, cycle: str, today: date) -> tuple[BalanceResult, MonthlyBill]:
        # A bill left by an earlier run whose customer write failed is reused.
        bill = await self.bills.find_bill(customer.id, cycle)
        if bill is None:
            bill = await self.bills.create_bill(build_monthly_bill(customer, cycle, today))

        event = CycleEvent.new_cycle(cycle)
        balance = recompute_balance(customer, [event])
        customer.set_connections(
            [
                c if c.is_released else apply_connection_balance(c, recompute_connection_balance(c, [event]))
                for c in customer.get_connections(include_released=True)
            ]
        )
        apply_balance(customer, balance)
        customer.billing_cycle = cycle
        await self.customers.save(customer)
        return balance, bill

    async def _sync_bill_status(self, customer: Customer) -> Optional[MonthlyBill]:
        """
        Bring the bill of the customer's current cycle in line with the payments
        applied to that cycle. The payment or credit itself is already stored, so
        a failed status write is logged and picked up by the next payment.
        """
        if not customer.billing_cycle:
            return None
        bill = await self.bills.find_bill(customer.id, customer.billing_cycle)
        if bill is None:
            return None
        status = bill_status_for(to_decimal(bill.total_amount), to_decimal(customer.cycle_payments))
        try:
            return await self.bills.update_bill_status(bill.id, status.value)
        except StoreWriteError as e:
            logger.error(f"Bill {bill.id} status could not be updated to {status.value}: {e}")
            return bill

    async def financial_summary(self, customer_id: uuid.UUID, today: Optional[date] = None) -> FinancialSummary:
        """Bills, payments and active VCs of one customer."""
        customer = await self.customers.get(customer_id)
        bills, payments = await asyncio.gather(
            self.bills.get_bills_for_customer(customer.id),
            self.payments.get_payments_for_customer(customer.id),
        )
        active = [s for s in list_vc_slots(customer) if s.status == CustomerStatus.ACTIVE]
        return FinancialSummary(
            customer_id=customer.id,
            previous_outstanding=to_decimal(customer.previous_outstanding),
            current_outstanding=to_decimal(customer.current_outstanding),
            total_unpaid_bills=sum(
                (to_decimal(b.total_amount) for b in bills if b.status != BillStatus.PAID.value),
                Decimal("0"),
            ),
            total_payments=sum((to_decimal(p.amount) for p in payments), Decimal("0")),
            active_vc_count=len(active),
            monthly_amount=sum(
                (to_decimal(s.connection.plan_price if s.connection else customer.package_amount) for s in active),
                Decimal("0"),
            ),
            last_billed_date=bills[0].created_at if bills else None,
            next_due_date=next_billing_date(customer, today),
        )
