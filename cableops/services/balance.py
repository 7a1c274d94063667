# cableops/services/balance.py
"""
Balance calculator.

    current_outstanding = previous_outstanding + package_amount - cycle_payments

Pure functions only, no I/O. Results are never clamped: a negative balance
means the customer is in credit and display layers decide how to show it.
Invalid numbers are programmer errors and fail fast with BalanceInputError;
only a missing (None) optional amount defaults to zero.
"""
import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from ..core.constants import CycleEventKind
from ..core.exceptions import BalanceInputError
from ..models.customer import Connection, Customer

ZERO = Decimal("0")


@dataclass(frozen=True)
class CycleEvent:
    kind: CycleEventKind
    amount: Any = None
    note: str = ""

    @classmethod
    def payment(cls, amount, note: str = "") -> "CycleEvent":
        return cls(CycleEventKind.PAYMENT, amount, note)

    @classmethod
    def credit(cls, amount, note: str = "") -> "CycleEvent":
        return cls(CycleEventKind.CREDIT, amount, note)

    @classmethod
    def new_cycle(cls, note: str = "") -> "CycleEvent":
        return cls(CycleEventKind.NEW_CYCLE, None, note)


@dataclass(frozen=True)
class BalanceResult:
    previous_outstanding: Decimal
    current_outstanding: Decimal
    cycle_payments: Decimal


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce a numeric input to Decimal. None is zero; anything else invalid raises."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise BalanceInputError(f"{field_name} must be a number, got boolean {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise BalanceInputError(f"{field_name} must be a number, got {value!r}")
    else:
        raise BalanceInputError(f"{field_name} must be a number, got {type(value).__name__}")
    if not result.is_finite():
        raise BalanceInputError(f"{field_name} must be finite, got {value!r}")
    return result


def compute_balance(
    previous_outstanding: Any,
    package_amount: Any,
    cycle_payments: Any = None,
    events: Iterable[CycleEvent] = (),
) -> BalanceResult:
    """
    Fold billing events into a balance.

    Payments and credits subtract from the current cycle. A new_cycle event rolls
    the current outstanding forward into previous_outstanding and starts a fresh
    cycle, so the package amount is charged once per cycle.
    """
    previous = to_decimal(previous_outstanding, "previous_outstanding")
    package = to_decimal(package_amount, "package_amount")
    paid = to_decimal(cycle_payments, "cycle_payments")

    for event in events:
        kind = CycleEventKind(event.kind)
        if kind == CycleEventKind.NEW_CYCLE:
            previous = previous + package - paid
            paid = ZERO
            continue
        amount = to_decimal(event.amount, f"{kind.value} amount")
        if amount < 0:
            raise BalanceInputError(f"{kind.value} amount cannot be negative, got {amount}")
        paid += amount

    return BalanceResult(
        previous_outstanding=previous,
        current_outstanding=previous + package - paid,
        cycle_payments=paid,
    )


def recompute_balance(customer: Customer, cycle_events: Iterable[CycleEvent] = ()) -> BalanceResult:
    return compute_balance(
        customer.previous_outstanding,
        customer.package_amount,
        customer.cycle_payments,
        cycle_events,
    )


def recompute_connection_balance(connection: Connection, cycle_events: Iterable[CycleEvent] = ()) -> BalanceResult:
    return compute_balance(
        connection.previous_outstanding,
        connection.plan_price,
        connection.cycle_payments,
        cycle_events,
    )


def apply_balance(customer: Customer, result: BalanceResult) -> Customer:
    """Write a computed balance onto the customer (the only writer of these fields)."""
    customer.previous_outstanding = result.previous_outstanding
    customer.current_outstanding = result.current_outstanding
    customer.cycle_payments = result.cycle_payments
    return customer


def apply_connection_balance(connection: Connection, result: BalanceResult) -> Connection:
    return connection.model_copy(
        update={
            "previous_outstanding": result.previous_outstanding,
            "current_outstanding": result.current_outstanding,
            "cycle_payments": result.cycle_payments,
        }
    )


def open_connection(connection: Connection) -> Connection:
    """A new connection owes its plan price for the current cycle."""
    return apply_connection_balance(connection, recompute_connection_balance(connection))


# --- Billing cycle dates ---


def _due_date_in_month(year: int, month: int, due_day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def cycle_due_date(customer: Customer, today: Optional[date] = None) -> date:
    """Due date of the customer's cycle in today's month."""
    today = today or date.today()
    return _due_date_in_month(today.year, today.month, int(customer.bill_due_date))


def is_billing_due(customer: Customer, today: Optional[date] = None) -> bool:
    """True when today is the customer's due day (clamped to the month's last day)."""
    today = today or date.today()
    return _due_date_in_month(today.year, today.month, int(customer.bill_due_date)) == today


def next_billing_date(customer: Customer, today: Optional[date] = None) -> date:
    """Next due date strictly after today."""
    today = today or date.today()
    due = _due_date_in_month(today.year, today.month, int(customer.bill_due_date))
    if due <= today:
        first_of_next = (today.replace(day=1) + timedelta(days=32)).replace(day=1)
        due = _due_date_in_month(first_of_next.year, first_of_next.month, int(customer.bill_due_date))
    return due


def days_until_next_billing(customer: Customer, today: Optional[date] = None) -> int:
    today = today or date.today()
    return (next_billing_date(customer, today) - today).days


def billing_cycle_label(day: Optional[date] = None) -> str:
    """Cycle identifier in 'YYYY-MM' format."""
    return (day or date.today()).strftime("%Y-%m")


def is_cycle_pending(customer: Customer, today: Optional[date] = None) -> bool:
    """
    True when this month's due date has been reached and the cycle has not been
    rolled over yet. Catches up on a missed due day within the same month.
    """
    today = today or date.today()
    due = _due_date_in_month(today.year, today.month, int(customer.bill_due_date))
    return due <= today and customer.billing_cycle != billing_cycle_label(today)
