from datetime import date
from decimal import Decimal

import pytest

from cableops.core.constants import BillStatus
from cableops.core.exceptions import AuthorizationError, BalanceInputError, StoreWriteError, ValidationError
from cableops.models.customer import utcnow
from cableops.services.bill_service import BillService
from cableops.services.billing_service import BillingService, build_monthly_bill, summarize_cycle_run
from cableops.services.customer_service import CustomerService
from cableops.services.payment_service import PaymentService

from .conftest import make_connection, make_customer

TODAY = date(2025, 3, 10)


class BrokenCustomerService(CustomerService):
    async def save(self, customer):
        raise StoreWriteError(f"Failed to save customer {customer.id}")


class BrokenPaymentService(PaymentService):
    async def create_payment(self, payment):
        raise StoreWriteError("Failed to record payment")


async def _due_customer(customers, **fields):
    return await customers.save(
        make_customer(
            vc_number="VC101",
            bill_due_date=5,
            connections=[make_connection("VC101", primary=True)],
            **fields,
        )
    )


@pytest.fixture
def services(seeded):
    customers = CustomerService(seeded)
    payments = PaymentService(seeded)
    return customers, payments, BillingService(customers, payments, BillService(seeded))


async def test_payment_reduces_current_cycle(services, employee):
    customers, payments, billing = services
    customer = await customers.save(make_customer(previous_outstanding=Decimal("100"), current_outstanding=Decimal("400")))

    receipt = await billing.record_payment(customer.id, "250", employee, method="cash", today=TODAY)

    assert receipt.balance.current_outstanding == Decimal("150")
    assert receipt.payment.cycle == "2025-03"
    assert receipt.payment.recorded_by == employee.id
    live = await customers.get(customer.id)
    assert live.cycle_payments == Decimal("250")
    assert live.current_outstanding == Decimal("150")

    stored = await payments.get_payments_for_customer(customer.id, cycle="2025-03")
    assert [p.amount for p in stored] == [Decimal("250")]
    assert await payments.check_payment_exists(customer.id, "2025-03")
    assert not await payments.check_payment_exists(customer.id, "2025-02")


async def test_payment_against_one_connection(services, employee):
    customers, _, billing = services
    customer = await customers.save(
        make_customer(
            vc_number="VC100",
            connections=[make_connection("VC100", primary=True), make_connection("VC200")],
        )
    )

    await billing.record_payment(customer.id, 100, employee, vc_number="VC200")

    live = await customers.get(customer.id)
    by_vc = {c.vc_number: c for c in live.get_connections()}
    assert by_vc["VC200"].current_outstanding == Decimal("200")
    assert by_vc["VC100"].current_outstanding == Decimal("0")
    assert live.current_outstanding == Decimal("200")


@pytest.mark.parametrize(
    "amount, kwargs, error",
    [
        (0, {}, ValidationError),
        ("abc", {}, BalanceInputError),
        (100, {"method": "cheque"}, ValidationError),
        (100, {"vc_number": "VC999"}, ValidationError),
    ],
)
async def test_invalid_payments_change_nothing(services, employee, amount, kwargs, error):
    customers, payments, billing = services
    customer = await customers.save(make_customer())

    with pytest.raises(error):
        await billing.record_payment(customer.id, amount, employee, **kwargs)

    assert await payments.get_payments_for_customer(customer.id) == []
    assert (await customers.get(customer.id)).cycle_payments == Decimal("0")


async def test_credit_is_admin_only(services, admin, employee):
    customers, _, billing = services
    customer = await customers.save(make_customer(current_outstanding=Decimal("300")))

    with pytest.raises(AuthorizationError):
        await billing.apply_credit(customer.id, 50, employee, reason="Outage")

    balance = await billing.apply_credit(customer.id, 50, admin, reason="Outage")
    assert balance.current_outstanding == Decimal("250")


async def test_recompute_repairs_drifted_outstanding(services):
    customers, _, billing = services
    customer = await customers.save(
        make_customer(previous_outstanding=Decimal("20"), cycle_payments=Decimal("5"), current_outstanding=Decimal("1"))
    )

    balance = await billing.recompute(customer.id)

    assert balance.current_outstanding == Decimal("315")
    assert (await customers.get(customer.id)).current_outstanding == Decimal("315")


async def test_due_cycles_roll_over_once_per_month(services):
    customers, _, billing = services
    due = await customers.save(
        make_customer(
            vc_number="VC101",
            bill_due_date=5,
            cycle_payments=Decimal("100"),
            connections=[make_connection("VC101", primary=True)],
        )
    )
    not_yet = await customers.save(make_customer(vc_number="VC102", bill_due_date=20))
    disabled = await customers.save(make_customer(vc_number="VC103", bill_due_date=1, disabled_at=utcnow()))

    outcomes = await billing.process_due_cycles(TODAY)

    assert [(o.customer_id, o.cycle, o.ok) for o in outcomes] == [(due.id, "2025-03", True)]
    live = await customers.get(due.id)
    assert live.previous_outstanding == Decimal("200")
    assert live.cycle_payments == Decimal("0")
    assert live.current_outstanding == Decimal("500")
    assert live.billing_cycle == "2025-03"
    assert live.get_connections()[0].previous_outstanding == Decimal("300")

    assert await billing.process_due_cycles(TODAY) == []
    assert (await customers.get(not_yet.id)).billing_cycle is None
    assert (await customers.get(disabled.id)).billing_cycle is None


async def test_failed_customer_write_records_no_payment(seeded, employee):
    customers, payments = CustomerService(seeded), PaymentService(seeded)
    customer = await customers.save(make_customer(current_outstanding=Decimal("300")))
    billing = BillingService(BrokenCustomerService(seeded), payments, BillService(seeded))

    with pytest.raises(StoreWriteError):
        await billing.record_payment(customer.id, 120, employee, today=TODAY)

    assert await payments.get_payments_for_customer(customer.id) == []
    live = await customers.get(customer.id)
    assert live.cycle_payments == Decimal("0")
    assert live.current_outstanding == Decimal("300")


async def test_failed_payment_write_restores_balance(seeded, employee):
    customers = CustomerService(seeded)
    customer = await customers.save(
        make_customer(
            current_outstanding=Decimal("300"),
            connections=[make_connection("VC100", primary=True)],
        )
    )
    billing = BillingService(customers, BrokenPaymentService(seeded), BillService(seeded))

    with pytest.raises(StoreWriteError):
        await billing.record_payment(customer.id, 120, employee, vc_number="VC100", today=TODAY)

    live = await customers.get(customer.id)
    assert live.cycle_payments == Decimal("0")
    assert live.current_outstanding == Decimal("300")
    assert live.get_connections()[0].cycle_payments == Decimal("0")
    assert await PaymentService(seeded).get_payments_for_customer(customer.id) == []


async def test_cycle_run_issues_one_bill_per_customer(services):
    customers, _, billing = services
    customer = await _due_customer(customers)

    outcomes = await billing.process_due_cycles(TODAY)

    (outcome,) = outcomes
    bill = outcome.bill
    assert bill.month == "2025-03"
    assert bill.total_amount == Decimal("300")
    assert bill.bill_due_date == date(2025, 3, 5)
    assert bill.status == BillStatus.GENERATED.value
    (line,) = bill.vc_breakdown
    assert (line["vc_number"], line["plan_name"], Decimal(line["amount"])) == ("VC101", "Basic", Decimal("300"))

    summary = summarize_cycle_run("2025-03", outcomes)
    assert (summary.total_customers, summary.bills_generated, summary.failed) == (1, 1, 0)
    assert summary.total_amount == Decimal("300")

    assert await billing.process_due_cycles(TODAY) == []
    assert [b.id for b in await billing.bills.get_bills_for_customer(customer.id)] == [bill.id]


async def test_cycle_run_reuses_bill_left_by_failed_run(services):
    customers, _, billing = services
    customer = await _due_customer(customers)
    earlier = await billing.bills.create_bill(build_monthly_bill(customer, "2025-03", TODAY))

    (outcome,) = await billing.process_due_cycles(TODAY)

    assert outcome.ok
    assert outcome.bill.id == earlier.id
    assert len(await billing.bills.get_bills_for_month("2025-03")) == 1
    assert (await customers.get(customer.id)).billing_cycle == "2025-03"


async def test_payments_settle_the_cycle_bill(services, employee):
    customers, _, billing = services
    customer = await _due_customer(customers)
    (outcome,) = await billing.process_due_cycles(TODAY)

    await billing.record_payment(customer.id, 100, employee, today=TODAY)
    assert (await billing.bills.get_bill(outcome.bill.id)).status == BillStatus.PARTIAL.value

    await billing.record_payment(customer.id, 200, employee, today=TODAY)
    assert (await billing.bills.get_bill(outcome.bill.id)).status == BillStatus.PAID.value


async def test_bill_status_can_be_set_by_hand(services):
    customers, _, billing = services
    await _due_customer(customers)
    (outcome,) = await billing.process_due_cycles(TODAY)

    updated = await billing.bills.update_bill_status(outcome.bill.id, "paid")
    assert updated.status == BillStatus.PAID.value

    with pytest.raises(ValidationError):
        await billing.bills.update_bill_status(outcome.bill.id, "void")


async def test_financial_summary(services, employee):
    customers, _, billing = services
    customer = await _due_customer(customers)
    await billing.process_due_cycles(TODAY)
    await billing.record_payment(customer.id, 100, employee, today=TODAY)

    summary = await billing.financial_summary(customer.id, today=TODAY)

    assert summary.total_unpaid_bills == Decimal("300")
    assert summary.total_payments == Decimal("100")
    assert summary.active_vc_count == 1
    assert summary.monthly_amount == Decimal("300")
    assert summary.previous_outstanding == Decimal("300")
    assert summary.current_outstanding == Decimal("500")
    assert summary.last_billed_date is not None
    assert summary.next_due_date == date(2025, 4, 5)
