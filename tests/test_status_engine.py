from decimal import Decimal

import pytest

from cableops.core.constants import ActionType, CustomerStatus, DisplayStatus, LogScope, RequestStatus
from cableops.core.exceptions import NotFoundError, ValidationError, VCSelectionRequired
from cableops.models.action_request import ActionRequest
from cableops.models.customer import utcnow
from cableops.services.status_engine import (
    StatusEngine,
    aggregate_status,
    eligible_vcs,
    has_multiple_vcs,
    list_vc_slots,
)

from .conftest import make_connection, make_customer

ACTIVE, INACTIVE, DEMO = CustomerStatus.ACTIVE, CustomerStatus.INACTIVE, CustomerStatus.DEMO


@pytest.fixture
def engine(customers, requests_store, packages):
    return StatusEngine(customers, requests_store, packages)


def two_vc_customer(primary=ACTIVE, secondary=ACTIVE):
    return make_customer(
        vc_number="VC100",
        status=primary,
        connections=[make_connection("VC100", primary, primary=True), make_connection("VC200", secondary)],
    )


# --- Derivation ---


def test_one_active_one_inactive_connection_is_mixed():
    customer = two_vc_customer(ACTIVE, INACTIVE)

    assert aggregate_status(customer) == DisplayStatus.MIXED


def test_uniform_statuses_collapse():
    assert aggregate_status(two_vc_customer(INACTIVE, INACTIVE)) == DisplayStatus.INACTIVE
    assert aggregate_status(two_vc_customer(DEMO, DEMO)) == DisplayStatus.DEMO
    assert aggregate_status(two_vc_customer(ACTIVE, INACTIVE), ["VC100"]) == DisplayStatus.ACTIVE


def test_legacy_vc_without_connections_uses_customer_status():
    customer = make_customer(vc_number="VC100", status=DEMO)

    slots = list_vc_slots(customer)
    assert [(s.vc_number, s.status, s.is_primary) for s in slots] == [("VC100", DEMO, True)]
    assert not has_multiple_vcs(customer)


def test_legacy_vc_plus_other_connection_counts_as_multiple():
    customer = make_customer(vc_number="VC100", connections=[make_connection("VC300")])

    assert has_multiple_vcs(customer)
    assert [s.vc_number for s in list_vc_slots(customer)] == ["VC100", "VC300"]


def test_connection_matching_legacy_vc_is_single():
    customer = make_customer(vc_number="VC100", connections=[make_connection("VC100")])

    assert not has_multiple_vcs(customer)
    assert list_vc_slots(customer)[0].is_primary


def test_single_connection_without_legacy_vc_is_single():
    # One live VC slot, so no selection is needed even though the customer has
    # an explicit connection and no customer-level VC.
    customer = make_customer(vc_number=None, connections=[make_connection("VC300", primary=True)])

    assert not has_multiple_vcs(customer)
    assert [s.vc_number for s in list_vc_slots(customer)] == ["VC300"]


async def test_single_connection_without_legacy_vc_needs_no_selection(engine, customers, admin):
    customer = customers.add(make_customer(vc_number=None, connections=[make_connection("VC300", primary=True)]))

    logs = await engine.change_status(customer, INACTIVE, admin)

    assert {entry.vc_number for entry in logs} == {"VC300"}
    assert customer.get_connections()[0].status == INACTIVE


def test_released_connections_are_ignored():
    released = make_connection("VC200", INACTIVE).model_copy(update={"released_at": utcnow()})
    customer = make_customer(
        vc_number="VC100", connections=[make_connection("VC100", ACTIVE, primary=True), released]
    )

    assert aggregate_status(customer) == DisplayStatus.ACTIVE
    assert not has_multiple_vcs(customer)


def test_eligible_vcs_excludes_vcs_already_in_target():
    customer = two_vc_customer(ACTIVE, INACTIVE)

    assert [s.vc_number for s in eligible_vcs(customer, INACTIVE)] == ["VC100"]


# --- Employee path ---


async def test_employee_deactivation_creates_pending_request(engine, customers, requests_store, employee):
    customer = customers.add(make_customer(vc_number="VC100"))

    result = await engine.change_status(customer, "inactive", employee, reason="Not paying")

    assert isinstance(result, ActionRequest)
    assert result.status == RequestStatus.PENDING.value
    assert result.action_type == ActionType.DEACTIVATION.value
    assert result.vc_statuses == {"VC100": "active"}
    assert result.current_status == "active"
    assert requests_store.requests[result.id] is result
    assert customer.get_status_logs() == []
    assert customer.status == "active"
    assert customers.saves == []


# --- Admin path ---


async def test_admin_single_vc_change_writes_customer_log(engine, customers, admin):
    customer = customers.add(make_customer(vc_number="VC100"))

    logs = await engine.change_status(customer, INACTIVE, admin, reason="Moved away")

    assert len(logs) == 1
    assert logs[0].scope == LogScope.CUSTOMER
    assert (logs[0].previous_status, logs[0].new_status) == (ACTIVE, INACTIVE)
    assert customer.status == "inactive"
    assert not customer.is_active
    assert customer.deactivated_at is not None
    assert customers.saves == [customer.id]


async def test_multi_vc_requires_explicit_selection(engine, customers, admin):
    customer = customers.add(two_vc_customer(ACTIVE, INACTIVE))

    with pytest.raises(VCSelectionRequired) as exc:
        await engine.change_status(customer, INACTIVE, admin)

    assert exc.value.eligible == ["VC100"]
    assert customers.saves == []


async def test_secondary_only_change_leaves_customer_status(engine, customers, admin):
    customer = customers.add(two_vc_customer())

    logs = await engine.change_status(customer, INACTIVE, admin, selected_vcs=["VC200"])

    assert [(entry.vc_number, entry.scope) for entry in logs] == [("VC200", LogScope.CONNECTION)]
    assert customer.status == "active"
    assert aggregate_status(customer) == DisplayStatus.MIXED
    assert len(customer.get_status_logs()) == 1


async def test_primary_change_logs_connection_and_customer(engine, customers, admin):
    customer = customers.add(two_vc_customer())

    logs = await engine.change_status(customer, INACTIVE, admin, selected_vcs=["VC100", "VC200"])

    assert sorted((entry.vc_number, entry.scope.value) for entry in logs) == [
        ("VC100", "connection"),
        ("VC100", "customer"),
        ("VC200", "connection"),
    ]
    assert all(entry.previous_status != entry.new_status for entry in logs)
    assert customer.status == "inactive"
    assert aggregate_status(customer) == DisplayStatus.INACTIVE
    assert customers.saves == [customer.id]


async def test_selection_already_in_target_is_a_no_op(engine, customers, admin):
    customer = customers.add(two_vc_customer(ACTIVE, INACTIVE))

    logs = await engine.change_status(customer, INACTIVE, admin, selected_vcs=["VC200"])

    assert logs == []
    assert customer.get_status_logs() == []
    assert customers.saves == []


async def test_empty_selection_is_a_no_op(engine, customers, admin, employee):
    customer = customers.add(two_vc_customer())

    assert await engine.change_status(customer, INACTIVE, admin, selected_vcs=[]) == []
    assert await engine.change_status(customer, INACTIVE, employee, selected_vcs=[]) == []
    assert customers.saves == []


async def test_unknown_vc_is_rejected(engine, customers, admin):
    customer = customers.add(two_vc_customer())

    with pytest.raises(ValidationError, match="VC999"):
        await engine.change_status(customer, INACTIVE, admin, selected_vcs=["VC999"])


async def test_invalid_target_is_rejected(engine, customers, admin):
    customer = customers.add(make_customer())

    with pytest.raises(ValidationError, match="Invalid status"):
        await engine.change_status(customer, "suspended", admin)


# --- Plan changes ---


async def test_admin_plan_change_recomputes_balance(engine, customers, admin):
    customer = customers.add(make_customer(vc_number="VC100", connections=[make_connection("VC100", primary=True)]))

    updated = await engine.change_plan(customer, "Premium", admin)

    assert updated.package_name == "Premium"
    assert updated.package_amount == Decimal("550")
    assert updated.current_outstanding == Decimal("550")
    assert updated.get_connections()[0].plan_name == "Premium"


async def test_employee_plan_change_creates_request(engine, customers, requests_store, employee):
    customer = customers.add(make_customer())

    request = await engine.change_plan(customer, "Premium", employee, reason="Wants sports")

    assert request.action_type == ActionType.PLAN_CHANGE.value
    assert (request.current_plan, request.requested_plan) == ("Basic", "Premium")
    assert customer.package_name == "Basic"
    assert customers.saves == []


async def test_plan_change_to_inactive_or_unknown_package(engine, customers, admin):
    customer = customers.add(make_customer())

    with pytest.raises(ValidationError, match="not active"):
        await engine.change_plan(customer, "Legacy", admin)
    with pytest.raises(NotFoundError):
        await engine.change_plan(customer, "Gold", admin)
