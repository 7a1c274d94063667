from decimal import Decimal

import pytest

from cableops.core.constants import VCStatus
from cableops.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StoreWriteError,
    VCUnavailableError,
)
from cableops.services.connection_service import ConnectionService
from cableops.services.status_engine import has_multiple_vcs, list_vc_slots

from .conftest import make_connection, make_customer


@pytest.fixture
def connections(customers, inventory):
    return ConnectionService(customers, inventory)


async def test_first_vc_becomes_primary(connections, customers, inventory, admin):
    customer = customers.add(make_customer(vc_number=None))

    connection = await connections.add_connection(customer.id, "VC001", admin)

    assert connection.is_primary
    assert customer.vc_number == "VC001"
    assert inventory.items["VC001"].status == VCStatus.ACTIVE.value
    assert inventory.items["VC001"].customer_id == customer.id


async def test_legacy_vc_is_kept_when_a_second_vc_is_added(connections, customers, admin):
    customer = customers.add(make_customer(vc_number="VC100"))

    connection = await connections.add_connection(customer.id, "VC002", admin, plan_name="Premium")

    assert not connection.is_primary
    assert connection.is_custom_plan
    assert [(s.vc_number, s.is_primary) for s in list_vc_slots(customer)] == [("VC100", True), ("VC002", False)]
    assert has_multiple_vcs(customer)


async def test_make_primary_demotes_the_old_primary(connections, customers, admin):
    customer = customers.add(make_customer(vc_number="VC100"))

    await connections.add_connection(customer.id, "VC003", admin, make_primary=True)

    assert customer.vc_number == "VC003"
    primaries = [c.vc_number for c in customer.get_connections() if c.is_primary]
    assert primaries == ["VC003"]
    assert {c.vc_number for c in customer.get_connections()} == {"VC100", "VC003"}


async def test_attached_or_unavailable_vc_is_rejected(connections, customers, inventory, admin):
    customer = customers.add(make_customer(vc_number="VC001", connections=[make_connection("VC001", primary=True)]))
    inventory.items["VC002"].status = VCStatus.INACTIVE.value

    with pytest.raises(ConflictError, match="already attached"):
        await connections.add_connection(customer.id, "VC001", admin)
    with pytest.raises(VCUnavailableError, match="status: inactive"):
        await connections.add_connection(customer.id, "VC002", admin)
    with pytest.raises(VCUnavailableError, match="does not exist"):
        await connections.add_connection(customer.id, "VC999", admin)
    assert customers.saves == []


async def test_failed_save_hands_the_vc_back(connections, customers, inventory, admin):
    customer = customers.add(make_customer(vc_number=None))
    customers.fail_for.add(customer.id)

    with pytest.raises(StoreWriteError):
        await connections.add_connection(customer.id, "VC004", admin)

    assert inventory.released == ["VC004"]
    assert inventory.items["VC004"].status == VCStatus.AVAILABLE.value


async def test_releasing_primary_promotes_next_connection(connections, customers, inventory, admin):
    customer = customers.add(
        make_customer(
            vc_number="VC001",
            connections=[make_connection("VC001", primary=True), make_connection("VC002")],
        )
    )

    released = await connections.release_connection(customer.id, "VC001", admin, reason="Box returned")

    assert released.is_released
    assert customer.vc_number == "VC002"
    assert [(c.vc_number, c.is_primary) for c in customer.get_connections()] == [("VC002", True)]
    # Released connections stay in the document
    assert len(customer.get_connections(include_released=True)) == 2
    assert inventory.released == ["VC001"]
    assert not has_multiple_vcs(customer)


async def test_releasing_last_vc_clears_primary(connections, customers, admin):
    customer = customers.add(make_customer(vc_number="VC005", connections=[make_connection("VC005", primary=True)]))

    await connections.release_connection(customer.id, "VC005", admin)

    assert customer.vc_number is None
    assert list_vc_slots(customer) == []


async def test_release_checks(connections, customers, admin, employee):
    customer = customers.add(make_customer(vc_number="VC001"))

    with pytest.raises(NotFoundError):
        await connections.release_connection(customer.id, "VC009", admin)
    with pytest.raises(AuthorizationError):
        await connections.release_connection(customer.id, "VC001", employee)
    with pytest.raises(AuthorizationError):
        await connections.add_connection(customer.id, "VC002", employee)


async def test_new_connections_owe_their_plan_price(connections, customers, admin):
    customer = customers.add(make_customer(vc_number="VC100"))

    added = await connections.add_connection(customer.id, "VC002", admin, plan_name="Premium", plan_price=Decimal("550"))

    assert added.current_outstanding == Decimal("550")
    by_vc = {c.vc_number: c for c in customer.get_connections()}
    assert by_vc["VC100"].current_outstanding == Decimal("300")
    for c in by_vc.values():
        assert c.current_outstanding == c.previous_outstanding + c.plan_price - c.cycle_payments
