import uuid

import pytest

from cableops.core.constants import VCStatus
from cableops.core.exceptions import ConflictError, NotFoundError, VCUnavailableError
from cableops.services.vc_inventory_service import VCInventoryService


@pytest.fixture
def inventory_service(seeded):
    return VCInventoryService(seeded)


async def test_assign_and_release_keep_history(inventory_service):
    owner = uuid.uuid4()

    item = await inventory_service.assign("VC001", owner, "Meena Rao")
    assert item.status == VCStatus.ACTIVE.value
    assert [i.vc_number for i in await inventory_service.list_for_customer(owner)] == ["VC001"]

    released = await inventory_service.release("VC001", reason="Box returned")

    assert released.status == VCStatus.AVAILABLE.value
    assert released.customer_id is None
    assert [h["status"] for h in released.status_history] == ["available", "active", "available"]
    assert released.status_history[-1]["reason"] == "Box returned"
    (ownership,) = released.ownership_history
    assert ownership["customer_name"] == "Meena Rao"
    assert ownership["end_date"] is not None


async def test_assigned_vc_cannot_be_assigned_again(inventory_service):
    await inventory_service.assign("VC002", uuid.uuid4(), "Meena Rao")

    with pytest.raises(VCUnavailableError, match="already assigned to customer: Meena Rao"):
        await inventory_service.assign("VC002", uuid.uuid4(), "Kiran Das")
    with pytest.raises(VCUnavailableError, match="does not exist"):
        await inventory_service.assign("VC404", uuid.uuid4(), "Kiran Das")

    available = [i.vc_number for i in await inventory_service.list_available()]
    assert "VC002" not in available
    assert len(available) == 8


async def test_inventory_numbers_are_unique(inventory_service):
    with pytest.raises(ConflictError):
        await inventory_service.create_many(["VC010", "VC001"])
    assert await inventory_service.lookup("VC010") is None


async def test_release_of_unknown_vc(inventory_service):
    with pytest.raises(NotFoundError):
        await inventory_service.release("VC404")
