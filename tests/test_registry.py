from decimal import Decimal

import pytest

from cableops.core.diagnostics import Diagnostics
from cableops.core.exceptions import ConflictError, NotFoundError, RegistryUnavailableError
from cableops.services.registry_service import AreaService, PackageService, RegistryLookup
from cableops.services.vc_inventory_service import VCInventoryService

from .conftest import FakeAreas, FakeInventory, FakePackages, available


async def test_snapshot_holds_all_registries(areas, packages, inventory):
    snapshot = await RegistryLookup(areas, packages, inventory).load()

    assert snapshot.areas == {"North", "South"}
    assert snapshot.packages["Premium"].price == Decimal("550")
    assert not snapshot.packages["Legacy"].is_active
    assert snapshot.vc_inventory["VC001"].is_available
    assert snapshot.is_complete


async def test_failed_registry_degrades_to_empty_with_warning(packages):
    diagnostics = Diagnostics("test")
    areas = FakeAreas(error=RegistryUnavailableError("connection refused"))
    inventory = FakeInventory(available("VC001"))

    snapshot = await RegistryLookup(areas, packages, inventory, diagnostics).load()

    assert snapshot.areas == set()
    assert snapshot.unavailable == {"areas"}
    assert not snapshot.is_complete
    assert snapshot.warnings == ["Areas registry could not be loaded: connection refused"]
    # The other registries still loaded
    assert set(snapshot.packages) == {"Basic", "Premium", "Legacy"}
    assert list(snapshot.vc_inventory) == ["VC001"]
    assert [(e.level, e.source) for e in diagnostics.events] == [("warning", "registry")]


async def test_every_registry_failing_still_returns_a_snapshot():
    error = RegistryUnavailableError("down")
    snapshot = await RegistryLookup(
        FakeAreas(error=error), FakePackages(error=error), FakeInventory(error=error)
    ).load()

    assert snapshot.unavailable == {"areas", "packages", "vc_inventory"}
    assert len(snapshot.warnings) == 3


async def test_database_registries(seeded):
    assert await AreaService(seeded).list_names() == ["North", "South"]
    assert await AreaService(seeded).exists("South")

    packages = PackageService(seeded)
    assert [p.name for p in await packages.list_active()] == ["Basic", "Premium"]
    assert (await packages.get_by_name("Legacy")).is_active is False
    with pytest.raises(NotFoundError):
        await packages.get_by_name("Gold")

    snapshot = await RegistryLookup(AreaService(seeded), packages, VCInventoryService(seeded)).load()
    assert snapshot.is_complete
    assert len(snapshot.vc_inventory) == 9


async def test_area_crud_uses_base_service(seeded):
    areas = AreaService(seeded)

    created = await areas.create({"name": "East"})
    assert await areas.list_names() == ["East", "North", "South"]

    await areas.delete(created.id)
    assert await areas.list_names() == ["North", "South"]

    with pytest.raises(ConflictError):
        await areas.create({"name": "North"})


async def test_deactivated_package_leaves_the_active_list(seeded):
    packages = PackageService(seeded)
    premium = await packages.get_by_name("Premium")

    updated = await packages.update(premium.id, {"is_active": False})

    assert updated.is_active is False
    assert (await packages.get_by_id(premium.id)).is_active is False
    assert [p.name for p in await packages.list_active()] == ["Basic"]
    assert len(await packages.get_all()) == 3
    with pytest.raises(NotFoundError):
        await packages.get_by_id(999)
