import os

# Must be set before cableops.db.engine builds its module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import uuid  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from cableops.core.constants import ActorRole, CustomerStatus, VCStatus  # noqa: E402
from cableops.core.exceptions import NotFoundError, StoreWriteError, VCUnavailableError  # noqa: E402
from cableops.db.engine import build_engine, build_session_factory, create_db_and_tables  # noqa: E402
from cableops.models.action_request import ActionRequest  # noqa: E402
from cableops.models.actor import Actor  # noqa: E402
from cableops.models.area import Area  # noqa: E402
from cableops.models.customer import Connection, Customer  # noqa: E402
from cableops.models.package import Package  # noqa: E402
from cableops.models.vc_inventory import VCInventoryItem  # noqa: E402
from cableops.services.vc_inventory_service import VCInventoryService  # noqa: E402


# --- Actors ---


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", name="Asha Admin", role=ActorRole.ADMIN)


@pytest.fixture
def employee() -> Actor:
    return Actor(id="emp-1", name="Ravi Field", role=ActorRole.EMPLOYEE)


# --- Customer builders ---


def make_customer(
    vc_number: Optional[str] = "VC100",
    status: CustomerStatus = CustomerStatus.ACTIVE,
    connections: Optional[list[Connection]] = None,
    **fields,
) -> Customer:
    customer = Customer(
        name=fields.pop("name", "Meena Rao"),
        phone_number=fields.pop("phone_number", "9876543210"),
        area=fields.pop("area", "North"),
        vc_number=vc_number,
        package_name=fields.pop("package_name", "Basic"),
        package_amount=fields.pop("package_amount", Decimal("300")),
        status=status.value,
        **fields,
    )
    customer.set_connections(connections or [])
    return customer


def make_connection(vc_number: str, status: CustomerStatus = CustomerStatus.ACTIVE, primary: bool = False) -> Connection:
    return Connection(
        vc_number=vc_number,
        is_primary=primary,
        plan_name="Basic",
        plan_price=Decimal("300"),
        status=status,
    )


# --- In-memory collaborators ---


class FakeCustomerStore:
    def __init__(self, *customers: Customer):
        self.customers = {c.id: c for c in customers}
        self.saves: list[uuid.UUID] = []
        self.fail_for: set[uuid.UUID] = set()

    def add(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        return customer

    async def get(self, customer_id):
        if customer_id not in self.customers:
            raise NotFoundError(f"Customer {customer_id} not found.")
        return self.customers[customer_id]

    async def save(self, customer):
        if customer.id in self.fail_for:
            raise StoreWriteError(f"Failed to save customer {customer.id}")
        self.saves.append(customer.id)
        self.customers[customer.id] = customer
        return customer

    async def append_status_log(self, customer_id, entries):
        customer = await self.get(customer_id)
        customer.add_status_logs(list(entries))
        return customer


class FakeRequestStore:
    def __init__(self):
        self.requests: dict[uuid.UUID, ActionRequest] = {}

    async def get(self, request_id):
        if request_id not in self.requests:
            raise NotFoundError(f"Action request {request_id} not found.")
        return self.requests[request_id]

    async def save(self, request):
        self.requests[request.id] = request
        return request


class FakeAreas:
    def __init__(self, *names: str, error: Optional[Exception] = None):
        self.names = list(names)
        self.error = error

    async def list_names(self):
        if self.error:
            raise self.error
        return list(self.names)


class FakePackages:
    def __init__(self, *packages: Package, error: Optional[Exception] = None):
        self.packages = list(packages)
        self.error = error

    async def list_packages(self):
        if self.error:
            raise self.error
        return list(self.packages)

    async def list_active(self):
        return [p for p in await self.list_packages() if p.is_active]


class FakeInventory:
    def __init__(self, *items: VCInventoryItem, error: Optional[Exception] = None):
        self.items = {i.vc_number: i for i in items}
        self.error = error
        self.released: list[str] = []

    async def list_all(self):
        if self.error:
            raise self.error
        return list(self.items.values())

    async def lookup(self, vc_number):
        return self.items.get(vc_number)

    async def assign(self, vc_number, customer_id, customer_name):
        item = self.items.get(vc_number)
        if item is None:
            raise VCUnavailableError(vc_number)
        if item.status != VCStatus.AVAILABLE.value:
            raise VCUnavailableError(vc_number, status=item.status, customer_name=item.customer_name)
        item.status = VCStatus.ACTIVE.value
        item.customer_id = customer_id
        item.customer_name = customer_name
        return item

    async def release(self, vc_number, reason=""):
        item = self.items[vc_number]
        item.status = VCStatus.AVAILABLE.value
        item.customer_id = None
        item.customer_name = None
        self.released.append(vc_number)
        return item


def available(vc_number: str) -> VCInventoryItem:
    return VCInventoryItem(vc_number=vc_number, status=VCStatus.AVAILABLE.value)


def basic_packages() -> list[Package]:
    return [
        Package(name="Basic", price=Decimal("300"), is_active=True),
        Package(name="Premium", price=Decimal("550"), is_active=True),
        Package(name="Legacy", price=Decimal("200"), is_active=False),
    ]


@pytest.fixture
def customers() -> FakeCustomerStore:
    return FakeCustomerStore()


@pytest.fixture
def requests_store() -> FakeRequestStore:
    return FakeRequestStore()


@pytest.fixture
def packages() -> FakePackages:
    return FakePackages(*basic_packages())


@pytest.fixture
def areas() -> FakeAreas:
    return FakeAreas("North", "South")


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory(*(available(f"VC00{i}") for i in range(1, 10)))


# --- Database ---


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cableops-test.sqlite'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Areas North/South, packages Basic/Premium/Legacy(inactive), VC001..VC009 available."""
    async with session_factory() as session:
        session.add_all([Area(name="North"), Area(name="South"), *basic_packages()])
        await session.commit()
    await VCInventoryService(session_factory).create_many([f"VC00{i}" for i in range(1, 10)])
    return session_factory
