# cableops/services/registry_service.py
"""
Registry services (areas, packages) and the read-only registry snapshot used by
the CSV validator.

A snapshot is loaded fresh for every validation session because the
registries change between imports. When one registry cannot be read it is
degraded to empty with a warning instead of aborting the whole load; the
snapshot then reports itself as incomplete.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from ..core.constants import VCStatus
from ..core.diagnostics import Diagnostics
from ..core.exceptions import NotFoundError, RegistryUnavailableError
from ..db.engine import SessionFactory
from ..models.area import Area
from ..models.package import Package
from .base_service import BaseCRUDService
from .protocols import AreaRegistry, PackageRegistry, VCInventory

logger = logging.getLogger(__name__)


class AreaService(BaseCRUDService[Area]):
    def __init__(self, session_factory: SessionFactory):
        super().__init__(session_factory, Area)

    async def list_names(self) -> List[str]:
        try:
            async with self.session_factory() as session:
                result = await session.exec(select(Area.name).order_by(Area.name))
                return list(result.all())
        except SQLAlchemyError as e:
            raise RegistryUnavailableError(f"Could not load areas: {e}")

    async def exists(self, name: str) -> bool:
        return name in await self.list_names()


class PackageService(BaseCRUDService[Package]):
    def __init__(self, session_factory: SessionFactory):
        super().__init__(session_factory, Package)

    async def list_packages(self) -> List[Package]:
        try:
            async with self.session_factory() as session:
                result = await session.exec(select(Package).order_by(Package.name))
                return list(result.all())
        except SQLAlchemyError as e:
            raise RegistryUnavailableError(f"Could not load packages: {e}")

    async def list_active(self) -> List[Package]:
        return [p for p in await self.list_packages() if p.is_active]

    async def get_by_name(self, name: str) -> Package:
        async with self.session_factory() as session:
            result = await session.exec(select(Package).where(Package.name == name))
            package = result.first()
        if not package:
            raise NotFoundError(f'Package "{name}" not found')
        return package


@dataclass(frozen=True)
class PackageInfo:
    price: Decimal
    is_active: bool


@dataclass(frozen=True)
class VCInfo:
    status: str
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.status == VCStatus.AVAILABLE.value


@dataclass
class RegistrySnapshot:
    areas: set[str] = field(default_factory=set)
    packages: dict[str, PackageInfo] = field(default_factory=dict)
    vc_inventory: dict[str, VCInfo] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    # Names of the registries that failed to load
    unavailable: set[str] = field(default_factory=set)

    @property
    def is_complete(self) -> bool:
        return not self.unavailable


class RegistryLookup:
    """Loads areas, packages and VC inventory concurrently into one snapshot."""

    def __init__(
        self,
        areas: AreaRegistry,
        packages: PackageRegistry,
        vc_inventory: VCInventory,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.areas = areas
        self.packages = packages
        self.vc_inventory = vc_inventory
        self.diagnostics = diagnostics

    async def load(self) -> RegistrySnapshot:
        logger.info("Loading registry snapshot (areas, packages, VC inventory)...")
        areas, packages, vc_items = await asyncio.gather(
            self.areas.list_names(),
            self.packages.list_packages(),
            self.vc_inventory.list_all(),
            return_exceptions=True,
        )

        snapshot = RegistrySnapshot()

        if isinstance(areas, BaseException):
            self._degrade(snapshot, "areas", areas)
        else:
            snapshot.areas = set(areas)

        if isinstance(packages, BaseException):
            self._degrade(snapshot, "packages", packages)
        else:
            snapshot.packages = {
                p.name: PackageInfo(price=Decimal(str(p.price)), is_active=bool(p.is_active))
                for p in packages
            }

        if isinstance(vc_items, BaseException):
            self._degrade(snapshot, "vc_inventory", vc_items)
        else:
            snapshot.vc_inventory = {
                item.vc_number: VCInfo(
                    status=item.status,
                    customer_id=item.customer_id,
                    customer_name=item.customer_name,
                )
                for item in vc_items
            }

        logger.info(
            f"✅ Registry snapshot loaded: {len(snapshot.areas)} areas, "
            f"{len(snapshot.packages)} packages, {len(snapshot.vc_inventory)} VC numbers"
        )
        return snapshot

    def _degrade(self, snapshot: RegistrySnapshot, name: str, error: BaseException) -> None:
        message = f"{name.replace('_', ' ').capitalize()} registry could not be loaded: {error}"
        snapshot.unavailable.add(name)
        snapshot.warnings.append(message)
        logger.warning(f"⚠️ {message}")
        if self.diagnostics:
            self.diagnostics.warning("registry", message, registry=name)
