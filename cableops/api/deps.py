# cableops/api/deps.py
"""
Shared API dependencies: the acting user, role checks, service injectors and
the mapping from domain errors to HTTP responses.

Authentication lives in front of this service; the auth layer forwards the
authenticated user in the X-Actor-Id / X-Actor-Name / X-Actor-Role headers.
"""
from fastapi import Depends, Header, HTTPException, status

from ..core.constants import ActorRole
from ..core.diagnostics import Diagnostics
from ..core.exceptions import (
    AlreadyResolvedError,
    AuthorizationError,
    CableOpsError,
    ConflictError,
    NotFoundError,
    RegistryUnavailableError,
    StaleRequestError,
    StoreWriteError,
)
from ..db.engine import SessionFactory, async_session_maker
from ..models.actor import Actor
from ..services.action_request_service import ActionRequestService
from ..services.bill_service import BillService
from ..services.billing_service import BillingService
from ..services.bulk_service import BulkService
from ..services.connection_service import ConnectionService
from ..services.customer_service import CustomerService
from ..services.import_service import ImportService
from ..services.payment_service import PaymentService
from ..services.registry_service import AreaService, PackageService
from ..services.status_engine import StatusEngine
from ..services.vc_inventory_service import VCInventoryService


def get_session_factory() -> SessionFactory:
    return async_session_maker


def get_current_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_name: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    if not x_actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Actor-Id header")
    try:
        role = ActorRole((x_actor_role or ActorRole.EMPLOYEE.value).lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Unknown role: {x_actor_role}")
    return Actor(id=x_actor_id, name=x_actor_name or "", role=role)


class RoleChecker:
    """
    Dependency class to check if the acting user has one of the allowed roles.

    Usage:
        @router.post("/admin-only")
        async def admin_endpoint(actor: Actor = Depends(RoleChecker(["admin"]))):
            ...
    """

    def __init__(self, allowed_roles: list[str]):
        self.allowed_roles = allowed_roles

    def __call__(self, actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role.value not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join(self.allowed_roles)}. Your role: {actor.role.value}",
            )
        return actor


require_admin = RoleChecker([ActorRole.ADMIN.value])


# --- Dependency Injectors ---
def get_customer_service(factory: SessionFactory = Depends(get_session_factory)) -> CustomerService:
    return CustomerService(factory)


def get_package_service(factory: SessionFactory = Depends(get_session_factory)) -> PackageService:
    return PackageService(factory)


def get_area_service(factory: SessionFactory = Depends(get_session_factory)) -> AreaService:
    return AreaService(factory)


def get_inventory_service(factory: SessionFactory = Depends(get_session_factory)) -> VCInventoryService:
    return VCInventoryService(factory)


def get_request_service(
    factory: SessionFactory = Depends(get_session_factory),
    customers: CustomerService = Depends(get_customer_service),
    packages: PackageService = Depends(get_package_service),
) -> ActionRequestService:
    return ActionRequestService(factory, customers, packages)


def get_status_engine(
    customers: CustomerService = Depends(get_customer_service),
    requests: ActionRequestService = Depends(get_request_service),
    packages: PackageService = Depends(get_package_service),
) -> StatusEngine:
    return StatusEngine(customers, requests, packages)


def get_billing_service(
    factory: SessionFactory = Depends(get_session_factory),
    customers: CustomerService = Depends(get_customer_service),
) -> BillingService:
    return BillingService(customers, PaymentService(factory), BillService(factory))


def get_bulk_service(
    customers: CustomerService = Depends(get_customer_service),
    areas: AreaService = Depends(get_area_service),
    packages: PackageService = Depends(get_package_service),
) -> BulkService:
    return BulkService(customers, areas, packages)


def get_connection_service(
    customers: CustomerService = Depends(get_customer_service),
    inventory: VCInventoryService = Depends(get_inventory_service),
) -> ConnectionService:
    return ConnectionService(customers, inventory)


def get_import_service(
    customers: CustomerService = Depends(get_customer_service),
    inventory: VCInventoryService = Depends(get_inventory_service),
    areas: AreaService = Depends(get_area_service),
    packages: PackageService = Depends(get_package_service),
) -> ImportService:
    return ImportService(customers, inventory, areas, packages, diagnostics=Diagnostics("cableops.import"))


def http_error(exc: CableOpsError) -> HTTPException:
    """
    Translate a domain error into the HTTP error surfaced to the caller.

    Both request conflicts are 409; their detail carries a code so clients can
    tell a stale request (refresh and ask again) from an already resolved one.
    """
    if isinstance(exc, StaleRequestError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "stale_request", "message": str(exc), "request_id": str(exc.request_id)},
        )
    if isinstance(exc, AlreadyResolvedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "already_resolved",
                "message": str(exc),
                "request_id": str(exc.request_id),
                "status": exc.status,
            },
        )
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, AuthorizationError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (RegistryUnavailableError, StoreWriteError)):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))
