# cableops/services/action_request_service.py
"""
Action request workflow: pending -> approved | denied, both terminal.

Resolving a request first claims it with a conditional UPDATE on the pending
row, so concurrent resolvers of one request see exactly one winner. Approval
then re-reads the customer and refuses to apply anything if its state drifted
since the request was raised; a refused or failed approval hands the request
back as pending. Concurrent direct admin writes on the same customer are not
detected.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from ..core.audit import log_action
from ..core.constants import ActionType, CustomerStatus, RequestDecision, RequestStatus
from ..core.exceptions import (
    AlreadyResolvedError,
    AuthorizationError,
    NotFoundError,
    StaleRequestError,
    StoreWriteError,
    ValidationError,
)
from ..db.engine import SessionFactory
from ..models.action_request import ActionRequest
from ..models.actor import Actor
from ..models.customer import Customer, StatusLog, utcnow
from .protocols import CustomerStore, PackageRegistry
from .status_engine import aggregate_status, apply_plan_change, apply_transition, get_active_package, list_vc_slots

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DenialRecord:
    request_id: uuid.UUID
    resolved_by: str
    resolved_at: datetime
    reason: str


class ActionRequestService:
    """
    Store for action requests plus the approve/deny workflow.

    Args:
        session_factory: async_sessionmaker producing AsyncSession objects
        customers: customer store used to read live state and persist approvals
        packages: package registry, needed to approve plan changes
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        customers: Optional[CustomerStore] = None,
        packages: Optional[PackageRegistry] = None,
    ):
        self.session_factory = session_factory
        self.customers = customers
        self.packages = packages

    # --- Store ---

    async def get(self, request_id: uuid.UUID) -> ActionRequest:
        async with self.session_factory() as session:
            request = await session.get(ActionRequest, request_id)
        if not request:
            raise NotFoundError(f"Action request {request_id} not found.")
        return request

    async def save(self, request: ActionRequest) -> ActionRequest:
        async with self.session_factory() as session:
            try:
                await session.merge(request)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database error saving action request {request.id}: {e}", exc_info=True)
                raise StoreWriteError(f"Failed to save action request {request.id}: {e}")
        return request

    async def list_requests(
        self,
        status: Optional[str] = None,
        customer_id: Optional[uuid.UUID] = None,
        requested_by: Optional[str] = None,
    ) -> List[ActionRequest]:
        """Requests, newest first, optionally filtered."""
        statement = select(ActionRequest).order_by(ActionRequest.requested_at.desc())
        if status and status != "all":
            statement = statement.where(ActionRequest.status == RequestStatus(status).value)
        if customer_id:
            statement = statement.where(ActionRequest.customer_id == customer_id)
        if requested_by:
            statement = statement.where(ActionRequest.requested_by == requested_by)
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return list(result.all())

    async def count_by_status(self) -> dict[str, int]:
        counts = {s.value: 0 for s in RequestStatus}
        for request in await self.list_requests():
            counts[request.status] = counts.get(request.status, 0) + 1
        return counts

    # --- Workflow ---

    async def resolve_request(
        self,
        request: Union[ActionRequest, uuid.UUID],
        decision: Union[RequestDecision, str],
        resolver: Actor,
        notes: str = "",
    ) -> Union[List[StatusLog], DenialRecord]:
        decision = RequestDecision(decision)
        if decision == RequestDecision.APPROVE:
            return await self.approve(request, resolver, notes)
        return await self.deny(request, resolver, notes)

    async def approve(
        self,
        request: Union[ActionRequest, uuid.UUID],
        resolver: Actor,
        notes: str = "",
    ) -> List[StatusLog]:
        """
        Apply a pending request.

        Raises:
            AuthorizationError: resolver is not an admin.
            AlreadyResolvedError: the request was approved or denied before.
            StaleRequestError: the customer's live state no longer matches the request.
        """
        if self.customers is None:
            raise ValidationError("Approving requests needs a customer store.")
        live = await self._load_pending(request, resolver)
        live = await self._claim(live, RequestStatus.APPROVED, resolver, notes or "Request approved by admin")

        # The request is ours from here on; any failure hands it back as pending.
        try:
            customer = await self.customers.get(live.customer_id)
            if live.action_type == ActionType.PLAN_CHANGE.value:
                logs = await self._apply_plan_change(live, customer)
            else:
                logs = self._apply_status_change(live, customer, resolver)
            await self.customers.save(customer)
        except Exception:
            await self._unclaim(live, RequestStatus.APPROVED)
            raise

        log_action(
            "APPROVE",
            "action_request",
            live.id,
            actor=resolver,
            details={"customer_id": str(customer.id), "log_ids": [entry.id for entry in logs]},
        )
        logger.info(f"Action request {live.id} approved by {resolver.id} ({len(logs)} log entries).")
        return logs

    async def deny(
        self,
        request: Union[ActionRequest, uuid.UUID],
        resolver: Actor,
        reason: str,
    ) -> DenialRecord:
        """Discard a pending request; only resolution metadata is recorded."""
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to deny a request.")
        live = await self._load_pending(request, resolver)
        live = await self._claim(live, RequestStatus.DENIED, resolver, reason.strip())

        log_action("DENY", "action_request", live.id, actor=resolver, details={"reason": live.resolution_notes})
        logger.info(f"Action request {live.id} denied by {resolver.id}.")
        return DenialRecord(
            request_id=live.id,
            resolved_by=resolver.id,
            resolved_at=live.resolved_at,
            reason=live.resolution_notes,
        )

    async def _load_pending(self, request: Union[ActionRequest, uuid.UUID], resolver: Actor) -> ActionRequest:
        if not resolver.has_authority:
            raise AuthorizationError(f"User {resolver.id} cannot resolve action requests.")
        request_id = request.id if isinstance(request, ActionRequest) else request
        live = await self.get(request_id)
        if not live.is_pending:
            raise AlreadyResolvedError(live.id, live.status)
        return live

    async def _claim(self, live: ActionRequest, outcome: RequestStatus, resolver: Actor, notes: str) -> ActionRequest:
        """
        Move a pending request to its terminal status with a single conditional
        UPDATE. Only one of several concurrent resolvers can match the pending row.
        """
        resolved_at = utcnow()
        statement = (
            update(ActionRequest)
            .where(ActionRequest.id == live.id, ActionRequest.status == RequestStatus.PENDING.value)
            .values(status=outcome.value, resolved_by=resolver.id, resolved_at=resolved_at, resolution_notes=notes)
        )
        async with self.session_factory() as session:
            try:
                result = await session.execute(statement)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database error resolving action request {live.id}: {e}", exc_info=True)
                raise StoreWriteError(f"Failed to resolve action request {live.id}: {e}")
        if result.rowcount != 1:
            current = await self.get(live.id)
            logger.warning(f"Action request {live.id} was resolved concurrently ({current.status}).")
            raise AlreadyResolvedError(live.id, current.status)

        live.status = outcome.value
        live.resolved_by = resolver.id
        live.resolved_at = resolved_at
        live.resolution_notes = notes
        return live

    async def _unclaim(self, live: ActionRequest, outcome: RequestStatus) -> None:
        """Hand a claimed request back as pending after its changes failed to apply."""
        statement = (
            update(ActionRequest)
            .where(ActionRequest.id == live.id, ActionRequest.status == outcome.value)
            .values(status=RequestStatus.PENDING.value, resolved_by=None, resolved_at=None, resolution_notes=None)
        )
        async with self.session_factory() as session:
            await session.execute(statement)
            await session.commit()
        live.status = RequestStatus.PENDING.value
        live.resolved_by = None
        live.resolved_at = None
        live.resolution_notes = None
        logger.info(f"Action request {live.id} returned to pending.")

    def _apply_status_change(self, request: ActionRequest, customer: Customer, resolver: Actor) -> List[StatusLog]:
        slots_by_vc = {s.vc_number: s for s in list_vc_slots(customer)}
        selected = list(request.selected_vcs or ([request.vc_number] if request.vc_number else []))

        missing = [vc for vc in selected if vc not in slots_by_vc]
        if missing:
            raise StaleRequestError(request.id, f"VC numbers no longer attached: {', '.join(missing)}")

        for vc in selected:
            expected = (request.vc_statuses or {}).get(vc)
            live_status = slots_by_vc[vc].status.value
            if expected is not None and expected != live_status:
                raise StaleRequestError(request.id, f"VC {vc} is now '{live_status}', request expected '{expected}'")

        live_aggregate = aggregate_status(customer, selected).value
        if request.current_status and request.current_status != live_aggregate:
            raise StaleRequestError(
                request.id, f"status is now '{live_aggregate}', request expected '{request.current_status}'"
            )

        target = CustomerStatus(request.requested_status)
        slots = [slots_by_vc[vc] for vc in selected if slots_by_vc[vc].status != target]
        return apply_transition(
            customer,
            target,
            slots,
            changed_by=resolver.id,
            reason=request.reason,
            request_id=str(request.id),
        )

    async def _apply_plan_change(self, request: ActionRequest, customer: Customer) -> List[StatusLog]:
        if (customer.package_name or None) != (request.current_plan or None):
            raise StaleRequestError(
                request.id, f"package is now '{customer.package_name}', request expected '{request.current_plan}'"
            )
        if self.packages is None:
            raise ValidationError("Approving plan changes needs a package registry.")
        package = await get_active_package(self.packages, request.requested_plan)
        apply_plan_change(customer, package.name, package.price)
        return []
