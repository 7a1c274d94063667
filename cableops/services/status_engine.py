# cableops/services/status_engine.py
"""
Connection & status engine.

The single place where per-VC and aggregate customer status is derived and
changed. Admins change status directly; anyone else produces a pending
ActionRequest. Every transition appends StatusLog entries and the customer
(connections, logs, aggregate status) is persisted with one write.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from ..core.audit import log_action
from ..core.constants import ActionType, CustomerStatus, DisplayStatus, LogScope
from ..core.exceptions import NotFoundError, ValidationError, VCSelectionRequired
from ..models.action_request import ActionRequest
from ..models.actor import Actor
from ..models.customer import Connection, Customer, StatusLog, utcnow
from ..models.package import Package
from .balance import apply_balance, recompute_balance, to_decimal
from .protocols import CustomerStore, PackageRegistry, RequestStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VCSlot:
    """A VC number of a customer as seen by the status engine."""

    vc_number: str
    status: CustomerStatus
    is_primary: bool
    # None for the legacy customer-level VC that has no explicit connection
    connection: Optional[Connection] = None


def list_vc_slots(customer: Customer) -> List[VCSlot]:
    """
    All live VC numbers of a customer, primary first.

    The legacy customer-level vc_number is reported with the customer's own
    status when no connection carries it.
    """
    connections = customer.get_connections()
    legacy_vc = customer.vc_number or None
    slots: List[VCSlot] = []

    if legacy_vc and all(c.vc_number != legacy_vc for c in connections):
        slots.append(VCSlot(legacy_vc, CustomerStatus(customer.status), True))

    for conn in connections:
        is_primary = conn.is_primary or (legacy_vc is not None and conn.vc_number == legacy_vc)
        slots.append(VCSlot(conn.vc_number, CustomerStatus(conn.status), is_primary, conn))

    slots.sort(key=lambda s: not s.is_primary)
    return slots


def has_multiple_vcs(customer: Customer) -> bool:
    return len(list_vc_slots(customer)) > 1


def aggregate_status(customer: Customer, vc_numbers: Optional[Iterable[str]] = None) -> DisplayStatus:
    """
    Display status over the customer's VCs (optionally only the given ones).
    Uniform statuses collapse to that status, anything else is "mixed".
    """
    slots = list_vc_slots(customer)
    if vc_numbers is not None:
        wanted = set(vc_numbers)
        slots = [s for s in slots if s.vc_number in wanted]
    statuses = {s.status for s in slots}
    if not statuses:
        return DisplayStatus(CustomerStatus(customer.status).value)
    if len(statuses) == 1:
        return DisplayStatus(statuses.pop().value)
    return DisplayStatus.MIXED


def eligible_vcs(customer: Customer, target: CustomerStatus) -> List[VCSlot]:
    """VCs whose status would actually change when moving to target."""
    target = CustomerStatus(target)
    return [s for s in list_vc_slots(customer) if s.status != target]


def resolve_selection(
    customer: Customer,
    target: CustomerStatus,
    selected_vcs: Optional[Sequence[str]],
) -> List[VCSlot]:
    """
    Turn the caller's VC selection into the slots to change.

    A multi-VC customer must name the VCs explicitly; a single-VC customer
    defaults to its only VC. VCs already in the target status are dropped.
    """
    slots = list_vc_slots(customer)
    if not slots:
        raise ValidationError(f"Customer {customer.id} has no VC numbers.")

    eligible = [s for s in slots if s.status != target]

    if selected_vcs is None:
        if len(slots) > 1:
            raise VCSelectionRequired([s.vc_number for s in eligible])
        selected_vcs = [slots[0].vc_number]

    known = {s.vc_number for s in slots}
    unknown = [vc for vc in selected_vcs if vc not in known]
    if unknown:
        raise ValidationError(f"VC numbers not attached to customer {customer.id}: {', '.join(unknown)}")

    wanted = set(selected_vcs)
    return [s for s in eligible if s.vc_number in wanted]


def apply_transition(
    customer: Customer,
    target: CustomerStatus,
    slots: Sequence[VCSlot],
    changed_by: str,
    reason: str = "",
    request_id: Optional[str] = None,
) -> List[StatusLog]:
    """
    Apply a status change to the given VC slots in memory and return the new logs.

    One connection-level log per changed connection. The customer aggregate is
    only touched (with its own log) when the primary VC is part of the change.
    """
    target = CustomerStatus(target)
    now = utcnow()
    logs: List[StatusLog] = []
    connections = customer.get_connections(include_released=True)
    by_vc = {s.vc_number: s for s in slots}
    primary_vc: Optional[str] = None

    updated_connections = []
    for conn in connections:
        slot = by_vc.get(conn.vc_number)
        if slot is not None and not conn.is_released and CustomerStatus(conn.status) != target:
            logs.append(
                StatusLog(
                    previous_status=conn.status,
                    new_status=target,
                    changed_by=changed_by,
                    changed_at=now,
                    reason=reason,
                    request_id=request_id,
                    vc_number=conn.vc_number,
                    scope=LogScope.CONNECTION,
                )
            )
            conn = conn.model_copy(update={"status": target})
        updated_connections.append(conn)

    for slot in slots:
        if slot.is_primary:
            primary_vc = slot.vc_number

    previous_customer_status = CustomerStatus(customer.status)
    if primary_vc is not None and previous_customer_status != target:
        logs.append(
            StatusLog(
                previous_status=previous_customer_status,
                new_status=target,
                changed_by=changed_by,
                changed_at=now,
                reason=reason,
                request_id=request_id,
                vc_number=primary_vc,
                scope=LogScope.CUSTOMER,
            )
        )
        customer.status = target.value
        if target == CustomerStatus.INACTIVE:
            customer.deactivated_at = now
        else:
            customer.activated_at = now

    if logs:
        customer.set_connections(updated_connections)
        customer.add_status_logs(logs)
    return logs


def action_type_for(target: CustomerStatus) -> ActionType:
    if target == CustomerStatus.ACTIVE:
        return ActionType.ACTIVATION
    if target == CustomerStatus.INACTIVE:
        return ActionType.DEACTIVATION
    return ActionType.STATUS_CHANGE


class StatusEngine:
    """
    Entry point for status changes.

    Args:
        customers: store used to persist the customer document
        requests: store used to persist action requests raised by non-admins
        packages: registry used to validate plan changes
    """

    def __init__(
        self,
        customers: CustomerStore,
        requests: RequestStore,
        packages: Optional[PackageRegistry] = None,
    ):
        self.customers = customers
        self.requests = requests
        self.packages = packages

    async def change_status(
        self,
        customer: Customer,
        target: Union[CustomerStatus, str],
        actor: Actor,
        selected_vcs: Optional[Sequence[str]] = None,
        reason: str = "",
    ) -> Union[List[StatusLog], ActionRequest]:
        """
        Change the status of the selected VCs of a customer.

        Returns:
            The new StatusLog entries when the actor may act directly (empty
            when nothing had to change), or the pending ActionRequest otherwise.

        Raises:
            ValidationError: invalid target or VC numbers that are not the customer's.
            VCSelectionRequired: multi-VC customer without an explicit selection.
        """
        try:
            target = CustomerStatus(target)
        except ValueError:
            raise ValidationError(f"Invalid status '{target}'. Use active, inactive or demo.")

        slots = resolve_selection(customer, target, selected_vcs)

        if not slots:
            logger.info(f"No VC of customer {customer.id} needs a change to '{target.value}'; nothing to do.")
            return []

        if not actor.has_authority:
            return await self._raise_request(customer, target, slots, actor, reason)

        logs = apply_transition(customer, target, slots, changed_by=actor.id, reason=reason)
        await self.customers.save(customer)

        log_action(
            "STATUS_CHANGE",
            "customer",
            customer.id,
            actor=actor,
            details={
                "target": target.value,
                "vc_numbers": [s.vc_number for s in slots],
                "log_ids": [entry.id for entry in logs],
            },
        )
        logger.info(
            f"Customer {customer.id}: {len(slots)} VC(s) moved to '{target.value}' by {actor.id} "
            f"({len(logs)} log entries)."
        )
        return logs

    async def _raise_request(
        self,
        customer: Customer,
        target: CustomerStatus,
        slots: Sequence[VCSlot],
        actor: Actor,
        reason: str,
    ) -> ActionRequest:
        vc_numbers = [s.vc_number for s in slots]
        request = ActionRequest(
            customer_id=customer.id,
            customer_name=customer.name,
            vc_number=vc_numbers[0],
            selected_vcs=vc_numbers,
            action_type=action_type_for(target).value,
            requested_status=target.value,
            current_status=aggregate_status(customer, vc_numbers).value,
            vc_statuses={s.vc_number: s.status.value for s in slots},
            current_plan=customer.package_name,
            requested_by=actor.id,
            requested_by_name=actor.name,
            reason=reason,
        )
        await self.requests.save(request)
        log_action(
            "REQUEST_CREATED",
            "action_request",
            request.id,
            actor=actor,
            details={"customer_id": str(customer.id), "target": target.value, "vc_numbers": vc_numbers},
        )
        logger.info(f"Action request {request.id} raised by {actor.id} for customer {customer.id}.")
        return request

    async def change_plan(
        self,
        customer: Customer,
        package_name: str,
        actor: Actor,
        reason: str = "",
    ) -> Union[Customer, ActionRequest]:
        """
        Move a customer to another package.

        Admins get the change applied immediately (balance recomputed); anyone
        else raises a pending plan_change request.
        """
        if customer.package_name == package_name:
            raise ValidationError(f"Customer {customer.id} is already on package '{package_name}'.")
        if self.packages is None:
            raise ValidationError("Plan changes need a package registry.")

        package = await get_active_package(self.packages, package_name)

        if not actor.has_authority:
            request = ActionRequest(
                customer_id=customer.id,
                customer_name=customer.name,
                vc_number=customer.vc_number,
                action_type=ActionType.PLAN_CHANGE.value,
                current_status=CustomerStatus(customer.status).value,
                current_plan=customer.package_name,
                requested_plan=package.name,
                requested_by=actor.id,
                requested_by_name=actor.name,
                reason=reason,
            )
            await self.requests.save(request)
            log_action(
                "REQUEST_CREATED",
                "action_request",
                request.id,
                actor=actor,
                details={"customer_id": str(customer.id), "requested_plan": package.name},
            )
            return request

        previous_plan = customer.package_name
        apply_plan_change(customer, package.name, package.price)
        await self.customers.save(customer)
        log_action(
            "PLAN_CHANGE",
            "customer",
            customer.id,
            actor=actor,
            details={"from": previous_plan, "to": package.name, "reason": reason},
        )
        return customer


async def get_active_package(packages: PackageRegistry, package_name: str) -> Package:
    for package in await packages.list_packages():
        if package.name == package_name:
            if not package.is_active:
                raise ValidationError(f'Package "{package_name}" is not active')
            return package
    raise NotFoundError(f'Package "{package_name}" not found')


def apply_plan_change(customer: Customer, package_name: str, price) -> Customer:
    """
    Switch the customer (and its primary, non-custom connection) to a package
    and recompute the outstanding balance with the new package amount.
    """
    customer.package_name = package_name
    customer.package_amount = to_decimal(price, "package price")
    connections = customer.get_connections(include_released=True)
    if connections:
        customer.set_connections(
            [
                c.model_copy(update={"plan_name": package_name, "plan_price": customer.package_amount})
                if (c.is_primary or c.vc_number == customer.vc_number) and not c.is_custom_plan and not c.is_released
                else c
                for c in connections
            ]
        )
    apply_balance(customer, recompute_balance(customer))
    return customer
