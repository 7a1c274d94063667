# cableops/services/connection_service.py
"""
Connection management: attach a VC from inventory to a customer and release it
back. Connections are never deleted; a released connection keeps its history
and is ignored by every status computation.
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional

from ..core.audit import log_action
from ..core.constants import CustomerStatus
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError
from ..models.actor import Actor
from ..models.customer import Connection, utcnow
from .balance import open_connection, to_decimal
from .protocols import CustomerStore, VCInventory
from .status_engine import list_vc_slots

logger = logging.getLogger(__name__)


class ConnectionService:
    def __init__(self, customers: CustomerStore, inventory: VCInventory):
        self.customers = customers
        self.inventory = inventory

    async def add_connection(
        self,
        customer_id: uuid.UUID,
        vc_number: str,
        actor: Actor,
        plan_name: Optional[str] = None,
        plan_price: Optional[Decimal] = None,
        make_primary: bool = False,
    ) -> Connection:
        """
        Assign an available VC to the customer as a new active connection.

        The first VC of a customer becomes its primary. If the customer write
        fails the VC is handed back to inventory.

        Raises:
            AuthorizationError: actor is not an admin.
            ConflictError: the VC is already one of the customer's.
            VCUnavailableError: the VC is not available in inventory.
        """
        if not actor.has_authority:
            raise AuthorizationError(f"User {actor.id} cannot assign VC numbers.")
        vc_number = vc_number.strip()
        customer = await self.customers.get(customer_id)
        slots = list_vc_slots(customer)
        if any(s.vc_number == vc_number for s in slots):
            raise ConflictError(f'VC number "{vc_number}" is already attached to customer {customer.id}')

        await self.inventory.assign(vc_number, customer.id, customer.name)

        is_primary = make_primary or not slots
        connection = open_connection(
            Connection(
                vc_number=vc_number,
                is_primary=is_primary,
                plan_name=plan_name or customer.package_name,
                plan_price=to_decimal(plan_price if plan_price is not None else customer.package_amount, "plan price"),
                is_custom_plan=plan_name is not None and plan_name != customer.package_name,
                status=CustomerStatus.ACTIVE,
            )
        )
        connections = customer.get_connections(include_released=True)
        legacy = next((s for s in slots if s.connection is None), None)
        if legacy is not None:
            # The legacy customer-level VC becomes an explicit connection so it
            # survives a change of primary.
            connections.append(
                open_connection(
                    Connection(
                        vc_number=legacy.vc_number,
                        is_primary=True,
                        plan_name=customer.package_name,
                        plan_price=to_decimal(customer.package_amount, "package amount"),
                        status=legacy.status,
                        assigned_at=customer.created_at,
                    )
                )
            )
        if is_primary:
            connections = [c.model_copy(update={"is_primary": False}) for c in connections]
            customer.vc_number = vc_number
        customer.set_connections([*connections, connection])

        try:
            await self.customers.save(customer)
        except Exception:
            logger.error(f"Saving customer {customer.id} failed; releasing VC {vc_number} back to inventory.")
            await self.inventory.release(vc_number, reason="Assignment rolled back")
            raise

        log_action(
            "ASSIGN_VC",
            "customer",
            customer.id,
            actor=actor,
            details={"vc_number": vc_number, "primary": is_primary},
        )
        return connection

    async def release_connection(
        self,
        customer_id: uuid.UUID,
        vc_number: str,
        actor: Actor,
        reason: str = "",
    ) -> Optional[Connection]:
        """
        Soft-release one of the customer's VCs and return it to inventory.

        When the primary VC is released the next live connection is promoted.
        Returns the released connection, or None for a legacy VC that had no
        explicit connection.
        """
        if not actor.has_authority:
            raise AuthorizationError(f"User {actor.id} cannot release VC numbers.")
        customer = await self.customers.get(customer_id)
        slots = {s.vc_number: s for s in list_vc_slots(customer)}
        slot = slots.get(vc_number)
        if slot is None:
            raise NotFoundError(f'VC number "{vc_number}" is not attached to customer {customer.id}')

        now = utcnow()
        released: Optional[Connection] = None
        connections = []
        for c in customer.get_connections(include_released=True):
            if c.vc_number == vc_number and not c.is_released:
                c = c.model_copy(update={"released_at": now, "is_primary": False})
                released = c
            connections.append(c)

        if slot.is_primary:
            successor = next((c for c in connections if not c.is_released), None)
            if successor is not None:
                connections = [
                    c.model_copy(update={"is_primary": True}) if c.id == successor.id else c for c in connections
                ]
                customer.vc_number = successor.vc_number
            else:
                customer.vc_number = None
        customer.set_connections(connections)

        await self.customers.save(customer)
        await self.inventory.release(vc_number, reason=reason or f"Released from {customer.name}")

        log_action(
            "RELEASE_VC",
            "customer",
            customer.id,
            actor=actor,
            details={"vc_number": vc_number, "reason": reason, "new_primary": customer.vc_number},
        )
        logger.info(f"VC {vc_number} released from customer {customer.id}.")
        return released
