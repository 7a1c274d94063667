"""
Centralized constants.
Removes "magic strings" and gives strong typing to common values.
"""

from enum import Enum, unique


@unique
class CustomerStatus(str, Enum):
    """Status of a customer account or of a single VC connection."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DEMO = "demo"


@unique
class DisplayStatus(str, Enum):
    """Aggregate status shown for a customer with several connections."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DEMO = "demo"
    MIXED = "mixed"


@unique
class VCStatus(str, Enum):
    """Status of an item in the VC inventory."""

    AVAILABLE = "available"
    ACTIVE = "active"
    INACTIVE = "inactive"


@unique
class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


@unique
class RequestDecision(str, Enum):
    APPROVE = "approve"
    DENY = "deny"


@unique
class ActionType(str, Enum):
    """Kinds of change an employee can ask an admin to perform."""

    ACTIVATION = "activation"
    DEACTIVATION = "deactivation"
    STATUS_CHANGE = "status_change"
    PLAN_CHANGE = "plan_change"


@unique
class ActorRole(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


@unique
class LogScope(str, Enum):
    """Whether a status log entry belongs to one connection or to the customer."""

    CONNECTION = "connection"
    CUSTOMER = "customer"


@unique
class CycleEventKind(str, Enum):
    """Billing events consumed by the balance calculator."""

    PAYMENT = "payment"
    CREDIT = "credit"
    NEW_CYCLE = "new_cycle"


@unique
class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"


@unique
class BillStatus(str, Enum):
    """Settlement state of a monthly bill."""

    GENERATED = "generated"
    PARTIAL = "partial"
    PAID = "paid"
