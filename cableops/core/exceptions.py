"""
Domain exceptions for the reconciliation core.

Validation findings for CSV batches are returned as data and never raised;
everything in this module signals a failed operation that the caller has to
surface to the acting user.
"""


class CableOpsError(Exception):
    """Base class for every error raised by the core."""

    def __init__(self, message: str = "An unexpected error occurred."):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(CableOpsError):
    """Input data is invalid for the requested operation."""


class NotFoundError(CableOpsError):
    """A customer, request or registry item does not exist."""


class ConflictError(CableOpsError):
    """The operation conflicts with existing data (duplicates, ownership)."""


class VCUnavailableError(ConflictError):
    """A VC number cannot be assigned because it is not available in inventory."""

    def __init__(self, vc_number: str, status: str | None = None, customer_name: str | None = None):
        if customer_name:
            message = f'VC number "{vc_number}" is already assigned to customer: {customer_name}'
        elif status:
            message = f'VC number "{vc_number}" is not available (status: {status})'
        else:
            message = f'VC number "{vc_number}" does not exist in inventory'
        super().__init__(message)
        self.vc_number = vc_number
        self.status = status
        self.customer_name = customer_name


class VCSelectionRequired(ValidationError):
    """A multi-VC customer needs an explicit list of VC numbers to change."""

    def __init__(self, eligible: list[str]):
        super().__init__(
            "Customer has multiple VC numbers; select which ones to change. "
            f"Eligible: {', '.join(eligible) if eligible else 'none'}"
        )
        self.eligible = eligible


class AuthorizationError(CableOpsError):
    """The acting user lacks the authority for the operation."""


class StaleRequestError(CableOpsError):
    """
    The live customer state drifted since the action request was raised.
    Callers should refresh and ask again instead of retrying.
    """

    def __init__(self, request_id, details: str = ""):
        message = f"State changed since request {request_id} was created"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)
        self.request_id = request_id


class AlreadyResolvedError(ConflictError):
    """An action request was already approved or denied."""

    def __init__(self, request_id, status: str):
        super().__init__(f"Request {request_id} is already {status}")
        self.request_id = request_id
        self.status = status


class RegistryUnavailableError(CableOpsError):
    """A registry (areas, packages, VC inventory) could not be read."""


class StoreWriteError(CableOpsError):
    """A write to the customer or request store failed."""


class BalanceInputError(CableOpsError, ValueError):
    """Invalid numeric input handed to the balance calculator."""
