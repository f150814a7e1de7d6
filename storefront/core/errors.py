# storefront/core/errors.py
"""
Failure taxonomy shared by the gateways and the sync engines.

Gateways raise these; engines catch them at their boundary and turn them
into notices. Nothing here is ever raised to a UI caller.
"""


class CollectionError(Exception):
    """
    Base class for every typed collection failure.

    Attributes:
        detail: human-readable explanation.
        operation: gateway/engine operation that failed (e.g. "delete_one").
    """

    default_detail = "Collection operation failed"

    def __init__(self, detail: str | None = None, *, operation: str | None = None):
        self.detail = detail or self.default_detail
        self.operation = operation
        super().__init__(self.detail)

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.detail}"
        return self.detail


class AuthRequired(CollectionError):
    """Mutation attempted without an authenticated identity."""

    default_detail = "Authentication required"


class NotFound(CollectionError):
    """Target row no longer exists on the remote store."""

    default_detail = "Item not found"


class StoreUnavailable(CollectionError):
    """Network or store failure."""

    default_detail = "Remote store unavailable"


class OwnershipViolation(CollectionError):
    """The store rejected a mutation on a row owned by another identity."""

    default_detail = "Item does not belong to the current user"
