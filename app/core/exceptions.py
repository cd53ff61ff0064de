"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register one handler per type and
translate them into JSON responses with a consistent HTTP status:

    NotFoundError       → 404
    ValidationError     → 400
    AuthorizationError  → 403
    ConflictError       → 409

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Gig order", resource_id=42)
    raise ValidationError("title is required.", details={"field": "title"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND ownership mismatches. A 403
    would confirm the resource exists for another owner; a 404 does not.

    Args:
        resource: Human-readable entity label (e.g. "Gig order", "Task").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        owner_id: Optional — the owner scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        owner_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.owner_id = owner_id
        super().__init__(f"{resource} not found.")

    def log_message(self) -> str:
        msg = self.resource
        if self.resource_id is not None:
            msg += f" id={self.resource_id}"
        msg += " not found"
        if self.owner_id is not None:
            msg += f" (owner={self.owner_id})"
        return msg


class ValidationError(Exception):
    """Raised when input is malformed or out of range.

    All validation runs before the first write, so raising this never
    leaves partial state behind.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when the acting user lacks the role required for an operation."""

    def __init__(self, message: str = "You do not have permission to perform this action.") -> None:
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation conflicts with the current state of a resource.

    Examples: releasing an escrow checkpoint twice, releasing a zero amount.
    """

    def __init__(self, message: str, resource: str | None = None) -> None:
        self.resource = resource
        super().__init__(message)
