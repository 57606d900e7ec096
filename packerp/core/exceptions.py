"""
Service-layer exception hierarchy.

Services raise these types; blueprints register handlers against them once
and map them to HTTP status codes:

    NotFoundError    → 404
    ValidationError  → 422
    ConflictError    → 409

Usage:
    from packerp.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Order", resource_id=order_id)
    raise ValidationError("orderId is required", details={"orderId": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given organization.

    A record belonging to another organization is reported exactly like a
    missing one.

    Args:
        resource: Human-readable entity name (e.g. "Order", "WorkflowStage").
        resource_id: The PK that was looked up.
        organization_id: Optional scope that was enforced, for logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
