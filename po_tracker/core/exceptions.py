"""
Application-wide exception hierarchy.

Services raise these; the handlers registered in ``create_app`` map them to
HTTP status codes and the standard JSON error envelope, so blueprints never
translate errors themselves.

Usage:
    from po_tracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="StepRecord", resource_id=42)
    raise ValidationError("month_key must be YYYY-MM", details={"month_key": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "POFolder", "StepFile").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business rule.

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


class AuthenticationError(Exception):
    """Raised when an operation needs a caller identity and none is attached."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PermissionDeniedError(Exception):
    """Raised when the caller is known but lacks the required privilege."""

    def __init__(self, message: str = "Admin privileges required") -> None:
        super().__init__(message)


class StorageError(Exception):
    """Raised when persistence fails; the transaction has been rolled back.

    The message stays generic; the underlying exception is chained and
    logged by the raiser.
    """

    def __init__(self, message: str = "Database error") -> None:
        super().__init__(message)
