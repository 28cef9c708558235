"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register one handler per type and
map them to HTTP status codes. Callers never import exception classes from
service modules.

Usage:
    from assessment_platform.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Assessment", resource_id=aid)
    raise ValidationError("Invalid stage_role", details={"stage_role": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts:
    a 403 would confirm the resource exists, a 404 does not.

    Args:
        resource: Human-readable model/entity name (e.g. "Assessment").
        resource_id: The key that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    The data was well-formed but violated a business rule (invalid stage
    transition, unknown role, unresolvable entity reference). Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique record. Maps to HTTP 409.

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


class ConcurrencyConflictError(Exception):
    """Raised when a write keeps losing a race after the bounded retries.

    The caller may retry the whole request. Maps to HTTP 409.

    Args:
        operation: Name of the operation that gave up (e.g. "submit_validation").
        attempts: How many attempts were made.
    """

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} lost a concurrent update {attempts} times; retry the request"
        )


class DataIntegrityError(Exception):
    """Raised when stored data no longer matches its recorded fingerprint,
    or when a write would alter an immutable record. Maps to HTTP 422.

    Args:
        message: Human-readable explanation.
        details: Optional structured context (expected/actual fingerprint, columns).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
