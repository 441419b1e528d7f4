"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from fieldsync.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Submission", resource_id="abc-123")
    raise ValidationError("operators must not be empty", details={"operators": "required"})

Propagation rules for the sync pipeline:
  - StoreError aborts an ingestion and is surfaced to the caller.
  - TransientExternalError is logged and left for the next reconciler run.
    It is never retried inline.
  - A missing spreadsheet row is not an exception at all; lookups return None.
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Submission").
        resource_id: The id that was looked up.
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
    """Raised when data violates a business rule.

    Covers rejected intake payloads and marker invariant violations
    (e.g. stamping the FS mirror marker on a submission without "FS").

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class StoreError(Exception):
    """Raised when the transactional submission write fails.

    The transaction has been rolled back; no submission or photo rows exist.
    """


class TransientExternalError(Exception):
    """Raised when a spreadsheet or coverage-service call fails.

    Args:
        target: Sync target name (mirror_all, mirror_fs, coverage_register, ...).
        message: Error detail from the gateway.
        status_code: HTTP status if a response was received, else None.
    """

    def __init__(self, target: str, message: str, status_code: int | None = None) -> None:
        self.target = target
        self.status_code = status_code
        super().__init__(f"{target} failed: {message}")
