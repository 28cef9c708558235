"""Shared blueprint helpers.

tenant_id_from_request:     X-Tenant-ID header → ?tenant_id= → JSON body
register_error_handlers:    one handler per core exception type, same envelope everywhere
"""
import logging

from flask import g, request

from assessment_platform.core.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from assessment_platform.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def tenant_id_from_request() -> int | None:
    """Resolve the caller's tenant scope and stash it on ``g`` for logging.

    Returns None when no tenant was supplied; services then skip the tenant
    filter. A value that is not an integer is treated as absent.
    """
    raw = request.headers.get("X-Tenant-ID") or request.args.get("tenant_id")
    if raw is None:
        data = request.get_json(silent=True) or {}
        raw = data.get("tenant_id") if isinstance(data, dict) else None
    try:
        tid = int(raw) if raw not in (None, "") else None
    except (TypeError, ValueError):
        tid = None
    g.tenant_id = tid
    return tid


def json_body() -> dict:
    """Return the JSON object body, or an empty dict for anything else."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(blueprint):
    """Map the core exception hierarchy onto JSON error responses for *blueprint*."""

    @blueprint.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.info("Not found: %s", error)
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @blueprint.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @blueprint.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @blueprint.errorhandler(ConcurrencyConflictError)
    def _handle_concurrency(error: ConcurrencyConflictError):
        return api_error(
            E.CONFLICT_CONCURRENCY, str(error),
            details={"operation": error.operation, "attempts": error.attempts},
        )

    @blueprint.errorhandler(DataIntegrityError)
    def _handle_integrity(error: DataIntegrityError):
        logger.error("Data integrity failure: %s", error, extra={"event_type": "data_integrity"})
        return api_error(E.DATA_INTEGRITY, str(error), details=error.details)
