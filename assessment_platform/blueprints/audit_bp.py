"""
Decision Audit Blueprint (read-only).

Endpoints:
    GET    /api/v1/assessments/<aid>/audit-log[?entity_type=...&actor=...&limit=50]
           Returns: 200 { items, total }, newest first.

There is no write endpoint: entries are appended by the services, inside the
transaction of the decision they record.
"""

from flask import Blueprint, jsonify, request

from assessment_platform.models.audit import AUDIT_ENTITY_TYPES, list_audit_entries
from assessment_platform.services.assessment_scope import get_assessment
from assessment_platform.utils.errors import E, api_error
from assessment_platform.utils.helpers import register_error_handlers, tenant_id_from_request

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1/assessments/<assessment_id>/audit-log")
register_error_handlers(audit_bp)

MAX_LIMIT = 200


@audit_bp.route("", methods=["GET"])
def list_entries(assessment_id: str):
    entity_type = request.args.get("entity_type")
    if entity_type and entity_type not in AUDIT_ENTITY_TYPES:
        return api_error(
            E.VALIDATION_INVALID, f"Invalid entity_type '{entity_type}'.",
            details={"valid_entity_types": sorted(AUDIT_ENTITY_TYPES)},
        )
    limit = request.args.get("limit", 50, type=int)
    limit = max(1, min(limit, MAX_LIMIT))

    get_assessment(assessment_id, tenant_id_from_request())
    entries = list_audit_entries(
        assessment_id,
        entity_type=entity_type,
        actor=request.args.get("actor"),
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)}), 200
