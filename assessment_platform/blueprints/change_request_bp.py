"""
Change Request Blueprint.

Endpoints:
    GET    /api/v1/assessments/<aid>/change-requests[?status=requested]
    POST   /api/v1/assessments/<aid>/change-requests
           Body: { "baseline_snapshot_id": "...", "title": "...", "reason": "...",
                   "requested_by": "...",
                   "unlocked_entities": [ { "entity_type": "...", "entity_id": "...",
                                            "reason": "..." }, ... ] }
           Returns: 201 with risk_level, breakdown and the frozen impact_summary.
    GET    /api/v1/assessments/<aid>/change-requests/<crid>
    PATCH  /api/v1/assessments/<aid>/change-requests/<crid>
           Body: { "status": "approved|rejected", "decided_by": "...",
                   "rejection_reason": "..."? }
"""

import logging

from flask import Blueprint, jsonify, request

from assessment_platform import limiter
from assessment_platform.models.lifecycle import CHANGE_REQUEST_STATUSES
from assessment_platform.services import change_request_service
from assessment_platform.utils.errors import E, api_error
from assessment_platform.utils.helpers import json_body, register_error_handlers, tenant_id_from_request

logger = logging.getLogger(__name__)

change_request_bp = Blueprint(
    "change_requests", __name__,
    url_prefix="/api/v1/assessments/<assessment_id>/change-requests",
)
register_error_handlers(change_request_bp)


@change_request_bp.route("", methods=["GET"])
def list_change_requests(assessment_id: str):
    status = request.args.get("status")
    if status and status not in CHANGE_REQUEST_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"Invalid status '{status}'.")
    items = change_request_service.list_change_requests(
        assessment_id, tenant_id=tenant_id_from_request(), status=status,
    )
    return jsonify({"items": [cr.to_dict() for cr in items], "total": len(items)}), 200


@change_request_bp.route("", methods=["POST"])
@limiter.limit("20/minute")
def create_change_request(assessment_id: str):
    data = json_body()
    for field in ("baseline_snapshot_id", "title", "reason", "requested_by"):
        if not data.get(field):
            return api_error(E.VALIDATION_REQUIRED, f"Field '{field}' is required.")
    unlocked = data.get("unlocked_entities")
    if not isinstance(unlocked, list) or not unlocked:
        return api_error(E.VALIDATION_REQUIRED, "Field 'unlocked_entities' must be a non-empty list.")

    cr = change_request_service.create_change_request(
        assessment_id,
        data["baseline_snapshot_id"],
        unlocked,
        data["title"],
        data["reason"],
        data["requested_by"],
        tenant_id=tenant_id_from_request(),
    )
    return jsonify(cr.to_dict()), 201


@change_request_bp.route("/<change_request_id>", methods=["GET"])
def get_change_request(assessment_id: str, change_request_id: str):
    cr = change_request_service.get_change_request(
        assessment_id, change_request_id, tenant_id=tenant_id_from_request(),
    )
    return jsonify(cr.to_dict()), 200


@change_request_bp.route("/<change_request_id>", methods=["PATCH"])
def decide_change_request(assessment_id: str, change_request_id: str):
    data = json_body()
    status = (data.get("status") or "").strip()
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "Field 'status' is required.")
    if not data.get("decided_by"):
        return api_error(E.VALIDATION_REQUIRED, "Field 'decided_by' is required.")

    cr = change_request_service.decide_change_request(
        assessment_id,
        change_request_id,
        status,
        data["decided_by"],
        rejection_reason=data.get("rejection_reason"),
        tenant_id=tenant_id_from_request(),
    )
    return jsonify(cr.to_dict()), 200
