"""
Assessment Snapshot Blueprint.

Endpoints:
    GET    /api/v1/assessments/<aid>/snapshots
    POST   /api/v1/assessments/<aid>/snapshots
           Body: { "reason": "...", "created_by": "...", "label": "..."? }
           Returns: 201 { id, version, fingerprint, statistics, ... }
    GET    /api/v1/assessments/<aid>/snapshots/compare?base_version=1&compare_version=2
    GET    /api/v1/assessments/<aid>/snapshots/<version>          (with payload)
    GET    /api/v1/assessments/<aid>/snapshots/<version>/verify
           Returns: 200 when the stored payload still matches its fingerprint,
           422 ERR_DATA_INTEGRITY otherwise.
"""

import logging

from flask import Blueprint, jsonify, request

from assessment_platform import limiter
from assessment_platform.services import snapshot_service
from assessment_platform.utils.errors import E, api_error
from assessment_platform.utils.helpers import json_body, register_error_handlers, tenant_id_from_request

logger = logging.getLogger(__name__)

snapshot_bp = Blueprint("snapshots", __name__, url_prefix="/api/v1/assessments/<assessment_id>/snapshots")
register_error_handlers(snapshot_bp)


@snapshot_bp.route("", methods=["GET"])
def list_snapshots(assessment_id: str):
    snapshots = snapshot_service.list_snapshots(assessment_id, tenant_id=tenant_id_from_request())
    return jsonify({"items": [s.to_dict() for s in snapshots], "total": len(snapshots)}), 200


@snapshot_bp.route("", methods=["POST"])
@limiter.limit("20/minute")
def create_snapshot(assessment_id: str):
    data = json_body()
    reason = (data.get("reason") or "").strip()
    created_by = data.get("created_by")
    if not reason:
        return api_error(E.VALIDATION_REQUIRED, "Field 'reason' is required.")
    if not created_by:
        return api_error(E.VALIDATION_REQUIRED, "Field 'created_by' is required.")

    snapshot = snapshot_service.create_snapshot(
        assessment_id,
        reason,
        created_by,
        tenant_id=tenant_id_from_request(),
        label=(data.get("label") or "").strip() or None,
    )
    return jsonify(snapshot.to_dict()), 201


@snapshot_bp.route("/compare", methods=["GET"])
def compare_snapshots(assessment_id: str):
    base_version = request.args.get("base_version", type=int)
    compare_version = request.args.get("compare_version", type=int)
    if base_version is None or compare_version is None:
        return api_error(
            E.VALIDATION_REQUIRED,
            "Query params 'base_version' and 'compare_version' are required integers.",
        )

    result = snapshot_service.compare_snapshots(
        assessment_id, base_version, compare_version, tenant_id=tenant_id_from_request(),
    )
    return jsonify(result), 200


@snapshot_bp.route("/<int:version>", methods=["GET"])
def get_snapshot(assessment_id: str, version: int):
    snapshot = snapshot_service.get_snapshot(assessment_id, version, tenant_id=tenant_id_from_request())
    return jsonify(snapshot.to_dict(include_payload=True)), 200


@snapshot_bp.route("/<int:version>/verify", methods=["GET"])
def verify_snapshot(assessment_id: str, version: int):
    snapshot = snapshot_service.get_snapshot(assessment_id, version, tenant_id=tenant_id_from_request())
    snapshot_service.assert_snapshot_integrity(snapshot)
    return jsonify({
        "assessment_id": assessment_id,
        "version": snapshot.version,
        "fingerprint": snapshot.fingerprint,
        "valid": True,
    }), 200
