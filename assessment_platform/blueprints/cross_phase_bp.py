"""
Cross-Phase Analytics Blueprint.

Endpoints:
    POST   /api/v1/cross-phase/links
           Body: { "phase1_assessment_id": "...", "phase2_assessment_id": "...",
                   "client_identifier": "...", "linked_by": "..."? }
           Returns: 201 with the link, its scope_delta and classification_delta.
    GET    /api/v1/cross-phase/<aid>
           Returns: 200 { links, phase_summaries, insights }. An assessment
           without links gets an explicit message in ``insights``.
"""

import logging

from flask import Blueprint, jsonify

from assessment_platform import limiter
from assessment_platform.services import cross_phase
from assessment_platform.utils.errors import E, api_error
from assessment_platform.utils.helpers import json_body, register_error_handlers, tenant_id_from_request

logger = logging.getLogger(__name__)

cross_phase_bp = Blueprint("cross_phase", __name__, url_prefix="/api/v1/cross-phase")
register_error_handlers(cross_phase_bp)


@cross_phase_bp.route("/links", methods=["POST"])
@limiter.limit("20/minute")
def link_phases():
    data = json_body()
    for field in ("phase1_assessment_id", "phase2_assessment_id", "client_identifier"):
        if not data.get(field):
            return api_error(E.VALIDATION_REQUIRED, f"Field '{field}' is required.")

    link = cross_phase.link_phases(
        data["phase1_assessment_id"],
        data["phase2_assessment_id"],
        data["client_identifier"],
        data.get("linked_by"),
        tenant_id=tenant_id_from_request(),
    )
    return jsonify(link.to_dict()), 201


@cross_phase_bp.route("/<assessment_id>", methods=["GET"])
def get_cross_phase_summary(assessment_id: str):
    summary = cross_phase.get_cross_phase_summary(assessment_id, tenant_id=tenant_id_from_request())
    return jsonify(summary), 200
