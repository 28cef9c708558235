"""
Sign-off Workflow Blueprint.

HTTP endpoints for the multi-gate approval of an assessment
(area → technical → cross-functional → executive → partner).

Endpoints:
    POST   /api/v1/assessments/<aid>/sign-off
           Body: { "initiated_by": "...", "baseline_snapshot_id": "..." }
           Returns: 201 with the new SignOffProcess.

    GET    /api/v1/assessments/<aid>/sign-off
           Returns: 200 with process state, current-cycle validations,
           available transitions and pending roles.

    POST   /api/v1/sign-off/<pid>/validations
           Body: { "stage_role": "area|it_lead|dm_lead|cross_functional|executive|partner",
                   "decision": "approved|rejected",
                   "validator_id": "...", "comment": "..."? }
           Returns: 200 { stage, completed, record }.

    POST   /api/v1/sign-off/<pid>/restart
           Body: { "actor_id": "..." }
           Returns: 200 with the restarted process (new cycle).

Layer contract:
    - Blueprint: parse + validate input shape, resolve tenant, call service.
    - NO db.session calls here — all writes owned by signoff_workflow.
"""

import logging

from flask import Blueprint, jsonify

from assessment_platform import limiter
from assessment_platform.models.signoff import VALID_DECISIONS, VALID_STAGE_ROLES
from assessment_platform.services import signoff_workflow
from assessment_platform.utils.errors import E, api_error
from assessment_platform.utils.helpers import json_body, register_error_handlers, tenant_id_from_request

logger = logging.getLogger(__name__)

signoff_bp = Blueprint("signoff", __name__, url_prefix="/api/v1")
register_error_handlers(signoff_bp)


@signoff_bp.route("/assessments/<assessment_id>/sign-off", methods=["POST"])
@limiter.limit("30/minute")
def start_signoff(assessment_id: str):
    data = json_body()
    initiated_by = data.get("initiated_by")
    if not initiated_by:
        return api_error(E.VALIDATION_REQUIRED, "Field 'initiated_by' is required.")
    if not data.get("baseline_snapshot_id"):
        return api_error(E.VALIDATION_REQUIRED, "Field 'baseline_snapshot_id' is required.")

    process = signoff_workflow.start_signoff(
        assessment_id,
        initiated_by,
        tenant_id=tenant_id_from_request(),
        baseline_snapshot_id=data.get("baseline_snapshot_id"),
    )
    return jsonify(process.to_dict()), 201


@signoff_bp.route("/assessments/<assessment_id>/sign-off", methods=["GET"])
def get_signoff(assessment_id: str):
    status = signoff_workflow.get_signoff_for_assessment(
        assessment_id, tenant_id=tenant_id_from_request(),
    )
    return jsonify(status), 200


@signoff_bp.route("/sign-off/<process_id>/validations", methods=["POST"])
@limiter.limit("60/minute")
def submit_validation(process_id: str):
    """Submit one validator's decision.

    Input shape is checked here (400); stage / gate rules are enforced in
    signoff_workflow and come back as 422.
    """
    data = json_body()
    stage_role = (data.get("stage_role") or "").strip()
    decision = (data.get("decision") or "").strip()
    validator_id = data.get("validator_id")

    if not stage_role:
        return api_error(E.VALIDATION_REQUIRED, "Field 'stage_role' is required.")
    if stage_role not in VALID_STAGE_ROLES:
        return api_error(
            E.VALIDATION_INVALID, f"Invalid stage_role '{stage_role}'.",
            details={"valid_stage_roles": sorted(VALID_STAGE_ROLES)},
        )
    if decision not in VALID_DECISIONS:
        return api_error(
            E.VALIDATION_INVALID, f"Invalid decision '{decision}'.",
            details={"valid_decisions": sorted(VALID_DECISIONS)},
        )
    if not validator_id:
        return api_error(E.VALIDATION_REQUIRED, "Field 'validator_id' is required.")

    result = signoff_workflow.submit_validation(
        process_id,
        stage_role,
        decision,
        validator_id,
        comment=data.get("comment"),
        tenant_id=tenant_id_from_request(),
    )
    return jsonify(result), 200


@signoff_bp.route("/sign-off/<process_id>/restart", methods=["POST"])
@limiter.limit("30/minute")
def restart_signoff(process_id: str):
    data = json_body()
    actor_id = data.get("actor_id")
    if not actor_id:
        return api_error(E.VALIDATION_REQUIRED, "Field 'actor_id' is required.")

    process = signoff_workflow.restart_signoff(
        process_id, actor_id, tenant_id=tenant_id_from_request(),
    )
    return jsonify(process.to_dict()), 200
