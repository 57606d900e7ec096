"""
Workflow automation blueprint.

Single action-dispatch endpoint used by the shop-floor UI:

    POST /api/v1/workflow-automation
         {"action": "...", "organizationId": "...", "data": {...}}

Actions:
    auto_progress_workflow      data {orderId}
    validate_stage_transition   data {fromStageId, toStageId, orderId}
    create_quality_checkpoints  data {stageId, orderId, checkType?}
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from packerp.auth import current_actor
from packerp.core.exceptions import NotFoundError, ValidationError
from packerp.models import db
from packerp.services.helpers.scoped_queries import require_organization
from packerp.services.quality_checkpoints import create_quality_checkpoint
from packerp.services.stage_transition import validate_stage_transition
from packerp.services.workflow_progression import StageActivated, auto_progress_workflow
from packerp.utils.errors import E, api_error
from packerp.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

workflow_automation_bp = Blueprint("workflow_automation", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@workflow_automation_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return jsonify({"error": str(error)}), 404


@workflow_automation_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return jsonify({"error": str(error), "details": error.details}), 422


@workflow_automation_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    db.session.rollback()
    logger.exception("Workflow automation error endpoint=%s", request.endpoint)
    return jsonify({"error": str(error)}), 500


# ── Actions ───────────────────────────────────────────────────────────────────


def _require(data: dict, *keys: str):
    """Required id fields must be present and be non-empty strings."""
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required field(s): {', '.join(missing)}",
            details={"missing": missing},
        )
    invalid = [k for k in keys if not isinstance(data[k], str) or not data[k].strip()]
    if invalid:
        return api_error(
            E.VALIDATION_INVALID,
            f"Field(s) must be non-empty strings: {', '.join(invalid)}",
            details={"invalid": invalid},
        )
    return None


def _auto_progress(organization_id: str, data: dict):
    err = _require(data, "orderId")
    if err:
        return err

    result = auto_progress_workflow(organization_id, data["orderId"], actor=current_actor())
    if isinstance(result, StageActivated):
        err = db_commit_or_error()
        if err:
            return err
    return jsonify(result.to_response()), result.http_status


def _validate_transition(organization_id: str, data: dict):
    err = _require(data, "fromStageId", "orderId")
    if err:
        return err

    decision = validate_stage_transition(
        organization_id, data["orderId"], data["fromStageId"], data.get("toStageId"),
    )
    return jsonify(decision.to_dict()), 200


def _create_checkpoints(organization_id: str, data: dict):
    err = _require(data, "stageId", "orderId")
    if err:
        return err

    result = create_quality_checkpoint(
        organization_id,
        data["orderId"],
        data["stageId"],
        data.get("checkType") or "pre_stage",
        actor=current_actor(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 201


_ACTIONS = {
    "auto_progress_workflow": _auto_progress,
    "validate_stage_transition": _validate_transition,
    "create_quality_checkpoints": _create_checkpoints,
}


@workflow_automation_bp.route("/workflow-automation", methods=["POST"])
def workflow_automation():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")

    action = body.get("action")
    handler = _ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        logger.info("Rejected workflow automation action %r", body.get("action"))
        return api_error(E.INVALID_ACTION, "Invalid action")

    organization_id = body.get("organizationId")
    if not organization_id:
        return api_error(E.VALIDATION_REQUIRED, "organizationId is required")
    if not isinstance(organization_id, str):
        return api_error(E.VALIDATION_INVALID, "organizationId must be a string")
    require_organization(organization_id)

    data = body.get("data") or {}
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "data must be a JSON object")

    logger.info("Workflow automation action=%s org=%s", body["action"], organization_id)
    return handler(organization_id, data)
