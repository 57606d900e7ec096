"""
Workflow catalog & progress ledger blueprint.

Endpoints:
    GET/POST  /api/v1/organizations
    GET/POST  /api/v1/organizations/<org>/workflow-stages
    PATCH     /api/v1/organizations/<org>/workflow-stages/<stage_id>
    GET/POST  /api/v1/organizations/<org>/orders
    GET       /api/v1/organizations/<org>/orders/<order_id>
    POST      /api/v1/organizations/<org>/workflow-progress/<progress_id>/transition
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from packerp.auth import current_actor, require_role
from packerp.core.exceptions import ConflictError, NotFoundError, ValidationError
from packerp.models import db
from packerp.models.organization import Organization
from packerp.models.workflow import Order
from packerp.services import workflow_service
from packerp.services.helpers.scoped_queries import get_scoped, require_organization
from packerp.services.workflow_service import ProgressTransitionError
from packerp.utils.errors import E, api_error
from packerp.utils.helpers import db_commit_or_error, paginate_query

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@workflow_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@workflow_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.BUSINESS_RULE, str(error), details=error.details)


@workflow_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_DUPLICATE, str(error))


@workflow_bp.errorhandler(ProgressTransitionError)
def _handle_transition(error: ProgressTransitionError):
    return api_error(E.CONFLICT_STATE, str(error), details={
        "current_status": error.current_status,
        "target_status": error.target_status,
    })


@workflow_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    db.session.rollback()
    logger.exception("Unexpected error in workflow_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# ═════════════════════════════════════════════════════════════════════════
# Organizations
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/organizations", methods=["GET"])
def list_organizations():
    orgs = Organization.query.order_by(Organization.code.asc()).all()
    return jsonify([o.to_dict() for o in orgs])


@workflow_bp.route("/organizations", methods=["POST"])
@require_role("admin")
def create_organization():
    data = _json_body()
    code = (data.get("code") or "").strip().upper()
    name = (data.get("name") or "").strip()
    if not code or not name:
        return api_error(E.VALIDATION_REQUIRED, "code and name are required")
    if Organization.query.filter_by(code=code).first():
        raise ConflictError("Organization", "code", code)

    org = Organization(code=code, name=name, is_active=bool(data.get("is_active", True)))
    db.session.add(org)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(org.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Stage catalog
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/organizations/<organization_id>/workflow-stages", methods=["GET"])
def list_stages(organization_id):
    require_organization(organization_id)
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    return jsonify(workflow_service.list_stages(organization_id, include_inactive=include_inactive))


@workflow_bp.route("/organizations/<organization_id>/workflow-stages", methods=["POST"])
@require_role("admin")
def create_stage(organization_id):
    require_organization(organization_id)
    stage = workflow_service.create_stage(organization_id, _json_body(), actor=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(stage.to_dict()), 201


@workflow_bp.route("/organizations/<organization_id>/workflow-stages/<stage_id>",
                   methods=["PATCH"])
@require_role("admin")
def update_stage(organization_id, stage_id):
    require_organization(organization_id)
    stage = workflow_service.update_stage(
        organization_id, stage_id, _json_body(), actor=current_actor(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(stage.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Orders
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/organizations/<organization_id>/orders", methods=["GET"])
def list_orders(organization_id):
    require_organization(organization_id)
    q = workflow_service.list_orders(organization_id, status=request.args.get("status"))
    items, total = paginate_query(q)
    return jsonify({"items": [o.to_dict() for o in items], "total": total})


@workflow_bp.route("/organizations/<organization_id>/orders", methods=["POST"])
@require_role("editor")
def create_order(organization_id):
    require_organization(organization_id)
    order = workflow_service.create_order(organization_id, _json_body(), actor=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(order.to_dict()), 201


@workflow_bp.route("/organizations/<organization_id>/orders/<order_id>", methods=["GET"])
def get_order(organization_id, order_id):
    order = get_scoped(Order, order_id, organization_id=organization_id)
    return jsonify(order.to_dict(include_progress=True))


# ═════════════════════════════════════════════════════════════════════════
# Progress transitions
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route(
    "/organizations/<organization_id>/workflow-progress/<progress_id>/transition",
    methods=["POST"],
)
@require_role("editor")
def transition_progress(organization_id, progress_id):
    data = _json_body()
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    result = workflow_service.transition_progress(
        organization_id,
        progress_id,
        status,
        progress_percentage=data.get("progress_percentage"),
        notes=data.get("notes"),
        actor=current_actor(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)
