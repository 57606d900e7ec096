"""
Inventory blueprint — stock variance, reconciliation, snapshots, MRP, ABC.

Endpoints:
    GET  /api/v1/organizations/<org>/stock/variance
    POST /api/v1/organizations/<org>/stock/reconcile
    GET  /api/v1/organizations/<org>/stock/snapshots
    POST /api/v1/organizations/<org>/stock/snapshots
    GET  /api/v1/organizations/<org>/stock/mrp?window_days=&as_of=
    GET  /api/v1/organizations/<org>/stock/abc?window_days=&as_of=
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from packerp.auth import current_actor, require_role
from packerp.core.exceptions import NotFoundError
from packerp.models import db
from packerp.services.helpers.scoped_queries import require_organization
from packerp.services.mrp import calculate_material_requirements, item_usage_values
from packerp.services.stock_reconciliation import calculate_stock_position, reconcile_stock
from packerp.services.stock_snapshot import capture_daily_snapshot, list_snapshots
from packerp.services.stock_variance import (
    SEVERITY_ORDER,
    abc_classification,
    build_variance_report,
)
from packerp.utils.errors import E, api_error
from packerp.utils.helpers import db_commit_or_error, paginate_query, parse_date

logger = logging.getLogger(__name__)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/v1/organizations")


@inventory_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@inventory_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    db.session.rollback()
    logger.exception("Unexpected error in inventory_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _window_days():
    """(window_days, error_response)."""
    default = current_app.config.get("MRP_CONSUMPTION_WINDOW_DAYS", 30)
    window = request.args.get("window_days", default, type=int)
    if window is None or window <= 0:
        return None, api_error(E.VALIDATION_INVALID, "window_days must be a positive integer")
    return window, None


def _as_of():
    raw = request.args.get("as_of")
    as_of = parse_date(raw)
    if raw and as_of is None:
        return None, api_error(E.VALIDATION_INVALID, f"Invalid as_of date: {raw}")
    return as_of, None


# ── Variance & reconciliation ────────────────────────────────────────────────


@inventory_bp.route("/<organization_id>/stock/variance", methods=["GET"])
def stock_variance(organization_id):
    require_organization(organization_id)
    severity = request.args.get("severity")
    if severity and severity not in SEVERITY_ORDER:
        return api_error(E.VALIDATION_INVALID,
                         f"severity must be one of {', '.join(SEVERITY_ORDER)}")
    tolerance = current_app.config.get("STOCK_VARIANCE_TOLERANCE", 0.01)
    report = build_variance_report(calculate_stock_position(organization_id),
                                   tolerance=tolerance, severity=severity)
    return jsonify(report)


@inventory_bp.route("/<organization_id>/stock/reconcile", methods=["POST"])
@require_role("editor")
def stock_reconcile(organization_id):
    require_organization(organization_id)
    result = reconcile_stock(organization_id, actor=current_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, **result})


# ── Snapshots ────────────────────────────────────────────────────────────────


@inventory_bp.route("/<organization_id>/stock/snapshots", methods=["GET"])
def stock_snapshots(organization_id):
    require_organization(organization_id)
    items, total = paginate_query(list_snapshots(organization_id), default_limit=30)
    include_data = request.args.get("include_data", "false").lower() == "true"
    return jsonify({
        "items": [s.to_dict(include_data=include_data) for s in items],
        "total": total,
    })


@inventory_bp.route("/<organization_id>/stock/snapshots", methods=["POST"])
@require_role("editor")
def capture_snapshot(organization_id):
    require_organization(organization_id)
    body = request.get_json(silent=True) or {}
    raw = body.get("snapshot_date")
    snapshot_date = parse_date(raw)
    if raw and snapshot_date is None:
        return api_error(E.VALIDATION_INVALID, f"Invalid snapshot_date: {raw}")

    summary = capture_daily_snapshot(organization_id, snapshot_date)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(summary), 201


# ── Planning ─────────────────────────────────────────────────────────────────


@inventory_bp.route("/<organization_id>/stock/mrp", methods=["GET"])
def material_requirements(organization_id):
    require_organization(organization_id)
    window, err = _window_days()
    if err:
        return err
    as_of, err = _as_of()
    if err:
        return err

    rows = calculate_material_requirements(organization_id, as_of, window)
    by_priority = {}
    for row in rows:
        by_priority[row["priority"]] = by_priority.get(row["priority"], 0) + 1
    return jsonify({
        "items": rows,
        "total_items": len(rows),
        "by_priority": by_priority,
        "total_estimated_cost": round(sum(r["estimated_cost"] for r in rows), 2),
        "window_days": window,
    })


@inventory_bp.route("/<organization_id>/stock/abc", methods=["GET"])
def abc_analysis(organization_id):
    require_organization(organization_id)
    window, err = _window_days()
    if err:
        return err
    as_of, err = _as_of()
    if err:
        return err

    rows = abc_classification(item_usage_values(organization_id, as_of, window))
    summary = {c: sum(1 for r in rows if r["category"] == c) for c in ("A", "B", "C")}
    return jsonify({"items": rows, "summary": summary, "window_days": window})
