"""
Workflow catalog and progress ledger service.

Stage catalog CRUD, order creation, and manual progress transitions
(pending → in_progress → completed). Starting a stage requires every
earlier active stage of the order to be completed so that activated stages
always form a prefix of the catalog.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

from packerp.core.exceptions import ConflictError, ValidationError
from packerp.models import db
from packerp.models.audit import write_audit
from packerp.models.workflow import (
    ORDER_STATUSES,
    PROGRESS_STATUSES,
    PROGRESS_TRANSITIONS,
    Order,
    WorkflowProgress,
    WorkflowStage,
)
from packerp.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


class ProgressTransitionError(Exception):
    """Raised when a progress status change is not allowed."""

    def __init__(self, progress_id: str, current: str, target: str, reason: str | None = None):
        msg = f"Cannot move progress {progress_id} from '{current}' to '{target}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.progress_id = progress_id
        self.current_status = current
        self.target_status = target


# ── Stage catalog ────────────────────────────────────────────────────────────


def list_stages(organization_id: str, *, include_inactive: bool = False) -> list[dict]:
    q = WorkflowStage.query_for_org(organization_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return [s.to_dict() for s in q.order_by(WorkflowStage.sequence_order.asc()).all()]


def create_stage(organization_id: str, data: dict, *, actor: str = "system") -> WorkflowStage:
    name = (data.get("stage_name") or "").strip()
    if not name:
        raise ValidationError("stage_name is required")
    try:
        seq = int(data.get("sequence_order"))
    except (TypeError, ValueError):
        raise ValidationError("sequence_order must be an integer") from None

    clash = WorkflowStage.query.filter_by(
        organization_id=organization_id, sequence_order=seq,
    ).first()
    if clash:
        raise ConflictError("WorkflowStage", "sequence_order", seq)

    stage = WorkflowStage(
        organization_id=organization_id,
        stage_name=name,
        sequence_order=seq,
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(stage)
    db.session.flush()
    write_audit(
        entity_type="workflow_stage", entity_id=stage.id, action="create", actor=actor,
        organization_id=organization_id, diff={"new": stage.to_dict()},
    )
    logger.info("Created workflow stage %s (seq=%d) org=%s", name, seq, organization_id)
    return stage


def update_stage(
    organization_id: str, stage_id: str, data: dict, *, actor: str = "system",
) -> WorkflowStage:
    """Only ``is_active`` and ``stage_name`` are editable; sequence is fixed once created."""
    stage = get_scoped(WorkflowStage, stage_id, organization_id=organization_id)
    if "sequence_order" in data and data["sequence_order"] != stage.sequence_order:
        raise ValidationError("sequence_order cannot be changed; create a new stage instead")
    changes = {}
    if "is_active" in data and bool(data["is_active"]) != stage.is_active:
        changes["is_active"] = {"old": stage.is_active, "new": bool(data["is_active"])}
        stage.is_active = bool(data["is_active"])
    name = data.get("stage_name")
    if isinstance(name, str) and name.strip() and name.strip() != stage.stage_name:
        changes["stage_name"] = {"old": stage.stage_name, "new": name.strip()}
        stage.stage_name = name.strip()
    db.session.flush()
    if changes:
        write_audit(
            entity_type="workflow_stage", entity_id=stage.id, action="update", actor=actor,
            organization_id=organization_id, diff=changes,
        )
    return stage


# ── Orders ───────────────────────────────────────────────────────────────────


def list_orders(organization_id: str, *, status: str | None = None):
    q = Order.query_for_org(organization_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Order.created_at.desc())


def create_order(organization_id: str, data: dict, *, actor: str = "system") -> Order:
    uiorn = (data.get("uiorn") or "").strip()
    item_code = (data.get("item_code") or "").strip()
    missing = [k for k, v in (("uiorn", uiorn), ("item_code", item_code)) if not v]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})

    try:
        qty = Decimal(str(data.get("order_quantity", 0)))
    except InvalidOperation:
        raise ValidationError("order_quantity must be numeric") from None
    if qty < 0:
        raise ValidationError("order_quantity must not be negative")

    status = data.get("status", "draft")
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}")

    if Order.query.filter_by(organization_id=organization_id, uiorn=uiorn).first():
        raise ConflictError("Order", "uiorn", uiorn)

    order = Order(
        organization_id=organization_id,
        uiorn=uiorn,
        item_code=item_code,
        order_quantity=qty,
        status=status,
    )
    db.session.add(order)
    db.session.flush()
    write_audit(
        entity_type="order", entity_id=order.id, action="create", actor=actor,
        organization_id=organization_id, diff={"new": order.to_dict()},
    )
    return order


# ── Progress transitions ─────────────────────────────────────────────────────


def _first_incomplete_predecessor(progress: WorkflowProgress) -> WorkflowStage | None:
    """Earliest active stage before ``progress.stage`` that the order has not completed."""
    earlier = (
        WorkflowStage.query
        .filter(
            WorkflowStage.organization_id == progress.organization_id,
            WorkflowStage.is_active.is_(True),
            WorkflowStage.sequence_order < progress.stage.sequence_order,
        )
        .order_by(WorkflowStage.sequence_order.asc())
        .all()
    )
    if not earlier:
        return None
    completed_ids = {
        row.stage_id
        for row in WorkflowProgress.query.filter_by(
            order_id=progress.order_id, status="completed",
        ).all()
    }
    return next((s for s in earlier if s.id not in completed_ids), None)


def transition_progress(
    organization_id: str,
    progress_id: str,
    target_status: str,
    *,
    progress_percentage: int | None = None,
    notes: str | None = None,
    actor: str = "system",
) -> dict:
    """
    Move a WorkflowProgress row along pending → in_progress → completed.

    Returns:
        {"progress_id", "previous_status", "new_status", "progress"}

    Raises:
        NotFoundError, ValidationError, ProgressTransitionError
    """
    progress = get_scoped(WorkflowProgress, progress_id, organization_id=organization_id)

    if target_status not in PROGRESS_STATUSES:
        raise ValidationError(f"Unknown status: {target_status}")
    if target_status not in PROGRESS_TRANSITIONS[progress.status]:
        raise ProgressTransitionError(progress.id, progress.status, target_status)

    if progress_percentage is not None:
        if not isinstance(progress_percentage, int) or not 0 <= progress_percentage <= 100:
            raise ValidationError("progress_percentage must be an integer between 0 and 100")

    if target_status == "in_progress":
        blocker = _first_incomplete_predecessor(progress)
        if blocker is not None:
            raise ProgressTransitionError(
                progress.id, progress.status, target_status,
                f"stage '{blocker.stage_name}' is not completed",
            )

    previous_status = progress.status
    now = datetime.now(UTC)
    progress.status = target_status
    if target_status == "in_progress":
        progress.started_at = now
        if progress.order.status == "draft":
            progress.order.status = "in_production"
    elif target_status == "completed":
        progress.completed_at = now
        progress_percentage = 100
    if progress_percentage is not None:
        progress.progress_percentage = progress_percentage
    if notes:
        progress.notes = notes
    db.session.flush()

    action = "workflow.start" if target_status == "in_progress" else "workflow.complete"
    try:
        with db.session.begin_nested():
            write_audit(
                entity_type="workflow_progress",
                entity_id=progress.id,
                action=action,
                actor=actor,
                organization_id=organization_id,
                diff={"status": {"old": previous_status, "new": target_status}},
            )
    except Exception:
        logger.warning("Audit log failed for progress transition — main flow unaffected",
                       exc_info=True)

    logger.info("Progress %s %s → %s", progress.id, previous_status, target_status)
    return {
        "progress_id": progress.id,
        "previous_status": previous_status,
        "new_status": target_status,
        "progress": progress.to_dict(),
    }
