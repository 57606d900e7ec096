"""
Manufacturing Workflow — Stage Progression Resolver

Decides which workflow stage an order should enter next and creates the
corresponding WorkflowProgress row.

Decision rules:
  - Only progress rows in ``in_progress`` / ``completed`` whose stage is still
    active count as "represented".
  - The candidate is the active stage with the lowest sequence_order that is
    not represented.
  - A represented stage before the candidate that is not yet completed
    blocks progression (IncompleteCurrentStage).
  - No candidate and everything completed → WorkflowComplete.

Outcomes are returned as result variants, never raised:
    StageActivated | NoStagesConfigured | IncompleteCurrentStage | WorkflowComplete

The insert relies on the (order_id, stage_id) unique constraint: when a
concurrent caller (or an earlier pending row) already holds the stage, the
existing row is returned as a successful activation. Transient database
errors on insert are retried with exponential backoff.

Usage:
    from packerp.services.workflow_progression import auto_progress_workflow

    result = auto_progress_workflow(organization_id, order_id)
    body, status = result.to_response(), result.http_status
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from packerp.models import db
from packerp.models.audit import write_audit
from packerp.models.workflow import (
    ACTIVATED_STATUSES,
    Order,
    WorkflowProgress,
    WorkflowStage,
)
from packerp.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

MAX_INSERT_RETRIES = 3
RETRY_BASE_DELAY = 2.0  # seconds; doubles per attempt → 2s, 4s, 8s

AUTO_PROGRESS_NOTE = "Auto-generated from workflow automation"

_sleep = time.sleep


# ═════════════════════════════════════════════════════════════════════════════
# Result variants
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class StageActivated:
    """A progress row exists for the next stage (newly created or pre-existing)."""
    progress_id: str
    stage_id: str
    stage_name: str
    sequence_order: int
    already_existed: bool = False
    progress: dict = field(default_factory=dict)

    success = True
    error = None
    http_status = 200

    def to_response(self) -> dict:
        if self.already_existed:
            message = f"Stage '{self.stage_name}' was already activated for this order"
        else:
            message = f"Workflow progressed to '{self.stage_name}'"
        return {
            "success": True,
            "message": message,
            "nextStage": self.stage_name,
            "progressId": self.progress_id,
            "sequenceOrder": self.sequence_order,
        }


@dataclass
class NoStagesConfigured:
    success = False
    error = "NO_STAGES_CONFIGURED"
    http_status = 422

    def to_response(self) -> dict:
        return {
            "success": False,
            "message": "No active workflow stages are configured for this organization",
            "error": self.error,
        }


@dataclass
class IncompleteCurrentStage:
    """An earlier represented stage has not been completed yet."""
    stage_id: str
    stage_name: str
    sequence_order: int
    status: str

    success = False
    error = "INCOMPLETE_CURRENT_STAGE"
    http_status = 409

    def to_response(self) -> dict:
        return {
            "success": False,
            "message": (
                f"Current stage '{self.stage_name}' must be completed before "
                f"progressing (status={self.status})"
            ),
            "error": self.error,
            "currentStage": self.stage_name,
            "sequenceOrder": self.sequence_order,
        }


@dataclass
class WorkflowComplete:
    success = True
    error = "WORKFLOW_COMPLETE"
    http_status = 200

    def to_response(self) -> dict:
        return {
            "success": True,
            "message": "Workflow completed - no more stages to progress to",
            "error": self.error,
        }


@dataclass
class NextStage:
    """Intermediate decision: ``stage`` may be activated."""
    stage: WorkflowStage


# ═════════════════════════════════════════════════════════════════════════════
# Pure decision
# ═════════════════════════════════════════════════════════════════════════════


def resolve_next_stage(stages, progress_rows):
    """Decide the next stage from an ordered catalog and represented progress.

    Args:
        stages: Active WorkflowStage rows sorted ascending by sequence_order.
        progress_rows: Represented WorkflowProgress rows (status in
            ``ACTIVATED_STATUSES``) with ``stage`` loaded.

    Returns:
        NextStage | NoStagesConfigured | IncompleteCurrentStage | WorkflowComplete
    """
    if not stages:
        return NoStagesConfigured()

    # Duplicate rows for one stage: completed wins.
    status_by_seq: dict[int, str] = {}
    for row in progress_rows:
        seq = row.stage.sequence_order
        if status_by_seq.get(seq) != "completed":
            status_by_seq[seq] = row.status

    candidate = next((s for s in stages if s.sequence_order not in status_by_seq), None)

    for stage in stages:
        if candidate is not None and stage.sequence_order >= candidate.sequence_order:
            break
        status = status_by_seq.get(stage.sequence_order)
        if status is not None and status != "completed":
            return IncompleteCurrentStage(
                stage_id=stage.id,
                stage_name=stage.stage_name,
                sequence_order=stage.sequence_order,
                status=status,
            )

    if candidate is None:
        return WorkflowComplete()
    return NextStage(stage=candidate)


# ═════════════════════════════════════════════════════════════════════════════
# Data access
# ═════════════════════════════════════════════════════════════════════════════


def _load_active_stages(organization_id: str) -> list[WorkflowStage]:
    stmt = (
        select(WorkflowStage)
        .where(
            WorkflowStage.organization_id == organization_id,
            WorkflowStage.is_active.is_(True),
        )
        .order_by(WorkflowStage.sequence_order.asc())
    )
    return list(db.session.execute(stmt).scalars().all())


def _load_represented_progress(organization_id: str, order_id: str) -> list[WorkflowProgress]:
    stmt = (
        select(WorkflowProgress)
        .join(WorkflowStage, WorkflowProgress.stage_id == WorkflowStage.id)
        .where(
            WorkflowProgress.organization_id == organization_id,
            WorkflowProgress.order_id == order_id,
            WorkflowProgress.status.in_(ACTIVATED_STATUSES),
            WorkflowStage.is_active.is_(True),
        )
    )
    return list(db.session.execute(stmt).scalars().all())


def _insert_progress(organization_id: str, order_id: str, stage: WorkflowStage) -> WorkflowProgress:
    """Insert the pending progress row inside a SAVEPOINT."""
    with db.session.begin_nested():
        row = WorkflowProgress(
            organization_id=organization_id,
            order_id=order_id,
            stage_id=stage.id,
            status="pending",
            progress_percentage=0,
            quality_status="pending",
            stage_data={},
            notes=AUTO_PROGRESS_NOTE,
        )
        db.session.add(row)
        db.session.flush()
    return row


def _insert_with_retry(
    organization_id: str, order_id: str, stage: WorkflowStage,
) -> tuple[WorkflowProgress, bool]:
    """Insert the progress row, absorbing conflicts and transient failures.

    Returns:
        (row, already_existed)

    Raises:
        OperationalError: after ``WORKFLOW_INSERT_MAX_RETRIES`` retries.
        IntegrityError: if the insert conflicts but no existing row is found
            (a constraint other than order/stage uniqueness failed).
    """
    max_retries = current_app.config.get("WORKFLOW_INSERT_MAX_RETRIES", MAX_INSERT_RETRIES)
    base_delay = current_app.config.get("WORKFLOW_INSERT_RETRY_BASE_DELAY", RETRY_BASE_DELAY)

    attempt = 0
    while True:
        try:
            return _insert_progress(organization_id, order_id, stage), False
        except IntegrityError:
            existing = (
                WorkflowProgress.query
                .filter_by(order_id=order_id, stage_id=stage.id)
                .first()
            )
            if existing is None:
                raise
            logger.info(
                "Stage %s already has progress row %s for order %s — treating as activated",
                stage.stage_name, existing.id, order_id,
            )
            return existing, True
        except OperationalError as exc:
            if attempt >= max_retries:
                logger.error(
                    "Progress insert for order %s stage %s failed after %d attempts: %s",
                    order_id, stage.stage_name, attempt + 1, exc,
                )
                raise
            delay = base_delay * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Progress insert attempt %d/%d failed (%s); retrying in %.1fs",
                attempt, max_retries + 1, exc, delay,
            )
            _sleep(delay)


def _audit_activation(organization_id: str, order_id: str, stage: WorkflowStage,
                      row: WorkflowProgress, actor: str) -> None:
    """Record the decision. Failures are logged, never raised."""
    try:
        with db.session.begin_nested():
            write_audit(
                entity_type="workflow_progress",
                entity_id=row.id,
                action="workflow.auto_progress",
                actor=actor,
                organization_id=organization_id,
                diff={
                    "old": None,
                    "new": row.to_dict(),
                    "metadata": {
                        "order_id": order_id,
                        "stage_name": stage.stage_name,
                        "sequence_order": stage.sequence_order,
                    },
                },
            )
    except Exception:
        logger.warning("Audit log failed for workflow progression — main flow unaffected",
                       exc_info=True)


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════


def auto_progress_workflow(organization_id: str, order_id: str, *, actor: str = "system"):
    """
    Activate the next workflow stage for an order.

    Creates at most one WorkflowProgress row. Caller owns the commit.

    Args:
        organization_id: Organization scope.
        order_id: Order to progress.
        actor: Recorded on the audit row.

    Returns:
        StageActivated | NoStagesConfigured | IncompleteCurrentStage | WorkflowComplete

    Raises:
        NotFoundError: order does not exist in the organization.
        OperationalError: database failure on fetch, or on insert after retries.
    """
    get_scoped(Order, order_id, organization_id=organization_id)

    represented = _load_represented_progress(organization_id, order_id)
    stages = _load_active_stages(organization_id)

    decision = resolve_next_stage(stages, represented)
    if not isinstance(decision, NextStage):
        logger.info(
            "Auto-progress order=%s org=%s → %s",
            order_id, organization_id, type(decision).__name__,
        )
        return decision

    stage = decision.stage
    row, already_existed = _insert_with_retry(organization_id, order_id, stage)

    if not already_existed:
        _audit_activation(organization_id, order_id, stage, row, actor)

    logger.info(
        "Auto-progress order=%s org=%s → stage %s (seq=%d, existing=%s)",
        order_id, organization_id, stage.stage_name, stage.sequence_order, already_existed,
    )
    return StageActivated(
        progress_id=row.id,
        stage_id=stage.id,
        stage_name=stage.stage_name,
        sequence_order=stage.sequence_order,
        already_existed=already_existed,
        progress=row.to_dict(),
    )
