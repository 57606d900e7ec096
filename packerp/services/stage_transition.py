"""
Stage Transition Validator — quality gate between workflow stages.

An order may leave ``from_stage`` only when at least one quality inspection
for that stage has passed and none are still pending.

Usage:
    from packerp.services.stage_transition import validate_stage_transition

    decision = validate_stage_transition(org_id, order_id, from_stage_id, to_stage_id)
    if not decision.can_transition:
        ...
"""

import logging
from dataclasses import dataclass

from packerp.models.quality import QualityInspection

logger = logging.getLogger(__name__)

REASON_NO_PASSED = "No passed quality inspection"
REASON_PENDING = "Pending quality inspection exists"
REASON_ALLOWED = "Transition allowed"


@dataclass
class TransitionDecision:
    can_transition: bool
    reason: str
    inspections_checked: int = 0

    def to_dict(self) -> dict:
        return {"canTransition": self.can_transition, "reason": self.reason}


def evaluate_inspections(results: list[str]) -> TransitionDecision:
    """Apply the gate to a list of ``overall_result`` values."""
    has_passed = any(r == "passed" for r in results)
    has_pending = any(r == "pending" for r in results)

    if not has_passed:
        reason = REASON_NO_PASSED
    elif has_pending:
        reason = REASON_PENDING
    else:
        reason = REASON_ALLOWED

    return TransitionDecision(
        can_transition=has_passed and not has_pending,
        reason=reason,
        inspections_checked=len(results),
    )


def validate_stage_transition(
    organization_id: str,
    order_id: str,
    from_stage_id: str,
    to_stage_id: str | None = None,
) -> TransitionDecision:
    """Decide whether ``order_id`` may move from ``from_stage_id`` to ``to_stage_id``.

    Only inspections of the stage being left are considered. ``to_stage_id``
    is accepted for logging.
    """
    inspections = (
        QualityInspection.query
        .filter_by(
            organization_id=organization_id,
            order_id=order_id,
            stage_id=from_stage_id,
        )
        .order_by(QualityInspection.created_at.desc())
        .all()
    )
    decision = evaluate_inspections([i.overall_result for i in inspections])
    logger.info(
        "Stage transition order=%s %s → %s: %s (%d inspections)",
        order_id, from_stage_id, to_stage_id, decision.reason, decision.inspections_checked,
    )
    return decision
