"""
Quality Checkpoint Service — creates pending inspections from stage templates.
"""

import logging

from packerp.core.exceptions import ValidationError
from packerp.models import db
from packerp.models.audit import write_audit
from packerp.models.quality import CHECK_TYPES, QualityInspection, QualityTemplate
from packerp.models.workflow import Order, WorkflowStage
from packerp.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def _active_template(organization_id: str, stage_id: str) -> QualityTemplate | None:
    return (
        QualityTemplate.query
        .filter_by(organization_id=organization_id, stage_id=stage_id, is_active=True)
        .order_by(QualityTemplate.created_at.desc())
        .first()
    )


def create_quality_checkpoint(
    organization_id: str,
    order_id: str,
    stage_id: str,
    check_type: str = "pre_stage",
    *,
    actor: str = "system",
) -> dict:
    """
    Create a pending QualityInspection for an order at a stage.

    A missing template is tolerated: the inspection is created without
    ``template_id``.

    Returns:
        {"success", "checkpointId", "checkType"}

    Raises:
        NotFoundError: order or stage not in the organization.
        ValidationError: unknown check_type.
    """
    if check_type not in CHECK_TYPES:
        raise ValidationError(
            f"check_type must be one of {', '.join(CHECK_TYPES)}",
            details={"check_type": check_type},
        )

    get_scoped(Order, order_id, organization_id=organization_id)
    get_scoped(WorkflowStage, stage_id, organization_id=organization_id)

    template = _active_template(organization_id, stage_id)
    if template is None:
        logger.info("No active quality template for stage %s; creating bare checkpoint", stage_id)

    inspection = QualityInspection(
        organization_id=organization_id,
        order_id=order_id,
        stage_id=stage_id,
        template_id=template.id if template else None,
        overall_result="pending",
        inspection_results={},
        defects_found=[],
        corrective_actions=[],
        remarks=f"{check_type} quality checkpoint created automatically",
    )
    db.session.add(inspection)
    db.session.flush()

    try:
        with db.session.begin_nested():
            write_audit(
                entity_type="quality_inspection",
                entity_id=inspection.id,
                action="quality.checkpoint_created",
                actor=actor,
                organization_id=organization_id,
                diff={"old": None, "new": inspection.to_dict(),
                      "metadata": {"check_type": check_type}},
            )
    except Exception:
        logger.warning("Audit log failed for quality checkpoint — main flow unaffected",
                       exc_info=True)

    return {"success": True, "checkpointId": inspection.id, "checkType": check_type}
