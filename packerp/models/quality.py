"""
PackERP Manufacturing Backend
Quality control model.

Models:
    - QualityTemplate: check parameters configured per workflow stage
    - QualityInspection: one inspection of an order at a stage
"""

from datetime import date

from packerp.models import db
from packerp.models.base import OrgScopedModel, _utcnow

INSPECTION_RESULTS = ("pending", "passed", "failed")
CHECK_TYPES = ("pre_stage", "in_process", "post_stage")


class QualityTemplate(OrgScopedModel):
    __tablename__ = "quality_templates"

    stage_id = db.Column(
        db.String(36),
        db.ForeignKey("workflow_stages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    template_name = db.Column(db.String(150), nullable=False)
    check_parameters = db.Column(db.JSON, default=dict)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "stage_id": self.stage_id,
            "template_name": self.template_name,
            "check_parameters": self.check_parameters or {},
            "is_active": self.is_active,
        }


class QualityInspection(OrgScopedModel):
    """
    Quality inspection record.

    ``overall_result`` starts as ``pending`` and is later set to
    ``passed`` or ``failed`` by the inspector. Stage transitions are gated
    on these results.
    """

    __tablename__ = "quality_inspections"
    __table_args__ = (
        db.Index("ix_quality_inspections_order_stage", "order_id", "stage_id"),
    )

    order_id = db.Column(
        db.String(36),
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_id = db.Column(
        db.String(36),
        db.ForeignKey("workflow_stages.id", ondelete="CASCADE"),
        nullable=False,
    )
    template_id = db.Column(
        db.String(36),
        db.ForeignKey("quality_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    inspection_date = db.Column(db.Date, default=date.today)
    overall_result = db.Column(db.String(20), nullable=False, default="pending",
                               comment="pending | passed | failed")
    inspection_results = db.Column(db.JSON, default=dict)
    defects_found = db.Column(db.JSON, default=list)
    corrective_actions = db.Column(db.JSON, default=list)
    remarks = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "order_id": self.order_id,
            "stage_id": self.stage_id,
            "template_id": self.template_id,
            "inspection_date": self.inspection_date.isoformat() if self.inspection_date else None,
            "overall_result": self.overall_result,
            "inspection_results": self.inspection_results or {},
            "defects_found": self.defects_found or [],
            "corrective_actions": self.corrective_actions or [],
            "remarks": self.remarks,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<QualityInspection order={self.order_id} stage={self.stage_id} [{self.overall_result}]>"
