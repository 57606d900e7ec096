"""
PackERP Manufacturing Backend
Manufacturing workflow domain model.

Models:
    - WorkflowStage: ordered stage catalog per organization
      (Printing → Lamination → Adhesive Coating → Slitting → Packaging …)
    - Order: a production order identified by its UIORN
    - WorkflowProgress: one row per (order, stage) recording lifecycle status

State machine (WorkflowProgress.status):
    pending → in_progress → completed
"""

from packerp.models import db
from packerp.models.base import OrgScopedModel, _utcnow

# ── Constants ────────────────────────────────────────────────────────────────

PROGRESS_STATUSES = ("pending", "in_progress", "completed")
ORDER_STATUSES = ("draft", "in_production", "completed", "cancelled")

# Statuses that count a stage as activated for the sequencing invariant.
ACTIVATED_STATUSES = ("in_progress", "completed")

PROGRESS_TRANSITIONS = {
    "pending": ["in_progress"],
    "in_progress": ["completed"],
    "completed": [],
}


class WorkflowStage(OrgScopedModel):
    """
    A manufacturing stage definition.

    ``sequence_order`` is the ordering key and is unique per organization.
    Rows referenced by production are not mutated except for ``is_active``.
    """

    __tablename__ = "workflow_stages"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "sequence_order",
                            name="uq_workflow_stage_org_seq"),
    )

    stage_name = db.Column(db.String(100), nullable=False)
    sequence_order = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "stage_name": self.stage_name,
            "sequence_order": self.sequence_order,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WorkflowStage {self.sequence_order}:{self.stage_name}>"


class Order(OrgScopedModel):
    """Production order. ``uiorn`` is the human-readable order code."""

    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "uiorn", name="uq_order_org_uiorn"),
    )

    uiorn = db.Column(db.String(50), nullable=False)
    item_code = db.Column(db.String(50), nullable=False)
    order_quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="draft",
                       comment="draft | in_production | completed | cancelled")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    progress = db.relationship(
        "WorkflowProgress",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="select",
    )

    def to_dict(self, include_progress=False):
        d = {
            "id": self.id,
            "organization_id": self.organization_id,
            "uiorn": self.uiorn,
            "item_code": self.item_code,
            "order_quantity": float(self.order_quantity or 0),
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_progress:
            rows = sorted(
                self.progress,
                key=lambda p: p.stage.sequence_order if p.stage else 0,
            )
            d["progress"] = [p.to_dict() for p in rows]
        return d

    def __repr__(self):
        return f"<Order {self.uiorn}>"


class WorkflowProgress(OrgScopedModel):
    """
    Progress of one order through one stage.

    At most one row per (order_id, stage_id): concurrent activations of the
    same stage collide on ``uq_workflow_progress_order_stage``.
    """

    __tablename__ = "workflow_progress"
    __table_args__ = (
        db.UniqueConstraint("order_id", "stage_id",
                            name="uq_workflow_progress_order_stage"),
        db.Index("ix_workflow_progress_org_order", "organization_id", "order_id"),
    )

    order_id = db.Column(
        db.String(36),
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage_id = db.Column(
        db.String(36),
        db.ForeignKey("workflow_stages.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | in_progress | completed")
    progress_percentage = db.Column(db.Integer, nullable=False, default=0)
    quality_status = db.Column(db.String(20), nullable=False, default="pending",
                               comment="pending | passed | failed")
    stage_data = db.Column(db.JSON, default=dict)
    notes = db.Column(db.Text, nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    order = db.relationship("Order", back_populates="progress")
    stage = db.relationship("WorkflowStage", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "order_id": self.order_id,
            "stage_id": self.stage_id,
            "stage_name": self.stage.stage_name if self.stage else None,
            "sequence_order": self.stage.sequence_order if self.stage else None,
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "quality_status": self.quality_status,
            "stage_data": self.stage_data or {},
            "notes": self.notes,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WorkflowProgress order={self.order_id} stage={self.stage_id} [{self.status}]>"
