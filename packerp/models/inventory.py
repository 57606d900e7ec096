"""
PackERP Manufacturing Backend
Inventory domain model.

Models:
    - Item: item master (reorder policy, lead time, cost)
    - StockBalance: opening and system (current) quantity per item
    - GoodsReceipt: inbound receipts (GRN)
    - StockIssue: outbound issues to production
    - StockSnapshot: daily frozen copy of the stock position

Stock formula:
    calculated_qty = opening_qty + Σ GRN qty − Σ issued qty
    variance       = current_qty − calculated_qty
"""

from datetime import date

from packerp.models import db
from packerp.models.base import OrgScopedModel, _utcnow


class Item(OrgScopedModel):
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "item_code", name="uq_item_org_code"),
    )

    item_code = db.Column(db.String(50), nullable=False)
    item_name = db.Column(db.String(200), nullable=False)
    uom = db.Column(db.String(20), default="KG")
    reorder_level = db.Column(db.Numeric(14, 3), default=0)
    reorder_quantity = db.Column(db.Numeric(14, 3), default=0)
    lead_time_days = db.Column(db.Integer, default=7)
    unit_cost = db.Column(db.Numeric(14, 4), default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "uom": self.uom,
            "reorder_level": float(self.reorder_level or 0),
            "reorder_quantity": float(self.reorder_quantity or 0),
            "lead_time_days": self.lead_time_days,
            "unit_cost": float(self.unit_cost or 0),
            "is_active": self.is_active,
        }


class StockBalance(OrgScopedModel):
    """System stock per item. ``current_qty`` is what the ledger believes is on hand."""

    __tablename__ = "stock_balances"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "item_code", name="uq_stock_org_item"),
    )

    item_code = db.Column(db.String(50), nullable=False)
    opening_qty = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    current_qty = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    last_reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "item_code": self.item_code,
            "opening_qty": float(self.opening_qty or 0),
            "current_qty": float(self.current_qty or 0),
            "unit_cost": float(self.unit_cost or 0),
            "last_reconciled_at": (
                self.last_reconciled_at.isoformat() if self.last_reconciled_at else None
            ),
        }


class GoodsReceipt(OrgScopedModel):
    __tablename__ = "goods_receipts"
    __table_args__ = (
        db.Index("ix_goods_receipts_org_item", "organization_id", "item_code"),
    )

    grn_number = db.Column(db.String(50), nullable=False)
    item_code = db.Column(db.String(50), nullable=False)
    date = db.Column(db.Date, nullable=False, default=date.today)
    qty_received = db.Column(db.Numeric(14, 3), nullable=False)
    unit_rate = db.Column(db.Numeric(14, 4), default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


class StockIssue(OrgScopedModel):
    __tablename__ = "stock_issues"
    __table_args__ = (
        db.Index("ix_stock_issues_org_item_date", "organization_id", "item_code", "date"),
    )

    item_code = db.Column(db.String(50), nullable=False)
    date = db.Column(db.Date, nullable=False, default=date.today)
    qty_issued = db.Column(db.Numeric(14, 3), nullable=False)
    purpose = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


class StockSnapshot(OrgScopedModel):
    """Daily frozen stock position. One row per organization per day."""

    __tablename__ = "stock_snapshots"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "snapshot_date", name="uq_stock_snapshot_org_date"),
    )

    snapshot_date = db.Column(db.Date, nullable=False)
    item_count = db.Column(db.Integer, nullable=False, default=0)
    total_value = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    snapshot_data = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self, include_data=False):
        d = {
            "id": self.id,
            "organization_id": self.organization_id,
            "snapshot_date": self.snapshot_date.isoformat() if self.snapshot_date else None,
            "item_count": self.item_count,
            "total_value": float(self.total_value or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_data:
            d["snapshot_data"] = self.snapshot_data or []
        return d
