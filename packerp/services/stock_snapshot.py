"""
Daily stock snapshot: freezes the stock position of an organization for a day.
"""

import logging
from datetime import date

from packerp.models import db
from packerp.models.audit import write_audit
from packerp.models.inventory import StockSnapshot
from packerp.services.stock_reconciliation import calculate_stock_position

logger = logging.getLogger(__name__)


def capture_daily_snapshot(organization_id: str, snapshot_date: date | None = None) -> dict:
    """Store (or replace) the snapshot for ``snapshot_date`` (default today).

    Returns the snapshot summary dict.
    """
    snapshot_date = snapshot_date or date.today()
    rows = calculate_stock_position(organization_id)
    total_value = round(sum(r["stock_value"] for r in rows), 2)

    snap = StockSnapshot.query.filter_by(
        organization_id=organization_id, snapshot_date=snapshot_date,
    ).first()
    replaced = snap is not None
    if snap is None:
        snap = StockSnapshot(organization_id=organization_id, snapshot_date=snapshot_date)
        db.session.add(snap)

    snap.item_count = len(rows)
    snap.total_value = total_value
    snap.snapshot_data = [
        {
            "item_code": r["item_code"],
            "item_name": r["item_name"],
            "current_qty": r["current_qty"],
            "calculated_qty": r["calculated_qty"],
            "unit_cost": r["unit_cost"],
            "stock_value": r["stock_value"],
        }
        for r in rows
    ]
    db.session.flush()

    try:
        with db.session.begin_nested():
            write_audit(
                entity_type="stock_snapshot",
                entity_id=snap.id,
                action="stock.snapshot",
                organization_id=organization_id,
                diff={"metadata": {
                    "snapshot_date": snapshot_date.isoformat(),
                    "item_count": len(rows),
                    "total_value": total_value,
                    "replaced": replaced,
                }},
            )
    except Exception:
        logger.warning("Audit log failed for stock snapshot — main flow unaffected", exc_info=True)

    logger.info("Stock snapshot org=%s date=%s items=%d value=%.2f%s",
                organization_id, snapshot_date, len(rows), total_value,
                " (replaced)" if replaced else "")
    result = snap.to_dict()
    result["replaced"] = replaced
    return result


def list_snapshots(organization_id: str):
    return (
        StockSnapshot.query
        .filter_by(organization_id=organization_id)
        .order_by(StockSnapshot.snapshot_date.desc())
    )
