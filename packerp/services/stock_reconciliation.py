"""
Stock Reconciliation Service.

Stock position per item:
    calculated_qty = opening_qty + Σ GRN qty − Σ issued qty
    variance       = current_qty − calculated_qty
    variance_value = variance × unit_cost

Reconciliation overwrites ``current_qty`` with ``calculated_qty`` for every
item whose |variance| exceeds the tolerance and leaves one audit row per
corrected item.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import and_, func, select

from packerp.models import db
from packerp.models.audit import write_audit
from packerp.models.inventory import GoodsReceipt, Item, StockBalance, StockIssue
from packerp.services.stock_variance import DEFAULT_TOLERANCE

logger = logging.getLogger(__name__)


def _dec(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


def _position_query(organization_id: str):
    received = (
        select(
            GoodsReceipt.item_code.label("item_code"),
            func.sum(GoodsReceipt.qty_received).label("qty"),
        )
        .where(GoodsReceipt.organization_id == organization_id)
        .group_by(GoodsReceipt.item_code)
        .subquery("received")
    )
    issued = (
        select(
            StockIssue.item_code.label("item_code"),
            func.sum(StockIssue.qty_issued).label("qty"),
        )
        .where(StockIssue.organization_id == organization_id)
        .group_by(StockIssue.item_code)
        .subquery("issued")
    )
    return (
        select(StockBalance, received.c.qty, issued.c.qty, Item.item_name)
        .outerjoin(received, received.c.item_code == StockBalance.item_code)
        .outerjoin(issued, issued.c.item_code == StockBalance.item_code)
        .outerjoin(Item, and_(
            Item.organization_id == StockBalance.organization_id,
            Item.item_code == StockBalance.item_code,
        ))
        .where(StockBalance.organization_id == organization_id)
        .order_by(StockBalance.item_code.asc())
    )


def _position(balance: StockBalance, received, issued, item_name) -> dict:
    total_received = _dec(received)
    total_issued = _dec(issued)
    calculated = _dec(balance.opening_qty) + total_received - total_issued
    current = _dec(balance.current_qty)
    variance = current - calculated
    unit_cost = _dec(balance.unit_cost)
    return {
        "item_code": balance.item_code,
        "item_name": item_name or balance.item_code,
        "opening_qty": float(_dec(balance.opening_qty)),
        "total_received": float(total_received),
        "total_issued": float(total_issued),
        "calculated_qty": float(calculated),
        "current_qty": float(current),
        "variance": float(variance),
        "unit_cost": float(unit_cost),
        "variance_value": round(float(variance * unit_cost), 2),
        "stock_value": round(float(current * unit_cost), 2),
    }


def _positions_with_balances(organization_id: str):
    for balance, received, issued, item_name in db.session.execute(
        _position_query(organization_id)
    ).all():
        yield balance, _position(balance, received, issued, item_name)


def calculate_stock_position(organization_id: str) -> list[dict]:
    """Stock position rows for every item with a balance, ordered by item_code."""
    return [row for _, row in _positions_with_balances(organization_id)]


def reconcile_stock(organization_id: str, *, actor: str = "system") -> dict:
    """
    Correct system stock to the calculated quantity.

    Returns:
        {"items_checked", "items_corrected", "total_variance_corrected",
         "total_variance_remaining"}
    """
    tolerance = current_app.config.get("STOCK_VARIANCE_TOLERANCE", DEFAULT_TOLERANCE)
    now = datetime.now(UTC)

    checked = 0
    corrected = 0
    total_corrected = 0.0
    total_remaining = 0.0

    for balance, row in list(_positions_with_balances(organization_id)):
        checked += 1
        balance.last_reconciled_at = now
        if abs(row["variance"]) <= tolerance:
            total_remaining += abs(row["variance"])
            continue

        old_qty = row["current_qty"]
        balance.current_qty = _dec(row["calculated_qty"])
        corrected += 1
        total_corrected += abs(row["variance"])

        try:
            with db.session.begin_nested():
                write_audit(
                    entity_type="stock_balance",
                    entity_id=balance.id,
                    action="stock.reconcile",
                    actor=actor,
                    organization_id=organization_id,
                    diff={
                        "current_qty": {"old": old_qty, "new": row["calculated_qty"]},
                        "metadata": {
                            "item_code": row["item_code"],
                            "variance": row["variance"],
                            "variance_value": row["variance_value"],
                        },
                    },
                )
        except Exception:
            logger.warning("Audit log failed for stock reconcile — main flow unaffected",
                           exc_info=True)

    db.session.flush()
    logger.info(
        "Stock reconcile org=%s: %d checked, %d corrected (|Δ|=%.3f)",
        organization_id, checked, corrected, total_corrected,
    )
    return {
        "items_checked": checked,
        "items_corrected": corrected,
        "total_variance_corrected": round(total_corrected, 3),
        "total_variance_remaining": round(total_remaining, 3),
    }
