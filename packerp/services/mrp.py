"""
Material Requirement Planning.

For each active item:
    avg_daily_consumption = Σ issued qty in window / window days
    safety_stock          = avg_daily_consumption × lead_time_days
    required_qty          = reorder_level + safety_stock
    shortage_qty          = max(0, required_qty − current_qty)

Priority:
    critical  current ≤ 0
    high      current ≤ 50% of reorder_level
    medium    current ≤ reorder_level
    low       otherwise
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import func, select

from packerp.models import db
from packerp.models.inventory import Item, StockBalance, StockIssue

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30

PRIORITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def classify_priority(current_qty: float, reorder_level: float) -> str:
    if current_qty <= 0:
        return "critical"
    if current_qty <= reorder_level * 0.5:
        return "high"
    if current_qty <= reorder_level:
        return "medium"
    return "low"


def _issued_in_window(organization_id: str, as_of: date, window_days: int) -> dict[str, float]:
    start = as_of - timedelta(days=window_days)
    stmt = (
        select(StockIssue.item_code, func.sum(StockIssue.qty_issued))
        .where(
            StockIssue.organization_id == organization_id,
            StockIssue.date > start,
            StockIssue.date <= as_of,
        )
        .group_by(StockIssue.item_code)
    )
    return {code: float(qty or 0) for code, qty in db.session.execute(stmt).all()}


def item_usage_values(
    organization_id: str,
    as_of: date | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> list[dict]:
    """Consumption value (issued qty × unit cost) per active item over the window."""
    as_of = as_of or date.today()
    issued = _issued_in_window(organization_id, as_of, window_days)
    items = Item.query.filter_by(organization_id=organization_id, is_active=True).all()
    return [
        {
            "item_code": item.item_code,
            "item_name": item.item_name,
            "issued_qty": issued.get(item.item_code, 0.0),
            "usage_value": round(issued.get(item.item_code, 0.0) * float(item.unit_cost or 0), 2),
        }
        for item in items
    ]


def calculate_material_requirements(
    organization_id: str,
    as_of: date | None = None,
    consumption_window_days: int = DEFAULT_WINDOW_DAYS,
) -> list[dict]:
    """Items that need replenishment, most urgent first."""
    if consumption_window_days <= 0:
        raise ValueError("consumption_window_days must be positive")
    as_of = as_of or date.today()

    issued = _issued_in_window(organization_id, as_of, consumption_window_days)
    balances = {
        b.item_code: b
        for b in StockBalance.query.filter_by(organization_id=organization_id).all()
    }
    items = Item.query.filter_by(organization_id=organization_id, is_active=True).all()

    requirements = []
    for item in items:
        balance = balances.get(item.item_code)
        current = float(balance.current_qty) if balance else 0.0
        reorder_level = float(item.reorder_level or 0)
        reorder_qty = float(item.reorder_quantity or 0)
        lead_time = item.lead_time_days if item.lead_time_days is not None else 7
        unit_cost = float(item.unit_cost or 0)

        avg_daily = issued.get(item.item_code, 0.0) / consumption_window_days
        safety_stock = avg_daily * lead_time
        required = reorder_level + safety_stock
        shortage = max(0.0, required - current)
        if shortage <= 0:
            continue

        requirements.append({
            "item_code": item.item_code,
            "item_name": item.item_name,
            "uom": item.uom,
            "current_qty": round(current, 3),
            "reorder_level": reorder_level,
            "lead_time_days": lead_time,
            "avg_daily_consumption": round(avg_daily, 3),
            "safety_stock": round(safety_stock, 3),
            "required_qty": round(required, 3),
            "shortage_qty": round(shortage, 3),
            "suggested_order_qty": round(max(shortage, reorder_qty), 3),
            "estimated_cost": round(shortage * unit_cost, 2),
            "priority": classify_priority(current, reorder_level),
        })

    requirements.sort(key=lambda r: (PRIORITY_RANK[r["priority"]], -r["shortage_qty"]))
    logger.info("MRP org=%s as_of=%s: %d items short", organization_id, as_of, len(requirements))
    return requirements
