"""
PackERP Manufacturing Backend
Scheduled Jobs.

Jobs:
    - daily_stock_snapshot: freeze the stock position of every active organization
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from packerp.models import db
from packerp.models.organization import Organization
from packerp.services.scheduler_service import register_job
from packerp.services.stock_snapshot import capture_daily_snapshot

logger = logging.getLogger(__name__)


@register_job("daily_stock_snapshot")
def snapshot_all_organizations(app, snapshot_date: date | None = None) -> dict[str, Any]:
    """Capture today's stock snapshot for every active organization."""
    organizations = (
        Organization.query
        .filter_by(is_active=True)
        .order_by(Organization.code.asc())
        .all()
    )

    results = []
    for org in organizations:
        try:
            summary = capture_daily_snapshot(org.id, snapshot_date)
            db.session.commit()
            results.append({"organization": org.code, "success": True, "result": summary})
        except Exception as exc:
            db.session.rollback()
            logger.error("Stock snapshot failed for organization %s: %s", org.code, exc,
                         exc_info=True)
            results.append({"organization": org.code, "success": False, "error": str(exc)})

    succeeded = sum(1 for r in results if r["success"])
    return {
        "success": True,
        "message": f"Daily stock snapshots captured for {succeeded}/{len(results)} organizations",
        "results": results,
    }
