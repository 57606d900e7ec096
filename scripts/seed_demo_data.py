#!/usr/bin/env python3
"""
PackERP — Demo Seed.

Creates one flexible-packaging plant with a five-stage workflow, item
master, opening balances, receipts, issues and a handful of orders at
different points of the line, so every endpoint returns something useful.

Usage:
    python scripts/seed_demo_data.py              # wipe + seed
    python scripts/seed_demo_data.py -v           # verbose
"""

import argparse
import sys
from datetime import date, timedelta

sys.path.insert(0, ".")

from packerp import create_app
from packerp.models import db
from packerp.models.audit import AuditLog
from packerp.models.inventory import GoodsReceipt, Item, StockBalance, StockIssue, StockSnapshot
from packerp.models.organization import Organization
from packerp.models.quality import QualityInspection, QualityTemplate
from packerp.models.workflow import Order, WorkflowProgress, WorkflowStage

_today = date.today()

STAGES = [
    ("Printing", {"registration_mm": 0.2, "colour_delta_e": 2.0}),
    ("Lamination", {"bond_strength_n_15mm": 2.5}),
    ("Adhesive Coating", {"coat_weight_gsm": 3.0}),
    ("Slitting", {"width_tolerance_mm": 0.5}),
    ("Packaging", {"core_id_mm": 76}),
]

# code, name, uom, reorder level, reorder qty, lead time, unit cost, opening, system qty
ITEMS = [
    ("BOPP-20", "BOPP Film 20 micron", "KG", 500, 2000, 10, 165.0, 1800, 1320),
    ("PET-12", "PET Film 12 micron", "KG", 400, 1500, 14, 182.5, 900, 655),
    ("INK-CY", "Gravure Ink Cyan", "KG", 60, 200, 7, 420.0, 120, 38),
    ("ADH-PU", "PU Adhesive 2K", "KG", 150, 500, 12, 310.0, 300, 300),
    ("CORE-3IN", "Paper Core 3 inch", "NOS", 200, 1000, 5, 18.0, 800, 640),
]

RECEIPTS = [("GRN-2401", "BOPP-20", 600), ("GRN-2402", "PET-12", 400),
            ("GRN-2403", "ADH-PU", 200)]

ISSUES = [("BOPP-20", 1080, 3), ("PET-12", 640, 5), ("INK-CY", 82, 2),
          ("ADH-PU", 200, 9), ("CORE-3IN", 160, 1)]

# uiorn, item, qty, statuses by stage order
ORDERS = [
    ("UIORN-24001", "LAM-BOPP-PET", 12000, ["completed"] * 5),
    ("UIORN-24002", "POUCH-250", 8000, ["completed", "completed", "in_progress"]),
    ("UIORN-24003", "LAM-PET-12", 5000, ["completed"]),
    ("UIORN-24004", "LABEL-WRAP", 20000, []),
]


def _p(msg, verbose):
    if verbose:
        print(msg)


def seed_all(app, verbose=False):
    """Seed the demo plant."""
    with app.app_context():
        print("Clearing existing data...")
        for model in [AuditLog, QualityInspection, QualityTemplate, WorkflowProgress,
                      Order, WorkflowStage, StockSnapshot, StockIssue, GoodsReceipt,
                      StockBalance, Item, Organization]:
            db.session.query(model).delete()
        db.session.commit()

        org = Organization(code="DKEGL", name="DKEGL Flexible Packaging")
        db.session.add(org)
        db.session.flush()

        stages = []
        for seq, (name, params) in enumerate(STAGES, start=1):
            stage = WorkflowStage(organization_id=org.id, stage_name=name, sequence_order=seq)
            db.session.add(stage)
            db.session.flush()
            db.session.add(QualityTemplate(organization_id=org.id, stage_id=stage.id,
                                           template_name=f"{name} check",
                                           check_parameters=params))
            stages.append(stage)
            _p(f"   stage {seq}: {name}", verbose)

        for code, name, uom, rl, rq, lt, cost, opening, current in ITEMS:
            db.session.add(Item(organization_id=org.id, item_code=code, item_name=name,
                                uom=uom, reorder_level=rl, reorder_quantity=rq,
                                lead_time_days=lt, unit_cost=cost))
            db.session.add(StockBalance(organization_id=org.id, item_code=code,
                                        opening_qty=opening, current_qty=current,
                                        unit_cost=cost))
            _p(f"   item {code}", verbose)

        for grn, code, qty in RECEIPTS:
            db.session.add(GoodsReceipt(organization_id=org.id, grn_number=grn, item_code=code,
                                        date=_today - timedelta(days=12), qty_received=qty))
        for code, qty, days_ago in ISSUES:
            db.session.add(StockIssue(organization_id=org.id, item_code=code, qty_issued=qty,
                                      date=_today - timedelta(days=days_ago),
                                      purpose="Production issue"))

        for uiorn, item_code, qty, statuses in ORDERS:
            order = Order(organization_id=org.id, uiorn=uiorn, item_code=item_code,
                          order_quantity=qty,
                          status="in_production" if statuses else "draft")
            db.session.add(order)
            db.session.flush()
            for stage, status in zip(stages, statuses):
                db.session.add(WorkflowProgress(
                    organization_id=org.id, order_id=order.id, stage_id=stage.id,
                    status=status, progress_percentage=100 if status == "completed" else 50,
                    quality_status="passed" if status == "completed" else "pending",
                ))
                if status == "completed":
                    db.session.add(QualityInspection(
                        organization_id=org.id, order_id=order.id, stage_id=stage.id,
                        overall_result="passed",
                    ))
            if len(statuses) == len(stages):
                order.status = "completed"
            _p(f"   order {uiorn}: {len(statuses)} stage(s)", verbose)

        db.session.commit()
        print(f"Seeded organization {org.code} ({org.id}): {len(STAGES)} stages, "
              f"{len(ITEMS)} items, {len(ORDERS)} orders")


def main():
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    app = create_app()
    print(f"DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")
    with app.app_context():
        db.create_all()
    seed_all(app, verbose=args.verbose)


if __name__ == "__main__":
    main()
