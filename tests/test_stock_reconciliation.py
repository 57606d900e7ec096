"""
Stock position, reconciliation and snapshot tests.

Fixture ledger (unit cost in brackets):
    BOPP-20  opening 100 + GRN 50 − issue 30 = 120, system 115   [10]
    PET-12   opening 0, no movement         = 0,   system 10    [8]
    INK-CY   opening 20, no movement        = 20,  system 20    [50]
"""

from datetime import date

import pytest

from packerp.models import db
from packerp.models.audit import AuditLog
from packerp.models.inventory import GoodsReceipt, Item, StockBalance, StockIssue, StockSnapshot
from packerp.services.stock_reconciliation import calculate_stock_position, reconcile_stock
from packerp.services.stock_snapshot import capture_daily_snapshot


def _item(org, code, *, opening, current, unit_cost, name=None):
    db.session.add(Item(organization_id=org.id, item_code=code, item_name=name or code,
                        unit_cost=unit_cost))
    balance = StockBalance(organization_id=org.id, item_code=code, opening_qty=opening,
                           current_qty=current, unit_cost=unit_cost)
    db.session.add(balance)
    return balance


@pytest.fixture()
def ledger(organization):
    org = organization
    _item(org, "BOPP-20", opening=100, current=115, unit_cost=10, name="BOPP Film 20 micron")
    _item(org, "PET-12", opening=0, current=10, unit_cost=8)
    _item(org, "INK-CY", opening=20, current=20, unit_cost=50)
    db.session.add(GoodsReceipt(organization_id=org.id, grn_number="GRN-001",
                                item_code="BOPP-20", qty_received=30))
    db.session.add(GoodsReceipt(organization_id=org.id, grn_number="GRN-002",
                                item_code="BOPP-20", qty_received=20))
    db.session.add(StockIssue(organization_id=org.id, item_code="BOPP-20", qty_issued=30,
                              purpose="UIORN-24001 printing"))
    db.session.commit()
    return org


# ═════════════════════════════════════════════════════════════════════════════
# Stock position
# ═════════════════════════════════════════════════════════════════════════════


class TestStockPosition:

    def test_formula(self, ledger):
        rows = {r["item_code"]: r for r in calculate_stock_position(ledger.id)}

        bopp = rows["BOPP-20"]
        assert bopp["item_name"] == "BOPP Film 20 micron"
        assert bopp["total_received"] == 50
        assert bopp["total_issued"] == 30
        assert bopp["calculated_qty"] == 120
        assert bopp["variance"] == -5
        assert bopp["variance_value"] == -50
        assert bopp["stock_value"] == 1150

        assert rows["PET-12"]["calculated_qty"] == 0
        assert rows["PET-12"]["variance"] == 10
        assert rows["INK-CY"]["variance"] == 0

    def test_ordered_by_item_code(self, ledger):
        codes = [r["item_code"] for r in calculate_stock_position(ledger.id)]
        assert codes == ["BOPP-20", "INK-CY", "PET-12"]

    def test_other_organization_movements_ignored(self, ledger, other_organization):
        db.session.add(GoodsReceipt(organization_id=other_organization.id, grn_number="X",
                                    item_code="BOPP-20", qty_received=999))
        db.session.commit()

        rows = {r["item_code"]: r for r in calculate_stock_position(ledger.id)}

        assert rows["BOPP-20"]["total_received"] == 50

    def test_balance_without_item_master_uses_code(self, organization):
        db.session.add(StockBalance(organization_id=organization.id, item_code="LOOSE",
                                    opening_qty=1, current_qty=1, unit_cost=0))
        db.session.flush()
        assert calculate_stock_position(organization.id)[0]["item_name"] == "LOOSE"


# ═════════════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════════════


class TestReconcile:

    def test_corrects_items_outside_tolerance(self, ledger):
        result = reconcile_stock(ledger.id, actor="editor:abc")

        assert result == {
            "items_checked": 3,
            "items_corrected": 2,
            "total_variance_corrected": 15.0,
            "total_variance_remaining": 0.0,
        }
        balances = {b.item_code: b for b in StockBalance.query.all()}
        assert float(balances["BOPP-20"].current_qty) == 120
        assert float(balances["PET-12"].current_qty) == 0
        assert all(b.last_reconciled_at is not None for b in balances.values())

    def test_one_audit_row_per_corrected_item(self, ledger):
        reconcile_stock(ledger.id, actor="editor:abc")

        logs = AuditLog.query.filter_by(action="stock.reconcile").all()
        assert len(logs) == 2
        bopp = next(log for log in logs if log.diff["metadata"]["item_code"] == "BOPP-20")
        assert bopp.diff["current_qty"] == {"old": 115.0, "new": 120.0}
        assert bopp.actor == "editor:abc"

    def test_variance_within_tolerance_is_left_alone(self, organization):
        _item(organization, "FOIL-9", opening=10, current=10.005, unit_cost=1)
        db.session.flush()

        result = reconcile_stock(organization.id)

        assert result["items_corrected"] == 0
        assert result["total_variance_remaining"] == 0.005
        assert float(StockBalance.query.one().current_qty) == 10.005

    def test_reconcile_is_idempotent(self, ledger):
        reconcile_stock(ledger.id)
        second = reconcile_stock(ledger.id)
        assert second["items_corrected"] == 0


# ═════════════════════════════════════════════════════════════════════════════
# Snapshots
# ═════════════════════════════════════════════════════════════════════════════


class TestSnapshot:

    def test_capture(self, ledger):
        summary = capture_daily_snapshot(ledger.id, date(2024, 6, 30))

        assert summary["snapshot_date"] == "2024-06-30"
        assert summary["item_count"] == 3
        assert summary["total_value"] == 1150 + 80 + 1000
        assert summary["replaced"] is False
        snap = StockSnapshot.query.one()
        assert {r["item_code"] for r in snap.snapshot_data} == {"BOPP-20", "PET-12", "INK-CY"}

    def test_same_day_capture_replaces(self, ledger):
        capture_daily_snapshot(ledger.id, date(2024, 6, 30))
        StockBalance.query.filter_by(item_code="INK-CY").one().current_qty = 0
        db.session.flush()

        summary = capture_daily_snapshot(ledger.id, date(2024, 6, 30))

        assert summary["replaced"] is True
        assert summary["total_value"] == 1150 + 80
        assert StockSnapshot.query.count() == 1

    def test_different_days_kept(self, ledger):
        capture_daily_snapshot(ledger.id, date(2024, 6, 29))
        capture_daily_snapshot(ledger.id, date(2024, 6, 30))
        assert StockSnapshot.query.count() == 2


# ═════════════════════════════════════════════════════════════════════════════
# HTTP
# ═════════════════════════════════════════════════════════════════════════════


class TestInventoryApi:

    def test_variance_report(self, client, ledger):
        res = client.get(f"/api/v1/organizations/{ledger.id}/stock/variance")

        assert res.status_code == 200
        body = res.get_json()
        assert body["total_items"] == 2
        assert [i["item_code"] for i in body["items"]] == ["PET-12", "BOPP-20"]
        assert body["by_severity"]["critical"] == 1

    def test_variance_severity_filter(self, client, ledger):
        res = client.get(f"/api/v1/organizations/{ledger.id}/stock/variance?severity=low")

        body = res.get_json()
        assert [i["item_code"] for i in body["items"]] == ["BOPP-20"]
        assert body["total_items"] == 1
        assert body["by_severity"] == {"critical": 0, "high": 0, "medium": 0, "low": 1}
        assert body["total_variance_value"] == 50.0

    def test_variance_unknown_severity(self, client, ledger):
        res = client.get(f"/api/v1/organizations/{ledger.id}/stock/variance?severity=urgent")
        assert res.status_code == 400

    def test_reconcile_endpoint_commits(self, client, ledger):
        res = client.post(f"/api/v1/organizations/{ledger.id}/stock/reconcile")

        assert res.status_code == 200
        assert res.get_json()["items_corrected"] == 2
        db.session.rollback()
        bopp = StockBalance.query.filter_by(item_code="BOPP-20").one()
        assert float(bopp.current_qty) == 120
        assert AuditLog.query.filter_by(action="stock.reconcile").count() == 2

    def test_snapshot_endpoints(self, client, ledger):
        res = client.post(f"/api/v1/organizations/{ledger.id}/stock/snapshots",
                          json={"snapshot_date": "30-06-2024"})
        assert res.status_code == 201
        assert res.get_json()["snapshot_date"] == "2024-06-30"

        res = client.get(f"/api/v1/organizations/{ledger.id}/stock/snapshots?include_data=true")
        body = res.get_json()
        assert body["total"] == 1
        assert len(body["items"][0]["snapshot_data"]) == 3

    def test_invalid_snapshot_date(self, client, ledger):
        res = client.post(f"/api/v1/organizations/{ledger.id}/stock/snapshots",
                          json={"snapshot_date": "yesterday"})
        assert res.status_code == 400

    def test_unknown_organization(self, client):
        assert client.get("/api/v1/organizations/nope/stock/variance").status_code == 404
