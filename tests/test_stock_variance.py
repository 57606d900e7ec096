"""
Pure variance / ABC calculation tests (no database).
"""

import pytest

from packerp.services.stock_variance import (
    abc_classification,
    build_variance_report,
    classify_severity,
    variance_percentage,
)


def _row(code, calculated, current, unit_cost=1.0):
    variance = current - calculated
    return {
        "item_code": code,
        "calculated_qty": calculated,
        "current_qty": current,
        "variance": variance,
        "variance_value": round(variance * unit_cost, 2),
    }


# ── variance_percentage ──────────────────────────────────────────────────────


@pytest.mark.parametrize("variance,calculated,expected", [
    (5, 100, 5.0),
    (-5, 100, 5.0),
    (5, -100, 5.0),
    (0, 0, 0.0),
    (3, 0, 100.0),
    (-3, 0, 100.0),
    (60, 120, 50.0),
])
def test_variance_percentage(variance, calculated, expected):
    assert variance_percentage(variance, calculated) == pytest.approx(expected)


def test_variance_percentage_is_sign_symmetric():
    for calc in (1, 7.5, 300):
        assert variance_percentage(2.5, calc) == variance_percentage(-2.5, calc)


# ── classify_severity ────────────────────────────────────────────────────────


@pytest.mark.parametrize("pct,severity", [
    (0, "low"),
    (5, "low"),
    (5.01, "medium"),
    (20, "medium"),
    (20.5, "high"),
    (50, "high"),
    (50.01, "critical"),
    (100, "critical"),
])
def test_classify_severity(pct, severity):
    assert classify_severity(pct) == severity


# ── build_variance_report ────────────────────────────────────────────────────


class TestVarianceReport:

    def test_within_tolerance_excluded(self):
        report = build_variance_report([_row("INK-CY", 20, 20.005)], tolerance=0.01)
        assert report["items"] == []
        assert report["total_items"] == 0
        assert report["by_severity"] == {"critical": 0, "high": 0, "medium": 0, "low": 0}

    def test_sorted_by_absolute_value(self):
        rows = [
            _row("BOPP-20", 120, 115, unit_cost=10),   # −50
            _row("PET-12", 0, 10, unit_cost=8),        # +80
            _row("ADH-PU", 200, 150, unit_cost=4),     # −200
        ]

        report = build_variance_report(rows)

        assert [i["item_code"] for i in report["items"]] == ["ADH-PU", "PET-12", "BOPP-20"]
        assert report["total_variance_value"] == 330.0

    def test_severity_and_percentage_added(self):
        report = build_variance_report([
            _row("BOPP-20", 120, 115),
            _row("PET-12", 0, 10),
            _row("ADH-PU", 200, 150),
        ])
        by_code = {i["item_code"]: i for i in report["items"]}

        assert by_code["BOPP-20"]["severity"] == "low"
        assert by_code["BOPP-20"]["variance_percentage"] == 4.17
        assert by_code["PET-12"]["severity"] == "critical"
        assert by_code["PET-12"]["variance_percentage"] == 100.0
        assert by_code["ADH-PU"]["severity"] == "high"
        assert report["by_severity"] == {"critical": 1, "high": 1, "medium": 0, "low": 1}

    def test_severity_filter_applies_to_totals(self):
        rows = [
            _row("BOPP-20", 120, 115, unit_cost=10),   # low, −50
            _row("PET-12", 0, 10, unit_cost=8),        # critical, +80
            _row("ADH-PU", 200, 150, unit_cost=4),     # high, −200
        ]

        report = build_variance_report(rows, severity="critical")

        assert [i["item_code"] for i in report["items"]] == ["PET-12"]
        assert report["total_items"] == 1
        assert report["by_severity"] == {"critical": 1, "high": 0, "medium": 0, "low": 0}
        assert report["total_variance_value"] == 80.0

    def test_input_fields_preserved(self):
        row = _row("BOPP-20", 120, 100)
        row["item_name"] = "BOPP Film 20 micron"
        item = build_variance_report([row])["items"][0]
        assert item["item_name"] == "BOPP Film 20 micron"
        assert item["variance"] == -20

    def test_custom_tolerance(self):
        rows = [_row("A", 100, 100.5)]
        assert build_variance_report(rows, tolerance=1.0)["total_items"] == 0
        assert build_variance_report(rows, tolerance=0.1)["total_items"] == 1


# ── abc_classification ───────────────────────────────────────────────────────


class TestAbcClassification:

    def test_cumulative_thresholds(self):
        rows = [
            {"item_code": "C1", "usage_value": 50},
            {"item_code": "A1", "usage_value": 800},
            {"item_code": "B1", "usage_value": 150},
        ]

        result = abc_classification(rows)

        assert [(r["item_code"], r["category"]) for r in result] == [
            ("A1", "A"), ("B1", "B"), ("C1", "C"),
        ]
        assert [r["cumulative_percentage"] for r in result] == [80.0, 95.0, 100.0]
        assert result[0]["usage_percentage"] == 80.0

    def test_single_dominant_item_is_not_a(self):
        result = abc_classification([
            {"item_code": "X", "usage_value": 90},
            {"item_code": "Y", "usage_value": 10},
        ])
        assert result[0]["category"] == "B"
        assert result[1]["category"] == "C"

    def test_no_usage(self):
        result = abc_classification([
            {"item_code": "X", "usage_value": 0},
            {"item_code": "Y", "usage_value": 0},
        ])
        assert {r["category"] for r in result} == {"C"}
        assert {r["usage_percentage"] for r in result} == {0.0}

    def test_empty(self):
        assert abc_classification([]) == []
