"""
Stock variance and ABC classification — pure calculations.

No database access here; callers pass the position rows produced by
``stock_reconciliation.calculate_stock_position``.
"""

from __future__ import annotations

SEVERITY_ORDER = ("critical", "high", "medium", "low")

DEFAULT_TOLERANCE = 0.01

ABC_A_THRESHOLD = 80.0
ABC_B_THRESHOLD = 95.0


def variance_percentage(variance: float, calculated_qty: float) -> float:
    """Magnitude of the variance relative to the calculated quantity, in percent.

    Symmetric in the sign of ``variance``. A non-zero variance against a zero
    calculated quantity reports 100.
    """
    variance = abs(float(variance))
    base = abs(float(calculated_qty))
    if base == 0:
        return 0.0 if variance == 0 else 100.0
    return variance / base * 100


def classify_severity(pct: float) -> str:
    if pct > 50:
        return "critical"
    if pct > 20:
        return "high"
    if pct > 5:
        return "medium"
    return "low"


def build_variance_report(
    rows: list[dict], *, tolerance: float = DEFAULT_TOLERANCE, severity: str | None = None,
) -> dict:
    """Summarise stock-position rows into a variance report.

    Each input row needs ``item_code``, ``calculated_qty``, ``current_qty``,
    ``variance`` and ``variance_value``. Rows within ``tolerance`` are dropped;
    with ``severity`` set, only rows of that severity are kept and totalled.
    """
    items = []
    for row in rows:
        variance = float(row["variance"])
        if abs(variance) <= tolerance:
            continue
        pct = variance_percentage(variance, row["calculated_qty"])
        level = classify_severity(pct)
        if severity and level != severity:
            continue
        items.append({
            **row,
            "variance_percentage": round(pct, 2),
            "severity": level,
        })

    items.sort(key=lambda r: abs(float(r["variance_value"])), reverse=True)

    by_severity = {s: 0 for s in SEVERITY_ORDER}
    for item in items:
        by_severity[item["severity"]] += 1

    return {
        "items": items,
        "total_items": len(items),
        "by_severity": by_severity,
        "total_variance_value": round(sum(abs(float(i["variance_value"])) for i in items), 2),
    }


def abc_classification(rows: list[dict]) -> list[dict]:
    """Assign A/B/C tiers by cumulative share of ``usage_value``.

    Cumulative share ≤ 80% → A, ≤ 95% → B, otherwise C.
    """
    ordered = sorted(rows, key=lambda r: float(r["usage_value"]), reverse=True)
    total = sum(float(r["usage_value"]) for r in ordered)

    result = []
    running = 0.0
    for row in ordered:
        value = float(row["usage_value"])
        running += value
        share = (running / total * 100) if total else 100.0
        if share <= ABC_A_THRESHOLD:
            category = "A"
        elif share <= ABC_B_THRESHOLD:
            category = "B"
        else:
            category = "C"
        result.append({
            **row,
            "usage_percentage": round(value / total * 100, 2) if total else 0.0,
            "cumulative_percentage": round(share, 2),
            "category": category,
        })
    return result
