from __future__ import annotations

import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hospital_inventory.replenishment.filters import (
    DashboardFilters,
    DateRange,
    FilterSelection,
    filter_alerts,
    filter_reorder_suggestions,
    sort_by_severity,
)
from hospital_inventory.replenishment.models import StockAlert
from hospital_inventory.replenishment.suggestions import ReorderSuggestion

NOW = datetime(2025, 6, 30, 12, tzinfo=timezone.utc)


def _alert(
    alert_id: str,
    *,
    severity: str = "medium",
    sku: str = "SKU",
    name: str = "Producto",
    site: str = "Clínica Principal",
    coverage: float = 20.0,
    **article: Any,
) -> StockAlert:
    return StockAlert.model_validate(
        {
            "id": alert_id,
            "severity": severity,
            "days_of_coverage": coverage,
            "suggested_reorder_qty": 10,
            "products": {"id": f"P-{alert_id}", "sku": sku, "name": name, "site": site, **article},
        }
    )


def _filters(**changes: Any) -> DashboardFilters:
    return DashboardFilters.default(NOW).model_copy(update=changes)


@pytest.fixture()
def alerts() -> list[StockAlert]:
    return [
        _alert("A", severity="low", sku="GAS-01", name="Gasas estériles", coverage=30),
        _alert("B", severity="high", sku="JER-05", name="Jeringas 5ml", site="Sucursal Norte", coverage=3),
        _alert("C", severity="medium", sku="GUA-M", name="Guantes de nitrilo", coverage=12),
        _alert("D", severity="high", sku="ALC-70", name="Alcohol 70%", site="Sucursal Oeste", coverage=8),
    ]


def test_sort_by_severity_is_stable(alerts: list[StockAlert]) -> None:
    assert [alert.id for alert in sort_by_severity(alerts)] == ["B", "D", "C", "A"]


def test_unknown_severity_is_treated_as_medium() -> None:
    alert = _alert("X", severity="URGENTE")
    assert alert.severity == "medium"


def test_filter_alerts_by_site(alerts: list[StockAlert]) -> None:
    result = filter_alerts(alerts, _filters(site="north"))
    assert [alert.id for alert in result] == ["B"]


def test_filter_alerts_all_sites_keeps_everything(alerts: list[StockAlert]) -> None:
    result = filter_alerts(alerts, _filters(site="all"))
    assert len(result) == 4


def test_search_matches_sku_or_name_case_insensitive(alerts: list[StockAlert]) -> None:
    assert [a.id for a in filter_alerts(alerts, _filters(search="gAs-0"))] == ["A"]
    assert [a.id for a in filter_alerts(alerts, _filters(search="GASAS"))] == ["A"]
    # "gas" también aparece en "Jeringas"; el orden sigue la severidad.
    assert [a.id for a in filter_alerts(alerts, _filters(search="gas"))] == ["B", "A"]
    assert [a.id for a in filter_alerts(alerts, _filters(search="jer-05"))] == ["B"]
    assert filter_alerts(alerts, _filters(search="inexistente")) == []


def test_alerts_only_keeps_low_coverage(alerts: list[StockAlert]) -> None:
    result = filter_alerts(alerts, _filters(alerts_only=True))
    assert [alert.id for alert in result] == ["B", "D", "C"]


def test_filter_alerts_applies_limit_after_sorting(alerts: list[StockAlert]) -> None:
    result = filter_alerts(alerts, _filters(), limit=2)
    assert [alert.id for alert in result] == ["B", "D"]


def test_alert_supplier_defaults_when_missing() -> None:
    assert _alert("S").article.supplier == "Sin proveedor"
    assert _alert("T", supplier={"name": "MedSup A"}).article.supplier == "MedSup A"


def test_date_range_promotes_dates_and_rejects_inverted_ranges() -> None:
    date_range = DateRange(start=date(2025, 1, 1), end=datetime(2025, 2, 1))

    assert date_range.start == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert date_range.end.tzinfo is not None
    assert date_range.as_query()["from"].startswith("2025-01-01")

    with pytest.raises(ValueError):
        DateRange(start=date(2025, 2, 1), end=date(2025, 1, 1))


def test_filter_selection_applies_only_on_request() -> None:
    selection = FilterSelection(now=NOW)

    selection.select(search="gasas", site="west")
    assert selection.applied.search == ""
    assert selection.selected.site_name == "Sucursal Oeste"

    applied = selection.apply()
    assert applied.search == "gasas"
    assert applied.site == "west"

    cleared = selection.clear()
    assert cleared.search == ""
    assert cleared.site == "all"
    assert selection.selected == selection.applied


def test_filter_reorder_suggestions_keeps_order_and_skips_unknown_cover() -> None:
    def suggestion(sku: str, cover: float | None, site: str) -> ReorderSuggestion:
        return ReorderSuggestion(
            article_id=sku,
            sku=sku,
            name=f"Producto {sku}",
            site=site,
            supplier="MedSup A",
            average_daily_use=1.0,
            days_of_cover=cover,
            reorder_quantity=5,
            suggested_po_date=NOW.date(),
            landed_cost=10.0,
            priority="low",
        )

    items = [
        suggestion("S1", 4, "Clínica Principal"),
        suggestion("S2", None, "Clínica Principal"),
        suggestion("S3", 40, "Sucursal Norte"),
        suggestion("S4", 10, "Sucursal Norte"),
    ]

    assert [s.sku for s in filter_reorder_suggestions(items, _filters(alerts_only=True))] == [
        "S1",
        "S4",
    ]
    assert [s.sku for s in filter_reorder_suggestions(items, _filters(site="north"))] == [
        "S3",
        "S4",
    ]
