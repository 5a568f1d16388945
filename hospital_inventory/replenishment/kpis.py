"""KPIs del tablero: stock total, demanda proyectada, cobertura y artículos en riesgo."""
from __future__ import annotations

import math
from typing import Any, Sequence

from .coverage import coverage_days
from .filters import DateRange
from .models import Article, SalesSummary

DEFAULT_PROJECTION_DAYS = 30
_SECONDS_PER_DAY = 86_400


def _days_in_range(summary: SalesSummary, date_range: DateRange) -> int:
    if summary.first_sale_at and summary.last_sale_at:
        delta = summary.last_sale_at - summary.first_sale_at
    else:
        delta = date_range.end - date_range.start
    return max(math.ceil(delta.total_seconds() / _SECONDS_PER_DAY), 1)


def is_at_risk(article: Article) -> bool:
    """Un artículo está en riesgo cuando su stock no supera el punto de reorden configurado."""

    if article.reorder_point is None:
        return False
    return article.stock <= article.reorder_point


def generate_kpi_summary(
    articles: Sequence[Article],
    sales_summary: SalesSummary,
    *,
    date_range: DateRange,
    projection_days: int = DEFAULT_PROJECTION_DAYS,
) -> dict[str, Any]:
    total_stock = sum(article.stock or 0 for article in articles)
    days = _days_in_range(sales_summary, date_range)
    daily_units = sales_summary.units_sold / days if sales_summary.units_sold else 0.0
    coverage = coverage_days(total_stock, daily_units)

    return {
        "total_stock": total_stock,
        "projected_demand": round(daily_units * projection_days),
        "average_daily_units": daily_units,
        "average_coverage_days": round(coverage) if coverage is not None else None,
        "at_risk_count": sum(1 for article in articles if is_at_risk(article)),
        "days_in_range": days,
        "projection_days": projection_days,
    }


__all__ = ["DEFAULT_PROJECTION_DAYS", "generate_kpi_summary", "is_at_risk"]
