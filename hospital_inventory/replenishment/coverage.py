"""Demanda diaria y días de cobertura a partir del historial de ventas."""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from statistics import mean, pstdev
from typing import Iterable

from .models import SaleRecord


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def daily_demand_statistics(
    sales: Iterable[SaleRecord], *, start: date | datetime, end: date | datetime
) -> tuple[float, float]:
    """Media y desviación estándar poblacional de la demanda diaria.

    Los días del rango sin ventas cuentan como demanda cero.
    """

    first = _as_date(start)
    last = _as_date(end)
    if last < first:
        raise ValueError("El rango de fechas es inválido: fin anterior al inicio")

    totals: dict[date, float] = defaultdict(float)
    for sale in sales:
        day = sale.sold_at.date()
        if first <= day <= last:
            totals[day] += sale.quantity

    span = (last - first).days + 1
    series = [totals.get(date.fromordinal(first.toordinal() + offset), 0.0) for offset in range(span)]
    if len(series) == 1:
        return series[0], 0.0
    return mean(series), pstdev(series)


def coverage_days(stock: float, daily_demand: float | None) -> float | None:
    """Días de cobertura: stock actual dividido por la demanda diaria."""

    if daily_demand is None or daily_demand <= 0:
        return None
    return max(stock, 0.0) / daily_demand


__all__ = ["coverage_days", "daily_demand_statistics"]
