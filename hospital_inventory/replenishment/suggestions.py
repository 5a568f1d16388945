"""Tabla de sugerencias de reposición por artículo."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Sequence

from .coverage import coverage_days
from .models import Article, SaleRecord, Supplier
from .reorder_points import calculate_reorder_quantity

DEFAULT_WINDOW_DAYS = 30
ORDER_BUFFER_DAYS = 5
HIGH_PRIORITY_COVER_DAYS = 10


@dataclass(frozen=True)
class ReorderSuggestion:
    article_id: str
    sku: str
    name: str
    site: str | None
    supplier: str
    average_daily_use: float
    days_of_cover: float | None
    reorder_quantity: float
    suggested_po_date: date
    landed_cost: float
    priority: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["suggested_po_date"] = self.suggested_po_date.isoformat()
        return data


def _units_by_article(sales: Iterable[SaleRecord]) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for sale in sales:
        totals[sale.id_article] += sale.quantity
    return totals


def _supplier_name(article: Article, suppliers: Mapping[str, Supplier]) -> str:
    if article.supplier_name:
        return article.supplier_name
    supplier = suppliers.get(article.id_supplier or "")
    return supplier.name if supplier else "Sin proveedor"


def suggested_order_date(
    today: date, days_of_cover: float | None, lead_time_days: int | None
) -> date:
    """Fecha sugerida para emitir la orden: antes de agotar el stock menos el lead time."""

    if days_of_cover is None:
        return today
    slack = days_of_cover - (lead_time_days or 0) - ORDER_BUFFER_DAYS
    return today + timedelta(days=max(0, int(slack)))


def build_reorder_suggestions(
    articles: Sequence[Article],
    sales: Iterable[SaleRecord],
    *,
    suppliers: Sequence[Supplier] = (),
    window_days: int = DEFAULT_WINDOW_DAYS,
    today: date | None = None,
) -> list[ReorderSuggestion]:
    """Construye las sugerencias ordenadas de menor a mayor cobertura.

    ``sales`` debe cubrir los últimos ``window_days`` días; la demanda diaria se
    calcula como unidades vendidas en la ventana dividido por su longitud.
    """

    if window_days <= 0:
        raise ValueError("La ventana de días debe ser positiva")
    today = today or date.today()
    units = _units_by_article(sales)
    supplier_index = {supplier.id: supplier for supplier in suppliers}

    suggestions: list[ReorderSuggestion] = []
    for article in articles:
        daily_use = units.get(article.id, 0.0) / window_days
        cover = coverage_days(article.stock, daily_use)
        quantity = calculate_reorder_quantity(
            reorder_point=article.reorder_point or 0, current_stock=article.stock
        )
        suggestions.append(
            ReorderSuggestion(
                article_id=article.id,
                sku=article.sku,
                name=article.name,
                site=article.site,
                supplier=_supplier_name(article, supplier_index),
                average_daily_use=daily_use,
                days_of_cover=cover,
                reorder_quantity=quantity,
                suggested_po_date=suggested_order_date(today, cover, article.lead_time),
                landed_cost=article.unit_cost * quantity,
                priority=(
                    "high"
                    if cover is not None and cover < HIGH_PRIORITY_COVER_DAYS
                    else "low"
                ),
            )
        )

    # Sin demanda registrada la cobertura es ilimitada: esos artículos van al final.
    suggestions.sort(
        key=lambda item: (item.days_of_cover is None, item.days_of_cover or 0.0)
    )
    return suggestions


__all__ = [
    "DEFAULT_WINDOW_DAYS",
    "ReorderSuggestion",
    "build_reorder_suggestions",
    "suggested_order_date",
]
