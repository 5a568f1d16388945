"""Filtros del tablero (sede, fechas, búsqueda, solo alertas) aplicados a listas ya descargadas."""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .models import StockAlert

ALL_SITES = "all"
SITE_LABELS = {
    "main": "Clínica Principal",
    "north": "Sucursal Norte",
    "west": "Sucursal Oeste",
}
LOW_COVERAGE_THRESHOLD_DAYS = 15.0
SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}
DEFAULT_RANGE_START = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end", mode="before")
    @classmethod
    def _promote_dates(cls, value: Any) -> Any:
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.min, tzinfo=timezone.utc)
        return value

    @field_validator("start", "end")
    @classmethod
    def _ensure_timezone(cls, value: datetime) -> datetime:
        return _aware(value)

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("La fecha final no puede ser anterior a la inicial")
        return self

    @classmethod
    def default(cls, now: datetime | None = None) -> "DateRange":
        return cls(start=DEFAULT_RANGE_START, end=now or datetime.now(timezone.utc))

    def as_query(self) -> dict[str, str]:
        return {"from": self.start.isoformat(), "to": self.end.isoformat()}


class DashboardFilters(BaseModel):
    """Conjunto inmutable de filtros; se reemplaza completo al aplicar o limpiar."""

    model_config = ConfigDict(frozen=True)

    site: str = ALL_SITES
    date_range: DateRange
    search: str = ""
    alerts_only: bool = False

    @field_validator("site", mode="before")
    @classmethod
    def _normalise_site(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text or ALL_SITES

    @field_validator("search", mode="before")
    @classmethod
    def _normalise_search(cls, value: Any) -> str:
        return str(value or "").strip()

    @classmethod
    def default(cls, now: datetime | None = None) -> "DashboardFilters":
        return cls(date_range=DateRange.default(now))

    @property
    def site_name(self) -> str | None:
        """Nombre de la sede filtrada o ``None`` cuando se muestran todas."""

        if self.site == ALL_SITES:
            return None
        return SITE_LABELS.get(self.site, self.site)


class FilterSelection:
    """Separa los filtros seleccionados en pantalla de los que ya se aplicaron."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now
        self.selected = DashboardFilters.default(now)
        self.applied = self.selected

    def select(self, **changes: Any) -> DashboardFilters:
        self.selected = DashboardFilters.model_validate(
            {**self.selected.model_dump(), **changes}
        )
        return self.selected

    def apply(self) -> DashboardFilters:
        self.applied = self.selected
        return self.applied

    def clear(self) -> DashboardFilters:
        self.selected = DashboardFilters.default(self._now)
        self.applied = self.selected
        return self.applied


FilterableT = TypeVar("FilterableT")


def matches_search(sku: str | None, name: str | None, search: str) -> bool:
    if not search:
        return True
    needle = search.lower()
    return needle in (sku or "").lower() or needle in (name or "").lower()


def matches_site(site: str | None, filters: DashboardFilters) -> bool:
    expected = filters.site_name
    return expected is None or site == expected


def sort_by_severity(alerts: Iterable[StockAlert]) -> list[StockAlert]:
    """Ordena high < medium < low conservando el orden original dentro de cada nivel."""

    return sorted(alerts, key=lambda alert: SEVERITY_ORDER.get(alert.severity, 1))


def filter_alerts(
    alerts: Iterable[StockAlert],
    filters: DashboardFilters,
    *,
    coverage_threshold_days: float = LOW_COVERAGE_THRESHOLD_DAYS,
    limit: int | None = None,
) -> list[StockAlert]:
    selected = [
        alert
        for alert in alerts
        if matches_site(alert.article.site, filters)
        and matches_search(alert.article.sku, alert.article.name, filters.search)
        and (not filters.alerts_only or alert.days_of_coverage < coverage_threshold_days)
    ]
    ordered = sort_by_severity(selected)
    return ordered[:limit] if limit else ordered


def filter_reorder_suggestions(
    suggestions: Sequence[FilterableT],
    filters: DashboardFilters,
    *,
    coverage_threshold_days: float = LOW_COVERAGE_THRESHOLD_DAYS,
    limit: int | None = None,
) -> list[FilterableT]:
    selected = []
    for item in suggestions:
        if not matches_site(getattr(item, "site", None), filters):
            continue
        if not matches_search(getattr(item, "sku", ""), getattr(item, "name", ""), filters.search):
            continue
        if filters.alerts_only:
            cover = getattr(item, "days_of_cover", None)
            if cover is None or cover >= coverage_threshold_days:
                continue
        selected.append(item)
    return selected[:limit] if limit else selected


__all__ = [
    "ALL_SITES",
    "DashboardFilters",
    "DateRange",
    "FilterSelection",
    "LOW_COVERAGE_THRESHOLD_DAYS",
    "SEVERITY_ORDER",
    "SITE_LABELS",
    "filter_alerts",
    "filter_reorder_suggestions",
    "matches_search",
    "matches_site",
    "sort_by_severity",
]
