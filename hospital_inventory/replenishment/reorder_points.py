"""Cálculo del punto de reorden con stock de seguridad estadístico.

Supone demanda diaria independiente entre días, por lo que la desviación en el
lead time crece con la raíz cuadrada de los días de entrega.
"""
from __future__ import annotations

import math
from statistics import NormalDist

from .models import ReplenishmentMetrics, StockStatus

_STANDARD_NORMAL = NormalDist()

# Evita que el ruido de coma flotante (p. ej. 57.000000001) sume una unidad al redondear hacia arriba.
_CEIL_PRECISION = 9


class ReplenishmentInputError(ValueError):
    """Raised when the inputs of a replenishment calculation are invalid."""


def _require_non_negative(value: float, label: str) -> None:
    if value is None or not math.isfinite(value):
        raise ReplenishmentInputError(f"{label} debe ser un número finito")
    if value < 0:
        raise ReplenishmentInputError(f"{label} no puede ser negativo")


def _require_finite(value: float, label: str) -> float:
    if not math.isfinite(value):
        raise ReplenishmentInputError(f"{label} es demasiado grande para calcularse")
    return value


def z_score_for_service_level(service_level: float) -> float:
    """Devuelve el z-score (inversa de la normal estándar) para un nivel de servicio.

    0.90 → 1.2816, 0.95 → 1.6449, 0.99 → 2.3263. Cualquier nivel dentro de
    (0, 1) es válido.
    """

    if service_level is None or not 0 < service_level < 1:
        raise ReplenishmentInputError(
            "El nivel de servicio debe estar entre 0 y 1 (exclusivo)"
        )
    return _STANDARD_NORMAL.inv_cdf(service_level)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_safety_stock(
    *, z_score: float, demand_std_dev: float, lead_time_days: float
) -> int:
    """Stock de seguridad = z × σ_diaria × √lead_time, redondeado y nunca negativo."""

    _require_non_negative(demand_std_dev, "La desviación de la demanda")
    _require_non_negative(lead_time_days, "El tiempo de entrega")
    raw = _require_finite(
        z_score * demand_std_dev * math.sqrt(lead_time_days), "El stock de seguridad"
    )
    return max(0, _round_half_up(raw))


def calculate_reorder_point(
    *, daily_demand: float, lead_time_days: float, safety_stock: float = 0.0
) -> int:
    """Calcula el punto de reorden (demanda en lead time + stock de seguridad)."""

    _require_non_negative(daily_demand, "La demanda diaria")
    _require_non_negative(lead_time_days, "El tiempo de entrega")
    _require_non_negative(safety_stock, "El stock de seguridad")

    expected = _require_finite(
        daily_demand * lead_time_days + safety_stock, "La demanda en el tiempo de entrega"
    )
    return int(math.ceil(round(expected, _CEIL_PRECISION)))


def calculate_reorder_quantity(*, reorder_point: float, current_stock: float) -> float:
    return max(0, reorder_point - current_stock)


def effective_reorder_point(
    configured_reorder_point: float | None, recommended_reorder_point: float
) -> float:
    """Usa el punto de reorden configurado cuando existe; si no, el recomendado."""

    if configured_reorder_point is None:
        return recommended_reorder_point
    return configured_reorder_point


def classify_stock_status(
    current_stock: float,
    *,
    recommended_reorder_point: float,
    configured_reorder_point: float | None = None,
) -> StockStatus:
    """Clasifica el stock frente al punto de reorden efectivo.

    Los límites son inclusivos: stock igual a 0.5×ROP ya es ``Critical``.
    """

    rop = effective_reorder_point(configured_reorder_point, recommended_reorder_point)
    if current_stock <= rop * 0.5:
        return StockStatus.CRITICAL
    if current_stock <= rop:
        return StockStatus.LOW
    if current_stock <= rop * 1.5:
        return StockStatus.ADEQUATE
    return StockStatus.GOOD


def compute_replenishment_metrics(
    *,
    current_stock: float,
    average_daily_demand: float,
    demand_std_dev: float,
    lead_time_days: float,
    service_level: float,
    configured_reorder_point: float | None = None,
) -> ReplenishmentMetrics:
    """Traduce demanda y lead time en una recomendación de reposición."""

    _require_non_negative(current_stock, "El stock actual")
    _require_non_negative(average_daily_demand, "La demanda diaria promedio")
    _require_non_negative(demand_std_dev, "La desviación de la demanda")
    _require_non_negative(lead_time_days, "El tiempo de entrega")
    if configured_reorder_point is not None:
        _require_non_negative(configured_reorder_point, "El punto de reorden configurado")

    z_score = z_score_for_service_level(service_level)
    lead_time_demand = _require_finite(
        average_daily_demand * lead_time_days, "La demanda en el tiempo de entrega"
    )
    lead_time_std_dev = _require_finite(
        demand_std_dev * math.sqrt(lead_time_days), "La desviación en el tiempo de entrega"
    )
    safety_stock = calculate_safety_stock(
        z_score=z_score,
        demand_std_dev=demand_std_dev,
        lead_time_days=lead_time_days,
    )
    recommended = calculate_reorder_point(
        daily_demand=average_daily_demand,
        lead_time_days=lead_time_days,
        safety_stock=safety_stock,
    )

    return ReplenishmentMetrics(
        current_stock=current_stock,
        average_daily_demand=average_daily_demand,
        demand_std_dev=demand_std_dev,
        lead_time_days=lead_time_days,
        service_level=service_level,
        z_score=z_score,
        lead_time_demand=lead_time_demand,
        lead_time_std_dev=lead_time_std_dev,
        safety_stock=safety_stock,
        configured_reorder_point=configured_reorder_point,
        recommended_reorder_point=recommended,
        suggested_reorder_quantity=calculate_reorder_quantity(
            reorder_point=recommended, current_stock=current_stock
        ),
    )


def metrics_status(metrics: ReplenishmentMetrics) -> StockStatus:
    return classify_stock_status(
        metrics.current_stock,
        recommended_reorder_point=metrics.recommended_reorder_point,
        configured_reorder_point=metrics.configured_reorder_point,
    )


__all__ = [
    "ReplenishmentInputError",
    "calculate_reorder_point",
    "calculate_reorder_quantity",
    "calculate_safety_stock",
    "classify_stock_status",
    "compute_replenishment_metrics",
    "effective_reorder_point",
    "metrics_status",
    "z_score_for_service_level",
]
