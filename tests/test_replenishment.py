from __future__ import annotations

import math
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hospital_inventory.replenishment import (
    ReplenishmentInputError,
    StockStatus,
    calculate_reorder_point,
    calculate_safety_stock,
    classify_stock_status,
    compute_replenishment_metrics,
    coverage_days,
    daily_demand_statistics,
    metrics_status,
    z_score_for_service_level,
)
from hospital_inventory.replenishment.models import ReplenishmentMetrics, SaleRecord


def _sale(day: int, quantity: int, article: str = "ART-1") -> SaleRecord:
    return SaleRecord(
        id=f"S-{article}-{day}",
        id_article=article,
        id_stockroom="ST-1",
        quantity=quantity,
        sold_at=datetime(2025, 3, day, 10, tzinfo=timezone.utc),
    )


def test_reference_example_produces_expected_metrics() -> None:
    metrics = compute_replenishment_metrics(
        current_stock=40,
        average_daily_demand=10,
        demand_std_dev=2,
        lead_time_days=5,
        service_level=0.95,
    )

    assert metrics.z_score == pytest.approx(1.645, abs=1e-3)
    assert metrics.lead_time_demand == pytest.approx(50)
    assert metrics.lead_time_std_dev == pytest.approx(4.4721, abs=1e-4)
    assert metrics.safety_stock == 7
    assert metrics.recommended_reorder_point == 57
    assert metrics.suggested_reorder_quantity == 17
    assert metrics_status(metrics) is StockStatus.LOW


@pytest.mark.parametrize(
    "service_level, expected",
    [(0.90, 1.2816), (0.95, 1.6449), (0.99, 2.3263), (0.975, 1.9600)],
)
def test_z_score_matches_standard_normal(service_level: float, expected: float) -> None:
    assert z_score_for_service_level(service_level) == pytest.approx(expected, abs=1e-3)


@pytest.mark.parametrize("service_level", [0, 1, 1.2, -0.1])
def test_service_level_outside_open_interval_is_rejected(service_level: float) -> None:
    with pytest.raises(ReplenishmentInputError):
        z_score_for_service_level(service_level)


def test_safety_stock_grows_with_service_level() -> None:
    values = [
        calculate_safety_stock(
            z_score=z_score_for_service_level(level), demand_std_dev=2, lead_time_days=5
        )
        for level in (0.90, 0.95, 0.99)
    ]

    assert values == [6, 7, 10]
    assert values == sorted(values)


def test_zero_deviation_means_no_safety_stock() -> None:
    metrics = compute_replenishment_metrics(
        current_stock=100,
        average_daily_demand=4,
        demand_std_dev=0,
        lead_time_days=7,
        service_level=0.99,
    )

    assert metrics.safety_stock == 0
    assert metrics.recommended_reorder_point == 28
    assert metrics.suggested_reorder_quantity == 0


def test_reorder_point_ignores_floating_point_noise() -> None:
    # 0.1 * 30 == 3.0000000000000004 in binary floating point.
    assert calculate_reorder_point(daily_demand=0.1, lead_time_days=30) == 3
    assert calculate_reorder_point(daily_demand=0.15, lead_time_days=10, safety_stock=1) == 3


def test_zero_lead_time_has_no_lead_time_demand() -> None:
    metrics = compute_replenishment_metrics(
        current_stock=0,
        average_daily_demand=12,
        demand_std_dev=3,
        lead_time_days=0,
        service_level=0.95,
    )

    assert metrics.lead_time_demand == 0
    assert metrics.safety_stock == 0
    assert metrics.recommended_reorder_point == 0
    assert metrics_status(metrics) is StockStatus.CRITICAL


@pytest.mark.parametrize(
    "field, value",
    [
        ("current_stock", -1),
        ("average_daily_demand", -0.5),
        ("demand_std_dev", -2),
        ("lead_time_days", -3),
        ("configured_reorder_point", -10),
    ],
)
def test_negative_inputs_are_rejected(field: str, value: float) -> None:
    params = {
        "current_stock": 40,
        "average_daily_demand": 10,
        "demand_std_dev": 2,
        "lead_time_days": 5,
        "service_level": 0.95,
    }
    params[field] = value

    with pytest.raises(ReplenishmentInputError):
        compute_replenishment_metrics(**params)


@pytest.mark.parametrize(
    "overrides",
    [
        {"average_daily_demand": math.inf},
        {"demand_std_dev": math.inf},
        {"current_stock": math.inf},
        {"lead_time_days": math.nan},
        {"average_daily_demand": 1e308, "lead_time_days": 10},
        {"demand_std_dev": 1e308, "lead_time_days": 100},
    ],
)
def test_non_finite_or_overflowing_inputs_are_rejected(overrides: dict[str, float]) -> None:
    params = {
        "current_stock": 40,
        "average_daily_demand": 10,
        "demand_std_dev": 2,
        "lead_time_days": 5,
        "service_level": 0.95,
        **overrides,
    }

    with pytest.raises(ReplenishmentInputError):
        compute_replenishment_metrics(**params)


@pytest.mark.parametrize("service_level", [0.05, 0.3, 0.5, 0.75, 0.95, 0.999])
@pytest.mark.parametrize("current_stock", [0, 10, 57, 120, 10_000])
@pytest.mark.parametrize("demand_std_dev", [0, 2, 25])
def test_suggested_quantity_is_never_negative(
    service_level: float, current_stock: float, demand_std_dev: float
) -> None:
    metrics = compute_replenishment_metrics(
        current_stock=current_stock,
        average_daily_demand=10,
        demand_std_dev=demand_std_dev,
        lead_time_days=5,
        service_level=service_level,
    )

    assert metrics.safety_stock >= 0
    assert metrics.suggested_reorder_quantity >= 0
    assert metrics.suggested_reorder_quantity == max(
        0, metrics.recommended_reorder_point - current_stock
    )


@pytest.mark.parametrize(
    "stock, expected",
    [
        (0, StockStatus.CRITICAL),
        (50, StockStatus.CRITICAL),
        (51, StockStatus.LOW),
        (100, StockStatus.LOW),
        (101, StockStatus.ADEQUATE),
        (150, StockStatus.ADEQUATE),
        (151, StockStatus.GOOD),
    ],
)
def test_status_boundaries_are_inclusive(stock: float, expected: StockStatus) -> None:
    assert classify_stock_status(stock, recommended_reorder_point=100) is expected


def test_configured_reorder_point_takes_precedence_even_when_zero() -> None:
    assert (
        classify_stock_status(31, recommended_reorder_point=100, configured_reorder_point=20)
        is StockStatus.GOOD
    )
    assert (
        classify_stock_status(5, recommended_reorder_point=100, configured_reorder_point=0)
        is StockStatus.GOOD
    )
    assert (
        classify_stock_status(0, recommended_reorder_point=100, configured_reorder_point=0)
        is StockStatus.CRITICAL
    )


def test_metrics_accept_backend_field_names() -> None:
    metrics = ReplenishmentMetrics.model_validate(
        {
            "stock_actual": 12,
            "demanda_promedio_diaria": 3.5,
            "desviacion_demanda_diaria": 1.2,
            "lead_time_dias": 4,
            "nivel_servicio": 0.95,
            "z_score": 1.645,
            "demanda_esperada_en_lead_time": 14,
            "desviacion_en_lead_time": 2.4,
            "stock_seguridad": 4,
            "reorder_point_actual": 10,
            "reorder_point_recomendado": 18,
            "cantidad_reorden_sugerida": 6,
        }
    )

    assert metrics.current_stock == 12
    assert metrics.configured_reorder_point == 10
    # Con ROP configurado 10, stock 12 queda dentro de 1.5×ROP.
    assert metrics_status(metrics) is StockStatus.ADEQUATE
    assert metrics.model_dump(by_alias=True)["reorder_point_recomendado"] == 18


def test_daily_demand_statistics_counts_days_without_sales() -> None:
    sales = [_sale(1, 4), _sale(3, 2), _sale(20, 50)]

    mean, std = daily_demand_statistics(
        sales,
        start=datetime(2025, 3, 1, tzinfo=timezone.utc),
        end=datetime(2025, 3, 4, tzinfo=timezone.utc),
    )

    assert mean == pytest.approx(1.5)
    assert std == pytest.approx(1.6583, abs=1e-4)


def test_daily_demand_statistics_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        daily_demand_statistics(
            [],
            start=datetime(2025, 3, 5, tzinfo=timezone.utc),
            end=datetime(2025, 3, 1, tzinfo=timezone.utc),
        )


def test_coverage_days() -> None:
    assert coverage_days(30, 2) == pytest.approx(15.0)
    assert coverage_days(30, 0) is None
    assert coverage_days(30, None) is None
