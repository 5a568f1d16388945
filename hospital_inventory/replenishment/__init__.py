"""Lógica de reposición: puntos de reorden, cobertura, filtros y órdenes de compra."""
from __future__ import annotations

from .coverage import coverage_days, daily_demand_statistics
from .filters import (
    DashboardFilters,
    DateRange,
    FilterSelection,
    filter_alerts,
    filter_reorder_suggestions,
    sort_by_severity,
)
from .kpis import generate_kpi_summary
from .models import ReplenishmentMetrics, StockAlert, StockStatus
from .purchase_orders import (
    PurchaseOrderSubmissionError,
    build_purchase_order_export,
    group_alerts_by_supplier,
    submit_purchase_orders,
)
from .reorder_points import (
    ReplenishmentInputError,
    calculate_reorder_point,
    calculate_safety_stock,
    classify_stock_status,
    compute_replenishment_metrics,
    metrics_status,
    z_score_for_service_level,
)
from .suggestions import ReorderSuggestion, build_reorder_suggestions

__all__ = [
    "DashboardFilters",
    "DateRange",
    "FilterSelection",
    "PurchaseOrderSubmissionError",
    "ReorderSuggestion",
    "ReplenishmentInputError",
    "ReplenishmentMetrics",
    "StockAlert",
    "StockStatus",
    "build_purchase_order_export",
    "build_reorder_suggestions",
    "calculate_reorder_point",
    "calculate_safety_stock",
    "classify_stock_status",
    "compute_replenishment_metrics",
    "coverage_days",
    "daily_demand_statistics",
    "filter_alerts",
    "filter_reorder_suggestions",
    "generate_kpi_summary",
    "group_alerts_by_supplier",
    "metrics_status",
    "sort_by_severity",
    "submit_purchase_orders",
    "z_score_for_service_level",
]
