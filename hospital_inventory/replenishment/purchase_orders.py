"""Consolidación de alertas seleccionadas en una orden de compra por proveedor.

Cada proveedor se crea como una transacción remota independiente: si falla el
grupo N, los N-1 anteriores quedan confirmados en el backend y no se revierten.
"""
from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Protocol, Sequence

from .filters import LOW_COVERAGE_THRESHOLD_DAYS
from .models import StockAlert

logger = logging.getLogger(__name__)

DRAFT_STATUS = "draft"


@dataclass(frozen=True)
class PurchaseOrderLine:
    alert_id: str
    article_id: str
    sku: str
    name: str
    quantity: float
    unit_cost: float

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "article_id": self.article_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unit_cost": self.unit_cost,
            "subtotal": self.subtotal,
        }


@dataclass(frozen=True)
class SupplierOrderDraft:
    supplier: str
    lines: tuple[PurchaseOrderLine, ...]

    @property
    def total(self) -> float:
        return sum(line.subtotal for line in self.lines)


@dataclass(frozen=True)
class CreatedPurchaseOrder:
    id: str
    po_number: str
    supplier: str
    total: float
    status: str
    lines: tuple[PurchaseOrderLine, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "po_number": self.po_number,
            "supplier": self.supplier,
            "total": self.total,
            "status": self.status,
            "lines": [line.to_dict() for line in self.lines],
        }


class PurchaseOrderBackend(Protocol):
    """Operaciones remotas necesarias para registrar órdenes de compra."""

    def generate_purchase_order_number(self) -> str: ...

    def create_purchase_order(self, payload: Mapping[str, Any]) -> Mapping[str, Any]: ...

    def create_purchase_order_items(
        self, order_id: str, items: Sequence[Mapping[str, Any]]
    ) -> Any: ...


class PurchaseOrderSubmissionError(RuntimeError):
    """Raised when a supplier group fails; ``created`` lists the orders already committed."""

    def __init__(
        self,
        *,
        supplier: str,
        cause: Exception,
        created: Sequence[CreatedPurchaseOrder] = (),
    ) -> None:
        self.supplier = supplier
        self.cause = cause
        self.created = list(created)
        super().__init__(str(self))

    def __str__(self) -> str:
        return (
            f"No se pudo crear la orden para {self.supplier}: {self.cause} "
            f"({len(self.created)} orden(es) ya creadas)"
        )


def default_quantities(alerts: Iterable[StockAlert]) -> dict[str, float]:
    return {alert.id: alert.suggested_reorder_qty for alert in alerts}


def preselect_alerts(
    alerts: Iterable[StockAlert],
    *,
    coverage_threshold_days: float = LOW_COVERAGE_THRESHOLD_DAYS,
) -> set[str]:
    """Alertas marcadas por defecto: severidad alta/media o cobertura baja."""

    return {
        alert.id
        for alert in alerts
        if alert.severity in {"high", "medium"}
        or alert.days_of_coverage < coverage_threshold_days
    }


def _line_quantity(alert: StockAlert, quantities: Mapping[str, float | None]) -> float:
    override = quantities.get(alert.id)
    quantity = alert.suggested_reorder_qty if override is None else override
    if quantity <= 0:
        raise ValueError(
            f"La cantidad para {alert.article.sku} debe ser mayor que cero"
        )
    return quantity


def group_alerts_by_supplier(
    alerts: Sequence[StockAlert],
    quantities: Mapping[str, float | None] | None = None,
) -> list[SupplierOrderDraft]:
    """Agrupa las alertas seleccionadas por proveedor en orden de aparición."""

    if not alerts:
        raise ValueError("Selecciona al menos un producto para la orden de compra")
    quantities = quantities or {}

    groups: dict[str, list[PurchaseOrderLine]] = {}
    for alert in alerts:
        line = PurchaseOrderLine(
            alert_id=alert.id,
            article_id=alert.article.id,
            sku=alert.article.sku,
            name=alert.article.name,
            quantity=_line_quantity(alert, quantities),
            unit_cost=alert.article.unit_cost,
        )
        groups.setdefault(alert.article.supplier, []).append(line)

    return [
        SupplierOrderDraft(supplier=supplier, lines=tuple(lines))
        for supplier, lines in groups.items()
    ]


def _order_header(
    draft: SupplierOrderDraft,
    po_number: str,
    *,
    notes: str | None,
    expected_delivery_date: date | None,
    created_by: str | None,
) -> dict[str, Any]:
    header: dict[str, Any] = {
        "po_number": po_number,
        "supplier": draft.supplier,
        "total_amount": draft.total,
        "notes": notes or None,
        "expected_delivery_date": (
            expected_delivery_date.isoformat() if expected_delivery_date else None
        ),
        "status": DRAFT_STATUS,
    }
    if created_by:
        header["created_by"] = created_by
    return header


def submit_purchase_orders(
    backend: PurchaseOrderBackend,
    drafts: Sequence[SupplierOrderDraft],
    *,
    notes: str | None = None,
    expected_delivery_date: date | None = None,
    created_by: str | None = None,
) -> list[CreatedPurchaseOrder]:
    """Crea una orden por proveedor, de forma secuencial y sin reintentos."""

    created: list[CreatedPurchaseOrder] = []
    for draft in drafts:
        try:
            po_number = backend.generate_purchase_order_number()
            order = backend.create_purchase_order(
                _order_header(
                    draft,
                    po_number,
                    notes=notes,
                    expected_delivery_date=expected_delivery_date,
                    created_by=created_by,
                )
            )
            order_id = str(order["id"])
            backend.create_purchase_order_items(
                order_id,
                [
                    {
                        "purchase_order_id": order_id,
                        "product_id": line.article_id,
                        "quantity": line.quantity,
                        "unit_cost": line.unit_cost,
                        "subtotal": line.subtotal,
                        "alert_id": line.alert_id,
                    }
                    for line in draft.lines
                ],
            )
        except Exception as exc:
            logger.error(
                "Falló la orden de compra para %s tras %s orden(es) creadas: %s",
                draft.supplier,
                len(created),
                exc,
            )
            raise PurchaseOrderSubmissionError(
                supplier=draft.supplier, cause=exc, created=list(created)
            ) from exc

        created.append(
            CreatedPurchaseOrder(
                id=order_id,
                po_number=po_number,
                supplier=draft.supplier,
                total=draft.total,
                status=str(order.get("status") or DRAFT_STATUS),
                lines=draft.lines,
            )
        )
        logger.info(
            "Orden %s creada para %s por %.2f", po_number, draft.supplier, draft.total
        )
    return created


def build_purchase_order_export(
    drafts: Sequence[SupplierOrderDraft | CreatedPurchaseOrder],
    *,
    notes: str | None = None,
    expected_delivery_date: date | None = None,
    generated_at: datetime | None = None,
) -> dict[str, Any]:
    """Documento de exportación agrupado por proveedor con totales y gran total.

    Con órdenes ya creadas cada grupo incluye su número de orden.
    """

    suppliers = [
        {
            "supplier": draft.supplier,
            "po_number": getattr(draft, "po_number", None),
            "lines": [line.to_dict() for line in draft.lines],
            "total": draft.total,
        }
        for draft in drafts
    ]
    return {
        "generated_at": (generated_at or datetime.now(timezone.utc)).isoformat(),
        "expected_delivery_date": (
            expected_delivery_date.isoformat() if expected_delivery_date else None
        ),
        "notes": notes or None,
        "suppliers": suppliers,
        "grand_total": sum(entry["total"] for entry in suppliers),
    }


class PurchaseOrderExportStore:
    """Keeps the export documents of recently committed batches for download."""

    def __init__(self, maxlen: int = 50) -> None:
        self._maxlen = maxlen
        self._exports: OrderedDict[str, dict[str, Any]] = OrderedDict()

    def add(self, export: Mapping[str, Any]) -> str:
        export_id = uuid.uuid4().hex
        self._exports[export_id] = dict(export)
        while len(self._exports) > self._maxlen:
            self._exports.popitem(last=False)
        return export_id

    def get(self, export_id: str) -> dict[str, Any] | None:
        return self._exports.get(export_id)


__all__ = [
    "CreatedPurchaseOrder",
    "PurchaseOrderBackend",
    "PurchaseOrderExportStore",
    "PurchaseOrderLine",
    "PurchaseOrderSubmissionError",
    "SupplierOrderDraft",
    "build_purchase_order_export",
    "default_quantities",
    "group_alerts_by_supplier",
    "preselect_alerts",
    "submit_purchase_orders",
]
