"""Modelos de datos intercambiados con el backend de inventario."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

ItemT = TypeVar("ItemT")

MovementType = Literal["IN", "OUT", "ADJUSTMENT"]
Severity = Literal["high", "medium", "low"]


class _RemoteModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
        str_strip_whitespace=True,
    )


class ArticleRef(_RemoteModel):
    """Referencia mínima a un artículo incluida en otras respuestas."""

    id: str
    sku: str
    name: str


class Article(_RemoteModel):
    """Artículo del inventario tal como lo expone el backend."""

    id: str = Field(..., description="Identificador del artículo")
    sku: str = Field(..., description="Código SKU")
    name: str = Field(..., description="Nombre comercial")
    id_category: str | None = None
    id_supplier: str | None = None
    id_stockroom: str | None = None
    reorder_point: int | None = Field(None, ge=0, description="Punto de reorden configurado")
    lead_time: int | None = Field(None, ge=0, description="Tiempo de entrega en días")
    description: str | None = None
    unit_price: float = 0.0
    unit_cost: float = 0.0
    stock: float = 0.0
    is_active: bool = Field(True, validation_alias=AliasChoices("isActive", "is_active"))
    supplier_name: str | None = Field(
        None, validation_alias=AliasChoices("supplier_name", "supplier")
    )
    site: str | None = None

    @field_validator("stock", mode="before")
    @classmethod
    def _default_stock(cls, value: Any) -> Any:
        return 0.0 if value is None else value


class ArticleCreate(_RemoteModel):
    sku: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    id_category: str = Field(..., min_length=1)
    id_supplier: str = Field(..., min_length=1)
    id_stockroom: str = Field(..., min_length=1)
    unit_price: float = Field(..., ge=0)
    unit_cost: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    reorder_point: int | None = Field(None, ge=0)
    lead_time: int | None = Field(None, ge=0)
    description: str | None = None


class Category(_RemoteModel):
    id: str
    name: str
    description: str | None = None
    is_active: bool = Field(True, validation_alias=AliasChoices("isActive", "is_active"))


class Supplier(_RemoteModel):
    id: str
    name: str
    nit: str | None = None
    address: str | None = None
    phone: str | None = None
    is_active: bool = Field(True, validation_alias=AliasChoices("isActive", "is_active"))


class Stockroom(_RemoteModel):
    id: str
    name: str
    address: str | None = None
    is_active: bool = Field(True, validation_alias=AliasChoices("isActive", "is_active"))


class PaginationMeta(_RemoteModel):
    # El backend alterna entre snake_case y camelCase según el endpoint.
    total_results: int = Field(
        0, validation_alias=AliasChoices("total_results", "totalResults")
    )
    total_pages: int = Field(0, validation_alias=AliasChoices("total_pages", "totalPages"))
    current_page: int = Field(
        1, validation_alias=AliasChoices("current_page", "currentPage")
    )
    per_page: int = Field(0, validation_alias=AliasChoices("per_page", "perPage"))


class ResourcePage(_RemoteModel, Generic[ItemT]):
    """Página de un listado de catálogo (artículos, proveedores, bodegas…)."""

    items: list[ItemT] = Field(default_factory=list)
    meta: PaginationMeta = Field(default_factory=PaginationMeta)

    @property
    def has_more(self) -> bool:
        return self.meta.current_page < self.meta.total_pages


class SaleCreate(_RemoteModel):
    id_article: str = Field(..., min_length=1)
    id_stockroom: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    sold_at: datetime
    unit_price: float | None = Field(None, ge=0)
    metadata: dict[str, Any] | None = None


class SaleRecord(SaleCreate):
    id: str
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )


class MovementCreate(_RemoteModel):
    id_article: str = Field(..., min_length=1)
    id_stockroom: str = Field(..., min_length=1)
    type: MovementType
    quantity: int
    moved_at: datetime
    reference: str | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_quantity(self) -> "MovementCreate":
        # Los ajustes pueden ser negativos; entradas y salidas no.
        if self.type == "ADJUSTMENT":
            if self.quantity == 0:
                raise ValueError("Un ajuste debe tener una cantidad distinta de cero")
        elif self.quantity <= 0:
            raise ValueError("La cantidad debe ser mayor que cero")
        return self


class MovementRecord(MovementCreate):
    id: str
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )


class HistoryPage(_RemoteModel, Generic[ItemT]):
    """Envoltorio ``{rows, count, limit, offset}`` de los historiales."""

    rows: list[ItemT] = Field(default_factory=list)
    count: int = 0
    limit: int = 0
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.count


class SalesSummary(_RemoteModel):
    transactions: int = 0
    units_sold: float = 0.0
    first_sale_at: datetime | None = None
    last_sale_at: datetime | None = None
    window_days: int | None = None
    avg_daily_units: float | None = None


class TopSellingItem(_RemoteModel):
    id_article: str
    total_quantity: float
    article: ArticleRef | None = None


class MovementTotals(_RemoteModel):
    IN: float = 0.0
    OUT: float = 0.0
    ADJUSTMENT: float = 0.0


class MovementSummary(_RemoteModel):
    article_id: str | None = None
    stockroom_id: str | None = None
    totals: MovementTotals = Field(default_factory=MovementTotals)


class StockStatus(str, Enum):
    CRITICAL = "Critical"
    LOW = "Low"
    ADEQUATE = "Adequate"
    GOOD = "Good"


class ReplenishmentMetrics(_RemoteModel):
    """Métricas de reposición; los alias son los nombres del backend."""

    model_config = ConfigDict(frozen=True)

    current_stock: float = Field(..., alias="stock_actual")
    average_daily_demand: float = Field(..., alias="demanda_promedio_diaria")
    demand_std_dev: float = Field(..., alias="desviacion_demanda_diaria")
    lead_time_days: float = Field(..., alias="lead_time_dias")
    service_level: float = Field(..., alias="nivel_servicio")
    z_score: float
    lead_time_demand: float = Field(..., alias="demanda_esperada_en_lead_time")
    lead_time_std_dev: float = Field(..., alias="desviacion_en_lead_time")
    safety_stock: float = Field(..., alias="stock_seguridad")
    configured_reorder_point: float | None = Field(None, alias="reorder_point_actual")
    recommended_reorder_point: float = Field(..., alias="reorder_point_recomendado")
    suggested_reorder_quantity: float = Field(..., alias="cantidad_reorden_sugerida")


class ReplenishmentReport(_RemoteModel):
    article: ArticleRef
    metrics: ReplenishmentMetrics


class AlertArticle(_RemoteModel):
    id: str
    sku: str
    name: str
    supplier: str = Field("Sin proveedor", validation_alias=AliasChoices("supplier", "supplier_name"))
    unit_cost: float = 0.0
    site: str | None = None
    reorder_point: float | None = None

    @field_validator("supplier", mode="before")
    @classmethod
    def _supplier_name(cls, value: Any) -> Any:
        if isinstance(value, dict):
            value = value.get("name")
        if value is None or not str(value).strip():
            return "Sin proveedor"
        return str(value).strip()


class StockAlert(_RemoteModel):
    """Alerta de stock levantada por el backend; aquí solo se lee."""

    id: str
    severity: Severity = "medium"
    alert_type: str | None = None
    message: str | None = None
    days_of_coverage: float = 0.0
    current_stock: float = 0.0
    suggested_reorder_qty: float = Field(0.0, ge=0)
    suggested_po_date: date | None = None
    is_active: bool = True
    article: AlertArticle = Field(
        ..., validation_alias=AliasChoices("article", "products", "product")
    )

    @field_validator("severity", mode="before")
    @classmethod
    def _normalise_severity(cls, value: Any) -> Any:
        text = str(value or "").strip().lower()
        return text if text in {"high", "medium", "low"} else "medium"


class UserProfile(_RemoteModel):
    id: str
    name: str
    email: str
    phone: str | None = None
    address: str | None = None
    is_active: bool = Field(True, validation_alias=AliasChoices("isActive", "is_active"))


class LoginResult(_RemoteModel):
    user: UserProfile
    token: str


class AssistantChatReply(_RemoteModel):
    reply: str
    used_tools: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("usedTools", "used_tools")
    )


__all__ = [
    "AlertArticle",
    "Article",
    "ArticleCreate",
    "ArticleRef",
    "AssistantChatReply",
    "Category",
    "HistoryPage",
    "LoginResult",
    "MovementCreate",
    "MovementRecord",
    "MovementSummary",
    "MovementType",
    "PaginationMeta",
    "ReplenishmentMetrics",
    "ReplenishmentReport",
    "ResourcePage",
    "SaleCreate",
    "SaleRecord",
    "SalesSummary",
    "Severity",
    "StockAlert",
    "StockStatus",
    "Stockroom",
    "Supplier",
    "TopSellingItem",
    "UserProfile",
]
