"""FastAPI application that powers the hospital inventory dashboard."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..api_client import (
    InventoryAPIError,
    InventoryClient,
    InventoryClientError,
    InventoryTransportError,
    InventoryUnauthorizedError,
)
from ..assistant import (
    DEFAULT_GATEWAY_URL,
    DEFAULT_MODEL,
    AssistantGatewayError,
    AssistantQuotaError,
    AssistantRateLimitError,
    AssistantReply,
    ChatMessage,
    InventoryAssistant,
    should_suggest_purchase_order,
)
from ..events import ActivityFeed, EventChannel
from ..logging_config import configure_logging
from ..replenishment.filters import (
    DEFAULT_RANGE_START,
    SITE_LABELS,
    DashboardFilters,
    DateRange,
    filter_alerts,
    filter_reorder_suggestions,
)
from ..replenishment.kpis import generate_kpi_summary
from ..replenishment.models import (
    ArticleCreate,
    MovementCreate,
    MovementType,
    ReplenishmentMetrics,
    SaleCreate,
    StockAlert,
    StockStatus,
)
from ..replenishment.purchase_orders import (
    PurchaseOrderExportStore,
    PurchaseOrderSubmissionError,
    SupplierOrderDraft,
    build_purchase_order_export,
    group_alerts_by_supplier,
    preselect_alerts,
    submit_purchase_orders,
)
from ..replenishment.reorder_points import (
    ReplenishmentInputError,
    compute_replenishment_metrics,
    metrics_status,
)
from ..replenishment.suggestions import DEFAULT_WINDOW_DAYS, build_reorder_suggestions
from ..session import SessionManager, TokenStore

load_dotenv()

BASE_PATH = Path(__file__).parent
TEMPLATES = Jinja2Templates(directory=str(BASE_PATH / "templates"))
STATIC_DIR = BASE_PATH / "static"

logger = logging.getLogger(__name__)

DEFAULT_ALERT_LIMIT = 10
STATUS_LABELS = {
    StockStatus.CRITICAL: "Crítico",
    StockStatus.LOW: "Bajo",
    StockStatus.ADEQUATE: "Adecuado",
    StockStatus.GOOD: "Bueno",
}
SEVERITY_LABELS = {"high": "Alta", "medium": "Media", "low": "Baja"}


def _format_metric(value: Any, *, decimals: int = 2) -> str:
    """Format metric values for presentation in templates."""

    if value is None:
        return "N/D"
    if isinstance(value, (int, float)):
        if isinstance(value, float):
            formatted = f"{value:,.{decimals}f}"
        else:
            formatted = f"{value:,}"
        return formatted.replace(",", " ")
    return str(value)


TEMPLATES.env.filters.setdefault("format_metric", _format_metric)


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    inventory_api_base_url: str = InventoryClient.DEFAULT_BASE_URL
    inventory_api_timeout: float = 30.0
    inventory_page_size: int = InventoryClient.DEFAULT_PAGE_SIZE
    inventory_max_pages: int = InventoryClient.DEFAULT_MAX_PAGES
    session_store_path: str = "data/session.json"
    default_service_level: float = 0.95
    assistant_gateway_url: str = DEFAULT_GATEWAY_URL
    assistant_api_key: str | None = None
    assistant_model: str = DEFAULT_MODEL
    log_level: str = "INFO"
    log_file: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


app = FastAPI(
    title="Inventario Hospitalario",
    description="Panel de reposición, alertas de stock y órdenes de compra por proveedor.",
    version="0.1.0",
)

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")


class ReplenishmentCalculationRequest(BaseModel):
    current_stock: float
    average_daily_demand: float
    demand_std_dev: float
    lead_time_days: float
    service_level: float | None = None
    configured_reorder_point: float | None = None


class PurchaseOrderRequest(BaseModel):
    alert_ids: list[str] = Field(..., min_length=1)
    quantities: dict[str, float | None] = Field(default_factory=dict)
    notes: str | None = None
    expected_delivery_date: date | None = None


class AssistantChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: list[ChatMessage] = Field(default_factory=list)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class RecoveryRequest(BaseModel):
    email: str = Field(..., min_length=3)


class RegisterRequest(LoginRequest):
    name: str = Field(..., min_length=1)
    phone: str | None = None
    address: str | None = None


def _build_pdf_table(data: list[list[str]], *, header: bool = True, footer: bool = False) -> Table:
    table = Table(data, hAlign="LEFT")
    style = [
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("ALIGN", (2, 1), (-1, -1), "RIGHT"),
        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#d7deea")),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
    ]
    if header and data:
        style.extend(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#0b7285")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ]
        )
    if footer and len(data) > 1:
        style.extend(
            [
                ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor("#e7f5ff")),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ]
        )
    table.setStyle(TableStyle(style))
    return table


def _build_purchase_order_pdf(export: dict[str, Any]) -> BytesIO:
    buffer = BytesIO()
    document = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        leftMargin=40,
        rightMargin=40,
        topMargin=60,
        bottomMargin=36,
    )
    styles = getSampleStyleSheet()
    story: list[Any] = []

    story.append(Paragraph("Órdenes de compra por proveedor", styles["Title"]))
    story.append(Paragraph(f"Generado: {export['generated_at']}", styles["BodyText"]))
    if export.get("expected_delivery_date"):
        story.append(
            Paragraph(
                f"Entrega esperada: {export['expected_delivery_date']}", styles["BodyText"]
            )
        )
    if export.get("notes"):
        story.append(Paragraph(f"Notas: {export['notes']}", styles["BodyText"]))
    story.append(Spacer(1, 12))

    for group in export["suppliers"]:
        heading = group["supplier"]
        if group.get("po_number"):
            heading = f"{heading} ({group['po_number']})"
        story.append(Paragraph(heading, styles["Heading2"]))
        rows = [["SKU", "Producto", "Cantidad", "Costo unitario", "Subtotal"]]
        for line in group["lines"]:
            rows.append(
                [
                    line["sku"],
                    line["name"],
                    _format_metric(line["quantity"], decimals=0),
                    _format_metric(line["unit_cost"]),
                    _format_metric(line["subtotal"]),
                ]
            )
        rows.append(["", "Total proveedor", "", "", _format_metric(group["total"])])
        story.append(_build_pdf_table(rows, footer=True))
        story.append(Spacer(1, 12))

    story.append(
        Paragraph(
            f"Total general: {_format_metric(export['grand_total'])}", styles["Heading2"]
        )
    )
    document.build(story)
    buffer.seek(0)
    return buffer


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    try:
        return Settings()
    except ValidationError as exc:  # pragma: no cover - configuration guard
        invalid = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
        raise RuntimeError(
            "Variables de entorno inválidas: " + ", ".join(sorted(invalid))
        ) from exc


@lru_cache(maxsize=1)
def get_activity_feed() -> ActivityFeed:
    return ActivityFeed()


@lru_cache(maxsize=1)
def get_event_channel() -> EventChannel:
    """Process-wide channel; the activity feed listens from the start."""

    channel = EventChannel()
    get_activity_feed().attach(channel)
    return channel


@lru_cache(maxsize=1)
def get_session_manager() -> SessionManager:
    settings = get_settings()
    return SessionManager(TokenStore(settings.session_store_path), events=get_event_channel())


@lru_cache(maxsize=1)
def get_base_client() -> InventoryClient:
    """Instantiate an unauthenticated inventory client from the settings."""

    settings = get_settings()
    return InventoryClient(
        base_url=settings.inventory_api_base_url,
        events=get_event_channel(),
        timeout=settings.inventory_api_timeout,
        default_page_size=settings.inventory_page_size,
        max_pages=settings.inventory_max_pages,
    )


def get_client(manager: SessionManager = Depends(get_session_manager)) -> InventoryClient:
    """Client bound to the session that is current for this request."""

    return get_base_client().with_session(manager.session)


@lru_cache(maxsize=1)
def get_export_store() -> PurchaseOrderExportStore:
    return PurchaseOrderExportStore()


@lru_cache(maxsize=1)
def get_assistant() -> InventoryAssistant | None:
    settings = get_settings()
    if not settings.assistant_api_key:
        return None
    return InventoryAssistant(
        api_key=settings.assistant_api_key,
        gateway_url=settings.assistant_gateway_url,
        model=settings.assistant_model,
    )


def get_dashboard_filters(
    site: str = Query(default="all"),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    search: str = Query(default=""),
    alerts_only: bool = Query(default=False),
) -> DashboardFilters:
    """Build the applied filters from the query string."""

    if site != "all" and site not in SITE_LABELS:
        raise HTTPException(status_code=422, detail=f"Sede desconocida: {site}")
    range_end = (
        datetime.combine(end, time.max, tzinfo=timezone.utc)
        if end
        else datetime.now(timezone.utc)
    )
    try:
        date_range = DateRange(start=start or DEFAULT_RANGE_START, end=range_end)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422, detail="La fecha final no puede ser anterior a la inicial"
        ) from exc
    return DashboardFilters(
        site=site, date_range=date_range, search=search, alerts_only=alerts_only
    )


def _error_response(status_code: int, detail: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(InventoryUnauthorizedError)
def handle_unauthorized(request: Request, exc: InventoryUnauthorizedError) -> JSONResponse:
    return _error_response(401, exc.detail)


@app.exception_handler(InventoryAPIError)
def handle_api_error(request: Request, exc: InventoryAPIError) -> JSONResponse:
    status_code = exc.status_code if 400 <= exc.status_code < 600 else 502
    return _error_response(status_code, exc.detail)


@app.exception_handler(InventoryTransportError)
def handle_transport_error(request: Request, exc: InventoryTransportError) -> JSONResponse:
    return _error_response(503, str(exc))


@app.exception_handler(InventoryClientError)
def handle_client_error(request: Request, exc: InventoryClientError) -> JSONResponse:
    return _error_response(502, str(exc))


@app.exception_handler(ReplenishmentInputError)
def handle_replenishment_input(request: Request, exc: ReplenishmentInputError) -> JSONResponse:
    return _error_response(422, str(exc))


@app.exception_handler(PurchaseOrderSubmissionError)
def handle_purchase_order_failure(
    request: Request, exc: PurchaseOrderSubmissionError
) -> JSONResponse:
    return _error_response(
        502,
        {
            "message": str(exc),
            "failed_supplier": exc.supplier,
            "created": [order.to_dict() for order in exc.created],
        },
    )


@app.exception_handler(AssistantRateLimitError)
def handle_assistant_rate_limit(request: Request, exc: AssistantRateLimitError) -> JSONResponse:
    return _error_response(429, str(exc))


@app.exception_handler(AssistantQuotaError)
def handle_assistant_quota(request: Request, exc: AssistantQuotaError) -> JSONResponse:
    return _error_response(402, str(exc))


@app.exception_handler(AssistantGatewayError)
def handle_assistant_gateway(request: Request, exc: AssistantGatewayError) -> JSONResponse:
    return _error_response(502, str(exc))


def _metrics_payload(metrics: ReplenishmentMetrics) -> dict[str, Any]:
    status = metrics_status(metrics)
    return {
        "metrics": metrics.model_dump(by_alias=True),
        "status": status.value,
        "status_label": STATUS_LABELS[status],
    }


def _selected_alerts(client: InventoryClient, alert_ids: list[str]) -> list[StockAlert]:
    available = {alert.id: alert for alert in client.list_stock_alerts()}
    missing = [alert_id for alert_id in alert_ids if alert_id not in available]
    if missing:
        raise HTTPException(
            status_code=404,
            detail=f"Alertas no encontradas o inactivas: {', '.join(missing)}",
        )
    return [available[alert_id] for alert_id in dict.fromkeys(alert_ids)]


def _purchase_order_drafts(
    client: InventoryClient, payload: PurchaseOrderRequest
) -> list[SupplierOrderDraft]:
    alerts = _selected_alerts(client, payload.alert_ids)
    try:
        return group_alerts_by_supplier(alerts, payload.quantities)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _collect_dashboard(
    client: InventoryClient,
    filters: DashboardFilters,
    *,
    window_days: int = DEFAULT_WINDOW_DAYS,
    alert_limit: int | None = DEFAULT_ALERT_LIMIT,
) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    articles = client.iter_all_articles()
    alerts = client.list_stock_alerts()
    summary = client.get_sales_summary(
        date_from=filters.date_range.start, date_to=filters.date_range.end
    )
    recent_sales = client.iter_all_sales(date_from=now - timedelta(days=window_days), date_to=now)
    suppliers = client.list_suppliers().items

    suggestions = build_reorder_suggestions(
        articles, recent_sales, suppliers=suppliers, window_days=window_days, today=now.date()
    )
    return {
        "kpis": generate_kpi_summary(articles, summary, date_range=filters.date_range),
        "alerts": filter_alerts(alerts, filters, limit=alert_limit),
        "preselected": preselect_alerts(alerts),
        "suggestions": filter_reorder_suggestions(suggestions, filters),
    }


@app.get("/", response_class=HTMLResponse)
def dashboard(
    request: Request,
    filters: DashboardFilters = Depends(get_dashboard_filters),
    manager: SessionManager = Depends(get_session_manager),
    client: InventoryClient = Depends(get_client),
    feed: ActivityFeed = Depends(get_activity_feed),
) -> HTMLResponse:
    """Render the main dashboard: KPIs, alerts, suggestions and recent activity."""

    context: dict[str, Any] = {
        "session": manager.session,
        "filters": filters,
        "site_labels": SITE_LABELS,
        "severity_labels": SEVERITY_LABELS,
        "activity": feed.recent(10),
        "current_year": datetime.now(timezone.utc).year,
    }
    if manager.session.is_authenticated:
        context.update(_collect_dashboard(client, filters))
    return TEMPLATES.TemplateResponse(request, "dashboard.html", context)


@app.get("/replenishment", response_class=HTMLResponse)
def replenishment_page(
    request: Request,
    sku: str | None = Query(default=None),
    article_id: str | None = Query(default=None),
    client: InventoryClient = Depends(get_client),
) -> HTMLResponse:
    """Consulta de métricas de reposición por SKU o id de artículo."""

    report = None
    status = None
    error = None
    lookup = (sku or "").strip() or (article_id or "").strip()
    if lookup:
        try:
            if sku:
                report = client.get_replenishment_by_sku(sku.strip())
            else:
                report = client.get_replenishment_by_article_id(lookup)
        except InventoryUnauthorizedError:
            raise
        except InventoryAPIError as exc:
            if exc.status_code != 404:
                raise
            error = f"No se encontró el artículo {lookup}"
        else:
            status = metrics_status(report.metrics)

    return TEMPLATES.TemplateResponse(
        request,
        "replenishment.html",
        {
            "lookup": lookup,
            "report": report,
            "status": status,
            "status_label": STATUS_LABELS.get(status) if status else None,
            "error": error,
            "current_year": datetime.now(timezone.utc).year,
        },
    )


@app.post("/api/replenishment/calculate")
def api_calculate_replenishment(
    payload: ReplenishmentCalculationRequest,
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    metrics = compute_replenishment_metrics(
        current_stock=payload.current_stock,
        average_daily_demand=payload.average_daily_demand,
        demand_std_dev=payload.demand_std_dev,
        lead_time_days=payload.lead_time_days,
        service_level=(
            payload.service_level
            if payload.service_level is not None
            else settings.default_service_level
        ),
        configured_reorder_point=payload.configured_reorder_point,
    )
    return _metrics_payload(metrics)


@app.get("/api/replenishment/articles/{article_id}")
def api_replenishment_by_article(
    article_id: str, client: InventoryClient = Depends(get_client)
) -> dict[str, Any]:
    report = client.get_replenishment_by_article_id(article_id)
    return {"article": report.article.model_dump(), **_metrics_payload(report.metrics)}


@app.get("/api/replenishment/by-sku/{sku}")
def api_replenishment_by_sku(sku: str, client: InventoryClient = Depends(get_client)) -> dict[str, Any]:
    report = client.get_replenishment_by_sku(sku)
    return {"article": report.article.model_dump(), **_metrics_payload(report.metrics)}


@app.get("/api/alerts")
def api_alerts(
    limit: int | None = Query(default=None, ge=1, le=500),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    client: InventoryClient = Depends(get_client),
) -> dict[str, Any]:
    """Alertas activas filtradas y ordenadas por severidad."""

    alerts = client.list_stock_alerts()
    visible = filter_alerts(alerts, filters, limit=limit)
    return {
        "count": len(visible),
        "alerts": [alert.model_dump(mode="json") for alert in visible],
        "preselected": sorted(preselect_alerts(visible)),
    }


@app.get("/api/reorder-suggestions")
def api_reorder_suggestions(
    window_days: int = Query(default=DEFAULT_WINDOW_DAYS, ge=1, le=365),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    client: InventoryClient = Depends(get_client),
) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    articles = client.iter_all_articles()
    sales = client.iter_all_sales(date_from=now - timedelta(days=window_days), date_to=now)
    suppliers = client.list_suppliers().items
    suggestions = build_reorder_suggestions(
        articles, sales, suppliers=suppliers, window_days=window_days, today=now.date()
    )
    visible = filter_reorder_suggestions(suggestions, filters)
    return {"window_days": window_days, "suggestions": [item.to_dict() for item in visible]}


@app.get("/api/kpis")
def api_kpis(
    filters: DashboardFilters = Depends(get_dashboard_filters),
    client: InventoryClient = Depends(get_client),
) -> dict[str, Any]:
    articles = client.iter_all_articles()
    summary = client.get_sales_summary(
        date_from=filters.date_range.start, date_to=filters.date_range.end
    )
    return generate_kpi_summary(articles, summary, date_range=filters.date_range)


@app.get("/api/sales")
def api_list_sales(
    article_id: str | None = None,
    stockroom_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    client: InventoryClient = Depends(get_client),
) -> dict[str, Any]:
    page = client.list_sales(
        article_id=article_id,
        stockroom_id=stockroom_id,
        date_from=start,
        date_to=end,
        limit=limit,
        offset=offset,
    )
    return {**page.model_dump(mode="json"), "has_more": page.has_more}


@app.post("/api/sales", status_code=201)
def api_create_sale(payload: SaleCreate, client: InventoryClient = Depends(get_client)) -> dict[str, Any]:
    return client.create_sale(payload).model_dump(mode="json")


@app.get("/api/movements")
def api_list_movements(
    article_id: str | None = None,
    stockroom_id: str | None = None,
    movement_type: MovementType | None = Query(default=None, alias="type"),
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    client: InventoryClient = Depends(get_client),
) -> dict[str, Any]:
    page = client.list_movements(
        article_id=article_id,
        stockroom_id=stockroom_id,
        movement_type=movement_type,
        date_from=start,
        date_to=end,
        limit=limit,
        offset=offset,
    )
    return {**page.model_dump(mode="json"), "has_more": page.has_more}


@app.post("/api/movements", status_code=201)
def api_create_movement(
    payload: MovementCreate, client: InventoryClient = Depends(get_client)
) -> dict[str, Any]:
    return client.create_movement(payload).model_dump(mode="json")


@app.post("/api/articles", status_code=201)
def api_create_article(
    payload: ArticleCreate, client: InventoryClient = Depends(get_client)
) -> dict[str, Any]:
    return client.create_article(payload).model_dump(mode="json")


@app.get("/api/activity")
def api_activity(
    limit: int = Query(default=20, ge=1, le=100),
    feed: ActivityFeed = Depends(get_activity_feed),
) -> dict[str, Any]:
    return {"activity": feed.recent(limit)}


@app.post("/api/purchase-orders", status_code=201)
def api_create_purchase_orders(
    payload: PurchaseOrderRequest,
    manager: SessionManager = Depends(get_session_manager),
    client: InventoryClient = Depends(get_client),
    exports: PurchaseOrderExportStore = Depends(get_export_store),
) -> dict[str, Any]:
    """Crea una orden en borrador por proveedor a partir de las alertas seleccionadas.

    El documento de exportación sólo se genera cuando todos los proveedores se
    crearon; queda disponible en ``/api/purchase-orders/exports/{export_id}.pdf``.
    """

    drafts = _purchase_order_drafts(client, payload)
    user = manager.session.user
    created = submit_purchase_orders(
        client,
        drafts,
        notes=payload.notes,
        expected_delivery_date=payload.expected_delivery_date,
        created_by=user.id if user else None,
    )
    export = build_purchase_order_export(
        created, notes=payload.notes, expected_delivery_date=payload.expected_delivery_date
    )
    export_id = exports.add(export)
    return {
        "created": [order.to_dict() for order in created],
        "grand_total": export["grand_total"],
        "export_id": export_id,
        "export": export,
    }


@app.get("/api/purchase-orders/exports/{export_id}.pdf")
def api_export_purchase_orders(
    export_id: str, exports: PurchaseOrderExportStore = Depends(get_export_store)
) -> StreamingResponse:
    export = exports.get(export_id)
    if export is None:
        raise HTTPException(status_code=404, detail="Exportación no encontrada")
    pdf_buffer = _build_purchase_order_pdf(export)
    filename = f"ordenes-compra-{datetime.now(timezone.utc):%Y%m%d}.pdf"
    return StreamingResponse(
        pdf_buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/assistant/chat")
def api_assistant_chat(
    payload: AssistantChatRequest,
    client: InventoryClient = Depends(get_client),
    assistant: InventoryAssistant | None = Depends(get_assistant),
) -> dict[str, Any]:
    alerts = client.list_stock_alerts()
    if assistant is None:
        remote = client.chat_assistant(payload.message)
        reply = AssistantReply(
            response=remote.reply,
            should_create_po=should_suggest_purchase_order(remote.reply, alerts),
            alerts_count=len(alerts),
        )
    else:
        reply = assistant.chat(
            payload.message,
            articles=client.iter_all_articles(),
            alerts=alerts,
            history=payload.history,
        )
    return reply.model_dump()


def _session_payload(manager: SessionManager) -> dict[str, Any]:
    session = manager.session
    return {
        "authenticated": session.is_authenticated,
        "user": session.user.model_dump() if session.user else None,
    }


@app.post("/auth/login")
def auth_login(
    payload: LoginRequest,
    manager: SessionManager = Depends(get_session_manager),
    client: InventoryClient = Depends(get_base_client),
) -> dict[str, Any]:
    manager.login(client, payload.email, payload.password)
    return _session_payload(manager)


@app.post("/auth/login-temp")
def auth_login_with_temp_code(
    payload: LoginRequest,
    manager: SessionManager = Depends(get_session_manager),
    client: InventoryClient = Depends(get_base_client),
) -> dict[str, Any]:
    manager.login_with_temp_code(client, payload.email, payload.password)
    return _session_payload(manager)


@app.post("/auth/recover", status_code=202)
def auth_request_recovery(
    payload: RecoveryRequest, client: InventoryClient = Depends(get_base_client)
) -> dict[str, Any]:
    return {"sent": client.request_recovery(payload.email)}


@app.post("/auth/register", status_code=201)
def auth_register(
    payload: RegisterRequest,
    manager: SessionManager = Depends(get_session_manager),
    client: InventoryClient = Depends(get_base_client),
) -> dict[str, Any]:
    manager.register(
        client,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        phone=payload.phone,
        address=payload.address,
    )
    return _session_payload(manager)


@app.post("/auth/logout")
def auth_logout(manager: SessionManager = Depends(get_session_manager)) -> dict[str, Any]:
    manager.logout()
    return _session_payload(manager)


@app.get("/auth/session")
def auth_session(manager: SessionManager = Depends(get_session_manager)) -> dict[str, Any]:
    return _session_payload(manager)


@app.on_event("startup")
def configure_app_logging() -> None:
    """Inicializa el logging global según las variables de entorno."""

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    logger.debug("Logging configurado para la aplicación web")
