"""Client helpers for interacting with the hospital inventory REST backend."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Sequence, TypeVar
from urllib.parse import quote

import requests
from pydantic import BaseModel

from .events import (
    ARTICLE_CREATED,
    AUTH_UNAUTHORIZED,
    MOVEMENT_CREATED,
    SALE_CREATED,
    EventChannel,
)
from .replenishment.models import (
    Article,
    ArticleCreate,
    AssistantChatReply,
    Category,
    HistoryPage,
    LoginResult,
    MovementCreate,
    MovementRecord,
    MovementSummary,
    MovementType,
    ReplenishmentReport,
    ResourcePage,
    SaleCreate,
    SaleRecord,
    SalesSummary,
    StockAlert,
    Stockroom,
    Supplier,
    TopSellingItem,
    UserProfile,
)
from .session import Session

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
ModelT = TypeVar("ModelT", bound=BaseModel)

PageFetcher = Callable[[int], tuple[Sequence[ItemT], bool]]


def _serialise_for_log(data: Any, limit: int = 2000) -> str:
    """Return a JSON representation of ``data`` truncated for logging."""

    if data is None:
        return "null"
    try:
        rendered = json.dumps(data, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        rendered = repr(data)
    if len(rendered) > limit:
        return f"{rendered[:limit]}… (truncated)"
    return rendered


class InventoryClientError(RuntimeError):
    """Base error for inventory backend client failures."""


class InventoryConfigurationError(InventoryClientError):
    """Raised when the client configuration is invalid."""


class InventoryTransportError(InventoryClientError):
    """Raised when the HTTP transport layer fails."""


class PaginationLimitError(InventoryClientError):
    """Raised when a fetch-all loop reaches its page cap with pages still pending."""

    def __init__(self, max_pages: int, fetched: int) -> None:
        super().__init__(
            f"Se alcanzó el límite de {max_pages} páginas con {fetched} registros "
            "y el backend aún reporta más resultados"
        )
        self.max_pages = max_pages
        self.fetched = fetched


class InventoryAPIError(InventoryClientError):
    """Raised when the API returns an error payload."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        payload: Any | None = None,
        *,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.payload = payload
        self.context = context or {}

    def __str__(self) -> str:  # pragma: no cover - representation helper
        context_repr = f", contexto={self.context}" if self.context else ""
        return f"{self.detail} (status={self.status_code}{context_repr})"


class InventoryUnauthorizedError(InventoryAPIError):
    """Raised on HTTP 401; the session is no longer valid."""


def fetch_all_pages(fetch_page: PageFetcher[ItemT], *, max_pages: int) -> list[ItemT]:
    """Collect every page sequentially, failing loudly when ``max_pages`` is exhausted.

    ``fetch_page`` receives the zero-based page index and returns the page items
    plus whether the backend reports more pages.
    """

    if max_pages < 1:
        raise ValueError("max_pages debe ser al menos 1")

    collected: list[ItemT] = []
    for page_index in range(max_pages):
        items, has_more = fetch_page(page_index)
        collected.extend(items)
        if not has_more or not items:
            return collected
    raise PaginationLimitError(max_pages, len(collected))


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        elif isinstance(value, datetime):
            cleaned[key] = value.isoformat()
        else:
            cleaned[key] = value
    return cleaned


def _path_segment(value: str, label: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError(f"{label} es obligatorio")
    return quote(text, safe="")


def _body(data: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", exclude_none=True)
    return {key: value for key, value in data.items() if value is not None}


class InventoryClient:
    """Small helper around the inventory REST API.

    The client is immutable with respect to authentication: use
    :meth:`with_session` to obtain a client bound to a different session.
    """

    DEFAULT_BASE_URL = "http://localhost:3000/api/v1"
    DEFAULT_PAGE_SIZE = 100
    DEFAULT_MAX_PAGES = 50

    def __init__(
        self,
        *,
        base_url: str | None = None,
        session: Session | None = None,
        events: EventChannel | None = None,
        timeout: float = 30.0,
        default_page_size: int | None = None,
        max_pages: int | None = None,
    ) -> None:
        base_url = (base_url or self.DEFAULT_BASE_URL).strip()
        if not base_url.startswith(("http://", "https://")):
            raise InventoryConfigurationError(
                "INVENTORY_API_BASE_URL debe ser una URL http(s) válida."
            )

        self.base_url = base_url.rstrip("/")
        self.session = session or Session()
        self.events = events
        self.timeout = timeout
        self.default_page_size = (
            default_page_size if default_page_size and default_page_size > 0 else self.DEFAULT_PAGE_SIZE
        )
        self.max_pages = max_pages if max_pages and max_pages > 0 else self.DEFAULT_MAX_PAGES

    def with_session(self, session: Session) -> "InventoryClient":
        return InventoryClient(
            base_url=self.base_url,
            session=session,
            events=self.events,
            timeout=self.timeout,
            default_page_size=self.default_page_size,
            max_pages=self.max_pages,
        )

    def _publish(self, topic: str, payload: Any = None) -> None:
        if self.events is not None:
            self.events.publish(topic, payload)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json; charset=UTF-8",
        }
        if self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        query = _clean_params(params)
        logger.debug(
            "Inventory request %s %s params=%s body=%s",
            method,
            url,
            _serialise_for_log(query),
            _serialise_for_log(body),
        )
        try:
            response = requests.request(
                method=method,
                url=url,
                headers=self._headers(),
                params=query or None,
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Inventory transport error %s %s", method, url)
            raise InventoryTransportError(
                "No se pudo conectar con el servidor de inventario."
            ) from exc

        payload = self._safe_json(response)
        context = {"method": method, "url": url, "params": query}
        if response.status_code == 401:
            logger.warning("Inventory session rejected %s %s", method, url)
            self._publish(AUTH_UNAUTHORIZED, context)
            raise InventoryUnauthorizedError(
                401,
                "La sesión expiró. Inicia sesión nuevamente.",
                payload=payload,
                context=context,
            )
        if response.status_code >= 400:
            logger.error(
                "Inventory API error %s %s status=%s params=%s body=%s",
                method,
                url,
                response.status_code,
                _serialise_for_log(query),
                _serialise_for_log(payload),
            )
            raise InventoryAPIError(
                response.status_code,
                self._extract_error_message(response),
                payload=payload,
                context=context,
            )

        if not response.content:
            logger.debug(
                "Inventory response %s %s status=%s body=<empty>",
                method,
                url,
                response.status_code,
            )
            return None
        logger.debug(
            "Inventory response %s %s status=%s body=%s",
            method,
            url,
            response.status_code,
            _serialise_for_log(payload),
        )
        return self._unwrap(payload, context)

    @staticmethod
    def _safe_json(response: requests.Response) -> Any | None:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _message_from_payload(payload: Any) -> str | None:
        if not isinstance(payload, dict):
            return None
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    @staticmethod
    def _extract_error_message(response: requests.Response) -> str:
        message = InventoryClient._message_from_payload(InventoryClient._safe_json(response))
        if message:
            return message
        text = (response.text or "").strip()
        if text:
            return text
        return f"Error {response.status_code} al comunicarse con el servidor de inventario"

    @staticmethod
    def _unwrap(payload: Any, context: dict[str, Any]) -> Any:
        """Strip the ``{code, success, message, data, error}`` envelope when present."""

        if not isinstance(payload, dict):
            return payload
        if payload.get("success") is False:
            raise InventoryAPIError(
                int(payload.get("code") or 200),
                InventoryClient._message_from_payload(payload) or "La operación no fue exitosa",
                payload=payload,
                context=context,
            )
        if "data" in payload:
            return payload["data"]
        return payload

    def _get_model(self, endpoint: str, model: type[ModelT], params: Mapping[str, Any] | None = None) -> ModelT:
        return model.model_validate(self._request("GET", endpoint, params=params))

    def _send_model(
        self,
        method: str,
        endpoint: str,
        data: BaseModel | Mapping[str, Any],
        model: type[ModelT],
    ) -> ModelT:
        return model.model_validate(self._request(method, endpoint, body=_body(data)))

    # Auth ---------------------------------------------------------------

    def login(self, email: str, password: str) -> LoginResult:
        data = self._request("POST", "/auth/login", body={"email": email, "password": password})
        return LoginResult.model_validate(data)

    def login_with_temp_code(self, email: str, code: str) -> LoginResult:
        data = self._request("POST", "/auth/login-temp", body={"email": email, "password": code})
        return LoginResult.model_validate(data)

    def request_recovery(self, email: str) -> bool:
        data = self._request("POST", "/auth/recover", body={"email": email}) or {}
        return bool(data.get("sent"))

    def register(
        self,
        *,
        name: str,
        email: str,
        password: str,
        phone: str | None = None,
        address: str | None = None,
    ) -> UserProfile:
        data = self._request(
            "POST",
            "/auth/register",
            body=_body(
                {
                    "name": name,
                    "email": email,
                    "password": password,
                    "phone": phone,
                    "address": address,
                }
            ),
        )
        if not isinstance(data, dict) or not data:
            raise InventoryAPIError(
                200,
                "El backend no devolvió el usuario registrado",
                payload=data,
                context={"endpoint": "/auth/register"},
            )
        return UserProfile.model_validate(data.get("user") or data)

    def update_user(self, **fields: Any) -> dict[str, Any]:
        return self._request("PUT", "/auth/update", body=_body(fields)) or {}

    def health_check(self) -> dict[str, Any]:
        return self._request("GET", "/health") or {}

    # Articles -----------------------------------------------------------

    def create_article(self, data: ArticleCreate | Mapping[str, Any]) -> Article:
        article = self._send_model("POST", "/articles", data, Article)
        self._publish(ARTICLE_CREATED, article)
        return article

    def list_articles(
        self,
        *,
        page: int = 1,
        per_page: int | None = None,
        sku: str | None = None,
        name: str | None = None,
        is_active: bool | None = None,
        price_min: float | None = None,
        price_max: float | None = None,
    ) -> ResourcePage[Article]:
        params = {
            "page": page,
            "perPage": per_page or self.default_page_size,
            "sku": sku,
            "name": name,
            "isActive": is_active,
            "priceMin": price_min,
            "priceMax": price_max,
        }
        return self._get_model("/articles", ResourcePage[Article], params)

    def iter_all_articles(
        self, *, max_pages: int | None = None, per_page: int | None = None, **filters: Any
    ) -> list[Article]:
        """Fetch every article page by page, bounded by ``max_pages``."""

        def _fetch(page_index: int) -> tuple[Sequence[Article], bool]:
            page = self.list_articles(page=page_index + 1, per_page=per_page, **filters)
            return page.items, page.has_more

        return fetch_all_pages(_fetch, max_pages=max_pages or self.max_pages)

    def get_article(self, article_id: str) -> Article:
        return self._get_model(f"/articles/{_path_segment(article_id, 'article_id')}", Article)

    def update_article(self, article_id: str, data: Mapping[str, Any]) -> Article:
        return self._send_model(
            "PUT", f"/articles/{_path_segment(article_id, 'article_id')}", data, Article
        )

    def delete_article(self, article_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"/articles/{_path_segment(article_id, 'article_id')}") or {}

    # Catalogues ---------------------------------------------------------

    def create_category(self, *, name: str, description: str | None = None) -> Category:
        return self._send_model("POST", "/categories", {"name": name, "description": description}, Category)

    def list_categories(
        self, *, page: int = 1, per_page: int | None = None, name: str | None = None
    ) -> ResourcePage[Category]:
        params = {"page": page, "perPage": per_page or self.default_page_size, "name": name}
        return self._get_model("/categories", ResourcePage[Category], params)

    def get_category(self, category_id: str) -> Category:
        return self._get_model(f"/categories/{_path_segment(category_id, 'category_id')}", Category)

    def create_supplier(
        self,
        *,
        name: str,
        nit: str,
        address: str | None = None,
        phone: str | None = None,
    ) -> Supplier:
        body = {"name": name, "nit": nit, "address": address, "phone": phone}
        return self._send_model("POST", "/suppliers", body, Supplier)

    def list_suppliers(
        self,
        *,
        page: int = 1,
        per_page: int | None = None,
        name: str | None = None,
        is_active: bool | None = None,
    ) -> ResourcePage[Supplier]:
        params = {
            "page": page,
            "perPage": per_page or self.default_page_size,
            "name": name,
            "isActive": is_active,
        }
        return self._get_model("/suppliers", ResourcePage[Supplier], params)

    def get_supplier(self, supplier_id: str) -> Supplier:
        return self._get_model(f"/suppliers/{_path_segment(supplier_id, 'supplier_id')}", Supplier)

    def update_supplier(self, supplier_id: str, data: Mapping[str, Any]) -> Supplier:
        return self._send_model(
            "PUT", f"/suppliers/{_path_segment(supplier_id, 'supplier_id')}", data, Supplier
        )

    def create_stockroom(self, *, name: str, address: str | None = None) -> Stockroom:
        return self._send_model("POST", "/stockroom", {"name": name, "address": address}, Stockroom)

    def list_stockrooms(
        self,
        *,
        page: int = 1,
        per_page: int | None = None,
        is_active: bool | None = None,
    ) -> ResourcePage[Stockroom]:
        params = {"page": page, "perPage": per_page or self.default_page_size, "isActive": is_active}
        return self._get_model("/stockroom", ResourcePage[Stockroom], params)

    def get_stockroom(self, stockroom_id: str) -> Stockroom:
        return self._get_model(f"/stockroom/{_path_segment(stockroom_id, 'stockroom_id')}", Stockroom)

    def update_stockroom(self, stockroom_id: str, data: Mapping[str, Any]) -> Stockroom:
        return self._send_model(
            "PUT", f"/stockroom/{_path_segment(stockroom_id, 'stockroom_id')}", data, Stockroom
        )

    # Inventory history --------------------------------------------------

    @staticmethod
    def _history_params(
        *,
        article_id: str | None,
        stockroom_id: str | None,
        date_from: datetime | None,
        date_to: datetime | None,
        **extra: Any,
    ) -> dict[str, Any]:
        return {
            "articleId": article_id,
            "stockroomId": stockroom_id,
            "from": date_from,
            "to": date_to,
            **extra,
        }

    def _iter_history(
        self,
        fetch: Callable[[int, int], HistoryPage[Any]],
        *,
        page_size: int | None,
        max_pages: int | None,
    ) -> list[Any]:
        size = page_size or self.default_page_size

        def _fetch(page_index: int) -> tuple[Sequence[Any], bool]:
            page = fetch(size, page_index * size)
            return page.rows, page.has_more

        return fetch_all_pages(_fetch, max_pages=max_pages or self.max_pages)

    def create_sale(self, data: SaleCreate | Mapping[str, Any]) -> SaleRecord:
        payload = data if isinstance(data, SaleCreate) else SaleCreate.model_validate(data)
        sale = self._send_model("POST", "/inventory-history/sales", payload, SaleRecord)
        self._publish(SALE_CREATED, sale)
        return sale

    def list_sales(
        self,
        *,
        article_id: str | None = None,
        stockroom_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> HistoryPage[SaleRecord]:
        params = self._history_params(
            article_id=article_id,
            stockroom_id=stockroom_id,
            date_from=date_from,
            date_to=date_to,
            limit=limit or self.default_page_size,
            offset=offset,
        )
        return self._get_model("/inventory-history/sales", HistoryPage[SaleRecord], params)

    def iter_all_sales(
        self,
        *,
        page_size: int | None = None,
        max_pages: int | None = None,
        **filters: Any,
    ) -> list[SaleRecord]:
        return self._iter_history(
            lambda limit, offset: self.list_sales(limit=limit, offset=offset, **filters),
            page_size=page_size,
            max_pages=max_pages,
        )

    def get_sales_summary(
        self,
        *,
        article_id: str | None = None,
        stockroom_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> SalesSummary:
        params = self._history_params(
            article_id=article_id,
            stockroom_id=stockroom_id,
            date_from=date_from,
            date_to=date_to,
        )
        return self._get_model("/inventory-history/sales/summary", SalesSummary, params)

    def get_top_selling_articles(
        self,
        *,
        stockroom_id: str | None = None,
        days: int | None = None,
        limit: int | None = None,
    ) -> list[TopSellingItem]:
        data = self._request(
            "GET",
            "/inventory-history/sales/top",
            params={"stockroomId": stockroom_id, "days": days, "limit": limit},
        )
        return [TopSellingItem.model_validate(item) for item in data or []]

    def create_movement(self, data: MovementCreate | Mapping[str, Any]) -> MovementRecord:
        payload = data if isinstance(data, MovementCreate) else MovementCreate.model_validate(data)
        movement = self._send_model("POST", "/inventory-history/movements", payload, MovementRecord)
        self._publish(MOVEMENT_CREATED, movement)
        return movement

    def list_movements(
        self,
        *,
        article_id: str | None = None,
        stockroom_id: str | None = None,
        movement_type: MovementType | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> HistoryPage[MovementRecord]:
        params = self._history_params(
            article_id=article_id,
            stockroom_id=stockroom_id,
            date_from=date_from,
            date_to=date_to,
            type=movement_type,
            limit=limit or self.default_page_size,
            offset=offset,
        )
        return self._get_model("/inventory-history/movements", HistoryPage[MovementRecord], params)

    def iter_all_movements(
        self,
        *,
        page_size: int | None = None,
        max_pages: int | None = None,
        **filters: Any,
    ) -> list[MovementRecord]:
        return self._iter_history(
            lambda limit, offset: self.list_movements(limit=limit, offset=offset, **filters),
            page_size=page_size,
            max_pages=max_pages,
        )

    def get_movement_summary(
        self,
        *,
        article_id: str | None = None,
        stockroom_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> MovementSummary:
        params = self._history_params(
            article_id=article_id,
            stockroom_id=stockroom_id,
            date_from=date_from,
            date_to=date_to,
        )
        return self._get_model("/inventory-history/movements/summary", MovementSummary, params)

    # Replenishment and alerts --------------------------------------------

    def get_replenishment_by_article_id(self, article_id: str) -> ReplenishmentReport:
        return self._get_model(
            f"/replenishment/articles/{_path_segment(article_id, 'article_id')}",
            ReplenishmentReport,
        )

    def get_replenishment_by_sku(self, sku: str) -> ReplenishmentReport:
        return self._get_model(
            f"/replenishment/articles/by-sku/{_path_segment(sku, 'sku')}",
            ReplenishmentReport,
        )

    def list_stock_alerts(self, *, active_only: bool = True) -> list[StockAlert]:
        data = self._request("GET", "/stock-alerts", params={"isActive": True if active_only else None})
        if isinstance(data, dict):
            data = data.get("items") or data.get("rows") or []
        return [StockAlert.model_validate(item) for item in data or []]

    # Purchase orders ------------------------------------------------------

    def generate_purchase_order_number(self) -> str:
        data = self._request("POST", "/purchase-orders/number")
        if isinstance(data, dict):
            data = data.get("po_number")
        if not data:
            raise InventoryAPIError(
                200,
                "El backend no devolvió un número de orden de compra",
                payload=data,
                context={"endpoint": "/purchase-orders/number"},
            )
        return str(data)

    def create_purchase_order(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/purchase-orders", body=dict(payload)) or {}

    def create_purchase_order_items(
        self, order_id: str, items: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        data = self._request(
            "POST",
            f"/purchase-orders/{_path_segment(order_id, 'order_id')}/items",
            body={"items": [dict(item) for item in items]},
        )
        if isinstance(data, dict):
            data = data.get("items") or data.get("rows") or []
        return list(data or [])

    # Assistant ------------------------------------------------------------

    def chat_assistant(self, message: str) -> AssistantChatReply:
        return self._send_model("POST", "/assistant/chat", {"message": message}, AssistantChatReply)


__all__ = [
    "InventoryAPIError",
    "InventoryClient",
    "InventoryClientError",
    "InventoryConfigurationError",
    "InventoryTransportError",
    "InventoryUnauthorizedError",
    "PaginationLimitError",
    "fetch_all_pages",
]
