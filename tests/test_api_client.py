from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hospital_inventory import api_client as api_module
from hospital_inventory.api_client import (
    InventoryAPIError,
    InventoryClient,
    InventoryConfigurationError,
    InventoryTransportError,
    InventoryUnauthorizedError,
    PaginationLimitError,
    fetch_all_pages,
)
from hospital_inventory.events import (
    ARTICLE_CREATED,
    AUTH_UNAUTHORIZED,
    SALE_CREATED,
    ActivityFeed,
    EventChannel,
)
from hospital_inventory.session import Session


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class RecordingTransport:
    def __init__(self, *responses: FakeResponse) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def __call__(self, **kwargs: Any) -> FakeResponse:
        self.calls.append(kwargs)
        return self.responses.pop(0)


def _envelope(data: Any) -> dict[str, Any]:
    return {"code": 200, "success": True, "message": "ok", "data": data}


def _article(article_id: str) -> dict[str, Any]:
    return {"id": article_id, "sku": f"SKU-{article_id}", "name": f"Artículo {article_id}", "stock": 3}


@pytest.fixture()
def transport(monkeypatch: pytest.MonkeyPatch) -> RecordingTransport:
    recorder = RecordingTransport()
    monkeypatch.setattr(api_module.requests, "request", recorder)
    return recorder


def test_invalid_base_url_is_rejected() -> None:
    with pytest.raises(InventoryConfigurationError):
        InventoryClient(base_url="localhost:3000")


def test_bearer_token_and_envelope_unwrapping(transport: RecordingTransport) -> None:
    transport.responses.append(FakeResponse(200, _envelope(_article("1"))))
    client = InventoryClient(base_url="https://inv.test/api/v1/", session=Session(token="tok-123"))

    article = client.get_article("1")

    call = transport.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://inv.test/api/v1/articles/1"
    assert call["headers"]["Authorization"] == "Bearer tok-123"
    assert article.sku == "SKU-1"
    assert article.stock == 3


def test_no_authorization_header_without_token(transport: RecordingTransport) -> None:
    transport.responses.append(FakeResponse(200, {"status": "ok"}))
    InventoryClient().health_check()
    assert "Authorization" not in transport.calls[0]["headers"]


def test_with_session_returns_new_client() -> None:
    client = InventoryClient(default_page_size=25)
    bound = client.with_session(Session(token="abc"))

    assert bound is not client
    assert client.session.token is None
    assert bound.session.token == "abc"
    assert bound.default_page_size == 25


def test_query_parameters_are_normalised(transport: RecordingTransport) -> None:
    transport.responses.append(
        FakeResponse(200, _envelope({"items": [], "meta": {"totalPages": 1, "currentPage": 1}}))
    )
    InventoryClient().list_articles(page=2, per_page=10, is_active=True, sku=None)

    assert transport.calls[0]["params"] == {"page": 2, "perPage": 10, "isActive": "true"}


def test_unauthorized_publishes_event(transport: RecordingTransport) -> None:
    transport.responses.append(FakeResponse(401, {"error": "jwt expired"}))
    channel = EventChannel()
    received: list[Any] = []
    channel.subscribe(AUTH_UNAUTHORIZED, received.append)

    with pytest.raises(InventoryUnauthorizedError) as excinfo:
        InventoryClient(events=channel, session=Session(token="old")).list_stock_alerts()

    assert excinfo.value.status_code == 401
    assert len(received) == 1
    assert received[0]["url"].endswith("/stock-alerts")


def test_error_message_taken_from_body(transport: RecordingTransport) -> None:
    transport.responses.append(FakeResponse(409, {"success": False, "error": "SKU duplicado"}))

    with pytest.raises(InventoryAPIError) as excinfo:
        InventoryClient().create_article(
            {
                "sku": "X",
                "name": "Gasas",
                "id_category": "c",
                "id_supplier": "s",
                "id_stockroom": "r",
                "unit_price": 1,
                "unit_cost": 1,
            }
        )

    assert excinfo.value.status_code == 409
    assert excinfo.value.detail == "SKU duplicado"


def test_error_message_falls_back_to_text(transport: RecordingTransport) -> None:
    transport.responses.append(FakeResponse(500, None, text="Internal Server Error"))

    with pytest.raises(InventoryAPIError) as excinfo:
        InventoryClient().health_check()

    assert excinfo.value.detail == "Internal Server Error"


def test_unsuccessful_envelope_with_ok_status_raises(transport: RecordingTransport) -> None:
    transport.responses.append(
        FakeResponse(200, {"code": 422, "success": False, "message": "Datos inválidos", "data": None})
    )

    with pytest.raises(InventoryAPIError) as excinfo:
        InventoryClient().health_check()

    assert excinfo.value.status_code == 422
    assert excinfo.value.detail == "Datos inválidos"


def test_transport_failure_is_wrapped(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(**kwargs: Any) -> FakeResponse:
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(api_module.requests, "request", _boom)

    with pytest.raises(InventoryTransportError):
        InventoryClient().health_check()


def test_create_sale_publishes_event_and_feeds_activity(transport: RecordingTransport) -> None:
    transport.responses.append(
        FakeResponse(
            201,
            _envelope(
                {
                    "id": "sale-1",
                    "id_article": "1",
                    "id_stockroom": "r",
                    "quantity": 3,
                    "sold_at": "2025-05-01T10:00:00Z",
                    "createdAt": "2025-05-01T10:00:01Z",
                }
            ),
        )
    )
    channel = EventChannel()
    feed = ActivityFeed()
    feed.attach(channel)
    sales: list[Any] = []
    channel.subscribe(SALE_CREATED, sales.append)

    sale = InventoryClient(events=channel).create_sale(
        {
            "id_article": "1",
            "id_stockroom": "r",
            "quantity": 3,
            "sold_at": datetime(2025, 5, 1, 10, tzinfo=timezone.utc),
        }
    )

    assert sale.id == "sale-1"
    assert sales == [sale]
    assert feed.recent()[0]["topic"] == SALE_CREATED
    assert transport.calls[0]["json"]["sold_at"].startswith("2025-05-01T10:00:00")


def test_iter_all_articles_walks_pages(transport: RecordingTransport) -> None:
    transport.responses.extend(
        [
            FakeResponse(
                200,
                _envelope({"items": [_article("1"), _article("2")], "meta": {"total_pages": 2, "current_page": 1}}),
            ),
            FakeResponse(
                200,
                _envelope({"items": [_article("3")], "meta": {"total_pages": 2, "current_page": 2}}),
            ),
        ]
    )

    articles = InventoryClient().iter_all_articles(per_page=2)

    assert [article.id for article in articles] == ["1", "2", "3"]
    assert [call["params"]["page"] for call in transport.calls] == [1, 2]


def test_iter_all_sales_uses_offsets(transport: RecordingTransport) -> None:
    def _row(index: int) -> dict[str, Any]:
        return {
            "id": f"s{index}",
            "id_article": "1",
            "id_stockroom": "r",
            "quantity": 1,
            "sold_at": "2025-05-01T10:00:00Z",
        }

    transport.responses.extend(
        [
            FakeResponse(200, {"rows": [_row(1), _row(2)], "count": 3, "limit": 2, "offset": 0}),
            FakeResponse(200, {"rows": [_row(3)], "count": 3, "limit": 2, "offset": 2}),
        ]
    )

    sales = InventoryClient().iter_all_sales(page_size=2, article_id="1")

    assert [sale.id for sale in sales] == ["s1", "s2", "s3"]
    assert [call["params"]["offset"] for call in transport.calls] == [0, 2]
    assert transport.calls[0]["params"]["articleId"] == "1"


def test_fetch_all_pages_fails_loudly_at_cap() -> None:
    with pytest.raises(PaginationLimitError) as excinfo:
        fetch_all_pages(lambda index: ([index], True), max_pages=3)

    assert excinfo.value.fetched == 3
    assert fetch_all_pages(lambda index: ([index], index < 2), max_pages=3) == [0, 1, 2]


def test_replenishment_by_sku_is_url_encoded(transport: RecordingTransport) -> None:
    transport.responses.append(
        FakeResponse(
            200,
            _envelope(
                {
                    "article": {"id": "1", "sku": "GAS/01", "name": "Gasas"},
                    "metrics": {
                        "stock_actual": 40,
                        "demanda_promedio_diaria": 10,
                        "desviacion_demanda_diaria": 2,
                        "lead_time_dias": 5,
                        "nivel_servicio": 0.95,
                        "z_score": 1.645,
                        "demanda_esperada_en_lead_time": 50,
                        "desviacion_en_lead_time": 4.47,
                        "stock_seguridad": 7,
                        "reorder_point_actual": None,
                        "reorder_point_recomendado": 57,
                        "cantidad_reorden_sugerida": 17,
                    },
                }
            ),
        )
    )

    report = InventoryClient().get_replenishment_by_sku("GAS/01")

    assert transport.calls[0]["url"].endswith("/replenishment/articles/by-sku/GAS%2F01")
    assert report.metrics.recommended_reorder_point == 57


def test_create_article_publishes_event(transport: RecordingTransport) -> None:
    transport.responses.append(FakeResponse(201, _envelope(_article("9"))))
    channel = EventChannel()
    created: list[Any] = []
    channel.subscribe(ARTICLE_CREATED, created.append)

    InventoryClient(events=channel).create_article(
        {
            "sku": "SKU-9",
            "name": "Artículo 9",
            "id_category": "c",
            "id_supplier": "s",
            "id_stockroom": "r",
            "unit_price": 2,
            "unit_cost": 1,
        }
    )

    assert [article.id for article in created] == ["9"]


def test_password_recovery_and_temporary_login(transport: RecordingTransport) -> None:
    transport.responses.extend(
        [
            FakeResponse(200, _envelope({"sent": True})),
            FakeResponse(
                200,
                _envelope({"user": {"id": "u1", "name": "Ana", "email": "ana@hospital.test"}, "token": "tok-temp"}),
            ),
        ]
    )
    client = InventoryClient(base_url="https://inv.test/api/v1")

    assert client.request_recovery("ana@hospital.test") is True
    result = client.login_with_temp_code("ana@hospital.test", "483920")

    assert transport.calls[0]["url"] == "https://inv.test/api/v1/auth/recover"
    assert transport.calls[0]["json"] == {"email": "ana@hospital.test"}
    assert transport.calls[1]["url"] == "https://inv.test/api/v1/auth/login-temp"
    assert transport.calls[1]["json"] == {"email": "ana@hospital.test", "password": "483920"}
    assert result.token == "tok-temp"


def test_register_with_empty_body_raises_api_error(transport: RecordingTransport) -> None:
    transport.responses.append(FakeResponse(201, None))

    with pytest.raises(InventoryAPIError) as excinfo:
        InventoryClient().register(name="Ana", email="ana@hospital.test", password="pw")

    assert "usuario registrado" in excinfo.value.detail


def test_purchase_order_items_unwrap_object_replies(transport: RecordingTransport) -> None:
    items = [{"id": "it-1", "alert_id": "A1"}]
    transport.responses.extend(
        [
            FakeResponse(201, _envelope({"items": items})),
            FakeResponse(201, _envelope(items)),
        ]
    )
    client = InventoryClient()

    assert client.create_purchase_order_items("order-1", [{"alert_id": "A1"}]) == items
    assert client.create_purchase_order_items("order-1", [{"alert_id": "A1"}]) == items
    assert transport.calls[0]["json"] == {"items": [{"alert_id": "A1"}]}
