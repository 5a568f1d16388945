"""Asistente conversacional sobre el inventario usando un gateway compatible con OpenAI."""
from __future__ import annotations

import json
import logging
from typing import Any, Literal, Sequence

import requests
from pydantic import BaseModel, Field

from .replenishment.models import Article, StockAlert

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-2.5-flash"
PURCHASE_ORDER_MARKERS = ("orden de compra", "purchase order")

SYSTEM_PROMPT = """Eres un experto en gestión de inventario hospitalario. Responde en español.

Tienes acceso a los siguientes datos de inventario:
{context}

Responde preguntas sobre:
- Stock actual de los productos
- Productos con stock bajo (alertas activas)
- Información de proveedores
- Análisis de ventas y tiempos de entrega

Si detectas productos con stock crítico (menos de 10 días de cobertura) o alertas de severidad
alta o media, termina con: "Recomiendo crear una orden de compra para estos productos."

Sé conciso, claro y útil."""


class AssistantError(RuntimeError):
    """Base error for assistant gateway failures."""


class AssistantRateLimitError(AssistantError):
    """The gateway answered 429."""


class AssistantQuotaError(AssistantError):
    """The gateway answered 402 (sin créditos)."""


class AssistantGatewayError(AssistantError):
    """Any other gateway failure."""


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AssistantReply(BaseModel):
    response: str
    should_create_po: bool = False
    alerts_count: int = Field(0, ge=0)


def build_context(articles: Sequence[Article], alerts: Sequence[StockAlert]) -> dict[str, Any]:
    return {
        "products": [
            article.model_dump(
                mode="json",
                include={
                    "id",
                    "name",
                    "sku",
                    "supplier_name",
                    "unit_cost",
                    "lead_time",
                    "reorder_point",
                    "stock",
                    "site",
                },
            )
            for article in articles
        ],
        "stock_alerts": [alert.model_dump(mode="json") for alert in alerts],
    }


def should_suggest_purchase_order(reply: str, alerts: Sequence[StockAlert]) -> bool:
    text = reply.lower()
    if any(marker in text for marker in PURCHASE_ORDER_MARKERS):
        return True
    return any(alert.severity in {"high", "medium"} for alert in alerts)


class InventoryAssistant:
    """Send inventory questions to a chat-completions gateway."""

    def __init__(
        self,
        *,
        api_key: str,
        gateway_url: str = DEFAULT_GATEWAY_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        temperature: float = 0.7,
    ) -> None:
        if not api_key:
            raise ValueError("Se requiere una API key para el asistente")
        self.api_key = api_key
        self.gateway_url = gateway_url
        self.model = model
        self.timeout = timeout
        self.temperature = temperature

    def build_messages(
        self,
        message: str,
        *,
        articles: Sequence[Article],
        alerts: Sequence[StockAlert],
        history: Sequence[ChatMessage] = (),
    ) -> list[dict[str, str]]:
        context = json.dumps(build_context(articles, alerts), ensure_ascii=False, indent=2)
        return [
            {"role": "system", "content": SYSTEM_PROMPT.format(context=context)},
            *({"role": item.role, "content": item.content} for item in history),
            {"role": "user", "content": message},
        ]

    def chat(
        self,
        message: str,
        *,
        articles: Sequence[Article] = (),
        alerts: Sequence[StockAlert] = (),
        history: Sequence[ChatMessage] = (),
    ) -> AssistantReply:
        message = (message or "").strip()
        if not message:
            raise ValueError("El mensaje no puede estar vacío")

        body = {
            "model": self.model,
            "messages": self.build_messages(
                message, articles=articles, alerts=alerts, history=history
            ),
            "temperature": self.temperature,
        }
        try:
            response = requests.post(
                self.gateway_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Assistant gateway unreachable")
            raise AssistantGatewayError("No se pudo contactar al asistente") from exc

        if response.status_code == 429:
            raise AssistantRateLimitError(
                "Se excedió el límite de solicitudes. Intenta nuevamente más tarde."
            )
        if response.status_code == 402:
            raise AssistantQuotaError("El asistente no tiene créditos disponibles.")
        if response.status_code >= 400:
            logger.error(
                "Assistant gateway error status=%s body=%s",
                response.status_code,
                response.text[:500],
            )
            raise AssistantGatewayError(f"Error del asistente (status={response.status_code})")

        try:
            reply = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AssistantGatewayError("Respuesta inválida del asistente") from exc

        return AssistantReply(
            response=reply,
            should_create_po=should_suggest_purchase_order(reply, alerts),
            alerts_count=len(alerts),
        )


__all__ = [
    "AssistantError",
    "AssistantGatewayError",
    "AssistantQuotaError",
    "AssistantRateLimitError",
    "AssistantReply",
    "ChatMessage",
    "InventoryAssistant",
    "build_context",
    "should_suggest_purchase_order",
]
