"""Scan every article and report those whose reorder quantity is positive."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

from dotenv import load_dotenv

from ..api_client import InventoryAPIError, InventoryClient
from ..logging_config import configure_logging
from ..replenishment.coverage import daily_demand_statistics
from ..replenishment.models import Article, ReplenishmentMetrics
from ..replenishment.reorder_points import compute_replenishment_metrics, metrics_status
from ..session import Session, TokenStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_DAYS = 90
DEFAULT_SERVICE_LEVEL = 0.95


def local_replenishment_metrics(
    client: InventoryClient,
    article: Article,
    *,
    history_days: int = DEFAULT_HISTORY_DAYS,
    service_level: float = DEFAULT_SERVICE_LEVEL,
    max_pages: int | None = None,
    now: datetime | None = None,
) -> ReplenishmentMetrics | None:
    """Calcula las métricas con el historial de ventas cuando el backend no las tiene.

    Devuelve ``None`` si el artículo no tiene lead time o no registra ventas en
    la ventana.
    """

    if article.lead_time is None:
        return None
    if history_days <= 0:
        raise ValueError("La ventana de historial debe ser positiva")

    end = now or datetime.now(timezone.utc)
    start = (end - timedelta(days=history_days - 1)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    sales = client.iter_all_sales(
        article_id=article.id, date_from=start, date_to=end, max_pages=max_pages
    )
    if not sales:
        return None

    mean, std_dev = daily_demand_statistics(sales, start=start, end=end)
    return compute_replenishment_metrics(
        current_stock=article.stock,
        average_daily_demand=mean,
        demand_std_dev=std_dev,
        lead_time_days=article.lead_time,
        service_level=service_level,
        configured_reorder_point=article.reorder_point,
    )


def scan_reorder_points(
    client: InventoryClient,
    *,
    skus: Iterable[str] | None = None,
    max_pages: int | None = None,
    history_days: int = DEFAULT_HISTORY_DAYS,
    service_level: float = DEFAULT_SERVICE_LEVEL,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Return one entry per article that needs a purchase, most urgent first.

    Articles the backend has no metrics for (404) are computed locally from
    their sales history.
    """

    wanted = {sku.strip().upper() for sku in skus or () if sku.strip()}
    articles = client.iter_all_articles(max_pages=max_pages)
    logger.info("Escaneando %s artículos", len(articles))

    entries: list[dict[str, Any]] = []
    for article in articles:
        if wanted and article.sku.upper() not in wanted:
            continue
        source = "backend"
        try:
            metrics = client.get_replenishment_by_article_id(article.id).metrics
        except InventoryAPIError as exc:
            if exc.status_code != 404:
                raise
            metrics = local_replenishment_metrics(
                client,
                article,
                history_days=history_days,
                service_level=service_level,
                max_pages=max_pages,
                now=now,
            )
            if metrics is None:
                logger.warning("Sin métricas de reposición para %s: %s", article.sku, exc.detail)
                continue
            source = "local"

        if metrics.suggested_reorder_quantity <= 0:
            continue
        entries.append(
            {
                "article_id": article.id,
                "sku": article.sku,
                "name": article.name,
                "current_stock": metrics.current_stock,
                "safety_stock": metrics.safety_stock,
                "configured_reorder_point": metrics.configured_reorder_point,
                "recommended_reorder_point": metrics.recommended_reorder_point,
                "suggested_reorder_quantity": metrics.suggested_reorder_quantity,
                "status": metrics_status(metrics).value,
                "source": source,
            }
        )

    entries.sort(key=lambda entry: entry["suggested_reorder_quantity"], reverse=True)
    logger.info("%s artículos requieren reposición", len(entries))
    return entries


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--sku",
        dest="skus",
        nargs="+",
        help="Limit the scan to these SKUs",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        help="Máximo de páginas de artículos a recorrer antes de fallar",
    )
    parser.add_argument(
        "--history-days",
        type=int,
        default=DEFAULT_HISTORY_DAYS,
        help="Días de ventas usados cuando el backend no tiene métricas",
    )
    parser.add_argument(
        "--service-level",
        type=float,
        default=float(os.getenv("DEFAULT_SERVICE_LEVEL", DEFAULT_SERVICE_LEVEL)),
        help="Nivel de servicio para el cálculo local (0-1)",
    )
    parser.add_argument(
        "--output",
        help="Write the JSON report to this path instead of stdout",
    )
    return parser.parse_args(argv)


def _resolve_token() -> str:
    token = os.getenv("INVENTORY_API_TOKEN")
    if not token:
        token = TokenStore(os.getenv("SESSION_STORE_PATH", "data/session.json")).load()
    if not token:
        raise RuntimeError(
            "INVENTORY_API_TOKEN is not defined and no stored session was found"
        )
    return token


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FILE"))
    args = parse_args(argv)

    page_size_env = os.getenv("INVENTORY_PAGE_SIZE")
    max_pages_env = os.getenv("INVENTORY_MAX_PAGES")
    client = InventoryClient(
        base_url=os.getenv("INVENTORY_API_BASE_URL", InventoryClient.DEFAULT_BASE_URL),
        session=Session(token=_resolve_token()),
        default_page_size=int(page_size_env) if page_size_env else None,
        max_pages=int(max_pages_env) if max_pages_env else None,
    )

    entries = scan_reorder_points(
        client,
        skus=args.skus,
        max_pages=args.max_pages,
        history_days=args.history_days,
        service_level=args.service_level,
    )
    report = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "count": len(entries),
        "articles": entries,
    }
    rendered = json.dumps(report, ensure_ascii=False, indent=2)
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(rendered + "\n", encoding="utf-8")
        logger.info("Reporte escrito en %s", output)
    else:
        sys.stdout.write(rendered + "\n")


if __name__ == "__main__":
    main()
