# ==== PROMETHEUS METRICS ==== #

"""
Prometheus metrics for the onramp order engine.

This module defines counters and histograms for order creation, token
rejections, pricing source usage, inbound liquidity webhooks and outbound
merchant webhook delivery, plus the scrape endpoint router.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter, 
    Gauge, 
    Histogram, 
    generate_latest, 
    REGISTRY
)


# ==== ORDER METRICS ==== #

orders_created_total = Counter(
    "onramp_orders_created_total",
    "Total onramp orders persisted by network and token",
    ["network", "token"]
)

order_rejections_total = Counter(
    "onramp_order_rejections_total",
    "Total order or quote requests rejected before persistence",
    ["reason"]
)

order_transitions_total = Counter(
    "onramp_order_transitions_total",
    "Total order status transitions applied",
    ["from_status", "to_status"]
)


# ==== PRICING METRICS ==== #

pricing_requests_total = Counter(
    "onramp_pricing_requests_total",
    "Total price resolutions by source and fiat rate source",
    ["source", "fiat_rate_source"]
)

pricing_failures_total = Counter(
    "onramp_pricing_failures_total",
    "Total price resolution failures",
    ["network", "error_type"]
)


# ==== WEBHOOK METRICS ==== #

liquidity_webhooks_total = Counter(
    "onramp_liquidity_webhooks_total",
    "Inbound liquidity provider webhooks by channel and outcome",
    ["channel", "outcome"]
)

merchant_webhooks_total = Counter(
    "onramp_merchant_webhooks_total",
    "Outbound merchant webhook deliveries by event and outcome",
    ["event", "outcome"]
)


# ==== HTTP AND DATABASE METRICS ==== #

http_request_seconds = Histogram(
    "onramp_http_request_seconds",
    "HTTP request latency in seconds",
    ["method", "path"]
)

db_connections_active = Gauge(
    "onramp_db_connections_active",
    "Number of active database sessions"
)

app_info = Gauge(
    "onramp_app_info",
    "Application information",
    ["version", "environment", "service_name"]
)


def init_metrics(app) -> None:
    """Initialize metrics collection.
    
    Args:
        app: FastAPI application instance
    """
    from onramp import __version__
    from onramp.settings import settings
    app_info.labels(
        version=__version__,
        environment=settings.APP_ENV,
        service_name=settings.SERVICE_NAME
    ).set(1)


# Metrics router for Prometheus scraping
metrics_router = APIRouter()


@metrics_router.get("/metrics")
def get_metrics() -> PlainTextResponse:
    """Expose Prometheus metrics for scraping.
    
    Returns:
        Prometheus metrics in text format
    """
    return PlainTextResponse(
        generate_latest(REGISTRY).decode("utf-8"),
        media_type="text/plain"
    )
