# ==== LIQUIDITY WEBHOOK ROUTES ==== #

"""
Inbound webhooks from the liquidity-provider service.

The HMAC signature over the raw body is checked before the body is parsed,
so a bad signature never touches an order.
"""

import datetime as dt
from typing import Any, Dict, Type, TypeVar

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ValidationError

from onramp.errors import WebhookPayloadError
from onramp.observability.logging import get_logger
from onramp.observability.metrics import liquidity_webhooks_total
from onramp.observability.tracing import get_tracer
from onramp.routes.dependencies import get_settlement_processor
from onramp.schemas.webhooks import ErrorWebhook, SettlementWebhook, UpdateWebhook
from onramp.security.signatures import require_liquidity_signature
from onramp.services.settlement import SettlementWebhookProcessor


router = APIRouter()
tracer = get_tracer(__name__)
logger = get_logger(__name__)

EnvelopeT = TypeVar("EnvelopeT", bound=BaseModel)


def _parse(model: Type[EnvelopeT], body: bytes, channel: str) -> EnvelopeT:
    try:
        return model.model_validate_json(body)
    except ValidationError as e:
        liquidity_webhooks_total.labels(channel=channel, outcome="invalid_payload").inc()
        logger.warning("Invalid liquidity webhook payload", channel=channel, errors=e.error_count())
        raise WebhookPayloadError(
            "Invalid webhook payload",
            details={"errors": [
                {"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()
            ]},
        ) from e


# ==== WEBHOOK CHANNELS ==== #


@router.post("/settlement")
async def settlement_webhook(
    body: bytes = Depends(require_liquidity_signature),
    processor: SettlementWebhookProcessor = Depends(get_settlement_processor),
) -> Dict[str, Any]:
    """
    Settlement outcome for an order (processing, completed or failed).

    Args:
        body (bytes): Raw request body, signature already verified
        processor (SettlementWebhookProcessor): Webhook processor dependency

    Returns:
        Dict[str, Any]: Processing outcome with the resulting order status
    """
    payload = _parse(SettlementWebhook, body, "settlement")
    with tracer.start_as_current_span("liquidity_settlement_webhook") as span:
        span.set_attribute("order_id", payload.data.order_id)
        return await processor.handle_settlement(payload.data)


@router.post("/update")
async def update_webhook(
    body: bytes = Depends(require_liquidity_signature),
    processor: SettlementWebhookProcessor = Depends(get_settlement_processor),
) -> Dict[str, Any]:
    """Advisory progress message; recorded in order notes only."""
    payload = _parse(UpdateWebhook, body, "update")
    return await processor.handle_update(payload.data)


@router.post("/error")
async def error_webhook(
    body: bytes = Depends(require_liquidity_signature),
    processor: SettlementWebhookProcessor = Depends(get_settlement_processor),
) -> Dict[str, Any]:
    """Liquidity-side error; non-retryable errors fail the order."""
    payload = _parse(ErrorWebhook, body, "error")
    with tracer.start_as_current_span("liquidity_error_webhook") as span:
        span.set_attribute("order_id", payload.data.order_id)
        span.set_attribute("retryable", payload.data.retryable)
        return await processor.handle_error(payload.data)


@router.get("/ping")
async def ping() -> Dict[str, Any]:
    """Unauthenticated reachability probe for the liquidity provider."""
    return {
        "success": True,
        "message": "Liquidity webhook endpoint is reachable",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
    }
