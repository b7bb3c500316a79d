# ==== MERCHANT WEBHOOK DISPATCHER ==== #

"""
Outbound merchant webhook delivery.

Payloads are ``{event, timestamp, data}`` signed with the merchant's secret
(a key space separate from the inbound liquidity secret). Delivery is a
single attempt with a bounded timeout; the dispatcher reports the outcome
and never raises. Retrying is left to callers.

Dispatch is scheduled as a FastAPI background task after the order write has
committed. The task records the outcome into the order's ``webhook_status``
using its own database session.
"""

import datetime as dt
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from fastapi.encoders import jsonable_encoder
from sqlalchemy import select

from onramp.business.reason_codes import WebhookEvent
from onramp.observability.logging import get_logger, log_business_event
from onramp.observability.metrics import merchant_webhooks_total
from onramp.security.signatures import SIGNATURE_HEADER, sign_payload
from onramp.settings import settings
from onramp.storage.db import get_session
from onramp.storage.models import BusinessOnrampOrder, as_utc, utcnow


logger = get_logger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    sent: bool
    error: Optional[str] = None
    status_code: Optional[int] = None


class WebhookDispatcher:
    """Signs and POSTs merchant notifications, exactly one attempt each."""

    def __init__(self, timeout: float | None = None, user_agent: str | None = None):
        self.timeout = timeout or settings.WEBHOOK_TIMEOUT_SECONDS
        self.user_agent = user_agent or settings.WEBHOOK_USER_AGENT

    @staticmethod
    def encode_payload(event: WebhookEvent, data: Dict[str, Any]) -> bytes:
        """Serialize the envelope to the exact bytes that get signed and sent."""
        envelope = {
            "event": event.value,
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "data": jsonable_encoder(data),
        }
        return json.dumps(envelope, separators=(",", ":")).encode()

    async def send(
        self,
        url: str,
        event: WebhookEvent,
        data: Dict[str, Any],
        secret: str | None = None,
    ) -> DeliveryResult:
        """
        Deliver one signed webhook.

        Args:
            url: Merchant callback URL
            event: Event name
            data: Event data, JSON-encodable after jsonable_encoder
            secret: Merchant signing secret, defaults to MERCHANT_WEBHOOK_SECRET

        Returns:
            DeliveryResult: Outcome; never raises
        """
        try:
            body = self.encode_payload(event, data)
            headers = {
                "Content-Type": "application/json",
                SIGNATURE_HEADER: sign_payload(body, secret or settings.MERCHANT_WEBHOOK_SECRET),
                "User-Agent": self.user_agent,
            }
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, content=body, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            merchant_webhooks_total.labels(event=event.value, outcome="rejected").inc()
            logger.warning("Merchant webhook rejected", event=event.value, url=url,
                           status_code=e.response.status_code)
            return DeliveryResult(sent=False, error=str(e), status_code=e.response.status_code)
        except Exception as e:
            merchant_webhooks_total.labels(event=event.value, outcome="failed").inc()
            logger.warning("Merchant webhook delivery failed", event=event.value, url=url,
                           error=str(e))
            return DeliveryResult(sent=False, error=str(e) or type(e).__name__)

        merchant_webhooks_total.labels(event=event.value, outcome="delivered").inc()
        logger.info("Merchant webhook delivered", event=event.value, url=url)
        return DeliveryResult(sent=True, status_code=response.status_code)


def apply_delivery_result(
    webhook_status: Optional[Dict[str, Any]],
    result: DeliveryResult,
    at: dt.datetime,
) -> Dict[str, Any]:
    """Return an updated webhookStatus document for one delivery attempt."""
    status = dict(webhook_status or {})
    status["attempts"] = int(status.get("attempts", 0)) + 1
    status["lastAttemptAt"] = as_utc(at).isoformat()
    if result.sent:
        status["lastDeliveryStatus"] = "delivered"
        status["lastDeliveryAt"] = as_utc(at).isoformat()
        status.pop("lastError", None)
    else:
        status["lastDeliveryStatus"] = "failed"
        status["lastError"] = result.error
    return status


async def deliver_and_record(
    dispatcher: WebhookDispatcher,
    order_id: str,
    url: str,
    event: WebhookEvent,
    data: Dict[str, Any],
    secret: str | None = None,
) -> DeliveryResult:
    """
    Background task: deliver a webhook, then record the outcome on the order.

    Runs after the response was produced, in its own session. Recording
    failures are logged; they never reach the original API caller.
    """
    result = await dispatcher.send(url, event, data, secret)

    try:
        async with get_session() as session:
            order = (
                await session.execute(
                    select(BusinessOnrampOrder).where(BusinessOnrampOrder.order_id == order_id)
                )
            ).scalar_one_or_none()
            if order is None:
                logger.warning("Order vanished before webhook status update", order_id=order_id)
                return result
            order.webhook_status = apply_delivery_result(order.webhook_status, result, utcnow())
    except Exception as e:
        logger.exception("Failed to record webhook delivery", order_id=order_id, error=str(e))
        return result

    log_business_event(
        event.value,
        str(data.get("businessId", "")),
        order_id=order_id,
        delivered=result.sent,
    )
    return result


# Global instance
_dispatcher: Optional[WebhookDispatcher] = None


def get_webhook_dispatcher() -> WebhookDispatcher:
    """Get global webhook dispatcher instance."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = WebhookDispatcher()
    return _dispatcher
