# ==== SETTLEMENT WEBHOOK PROCESSOR ==== #

"""
Inbound liquidity-provider webhook processing.

Signatures are verified before this module is reached (see
onramp.security.signatures). Three channels drive the order state machine:

* settlement: ``completed`` and ``failed`` move the order to a terminal
  state and notify the merchant; ``processing`` moves INITIATED to
  PROCESSING once. Replaying a status the order already has is a no-op.
* update: advisory notes only, optionally forwarded as
  ``order.status_update``. Never changes the status.
* error: non-retryable errors fail the order; retryable errors only
  annotate notes so a later definitive webhook can still land.

Terminal states are final. A different terminal status for a terminal order
is rejected with 409 and leaves the order untouched.

Orders are updated last-writer-wins without version checks; concurrent or
out-of-order deliveries for the same order are not ordered here.
"""

from typing import Any, Dict, Optional

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onramp.business.reason_codes import (
    ErrorCode,
    OrderStatus,
    SettlementStatus,
    WebhookEvent,
)
from onramp.errors import OrderConflictError, OrderNotFoundError, WebhookPayloadError
from onramp.observability.logging import get_logger
from onramp.observability.metrics import liquidity_webhooks_total, order_transitions_total
from onramp.observability.tracing import get_tracer
from onramp.schemas.webhooks import ErrorData, SettlementData, UpdateData
from onramp.services.order_lifecycle import order_webhook_data
from onramp.services.webhook_dispatcher import WebhookDispatcher, deliver_and_record
from onramp.storage.models import Business, BusinessOnrampOrder


logger = get_logger(__name__)
tracer = get_tracer(__name__)


class SettlementWebhookProcessor:
    """
    Applies verified liquidity-provider webhooks to orders.

    Args:
        session: Request database session
        dispatcher: Merchant webhook dispatcher for forwarded events
        background: Request background tasks; merchant webhooks run there
            after the order write committed
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: WebhookDispatcher,
        background: BackgroundTasks,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.background = background

    async def _load_order(self, order_id: str, channel: str) -> BusinessOnrampOrder:
        order = (
            await self.session.execute(
                select(BusinessOnrampOrder).where(BusinessOnrampOrder.order_id == order_id)
            )
        ).scalar_one_or_none()
        if order is None:
            liquidity_webhooks_total.labels(channel=channel, outcome="order_not_found").inc()
            logger.warning("Liquidity webhook for unknown order", order_id=order_id, channel=channel)
            raise OrderNotFoundError("Order not found")
        return order

    async def _merchant_secret(self, business_id: str) -> Optional[str]:
        return (
            await self.session.execute(
                select(Business.webhook_secret).where(Business.business_id == business_id)
            )
        ).scalar_one_or_none()

    async def _notify_merchant(
        self,
        order: BusinessOnrampOrder,
        event: WebhookEvent,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Schedule a merchant webhook; the caller must have committed already."""
        if not order.webhook_url:
            return
        data = {**order_webhook_data(order), **(extra or {})}
        self.background.add_task(
            deliver_and_record,
            self.dispatcher,
            order.order_id,
            order.webhook_url,
            event,
            data,
            await self._merchant_secret(order.business_id),
        )

    def _transition(self, order: BusinessOnrampOrder, to_status: OrderStatus) -> str:
        from_status = order.status
        order_transitions_total.labels(from_status=from_status, to_status=to_status.value).inc()
        logger.info(
            "Order status transition",
            order_id=order.order_id,
            business_id=order.business_id,
            from_status=from_status,
            to_status=to_status.value,
        )
        return from_status

    @staticmethod
    def _result(order: BusinessOnrampOrder, applied: bool, message: str) -> Dict[str, Any]:
        return {
            "success": True,
            "message": message,
            "orderId": order.order_id,
            "orderStatus": order.status,
            "applied": applied,
        }

    # --► SETTLEMENT CHANNEL

    async def handle_settlement(self, data: SettlementData) -> Dict[str, Any]:
        """
        Apply a settlement status to an order.

        Returns:
            Dict[str, Any]: Outcome with ``applied`` false for no-op replays

        Raises:
            WebhookPayloadError: Unknown settlement status (checked first)
            OrderNotFoundError: No order with this id
            OrderConflictError: Different terminal status for a terminal order
        """
        status = SettlementStatus._value2member_map_.get(data.status.lower())
        if status is None:
            liquidity_webhooks_total.labels(channel="settlement", outcome="unknown_status").inc()
            raise WebhookPayloadError(
                f"Unknown settlement status: {data.status}",
                code=ErrorCode.UNKNOWN_SETTLEMENT_STATUS.value,
            )

        with tracer.start_as_current_span("settlement.handle_settlement") as span:
            span.set_attribute("order.id", data.order_id)
            span.set_attribute("settlement.status", status.value)
            order = await self._load_order(data.order_id, "settlement")
            current = order.order_status

            if status == SettlementStatus.PROCESSING:
                if current != OrderStatus.INITIATED:
                    liquidity_webhooks_total.labels(channel="settlement", outcome="noop").inc()
                    return self._result(order, False, "Order already past initiated, nothing to apply")
                self._transition(order, OrderStatus.PROCESSING)
                order.mark_processing(data.liquidity_server_order_id)
                await self.session.commit()
                liquidity_webhooks_total.labels(channel="settlement", outcome="applied").inc()
                return self._result(order, True, "Settlement webhook processed successfully")

            target = OrderStatus(status.value)
            if current.is_terminal:
                if current == target:
                    liquidity_webhooks_total.labels(channel="settlement", outcome="replay").inc()
                    logger.info("Duplicate terminal settlement ignored",
                                order_id=order.order_id, status=current.value)
                    return self._result(order, False, "Order already in this terminal state")
                liquidity_webhooks_total.labels(channel="settlement", outcome="conflict").inc()
                logger.error(
                    "Conflicting terminal settlement rejected",
                    order_id=order.order_id,
                    current_status=current.value,
                    requested_status=target.value,
                )
                raise OrderConflictError(
                    f"Order {order.order_id} is already {current.value}",
                    details={"orderStatus": current.value, "requestedStatus": target.value},
                )

            self._transition(order, target)
            if target == OrderStatus.COMPLETED:
                order.mark_completed(
                    data.transaction_hash,
                    data.actual_token_amount,
                    data.liquidity_server_order_id,
                )
                event = WebhookEvent.ORDER_COMPLETED
            else:
                order.mark_failed(data.error_message or "Settlement failed on liquidity server")
                if data.liquidity_server_order_id:
                    order.liquidity_server_order_id = data.liquidity_server_order_id
                event = WebhookEvent.ORDER_FAILED
            await self.session.commit()

        liquidity_webhooks_total.labels(channel="settlement", outcome="applied").inc()
        await self._notify_merchant(order, event)
        return self._result(order, True, "Settlement webhook processed successfully")

    # --► UPDATE CHANNEL

    async def handle_update(self, data: UpdateData) -> Dict[str, Any]:
        """Record an advisory status message; the order status is never changed."""
        order = await self._load_order(data.order_id, "update")

        if data.status_message:
            order.append_note(data.status_message)
            await self.session.commit()

        if data.status:
            await self._notify_merchant(
                order,
                WebhookEvent.ORDER_STATUS_UPDATE,
                {
                    "liquidityStatus": data.status,
                    "statusMessage": data.status_message,
                    "liquidityServerOrderId": data.liquidity_server_order_id,
                },
            )

        liquidity_webhooks_total.labels(channel="update", outcome="applied").inc()
        return {
            "success": True,
            "message": "Settlement update processed successfully",
            "orderId": order.order_id,
            "orderStatus": order.status,
        }

    # --► ERROR CHANNEL

    async def handle_error(self, data: ErrorData) -> Dict[str, Any]:
        """Fail the order on non-retryable errors, otherwise annotate notes."""
        order = await self._load_order(data.order_id, "error")
        description = f"{data.error_message} (Code: {data.error_code})"
        applied = False

        if data.retryable:
            order.append_note(f"Liquidity server error (retryable): {description}")
            await self.session.commit()
            outcome = "annotated"
        elif order.is_terminal:
            logger.info("Non-retryable error for terminal order ignored",
                        order_id=order.order_id, status=order.status)
            outcome = "noop"
        else:
            self._transition(order, OrderStatus.FAILED)
            order.mark_failed(f"Liquidity server error: {description}")
            await self.session.commit()
            await self._notify_merchant(
                order, WebhookEvent.ORDER_FAILED, {"errorCode": data.error_code}
            )
            applied = True
            outcome = "applied"

        liquidity_webhooks_total.labels(channel="error", outcome=outcome).inc()
        return {
            "success": True,
            "message": "Liquidity error processed successfully",
            "orderId": order.order_id,
            "orderStatus": order.status,
            "retryable": data.retryable,
            "applied": applied,
        }
