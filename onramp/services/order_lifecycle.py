# ==== ORDER LIFECYCLE MANAGER ==== #

"""
Order lifecycle management for business onramp orders.

Order creation runs the full chain synchronously:

    amount bounds → business token lookup → TokenSupportValidator
        → PriceOracle → fee calculation → persist INITIATED
        → payment link → order.created webhook (background)

The exchange rate and estimated token amount are fixed at creation and never
recomputed. If the payment link cannot be issued the failure is surfaced to
the caller while the INITIATED order stays persisted; such orders carry no
payment reference and have to be reconciled externally.

Read operations (order lookup, listing, statistics, token catalogue and
collaborator health) are always scoped to the calling business.
"""

import asyncio
import datetime as dt
import math
import secrets
import string
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from fastapi import BackgroundTasks
from fastapi.encoders import jsonable_encoder
from sqlalchemy import Numeric, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from onramp.business.config import BusinessConfig, TokenDescriptor
from onramp.business.reason_codes import (
    NETWORK_SCAN_ORDER,
    PENDING_STATUSES,
    ErrorCode,
    Network,
    OrderStatus,
    TokenSupportReason,
    WebhookEvent,
)
from onramp.errors import (
    OrderNotFoundError,
    OrderValidationError,
    PaymentLinkError,
    TokenRejectedError,
)
from onramp.observability.logging import get_logger, log_business_event
from onramp.observability.metrics import order_rejections_total, orders_created_total
from onramp.observability.tracing import get_tracer
from onramp.schemas.onramp import CreateOrderRequest, OrderListQuery, QuoteRequest
from onramp.services.fees import FeeBreakdown, calculate_fees
from onramp.services.payment_links import MonnifyClient
from onramp.services.price_oracle import PriceOracle, PriceQuote
from onramp.services.reference_prices import ReferencePriceClient
from onramp.services.reserve_client import ReserveQuoter
from onramp.services.token_validation import TokenSupportValidator, TokenVerdict
from onramp.services.webhook_dispatcher import WebhookDispatcher, deliver_and_record
from onramp.settings import settings
from onramp.storage.models import BusinessOnrampOrder, as_utc, utcnow


logger = get_logger(__name__)
tracer = get_tracer(__name__)

ORDER_ID_ALPHABET = string.ascii_uppercase + string.digits

TIMEFRAMES: Dict[str, Optional[dt.timedelta]] = {
    "7d": dt.timedelta(days=7),
    "30d": dt.timedelta(days=30),
    "90d": dt.timedelta(days=90),
    "1y": dt.timedelta(days=365),
    "all": None,
}

SORT_COLUMNS = {
    "createdAt": BusinessOnrampOrder.created_at,
    # Numeric ordering on every backend, including string-backed SQLite money
    "amount": cast(BusinessOnrampOrder.amount, Numeric(38, 18)),
    "status": BusinessOnrampOrder.status,
}


def generate_order_id() -> str:
    """Internal order id: ``BO_<epoch ms>_<9 upper-case alphanumerics>``."""
    suffix = "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(9))
    return f"BO_{int(time.time() * 1000)}_{suffix}"


def generate_business_reference() -> str:
    """Merchant-facing reference, independent of the internal id."""
    return f"BIZRAMP-{uuid.uuid4()}"


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _naive_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


# ==== ORDER SERIALIZATION ==== #


def order_webhook_data(order: BusinessOnrampOrder) -> Dict[str, Any]:
    """Order fields forwarded to the merchant in webhook payloads."""
    return {
        "orderId": order.order_id,
        "businessOrderReference": order.business_order_reference,
        "businessId": order.business_id,
        "status": order.status,
        "amount": order.amount,
        "targetToken": order.target_token,
        "targetNetwork": order.target_network,
        "estimatedTokenAmount": order.estimated_token_amount,
        "actualTokenAmount": order.actual_token_amount,
        "customerEmail": order.customer_email,
        "customerWallet": order.customer_wallet,
        "feeAmount": order.fee_amount,
        "feePercentage": order.fee_percentage,
        "netAmount": order.net_amount,
        "exchangeRate": order.exchange_rate,
        "transactionHash": order.transaction_hash,
        "errorMessage": order.error_message,
        "createdAt": as_utc(order.created_at),
        "completedAt": as_utc(order.completed_at),
        "expiresAt": as_utc(order.expires_at),
        "metadata": order.order_metadata,
    }


def order_details(order: BusinessOnrampOrder) -> Dict[str, Any]:
    """Full order view returned by lookup and listing."""
    metadata = order.order_metadata or {}
    return {
        **order_webhook_data(order),
        "customerName": order.customer_name,
        "customerPhone": order.customer_phone,
        "tokenContractAddress": order.token_contract_address,
        "liquidityServerOrderId": order.liquidity_server_order_id,
        "settlementInitiatedAt": as_utc(order.settlement_initiated_at),
        "notes": order.notes,
        "updatedAt": as_utc(order.updated_at),
        "isExpired": order.is_expired(),
        "paymentReference": order.payment_reference,
        "paymentUrl": order.checkout_url,
        "webhookConfigured": bool(order.webhook_url),
        "webhookStatus": order.webhook_status or {},
        "validation": metadata.get("tokenValidation"),
        "pricing": {
            "source": metadata.get("pricingSource"),
            "fiatRateSource": metadata.get("fiatRateSource"),
            "smartContractData": metadata.get("smartContractData"),
        },
    }


@dataclass
class PricedRequest:
    """Everything create and quote share after validation and pricing."""

    network: Network
    token: TokenDescriptor
    verdict: TokenVerdict
    price: PriceQuote
    fees: FeeBreakdown


# ==== LIFECYCLE MANAGER ==== #


class OrderLifecycleManager:
    """
    Creates onramp orders and serves merchant read operations.

    Collaborators are injected so tests can substitute fakes for the
    on-chain quoter, reference price API, payment provider and dispatcher.
    """

    def __init__(
        self,
        session: AsyncSession,
        reserve: ReserveQuoter,
        reference: ReferencePriceClient,
        payment_links: MonnifyClient,
        dispatcher: WebhookDispatcher,
    ):
        self.session = session
        self.reserve = reserve
        self.reference = reference
        self.payment_links = payment_links
        self.dispatcher = dispatcher
        self.validator = TokenSupportValidator(reserve)
        self.oracle = PriceOracle(reserve, reference)

    # --► VALIDATION AND PRICING CHAIN

    def _reject(self, error: Exception, reason: str) -> Exception:
        order_rejections_total.labels(reason=reason).inc()
        return error

    async def _validate_and_price(
        self,
        business: BusinessConfig,
        request: QuoteRequest,
    ) -> PricedRequest:
        """
        Run bounds, business lookup, token validation, pricing and fees.

        Raises:
            OrderValidationError: Amount out of range or network not configured
            TokenRejectedError: Business or on-chain validation rejected the token
            PricingError: No price could be resolved
        """
        amount = request.amount
        if amount < settings.MIN_ORDER_AMOUNT or amount > settings.MAX_ORDER_AMOUNT:
            raise self._reject(
                OrderValidationError(
                    f"Amount must be between {settings.MIN_ORDER_AMOUNT:,} and "
                    f"{settings.MAX_ORDER_AMOUNT:,} {settings.FIAT_CURRENCY}",
                    code=ErrorCode.INVALID_AMOUNT_RANGE.value,
                ),
                ErrorCode.INVALID_AMOUNT_RANGE.value,
            )

        network = Network._value2member_map_.get(request.target_network)
        if network is None or not business.is_network_configured(network):
            raise self._reject(
                OrderValidationError(
                    f"{request.target_network} network not configured for your business",
                    code=ErrorCode.NETWORK_NOT_CONFIGURED.value,
                    details={"availableNetworks": [
                        n.value for n in NETWORK_SCAN_ORDER if business.is_network_configured(n)
                    ]},
                ),
                ErrorCode.NETWORK_NOT_CONFIGURED.value,
            )

        token = business.find_tradable_token(network, request.target_token)
        verdict = await self.validator.validate(token, network, request.target_token)
        if not verdict.valid:
            details = {**verdict.to_dict(), "network": network.value,
                       "recommendation": verdict.recommendation}
            if verdict.reason == TokenSupportReason.TOKEN_NOT_SUPPORTED_BY_BUSINESS:
                details["supportedTokens"] = [
                    {"symbol": t.symbol, "name": t.name, "contractAddress": t.contract_address}
                    for t in business.tradable_tokens(network)
                ]
            logger.warning(
                "Token validation rejected request",
                business_id=business.business_id,
                token=request.target_token,
                network=network.value,
                reason=verdict.reason.value,
            )
            raise self._reject(
                TokenRejectedError(
                    verdict.message,
                    code=verdict.reason.value,
                    status_code=verdict.status_code,
                    details=details,
                ),
                verdict.reason.value,
            )

        price = await self.oracle.price(
            business,
            request.target_token,
            Decimal("1"),
            network=network,
            prefetched=verdict.price_data,
        )
        fees = calculate_fees(
            amount,
            business.fee_entry_for(network, token.contract_address),
            price.fiat_to_token_rate,
            token.decimals,
        )
        return PricedRequest(network=network, token=token, verdict=verdict, price=price, fees=fees)

    @staticmethod
    def _validation_summary(verdict: TokenVerdict) -> Dict[str, Any]:
        return {
            "businessSupported": verdict.business_supported,
            "contractSupported": verdict.contract_supported,
            "hasLiquidity": verdict.has_liquidity,
            "validationReason": verdict.reason.value,
            "validationPassed": verdict.valid,
        }

    # --► CREATE

    async def create(
        self,
        business: BusinessConfig,
        request: CreateOrderRequest,
        background: BackgroundTasks,
    ) -> Dict[str, Any]:
        """
        Create an onramp order and issue its payment link.

        Args:
            business: Calling business configuration
            request: Validated order request
            background: Request background tasks used for webhook delivery

        Returns:
            Dict[str, Any]: Order summary with payment details

        Raises:
            OnrampError: Any validation, pricing or payment link failure
        """
        with tracer.start_as_current_span("order_lifecycle.create") as span:
            span.set_attribute("business.id", business.business_id)
            priced = await self._validate_and_price(business, request)
            price, fees = priced.price, priced.fees

            now = utcnow()
            metadata: Dict[str, Any] = {
                **request.metadata,
                "tokenValidation": self._validation_summary(priced.verdict),
                "pricingSource": price.source.value,
            }
            if price.fiat_rate_source is not None:
                metadata["fiatRateSource"] = price.fiat_rate_source.value
            smart_contract_data = price.smart_contract_data()
            if smart_contract_data is not None:
                metadata["smartContractData"] = smart_contract_data

            webhook_url = request.webhook_url or business.webhook_url
            order = BusinessOnrampOrder(
                order_id=generate_order_id(),
                business_order_reference=generate_business_reference(),
                business_id=business.business_id,
                customer_email=request.customer_email,
                customer_name=request.customer_name,
                customer_wallet=request.customer_wallet,
                customer_phone=request.customer_phone,
                amount=fees.amount,
                target_token=priced.token.symbol,
                target_network=priced.network.value,
                token_contract_address=priced.token.contract_address,
                exchange_rate=price.unit_price,
                estimated_token_amount=fees.final_token_amount,
                fee_percentage=fees.fee_percentage,
                fee_amount=fees.fee_amount,
                net_amount=fees.net_amount,
                status=OrderStatus.INITIATED.value,
                created_at=now,
                expires_at=now + dt.timedelta(minutes=settings.ORDER_EXPIRY_MINUTES),
                redirect_url=request.redirect_url,
                webhook_url=webhook_url,
                webhook_status={"attempts": 0},
                order_metadata=jsonable_metadata(metadata),
            )
            self.session.add(order)
            await self.session.commit()
            span.set_attribute("order.id", order.order_id)

            logger.info(
                "Onramp order persisted",
                order_id=order.order_id,
                business_id=business.business_id,
                amount=str(order.amount),
                token=order.target_token,
                network=order.target_network,
                pricing_source=price.source.value,
            )

            try:
                link = await self.payment_links.create_payment_link(
                    amount=order.amount,
                    reference=order.business_order_reference,
                    customer_name=order.customer_name,
                    customer_email=order.customer_email,
                    redirect_url=request.redirect_url or (
                        f"{settings.FRONTEND_URL}/business-payment/success?orderId={order.order_id}"
                    ),
                )
            except PaymentLinkError as e:
                logger.error(
                    "Payment link failed, order left INITIATED without payment reference",
                    order_id=order.order_id,
                    business_id=business.business_id,
                    error=e.message,
                )
                raise

            order.payment_reference = link.payment_reference
            order.checkout_url = link.checkout_url
            await self.session.commit()

        orders_created_total.labels(network=order.target_network, token=order.target_token).inc()
        log_business_event(
            WebhookEvent.ORDER_CREATED.value,
            business.business_id,
            order_id=order.order_id,
            amount=str(order.amount),
        )

        if webhook_url:
            background.add_task(
                deliver_and_record,
                self.dispatcher,
                order.order_id,
                webhook_url,
                WebhookEvent.ORDER_CREATED,
                order_webhook_data(order),
                business.webhook_secret,
            )

        response: Dict[str, Any] = {
            "orderId": order.order_id,
            "businessOrderReference": order.business_order_reference,
            "amount": order.amount,
            "targetToken": order.target_token,
            "targetNetwork": order.target_network,
            "estimatedTokenAmount": order.estimated_token_amount,
            "exchangeRate": order.exchange_rate,
            "feeAmount": order.fee_amount,
            "feePercentage": order.fee_percentage,
            "netAmount": order.net_amount,
            "status": order.status,
            "expiresAt": as_utc(order.expires_at),
            "customerWallet": order.customer_wallet,
            "paymentDetails": {
                "paymentUrl": link.checkout_url,
                "paymentReference": link.payment_reference,
                "transactionReference": link.transaction_reference,
                "expiresIn": settings.ORDER_EXPIRY_MINUTES * 60,
            },
            "webhookConfigured": bool(webhook_url),
            "validation": self._validation_summary(priced.verdict),
            "pricingInfo": price.pricing_info(),
        }
        if smart_contract_data is not None:
            response["smartContractData"] = smart_contract_data
        return response

    # --► QUOTE

    async def quote(self, business: BusinessConfig, request: QuoteRequest) -> Dict[str, Any]:
        """Price an amount through the full validation chain without persisting."""
        with tracer.start_as_current_span("order_lifecycle.quote"):
            priced = await self._validate_and_price(business, request)

        price, fees = priced.price, priced.fees
        symbol = priced.token.symbol
        response: Dict[str, Any] = {
            "amount": fees.amount,
            "targetToken": symbol,
            "targetNetwork": priced.network.value,
            "exchangeRate": price.unit_price,
            "tokenAmount": fees.gross_token_amount,
            "feePercentage": fees.fee_percentage,
            "feeAmount": fees.fee_amount,
            "netAmount": fees.net_amount,
            "finalTokenAmount": fees.final_token_amount,
            "breakdown": {
                **fees.to_dict(),
                "youReceive": f"{fees.final_token_amount} {symbol}",
            },
            "timestamp": price.timestamp,
            "validFor": settings.QUOTE_VALID_SECONDS,
            "expiresAt": dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=settings.QUOTE_VALID_SECONDS),
            "validation": self._validation_summary(priced.verdict),
            "pricingInfo": price.pricing_info(),
        }
        smart_contract_data = price.smart_contract_data()
        if smart_contract_data is not None:
            response["smartContractData"] = smart_contract_data
        return response

    # --► READ OPERATIONS

    async def get_order(self, business: BusinessConfig, identifier: str) -> Dict[str, Any]:
        """Look up an order by internal id or merchant-facing reference."""
        order = (
            await self.session.execute(
                select(BusinessOnrampOrder).where(
                    BusinessOnrampOrder.business_id == business.business_id,
                    or_(
                        BusinessOnrampOrder.order_id == identifier,
                        BusinessOnrampOrder.business_order_reference == identifier,
                    ),
                )
            )
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(f"Order {identifier} not found")
        return order_details(order)

    async def list_orders(self, business: BusinessConfig, query: OrderListQuery) -> Dict[str, Any]:
        """
        List a business's orders with filters, pagination and a summary.

        The summary covers every order matching the filters, not just the
        returned page.
        """
        conditions = [BusinessOnrampOrder.business_id == business.business_id]
        if query.status is not None:
            conditions.append(BusinessOnrampOrder.status == query.status.value)
        if query.target_token:
            conditions.append(BusinessOnrampOrder.target_token == query.target_token.upper())
        if query.target_network:
            conditions.append(BusinessOnrampOrder.target_network == query.target_network.lower())
        if query.customer_email:
            conditions.append(
                func.lower(BusinessOnrampOrder.customer_email).contains(query.customer_email.lower())
            )
        if query.start_date is not None:
            conditions.append(BusinessOnrampOrder.created_at >= _naive_utc(query.start_date))
        if query.end_date is not None:
            conditions.append(BusinessOnrampOrder.created_at <= _naive_utc(query.end_date))

        column = SORT_COLUMNS[query.sort_by]
        ordering = column.asc() if query.sort_order == "asc" else column.desc()

        orders = (
            await self.session.execute(
                select(BusinessOnrampOrder)
                .where(*conditions)
                .order_by(ordering, BusinessOnrampOrder.id.desc())
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
            )
        ).scalars().all()

        rows = (
            await self.session.execute(
                select(
                    BusinessOnrampOrder.status,
                    func.count(BusinessOnrampOrder.id),
                    func.sum(BusinessOnrampOrder.amount),
                    func.sum(BusinessOnrampOrder.fee_amount),
                )
                .where(*conditions)
                .group_by(BusinessOnrampOrder.status)
            )
        ).all()

        total_orders = sum(count for _, count, _, _ in rows)
        by_status = {status: count for status, count, _, _ in rows}
        total_pages = math.ceil(total_orders / query.limit) if total_orders else 0

        return {
            "orders": [order_details(order) for order in orders],
            "pagination": {
                "currentPage": query.page,
                "totalPages": total_pages,
                "totalOrders": total_orders,
                "limit": query.limit,
                "hasNextPage": query.page < total_pages,
                "hasPrevPage": query.page > 1,
            },
            "summary": {
                "totalAmount": sum((_as_decimal(total) for _, _, total, _ in rows), Decimal("0")),
                "totalOrders": total_orders,
                "completedOrders": by_status.get(OrderStatus.COMPLETED.value, 0),
                "pendingOrders": sum(by_status.get(s.value, 0) for s in PENDING_STATUSES),
                "totalFees": sum((_as_decimal(fee) for _, _, _, fee in rows), Decimal("0")),
            },
        }

    async def business_stats(self, business: BusinessConfig, timeframe: str = "30d") -> Dict[str, Any]:
        """Aggregate order statistics for a business over a timeframe."""
        window = TIMEFRAMES[timeframe]
        conditions = [BusinessOnrampOrder.business_id == business.business_id]
        start_date = None
        if window is not None:
            start_date = utcnow() - window
            conditions.append(BusinessOnrampOrder.created_at >= start_date)

        status_rows = (
            await self.session.execute(
                select(
                    BusinessOnrampOrder.status,
                    func.count(BusinessOnrampOrder.id),
                    func.sum(BusinessOnrampOrder.amount),
                    func.sum(BusinessOnrampOrder.fee_amount),
                )
                .where(*conditions)
                .group_by(BusinessOnrampOrder.status)
            )
        ).all()
        token_rows = (
            await self.session.execute(
                select(
                    BusinessOnrampOrder.target_token,
                    BusinessOnrampOrder.target_network,
                    func.count(BusinessOnrampOrder.id),
                    func.sum(BusinessOnrampOrder.amount),
                )
                .where(*conditions)
                .group_by(BusinessOnrampOrder.target_token, BusinessOnrampOrder.target_network)
            )
        ).all()

        status_breakdown = {
            status: {
                "count": count,
                "totalAmount": _as_decimal(amount),
                "totalFees": _as_decimal(fees),
            }
            for status, count, amount, fees in status_rows
        }
        total_orders = sum(entry["count"] for entry in status_breakdown.values())
        completed = status_breakdown.get(OrderStatus.COMPLETED.value, {})
        failed = status_breakdown.get(OrderStatus.FAILED.value, {})
        completed_count = completed.get("count", 0)

        return {
            "timeframe": timeframe,
            "startDate": as_utc(start_date),
            "overview": {
                "totalOrders": total_orders,
                "totalAmount": sum((e["totalAmount"] for e in status_breakdown.values()), Decimal("0")),
                "totalFees": sum((e["totalFees"] for e in status_breakdown.values()), Decimal("0")),
                "completedOrders": completed_count,
                "failedOrders": failed.get("count", 0),
                "completedAmount": completed.get("totalAmount", Decimal("0")),
                "successRate": round(completed_count / total_orders * 100, 2) if total_orders else 0,
            },
            "statusBreakdown": status_breakdown,
            "tokenBreakdown": [
                {
                    "token": token,
                    "network": network,
                    "count": count,
                    "totalAmount": _as_decimal(amount),
                }
                for token, network, count, amount in sorted(token_rows, key=lambda r: -r[2])
            ],
        }

    async def supported_tokens(self, business: BusinessConfig) -> Dict[str, Any]:
        """Tradable token catalogue with live support flags for Base tokens."""
        catalogue: Dict[str, List[Dict[str, Any]]] = {}
        for network in NETWORK_SCAN_ORDER:
            tokens = business.tradable_tokens(network)
            if network == Network.BASE:
                flags = await asyncio.gather(*(self.validator.probe(t) for t in tokens))
            else:
                flags = [None] * len(tokens)

            entries = []
            for token, flag in zip(tokens, flags):
                fee_entry = business.fee_entry_for(network, token.contract_address)
                entry = {
                    "symbol": token.symbol,
                    "name": token.name,
                    "contractAddress": token.contract_address,
                    "decimals": token.decimals,
                    "network": network.value,
                    "isDefault": token.is_default,
                    "logoUrl": token.logo_url,
                    "feePercentage": fee_entry.fee_percentage if fee_entry else Decimal("0"),
                    "smartContractSupported": network == Network.BASE,
                    "contractSupported": flag["contractSupported"] if flag else None,
                    "hasLiquidity": flag["hasLiquidity"] if flag else None,
                }
                entry["canProcessOnramp"] = (
                    bool(flag["contractSupported"] and flag["hasLiquidity"]) if flag else True
                )
                entries.append(entry)
            catalogue[network.value] = entries

        statistics = {
            network: {
                "total": len(entries),
                "default": sum(1 for e in entries if e["isDefault"]),
                "custom": sum(1 for e in entries if not e["isDefault"]),
                "contractSupported": sum(1 for e in entries if e["contractSupported"] is True),
                "hasLiquidity": sum(1 for e in entries if e["hasLiquidity"] is True),
                "fullySupported": sum(1 for e in entries if e["canProcessOnramp"]),
            }
            for network, entries in catalogue.items()
        }
        return {
            "supportedTokens": catalogue,
            "statistics": statistics,
            "summary": {
                "totalTokens": sum(s["total"] for s in statistics.values()),
                "fullySupported": sum(s["fullySupported"] for s in statistics.values()),
                "smartContractTokens": statistics[Network.BASE.value]["total"],
                "networksSupported": [n for n, entries in catalogue.items() if entries],
            },
        }

    async def health(self) -> Tuple[int, Dict[str, Any]]:
        """
        Check the pricing collaborators.

        Returns:
            Tuple[int, Dict[str, Any]]: 200 when at least one pricing path
            works, 503 otherwise, and the per-collaborator report
        """
        rpc_result, api_result = await asyncio.gather(
            self.reserve.check_connection(),
            self.reference.check_health(),
            return_exceptions=True,
        )
        rpc_ok = not isinstance(rpc_result, BaseException)
        api_ok = not isinstance(api_result, BaseException)

        services = {
            "smartContract": (
                {"status": "healthy", **rpc_result} if rpc_ok
                else {"status": "unhealthy", "error": str(rpc_result)}
            ),
            "internalApi": (
                {"status": "healthy", **api_result} if api_ok
                else {"status": "unhealthy", "error": str(api_result)}
            ),
        }
        capabilities = {
            "smartContractPricing": rpc_ok,
            "baseNetworkValidation": rpc_ok,
            "internalApiPricing": api_ok,
            "fallbackFiatRate": not api_ok,
        }
        healthy = rpc_ok or api_ok
        if not healthy:
            logger.error("All pricing collaborators unavailable",
                         rpc_error=str(rpc_result), api_error=str(api_result))
        return (200 if healthy else 503), {
            "status": "healthy" if rpc_ok and api_ok else ("degraded" if healthy else "unhealthy"),
            "services": services,
            "capabilities": capabilities,
            "timestamp": dt.datetime.now(dt.timezone.utc),
        }


def jsonable_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Make a metadata document safe for a JSON column (Decimals, datetimes)."""
    return jsonable_encoder(metadata, custom_encoder={Decimal: str})
