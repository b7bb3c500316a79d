"""Integration tests for the merchant onramp API."""

import datetime as dt
from decimal import Decimal

import pytest
from freezegun import freeze_time
from sqlalchemy import func, select

from onramp.business.reason_codes import WebhookEvent
from onramp.errors import PaymentLinkError
from onramp.services.reference_prices import ReferencePriceError
from onramp.storage.db import get_session
from onramp.storage.models import BusinessOnrampOrder
from tests.conftest import (
    BUSINESS_ID,
    MERCHANT_SECRET,
    MERCHANT_WEBHOOK_URL,
    business_record,
    reserve_quote,
)


CREATE_URL = "/api/v1/business-onramp/create"
QUOTE_URL = "/api/v1/business-onramp/quote"


async def load_order(order_id: str) -> BusinessOnrampOrder:
    async with get_session() as session:
        return (
            await session.execute(
                select(BusinessOnrampOrder).where(BusinessOnrampOrder.order_id == order_id)
            )
        ).scalar_one()


async def count_orders() -> int:
    async with get_session() as session:
        return (await session.execute(select(func.count(BusinessOnrampOrder.id)))).scalar_one()


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateOrder:
    """POST /api/v1/business-onramp/create"""

    async def test_creates_initiated_order_with_payment_link(
        self, client, business, business_headers, order_payload, dispatcher, payment_links
    ):
        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["orderId"].startswith("BO_")
        assert data["businessOrderReference"].startswith("BIZRAMP-")
        assert data["status"] == "initiated"
        assert data["targetToken"] == "USDC"
        assert data["feeAmount"] == 500
        assert data["netAmount"] == 49500
        assert data["estimatedTokenAmount"] == 33
        assert data["exchangeRate"] == 1500
        assert data["paymentDetails"]["paymentUrl"].startswith("https://sandbox.monnify.com/")
        assert data["validation"]["validationReason"] == "FULLY_SUPPORTED"
        assert data["pricingInfo"]["source"] == "smart_contract_dex"
        assert data["pricingInfo"]["fiatRateSource"] == "internal_api"
        assert data["smartContractData"]["bestRoute"] == "Direct (USDC)"

        order = await load_order(data["orderId"])
        assert order.customer_email == "ada.obi@example.com"
        assert order.fee_amount == Decimal("500")
        assert order.net_amount == Decimal("49500")
        assert order.payment_reference == "BIZRAMP-ref"
        assert order.order_metadata["cartId"] == "cart-42"
        assert order.order_metadata["pricingSource"] == "smart_contract_dex"
        assert (order.expires_at - order.created_at).total_seconds() == 30 * 60

        kwargs = payment_links.create_payment_link.await_args.kwargs
        assert kwargs["reference"] == data["businessOrderReference"]

    async def test_order_created_webhook_is_recorded(
        self, client, business, business_headers, order_payload, dispatcher
    ):
        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)
        order_id = response.json()["data"]["orderId"]

        dispatcher.send.assert_awaited_once()
        url, event, data, secret = dispatcher.send.await_args.args
        assert url == MERCHANT_WEBHOOK_URL
        assert event == WebhookEvent.ORDER_CREATED
        assert data["orderId"] == order_id
        assert secret == MERCHANT_SECRET

        order = await load_order(order_id)
        assert order.webhook_status["attempts"] == 1
        assert order.webhook_status["lastDeliveryStatus"] == "delivered"

    async def test_request_webhook_url_overrides_business_default(
        self, client, business, business_headers, order_payload, dispatcher
    ):
        order_payload["webhookUrl"] = "https://shop.example.com/callback"

        await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert dispatcher.send.await_args.args[0] == "https://shop.example.com/callback"

    async def test_missing_business_header(self, client, business, order_payload):
        response = await client.post(CREATE_URL, json=order_payload)

        assert response.status_code == 401
        assert response.json()["code"] == "UNKNOWN_BUSINESS"

    @pytest.mark.parametrize("raw_id", [b"\xff\xfebiz", "bíz_test".encode("latin-1"), b"biz test"])
    async def test_malformed_business_header(self, client, business, order_payload, raw_id):
        response = await client.post(CREATE_URL, json=order_payload, headers={"X-Business-Id": raw_id})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"
        assert await count_orders() == 0

    async def test_unknown_business(self, client, business, order_payload):
        response = await client.post(CREATE_URL, json=order_payload, headers={"X-Business-Id": "biz_nobody"})

        assert response.status_code == 401
        assert response.json()["code"] == "UNKNOWN_BUSINESS"

    @pytest.mark.parametrize("amount", [999, 10_000_001])
    async def test_amount_out_of_range(
        self, client, business, business_headers, order_payload, reserve, amount
    ):
        order_payload["amount"] = amount

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_AMOUNT_RANGE"
        reserve.is_token_supported.assert_not_awaited()
        assert await count_orders() == 0

    async def test_network_not_configured_skips_pricing(
        self, client, business, business_headers, order_payload, reserve, reference
    ):
        order_payload["targetNetwork"] = "ethereum"

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "NETWORK_NOT_CONFIGURED"
        assert body["details"]["availableNetworks"] == ["base", "solana"]
        reserve.is_token_supported.assert_not_awaited()
        reserve.quote.assert_not_awaited()
        reference.get_usdc_ngn_rate.assert_not_awaited()
        reference.get_unit_price_ngn.assert_not_awaited()

    async def test_token_not_supported_by_business(
        self, client, business, business_headers, order_payload, reserve
    ):
        order_payload["targetToken"] = "DOGE"

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "TOKEN_NOT_SUPPORTED_BY_BUSINESS"
        assert [t["symbol"] for t in body["details"]["supportedTokens"]] == ["ETH", "USDC", "USDT"]
        reserve.is_token_supported.assert_not_awaited()

    async def test_reserve_rejection_skips_quote(
        self, client, business, business_headers, order_payload, reserve
    ):
        reserve.is_token_supported.return_value = False

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "TOKEN_NOT_SUPPORTED_BY_SMART_CONTRACT"
        assert body["details"]["contractSupported"] is False
        reserve.quote.assert_not_awaited()
        assert await count_orders() == 0

    async def test_insufficient_liquidity(
        self, client, business, business_headers, order_payload, reserve
    ):
        reserve.quote.return_value = reserve_quote("12", adequate=False)

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INSUFFICIENT_LIQUIDITY"
        assert body["details"]["currentLiquidity"] == "$12 USDC"
        assert "recommendation" in body["details"]

    async def test_fallback_rate_is_visible_on_the_order(
        self, client, business, business_headers, order_payload, reference
    ):
        reference.get_usdc_ngn_rate.side_effect = ReferencePriceError("rate service down")

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["exchangeRate"] == 1650
        assert data["pricingInfo"]["fiatRateSource"] == "fallback"
        order = await load_order(data["orderId"])
        assert order.order_metadata["fiatRateSource"] == "fallback"

    async def test_payment_link_failure_keeps_initiated_order(
        self, client, business, business_headers, order_payload, payment_links, dispatcher
    ):
        payment_links.create_payment_link.side_effect = PaymentLinkError("provider down")

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 500
        assert response.json()["code"] == "PAYMENT_LINK_FAILED"
        assert "correlation_id" in response.json()
        async with get_session() as session:
            order = (await session.execute(select(BusinessOnrampOrder))).scalar_one()
        assert order.status == "initiated"
        assert order.payment_reference is None
        dispatcher.send.assert_not_awaited()

    async def test_invalid_body(self, client, business, business_headers, order_payload):
        del order_payload["customerEmail"]

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"

    async def test_solana_order_uses_reference_price(
        self, client, business, business_headers, order_payload, reserve, reference
    ):
        order_payload.update(targetToken="SOL", targetNetwork="solana",
                             customerWallet="9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin")
        reference.get_unit_price_ngn.return_value = Decimal("250000")

        response = await client.post(CREATE_URL, json=order_payload, headers=business_headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["validation"]["validationReason"] == "BUSINESS_SUPPORTED_ONLY"
        assert data["pricingInfo"]["source"] == "internal_api"
        assert data["feeAmount"] == 0
        assert data["estimatedTokenAmount"] == 0.2
        assert "smartContractData" not in data
        reserve.is_token_supported.assert_not_awaited()


@pytest.mark.integration
@pytest.mark.asyncio
class TestQuote:
    """POST /api/v1/business-onramp/quote"""

    async def test_quote_does_not_persist(self, client, business, business_headers):
        response = await client.post(
            QUOTE_URL,
            json={"amount": 50000, "targetToken": "USDC", "targetNetwork": "base"},
            headers=business_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["tokenAmount"] == 33.333333
        assert data["finalTokenAmount"] == 33
        assert data["feeAmount"] == 500
        assert data["breakdown"]["youReceive"] == "33.000000 USDC"
        assert data["validFor"] == 300
        assert await count_orders() == 0

    async def test_quote_runs_the_same_validation(self, client, business, business_headers, reserve):
        reserve.is_token_supported.return_value = False

        response = await client.post(
            QUOTE_URL,
            json={"amount": 50000, "targetToken": "USDC", "targetNetwork": "base"},
            headers=business_headers,
        )

        assert response.status_code == 403
        assert response.json()["code"] == "TOKEN_NOT_SUPPORTED_BY_SMART_CONTRACT"


@pytest.mark.integration
@pytest.mark.asyncio
class TestOrderQueries:
    """Order lookup, listing and statistics."""

    async def _create(self, client, headers, payload, **changes):
        response = await client.post(CREATE_URL, json={**payload, **changes}, headers=headers)
        assert response.status_code == 201
        return response.json()["data"]

    async def test_lookup_by_id_and_reference(self, client, business, business_headers, order_payload):
        created = await self._create(client, business_headers, order_payload)

        by_id = await client.get(f"/api/v1/business-onramp/orders/{created['orderId']}",
                                 headers=business_headers)
        by_ref = await client.get(f"/api/v1/business-onramp/orders/{created['businessOrderReference']}",
                                  headers=business_headers)

        assert by_id.status_code == 200
        assert by_id.json()["data"] == by_ref.json()["data"]
        data = by_id.json()["data"]
        assert data["isExpired"] is False
        assert data["validation"]["validationPassed"] is True
        assert data["pricing"]["source"] == "smart_contract_dex"

    async def test_expiry_is_evaluated_on_read(self, client, business, business_headers, order_payload):
        created = await self._create(client, business_headers, order_payload)
        url = f"/api/v1/business-onramp/orders/{created['orderId']}"
        stored = await load_order(created["orderId"])

        async def lookup_with_status(status: str) -> dict:
            async with get_session() as session:
                order = (
                    await session.execute(
                        select(BusinessOnrampOrder).where(BusinessOnrampOrder.order_id == created["orderId"])
                    )
                ).scalar_one()
                order.status = status
            response = await client.get(url, headers=business_headers)
            assert response.status_code == 200
            return response.json()["data"]

        with freeze_time(stored.expires_at + dt.timedelta(minutes=1), tick=True):
            initiated = await lookup_with_status("initiated")
            processing = await lookup_with_status("processing")
            completed = await lookup_with_status("completed")

        assert initiated["isExpired"] is True
        assert initiated["status"] == "initiated"
        assert processing["isExpired"] is False
        assert completed["isExpired"] is False

    async def test_timestamps_carry_utc_offset(
        self, client, business, business_headers, order_payload, dispatcher
    ):
        created = await self._create(client, business_headers, order_payload)

        response = await client.get(f"/api/v1/business-onramp/orders/{created['orderId']}",
                                    headers=business_headers)

        data = response.json()["data"]
        assert created["expiresAt"].endswith("+00:00")
        for field in ("createdAt", "updatedAt", "expiresAt"):
            assert data[field].endswith("+00:00"), field
        assert data["webhookStatus"]["lastAttemptAt"].endswith("+00:00")

        webhook_data = dispatcher.send.await_args.args[2]
        assert webhook_data["createdAt"].tzinfo is not None

    @pytest.mark.parametrize("amount", ["1234.57", "5000.33", "98765.43"])
    async def test_money_is_stored_exactly(self, client, business, business_headers, order_payload, amount):
        created = await self._create(client, business_headers, order_payload, amount=amount)

        stored = await load_order(created["orderId"])

        assert stored.amount == Decimal(amount)
        assert stored.fee_amount + stored.net_amount == Decimal(amount)
        assert stored.fee_percentage == Decimal("1")

    async def test_amount_sort_is_numeric(self, client, business, business_headers, order_payload):
        for amount in (9000, 10000, 2500):
            await self._create(client, business_headers, order_payload, amount=amount)

        response = await client.get(
            "/api/v1/business-onramp/orders",
            params={"sortBy": "amount", "sortOrder": "asc"},
            headers=business_headers,
        )

        assert [o["amount"] for o in response.json()["data"]["orders"]] == [2500, 9000, 10000]

    async def test_lookup_is_scoped_to_business(self, client, business, business_headers, order_payload):
        created = await self._create(client, business_headers, order_payload)
        async with get_session() as session:
            session.add(business_record(business_id="biz_other", business_name="Other"))

        response = await client.get(f"/api/v1/business-onramp/orders/{created['orderId']}",
                                    headers={"X-Business-Id": "biz_other"})

        assert response.status_code == 404
        assert response.json()["code"] == "ORDER_NOT_FOUND"

    async def test_list_filters_and_summary(self, client, business, business_headers, order_payload, reference):
        reference.get_unit_price_ngn.return_value = Decimal("250000")
        await self._create(client, business_headers, order_payload)
        await self._create(client, business_headers, order_payload, amount=20000)
        await self._create(client, business_headers, order_payload, targetToken="SOL", targetNetwork="solana",
                           customerEmail="bola@example.com")

        response = await client.get(
            "/api/v1/business-onramp/orders",
            params={"targetNetwork": "base", "sortBy": "amount", "sortOrder": "asc", "limit": 1},
            headers=business_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [o["amount"] for o in data["orders"]] == [20000]
        assert data["pagination"] == {
            "currentPage": 1,
            "totalPages": 2,
            "totalOrders": 2,
            "limit": 1,
            "hasNextPage": True,
            "hasPrevPage": False,
        }
        assert data["summary"]["totalAmount"] == 70000
        assert data["summary"]["pendingOrders"] == 2
        assert data["summary"]["totalFees"] == 700

        by_email = await client.get("/api/v1/business-onramp/orders",
                                    params={"customerEmail": "BOLA"}, headers=business_headers)
        assert [o["targetToken"] for o in by_email.json()["data"]["orders"]] == ["SOL"]

    async def test_list_rejects_bad_query(self, client, business, business_headers):
        response = await client.get("/api/v1/business-onramp/orders",
                                    params={"limit": 500}, headers=business_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"

    async def test_stats(self, client, business, business_headers, order_payload):
        await self._create(client, business_headers, order_payload)
        await self._create(client, business_headers, order_payload, amount=10000)

        response = await client.get("/api/v1/business-onramp/stats",
                                    params={"timeframe": "7d"}, headers=business_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["timeframe"] == "7d"
        assert data["overview"]["totalOrders"] == 2
        assert data["overview"]["totalAmount"] == 60000
        assert data["overview"]["successRate"] == 0
        assert data["statusBreakdown"]["initiated"]["count"] == 2
        assert data["tokenBreakdown"][0] == {
            "token": "USDC", "network": "base", "count": 2, "totalAmount": 60000,
        }

    async def test_stats_rejects_unknown_timeframe(self, client, business, business_headers):
        response = await client.get("/api/v1/business-onramp/stats",
                                    params={"timeframe": "2w"}, headers=business_headers)

        assert response.status_code == 400


@pytest.mark.integration
@pytest.mark.asyncio
class TestCatalogueAndHealth:
    """Supported tokens and collaborator health."""

    async def test_supported_tokens_with_live_flags(self, client, business, business_headers, reserve):
        reserve.is_token_supported.side_effect = [True, False, True]

        response = await client.get("/api/v1/business-onramp/supported-tokens", headers=business_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        base = {t["symbol"]: t for t in data["supportedTokens"]["base"]}
        assert base["USDC"]["contractSupported"] is False
        assert base["USDC"]["canProcessOnramp"] is False
        assert base["USDC"]["feePercentage"] == 1
        assert base["ETH"]["canProcessOnramp"] is True
        assert all(t["canProcessOnramp"] for t in data["supportedTokens"]["solana"])
        assert data["supportedTokens"]["ethereum"] == []
        assert data["summary"]["networksSupported"] == ["base", "solana"]
        assert data["statistics"]["base"]["fullySupported"] == 2

    async def test_health_degraded_when_rpc_down(self, client, business, business_headers, reserve):
        reserve.check_connection.side_effect = RuntimeError("rpc down")

        response = await client.get("/api/v1/business-onramp/health", headers=business_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "degraded"
        assert data["capabilities"]["smartContractPricing"] is False
        assert data["capabilities"]["internalApiPricing"] is True

    async def test_health_unavailable_when_all_down(self, client, business, business_headers, reserve, reference):
        reserve.check_connection.side_effect = RuntimeError("rpc down")
        reference.check_health.side_effect = ReferencePriceError("api down")

        response = await client.get("/api/v1/business-onramp/health", headers=business_headers)

        assert response.status_code == 503
        assert response.json()["success"] is False
        assert response.json()["data"]["status"] == "unhealthy"

    async def test_liveness_needs_no_business(self, client):
        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.headers["X-Correlation-Id"]
