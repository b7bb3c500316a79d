"""Unit tests for the hosted payment link client."""

import json
from decimal import Decimal

import httpx
import pytest
import respx
from freezegun import freeze_time

from onramp.errors import PaymentLinkError
from onramp.services.payment_links import MonnifyClient


BASE = "http://monnify.test"
LOGIN_URL = f"{BASE}/api/v1/auth/login"
INIT_URL = f"{BASE}/api/v1/merchant/transactions/init-transaction"


def login_response(token: str = "token-1", expires_in: int = 3600) -> httpx.Response:
    return httpx.Response(200, json={
        "requestSuccessful": True,
        "responseBody": {"accessToken": token, "expiresIn": expires_in},
    })


def init_response() -> httpx.Response:
    return httpx.Response(200, json={
        "requestSuccessful": True,
        "responseBody": {
            "checkoutUrl": "https://sandbox.monnify.com/checkout/MNFY|1",
            "paymentReference": "BIZRAMP-abc",
            "transactionReference": "MNFY|1",
        },
    })


async def create(client: MonnifyClient):
    return await client.create_payment_link(
        amount=Decimal("50000"),
        reference="BIZRAMP-abc",
        customer_name="Ada Obi",
        customer_email="ada@example.com",
    )


@pytest.fixture
def client():
    return MonnifyClient(BASE, "api-key", "secret-key", "1234567890")


@pytest.mark.unit
@pytest.mark.asyncio
class TestMonnifyClient:
    """Test cases for MonnifyClient.create_payment_link."""

    @respx.mock
    async def test_creates_checkout_link(self, client):
        login = respx.post(LOGIN_URL).mock(return_value=login_response())
        init = respx.post(INIT_URL).mock(return_value=init_response())

        link = await create(client)

        assert link.checkout_url == "https://sandbox.monnify.com/checkout/MNFY|1"
        assert link.transaction_reference == "MNFY|1"
        assert login.calls.last.request.headers["Authorization"].startswith("Basic ")
        assert init.calls.last.request.headers["Authorization"] == "Bearer token-1"

        payload = json.loads(init.calls.last.request.content)
        assert payload["paymentReference"] == "BIZRAMP-abc"
        assert payload["currencyCode"] == "NGN"
        assert payload["amount"] == 50000

    @respx.mock
    async def test_access_token_is_cached_until_expiry(self, client):
        login = respx.post(LOGIN_URL).mock(
            side_effect=[login_response("token-1", 600), login_response("token-2", 600)]
        )
        init = respx.post(INIT_URL).mock(return_value=init_response())

        with freeze_time("2026-10-18 09:00:00") as frozen:
            await create(client)
            await create(client)
            assert login.call_count == 1

            # Refreshed 60 seconds before the provider expiry
            frozen.tick(541)
            await create(client)

        assert login.call_count == 2
        assert init.calls.last.request.headers["Authorization"] == "Bearer token-2"

    @respx.mock
    async def test_provider_error_raises_payment_link_error(self, client):
        respx.post(LOGIN_URL).mock(return_value=login_response())
        respx.post(INIT_URL).mock(return_value=httpx.Response(502))

        with pytest.raises(PaymentLinkError) as exc_info:
            await create(client)

        assert exc_info.value.code == "PAYMENT_LINK_FAILED"

    @respx.mock
    async def test_missing_checkout_url(self, client):
        respx.post(LOGIN_URL).mock(return_value=login_response())
        respx.post(INIT_URL).mock(return_value=httpx.Response(200, json={"responseBody": {}}))

        with pytest.raises(PaymentLinkError):
            await create(client)

    async def test_missing_credentials(self, client):
        client.api_key = None

        with pytest.raises(PaymentLinkError):
            await create(client)
