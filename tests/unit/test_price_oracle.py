"""Unit tests for fiat price resolution."""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from onramp.business.config import default_supported_tokens, load_business_config, serialize_tokens
from onramp.business.reason_codes import FiatRateSource, Network, PricingSource
from onramp.errors import OnrampError, PricingError
from onramp.services.price_oracle import PriceOracle
from onramp.services.reference_prices import ReferencePriceClient
from onramp.services.reserve_client import ReserveQuote


API = "http://internal-api.test"
RATE_URL = f"{API}/api/v1/exchange-rate/usdc-ngn"
PRICE_URL = f"{API}/api/v1/onramp-price"


def weth_quote() -> ReserveQuote:
    return ReserveQuote(
        token_amount=Decimal("1"),
        stable_value=Decimal("3200"),
        price_per_token=Decimal("3200"),
        best_route="V3 Direct (0.05% fee)",
        has_adequate_liquidity=True,
    )


@pytest.fixture
def business():
    return load_business_config(SimpleNamespace(
        business_id="biz_1",
        business_name="Acme",
        supported_tokens=serialize_tokens(default_supported_tokens()),
        fee_configuration={},
        webhook_url=None,
        webhook_secret=None,
    ))


@pytest.fixture
def reserve():
    mock = AsyncMock()
    mock.quote.return_value = weth_quote()
    return mock


@pytest.fixture
def oracle(reserve):
    return PriceOracle(reserve, ReferencePriceClient(API))


@pytest.mark.unit
@pytest.mark.asyncio
class TestOnChainPricing:
    """Base tokens: DEX USDC value converted with the USDC/NGN rate."""

    @respx.mock
    async def test_live_rate(self, oracle, business):
        respx.get(RATE_URL).mock(return_value=httpx.Response(200, json={"data": {"rate": 1500}}))

        quote = await oracle.price(business, "eth", network=Network.BASE)

        assert quote.source == PricingSource.SMART_CONTRACT_DEX
        assert quote.fiat_rate_source == FiatRateSource.INTERNAL_API
        assert quote.unit_price == Decimal("4800000")
        assert quote.fiat_to_token_rate == Decimal(1) / Decimal("4800000")
        assert quote.best_route == "V3 Direct (0.05% fee)"
        assert quote.smart_contract_data()["usdcNgnRate"] == Decimal("1500")

    @respx.mock
    async def test_rate_outage_uses_tagged_fallback(self, oracle, business):
        respx.get(RATE_URL).mock(return_value=httpx.Response(503))

        quote = await oracle.price(business, "ETH", network=Network.BASE)

        assert quote.fiat_rate_source == FiatRateSource.FALLBACK
        assert quote.usdc_ngn_rate == Decimal("1650")
        assert quote.unit_price == Decimal("3200") * Decimal("1650")
        assert quote.pricing_info()["fiatRateSource"] == "fallback"

    @respx.mock
    async def test_malformed_rate_uses_fallback(self, oracle, business):
        respx.get(RATE_URL).mock(return_value=httpx.Response(200, json={"data": {"rate": 0}}))

        quote = await oracle.price(business, "ETH", network=Network.BASE)

        assert quote.fiat_rate_source == FiatRateSource.FALLBACK

    @respx.mock
    async def test_prefetched_quote_is_reused(self, oracle, business, reserve):
        respx.get(RATE_URL).mock(return_value=httpx.Response(200, json={"data": {"rate": 1500}}))

        quote = await oracle.price(
            business, "ETH", network=Network.BASE, prefetched=weth_quote()
        )

        reserve.quote.assert_not_awaited()
        assert quote.reserve_supported is True

    async def test_quote_failure_is_pricing_error(self, oracle, business, reserve):
        reserve.quote.side_effect = RuntimeError("rpc down")

        with pytest.raises(PricingError):
            await oracle.price(business, "ETH", network=Network.BASE)


@pytest.mark.unit
@pytest.mark.asyncio
class TestReferencePricing:
    """Other networks: the internal reference price API only."""

    @respx.mock
    async def test_solana_token_priced_by_reference_api(self, oracle, business, reserve):
        route = respx.get(PRICE_URL).mock(
            return_value=httpx.Response(200, json={"data": {"unitPriceInNgn": "250000.5"}})
        )

        quote = await oracle.price(business, "SOL", network=Network.SOLANA)

        assert route.calls.last.request.url.params["cryptoSymbol"] == "SOL"
        assert quote.source == PricingSource.INTERNAL_API
        assert quote.fiat_rate_source is None
        assert quote.unit_price == Decimal("250000.5")
        assert quote.smart_contract_data() is None
        reserve.quote.assert_not_awaited()

    @respx.mock
    async def test_reference_failure_has_no_fallback(self, oracle, business):
        respx.get(PRICE_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(PricingError) as exc_info:
            await oracle.price(business, "SOL", network=Network.SOLANA)

        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "PRICE_CALCULATION_FAILED"

    async def test_unknown_symbol(self, oracle, business):
        with pytest.raises(OnrampError) as exc_info:
            await oracle.price(business, "DOGE")

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "NOT_FOUND"
