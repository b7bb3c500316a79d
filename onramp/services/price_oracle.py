# ==== PRICE ORACLE ==== #

"""
Fiat price resolution for onramp tokens.

Base tokens are priced on-chain: the best DEX route values the token in USDC,
which is converted to NGN with the live rate from the internal rate service.
When that rate is unavailable a configured fallback constant is used and the
quote is tagged ``fiatRateSource = "fallback"`` so it is never mistaken for a
live rate.

Tokens on every other network are priced by the internal reference price
API. There is no secondary source: if that call fails, pricing fails.
"""

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from onramp.business.config import BusinessConfig, TokenDescriptor
from onramp.business.reason_codes import ErrorCode, FiatRateSource, Network, PricingSource
from onramp.errors import OnrampError, PricingError
from onramp.observability.logging import get_logger
from onramp.observability.metrics import pricing_failures_total, pricing_requests_total
from onramp.observability.tracing import get_tracer
from onramp.services.reference_prices import ReferencePriceClient, ReferencePriceError
from onramp.services.reserve_client import ReserveQuote, ReserveQuoter
from onramp.settings import settings


logger = get_logger(__name__)
tracer = get_tracer(__name__)


@dataclass(frozen=True)
class PriceQuote:
    """Resolved fiat price of a token, persisted with the order for audit."""

    symbol: str
    network: Network
    contract_address: str
    decimals: int
    token_amount: Decimal
    unit_price: Decimal
    total_fiat: Decimal
    fiat_to_token_rate: Decimal
    source: PricingSource
    timestamp: dt.datetime
    fiat_rate_source: Optional[FiatRateSource] = None
    usdc_ngn_rate: Optional[Decimal] = None
    stable_value: Optional[Decimal] = None
    price_per_token_stable: Optional[Decimal] = None
    best_route: Optional[str] = None
    reserve_supported: Optional[bool] = None
    liquidity_adequate: Optional[bool] = None

    def pricing_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "source": self.source.value,
            "unitPriceInNgn": self.unit_price,
            "timestamp": self.timestamp,
        }
        if self.fiat_rate_source is not None:
            info["fiatRateSource"] = self.fiat_rate_source.value
        return info

    def smart_contract_data(self) -> Optional[Dict[str, Any]]:
        """Stable-currency snapshot; only present on the on-chain path."""
        if self.stable_value is None:
            return None
        return {
            "usdcValue": self.stable_value,
            "pricePerTokenUsdc": self.price_per_token_stable,
            "bestRoute": self.best_route,
            "usdcNgnRate": self.usdc_ngn_rate,
            "fiatRateSource": self.fiat_rate_source.value if self.fiat_rate_source else None,
            "reserveSupported": self.reserve_supported,
            "liquidityAdequate": self.liquidity_adequate,
        }


class PriceOracle:
    """
    Resolves token fiat prices from on-chain quotes or the reference API.

    Args:
        reserve: On-chain quoting interface (Base)
        reference: Internal reference price client
    """

    def __init__(self, reserve: ReserveQuoter, reference: ReferencePriceClient):
        self.reserve = reserve
        self.reference = reference

    async def price(
        self,
        business: BusinessConfig,
        symbol: str,
        token_amount: Decimal = Decimal("1"),
        *,
        network: Optional[Network] = None,
        prefetched: Optional[ReserveQuote] = None,
    ) -> PriceQuote:
        """
        Resolve the fiat price of a token configured by a business.

        Args:
            business: Validated business configuration
            symbol: Token symbol
            token_amount: Amount to value; the unit price is derived from it
            network: Network scanned first when resolving the symbol
            prefetched: On-chain quote already produced during validation

        Returns:
            PriceQuote: Unit price, totals, conversion rate and source tags

        Raises:
            OnrampError: NOT_FOUND when no active token matches
            PricingError: No permitted source produced a positive price
        """
        token = business.find_active_token(symbol, preferred_network=network)
        if token is None:
            raise OnrampError(
                f"Token {symbol.upper()} not found in business supported tokens",
                code=ErrorCode.NOT_FOUND.value,
                status_code=404,
            )

        with tracer.start_as_current_span("price_oracle.price") as span:
            span.set_attribute("token.symbol", token.symbol)
            span.set_attribute("token.network", token.network)

            if token.network == Network.BASE.value:
                quote = await self._price_on_chain(token, token_amount, prefetched)
            else:
                quote = await self._price_from_reference(token, token_amount)

            span.set_attribute("pricing.source", quote.source.value)

        pricing_requests_total.labels(
            source=quote.source.value,
            fiat_rate_source=quote.fiat_rate_source.value if quote.fiat_rate_source else "none",
        ).inc()
        return quote

    async def _price_on_chain(
        self,
        token: TokenDescriptor,
        token_amount: Decimal,
        prefetched: Optional[ReserveQuote],
    ) -> PriceQuote:
        if prefetched is not None and prefetched.token_amount == token_amount:
            reserve_quote = prefetched
        else:
            try:
                reserve_quote = await self.reserve.quote(
                    token.contract_address, token.decimals, token_amount
                )
            except Exception as e:
                pricing_failures_total.labels(network="base", error_type=type(e).__name__).inc()
                logger.error("On-chain price quote failed", token=token.symbol, error=str(e))
                raise PricingError(
                    f"Failed to calculate token price from smart contract: {e}"
                ) from e

        usdc_ngn_rate, fiat_rate_source = await self._usdc_ngn_rate()
        total_fiat = reserve_quote.stable_value * usdc_ngn_rate
        unit_price = _positive_unit_price(total_fiat, token_amount, token.symbol)

        logger.info(
            "Priced token on-chain",
            token=token.symbol,
            best_route=reserve_quote.best_route,
            usdc_value=str(reserve_quote.stable_value),
            fiat_rate_source=fiat_rate_source.value,
        )
        return PriceQuote(
            symbol=token.symbol,
            network=Network.BASE,
            contract_address=token.contract_address,
            decimals=token.decimals,
            token_amount=token_amount,
            unit_price=unit_price,
            total_fiat=total_fiat,
            fiat_to_token_rate=Decimal(1) / unit_price,
            source=PricingSource.SMART_CONTRACT_DEX,
            timestamp=dt.datetime.now(dt.timezone.utc),
            fiat_rate_source=fiat_rate_source,
            usdc_ngn_rate=usdc_ngn_rate,
            stable_value=reserve_quote.stable_value,
            price_per_token_stable=reserve_quote.price_per_token,
            best_route=reserve_quote.best_route,
            reserve_supported=True if prefetched is not None else reserve_quote.is_supported,
            liquidity_adequate=reserve_quote.has_adequate_liquidity,
        )

    async def _usdc_ngn_rate(self) -> tuple[Decimal, FiatRateSource]:
        """Live USDC → NGN rate, or the configured fallback tagged as such."""
        try:
            return await self.reference.get_usdc_ngn_rate(), FiatRateSource.INTERNAL_API
        except ReferencePriceError as e:
            logger.warning(
                "USDC/NGN rate unavailable, using fallback rate",
                fallback_rate=str(settings.FALLBACK_USDC_NGN_RATE),
                error=str(e),
            )
            return settings.FALLBACK_USDC_NGN_RATE, FiatRateSource.FALLBACK

    async def _price_from_reference(self, token: TokenDescriptor, token_amount: Decimal) -> PriceQuote:
        try:
            unit_price = await self.reference.get_unit_price_ngn(token.symbol)
        except ReferencePriceError as e:
            pricing_failures_total.labels(network=token.network, error_type="reference_api").inc()
            logger.error("Reference price unavailable", token=token.symbol,
                         network=token.network, error=str(e))
            raise PricingError(f"Failed to calculate token price: {e}") from e

        unit_price = _positive_unit_price(unit_price * token_amount, token_amount, token.symbol)
        return PriceQuote(
            symbol=token.symbol,
            network=Network(token.network),
            contract_address=token.contract_address,
            decimals=token.decimals,
            token_amount=token_amount,
            unit_price=unit_price,
            total_fiat=unit_price * token_amount,
            fiat_to_token_rate=Decimal(1) / unit_price,
            source=PricingSource.INTERNAL_API,
            timestamp=dt.datetime.now(dt.timezone.utc),
        )


def _positive_unit_price(total_fiat: Decimal, token_amount: Decimal, symbol: str) -> Decimal:
    if token_amount <= 0:
        raise PricingError(f"Token amount must be positive, got {token_amount}")
    unit_price = total_fiat / token_amount
    if unit_price <= 0:
        raise PricingError(f"Invalid unit price for {symbol}: {unit_price}")
    return unit_price
