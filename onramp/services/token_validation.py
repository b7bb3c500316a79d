# ==== TOKEN SUPPORT VALIDATION ==== #

"""
Token support validation for onramp orders and quotes.

Confirms a business-configured token can actually be settled before any
order is priced. The policy runs in order:

1. Business support is a precondition; a missing descriptor is rejected
   with TOKEN_NOT_SUPPORTED_BY_BUSINESS.
2. On Base, the reserve contract must report the token as supported.
3. On Base, a one-unit DEX quote must succeed and reach the minimum USDC
   liquidity threshold.
4. Other networks skip on-chain checks and are accepted as
   BUSINESS_SUPPORTED_ONLY with contract support and liquidity unknown.

The validator never raises: every failure becomes a verdict.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from onramp.business.config import TokenDescriptor
from onramp.business.reason_codes import (
    DEFAULT_RECOMMENDATION,
    REASON_RECOMMENDATIONS,
    Network,
    TokenSupportReason,
)
from onramp.observability.logging import get_logger
from onramp.observability.tracing import get_tracer
from onramp.services.reserve_client import ReserveQuote, ReserveQuoter


logger = get_logger(__name__)
tracer = get_tracer(__name__)


@dataclass
class TokenVerdict:
    """Outcome of validating one token for one network."""

    valid: bool
    reason: TokenSupportReason
    message: str
    business_supported: bool
    contract_supported: Optional[bool] = None
    has_liquidity: Optional[bool] = None
    price_data: Optional[ReserveQuote] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        """HTTP status used when the verdict rejects a request."""
        if self.reason == TokenSupportReason.TOKEN_NOT_SUPPORTED_BY_SMART_CONTRACT:
            return 403
        if self.reason == TokenSupportReason.TOKEN_NOT_SUPPORTED_BY_BUSINESS:
            return 403
        return 400

    @property
    def recommendation(self) -> str:
        return REASON_RECOMMENDATIONS.get(self.reason, DEFAULT_RECOMMENDATION)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "valid": self.valid,
            "reason": self.reason.value,
            "message": self.message,
            "businessSupported": self.business_supported,
            "contractSupported": self.contract_supported,
            "hasLiquidity": self.has_liquidity,
        }
        if self.price_data is not None:
            body["priceData"] = {
                "stableValue": self.price_data.stable_value,
                "pricePerToken": self.price_data.price_per_token,
                "bestRoute": self.price_data.best_route,
                "hasAdequateLiquidity": self.price_data.has_adequate_liquidity,
            }
        body.update(self.details)
        return body


class TokenSupportValidator:
    """
    Validates token usability against business config and on-chain state.

    Args:
        reserve: On-chain reserve and liquidity query interface
    """

    def __init__(self, reserve: ReserveQuoter):
        self.reserve = reserve

    async def validate(
        self,
        token: Optional[TokenDescriptor],
        network: Network,
        symbol: str,
    ) -> TokenVerdict:
        """
        Produce a verdict for a token the business already filtered as tradable.

        Args:
            token: Business token descriptor, None when the business lacks it
            network: Target network
            symbol: Requested symbol, used in messages

        Returns:
            TokenVerdict: Never raises
        """
        symbol = symbol.upper()
        if token is None:
            return TokenVerdict(
                valid=False,
                reason=TokenSupportReason.TOKEN_NOT_SUPPORTED_BY_BUSINESS,
                message=f"Token {symbol} on {network.value} is not supported or not active for your business",
                business_supported=False,
            )

        if network != Network.BASE:
            logger.info(
                "Skipping on-chain validation for non-Base network",
                token=symbol,
                network=network.value,
            )
            return TokenVerdict(
                valid=True,
                reason=TokenSupportReason.BUSINESS_SUPPORTED_ONLY,
                message=(
                    f"Token {symbol} is supported by business "
                    f"(smart contract validation not available for {network.value})"
                ),
                business_supported=True,
            )

        with tracer.start_as_current_span("token_validation.validate") as span:
            span.set_attribute("token.symbol", symbol)
            try:
                return await self._validate_on_chain(token, symbol)
            except Exception as e:
                logger.exception("Token validation failed", token=symbol, error=str(e))
                return TokenVerdict(
                    valid=False,
                    reason=TokenSupportReason.VALIDATION_ERROR,
                    message=f"Error validating token support: {e}",
                    business_supported=True,
                    details={"error": str(e)},
                )

    async def _validate_on_chain(self, token: TokenDescriptor, symbol: str) -> TokenVerdict:
        if not await self.reserve.is_token_supported(token.contract_address):
            logger.warning("Reserve contract does not support token", token=symbol,
                           contract_address=token.contract_address)
            return TokenVerdict(
                valid=False,
                reason=TokenSupportReason.TOKEN_NOT_SUPPORTED_BY_SMART_CONTRACT,
                message=f"Token {symbol} is not supported by the reserve smart contract",
                business_supported=True,
                contract_supported=False,
            )

        try:
            quote = await self.reserve.quote(token.contract_address, token.decimals, Decimal("1"))
        except Exception as e:
            logger.warning("No liquidity route for token", token=symbol, error=str(e))
            return TokenVerdict(
                valid=False,
                reason=TokenSupportReason.NO_LIQUIDITY_AVAILABLE,
                message=f"No liquidity available for {symbol} on DEX",
                business_supported=True,
                contract_supported=True,
                has_liquidity=False,
            )

        if not quote.has_adequate_liquidity:
            logger.warning("Insufficient liquidity for token", token=symbol,
                           stable_value=str(quote.stable_value))
            return TokenVerdict(
                valid=False,
                reason=TokenSupportReason.INSUFFICIENT_LIQUIDITY,
                message=f"Insufficient liquidity for {symbol}",
                business_supported=True,
                contract_supported=True,
                has_liquidity=False,
                details={"currentLiquidity": f"${quote.stable_value} USDC"},
            )

        return TokenVerdict(
            valid=True,
            reason=TokenSupportReason.FULLY_SUPPORTED,
            message=f"Token {symbol} is fully supported",
            business_supported=True,
            contract_supported=True,
            has_liquidity=True,
            price_data=quote,
        )

    async def probe(self, token: TokenDescriptor) -> Dict[str, bool]:
        """
        Live support flags for a Base token, for catalogue listings.

        Query failures degrade to False rather than failing the listing.
        """
        contract_supported = False
        has_liquidity = False
        try:
            contract_supported = await self.reserve.is_token_supported(token.contract_address)
            if contract_supported:
                quote = await self.reserve.quote(token.contract_address, token.decimals, Decimal("1"))
                has_liquidity = quote.has_adequate_liquidity
        except Exception as e:
            logger.warning("Token probe failed", token=token.symbol, error=str(e))
        return {"contractSupported": contract_supported, "hasLiquidity": has_liquidity}
