# ==== INTERNAL REFERENCE PRICE CLIENT ==== #

"""
Client for the internal reference price API.

Two endpoints are consumed: the USDC → NGN rate used to convert on-chain
quotes to fiat, and the per-token onramp price used for networks without
on-chain quoting.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from onramp.observability.logging import get_logger
from onramp.settings import settings


logger = get_logger(__name__)


class ReferencePriceError(Exception):
    """Reference API unreachable or returned an unusable body."""


def _decimal_field(body: Dict[str, Any], field: str) -> Decimal:
    data = body.get("data") if isinstance(body, dict) else None
    raw = data.get(field) if isinstance(data, dict) else None
    if raw is None:
        raise ReferencePriceError(f"Reference response missing data.{field}")
    try:
        value = Decimal(str(raw))
    except InvalidOperation as e:
        raise ReferencePriceError(f"Reference field data.{field} is not numeric: {raw!r}") from e
    if not value.is_finite() or value <= 0:
        raise ReferencePriceError(f"Reference field data.{field} must be positive: {raw!r}")
    return value


class ReferencePriceClient:
    """
    HTTP client for the internal price service.

    Every call opens its own short-lived httpx client with an explicit
    timeout; no state is shared between requests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        rate_timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.INTERNAL_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.INTERNAL_API_TIMEOUT_SECONDS
        self.rate_timeout = rate_timeout or settings.RATE_API_TIMEOUT_SECONDS

    async def _get_json(self, path: str, timeout: float, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(f"{self.base_url}{path}", params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            raise ReferencePriceError(f"Reference API request to {path} failed: {e}") from e
        except ValueError as e:
            raise ReferencePriceError(f"Reference API returned invalid JSON for {path}") from e

    async def get_usdc_ngn_rate(self) -> Decimal:
        """
        Fetch the live USDC → NGN rate.

        Returns:
            Decimal: NGN per USDC

        Raises:
            ReferencePriceError: Endpoint unreachable or body malformed
        """
        body = await self._get_json("/api/v1/exchange-rate/usdc-ngn", self.rate_timeout)
        return _decimal_field(body, "rate")

    async def get_unit_price_ngn(self, symbol: str) -> Decimal:
        """Fetch the NGN price of one unit of a token by symbol."""
        body = await self._get_json(
            "/api/v1/onramp-price",
            self.timeout,
            params={"cryptoSymbol": symbol, "cryptoAmount": 1},
        )
        return _decimal_field(body, "unitPriceInNgn")

    async def check_health(self) -> Dict[str, Any]:
        """Probe reachability using the rate endpoint."""
        rate = await self.get_usdc_ngn_rate()
        return {"usdcNgnRate": rate}


# Global instance
_reference_client: Optional[ReferencePriceClient] = None


def get_reference_price_client() -> ReferencePriceClient:
    """
    Get global reference price client instance.

    Returns:
        ReferencePriceClient: Shared client (stateless, safe to share)
    """
    global _reference_client
    if _reference_client is None:
        _reference_client = ReferencePriceClient()
    return _reference_client
