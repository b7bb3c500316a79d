# ==== ON-CHAIN RESERVE AND DEX QUOTING ==== #

"""
On-chain reserve and liquidity queries on the Base network.

The reserve contract reports which tokens it can settle; DEX quoting values a
token amount in USDC through the best of several Uniswap-style routes:

1. V3 direct, one quote per configured fee tier
2. V2 direct
3. V3 via WETH, one quote per first-hop fee tier, WETH → USDC second hop
4. V2 via WETH

The highest USDC output wins; on equal output the earlier route keeps it.

Components depend on the ReserveQuoter protocol and receive an instance
through dependency injection, so tests substitute a fake without touching
module globals.
"""

import asyncio
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Protocol

from web3 import AsyncWeb3, Web3

from onramp.observability.logging import get_logger
from onramp.observability.tracing import get_tracer
from onramp.settings import settings


logger = get_logger(__name__)
tracer = get_tracer(__name__)

USDC_DECIMALS = 6
WETH_DECIMALS = 18
# Fee tiers tried for the WETH → USDC second hop, first success wins
SECOND_HOP_FEE_TIERS = (500, 3000, 10000)


# ==== CONTRACT ABIS ==== #

RESERVE_ABI: List[Dict[str, Any]] = [
    {
        "name": "supportedTokens",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "getConfiguration",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "v2Router", "type": "address"},
            {"name": "v3Router", "type": "address"},
            {"name": "v3Quoter", "type": "address"},
            {"name": "weth", "type": "address"},
            {"name": "totalOrders", "type": "uint256"},
        ],
    },
]

QUOTER_V2_ABI: List[Dict[str, Any]] = [
    {
        "name": "quoteExactInputSingle",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
            }
        ],
        "outputs": [
            {"name": "amountOut", "type": "uint256"},
            {"name": "sqrtPriceX96After", "type": "uint160"},
            {"name": "initializedTicksCrossed", "type": "uint32"},
            {"name": "gasEstimate", "type": "uint256"},
        ],
    }
]

ROUTER_V2_ABI: List[Dict[str, Any]] = [
    {
        "name": "getAmountsOut",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "path", "type": "address[]"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    }
]


# ==== RESULT TYPES ==== #


class ReserveQueryError(Exception):
    """On-chain query failed or no route produced a quote."""


class RouteQuote(NamedTuple):
    label: str
    usdc_out: Decimal


@dataclass(frozen=True)
class ReserveQuote:
    """USDC valuation of a token amount on Base."""

    token_amount: Decimal
    stable_value: Decimal
    price_per_token: Decimal
    best_route: str
    has_adequate_liquidity: bool
    is_supported: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ReserveQuoter(Protocol):
    """Stateless on-chain query interface consumed by validation and pricing."""

    async def is_token_supported(self, token_address: str) -> bool: ...

    async def quote(
        self,
        token_address: str,
        decimals: int,
        token_amount: Decimal = Decimal("1"),
    ) -> ReserveQuote: ...

    async def check_connection(self) -> Dict[str, Any]: ...


def fee_tier_label(fee: int) -> str:
    """Render a V3 fee tier in hundredths of a bip as a percentage string."""
    return f"{Decimal(fee) / Decimal(10000):f}".rstrip("0").rstrip(".") + "%"


def select_best_route(quotes: Iterable[RouteQuote]) -> Optional[RouteQuote]:
    """Pick the route with the strictly highest USDC output, first one on ties."""
    best: Optional[RouteQuote] = None
    for candidate in quotes:
        if best is None or candidate.usdc_out > best.usdc_out:
            best = candidate
    return best


# ==== WEB3 IMPLEMENTATION ==== #


class Web3ReserveQuoter:
    """ReserveQuoter backed by JSON-RPC calls to Base mainnet contracts."""

    def __init__(
        self,
        rpc_url: str | None = None,
        *,
        timeout: float | None = None,
        fee_tiers: Iterable[int] | None = None,
        min_liquidity: Decimal | None = None,
    ):
        self.rpc_url = rpc_url or settings.BASE_RPC_URL
        self.fee_tiers = tuple(fee_tiers or settings.V3_FEE_TIERS)
        self.min_liquidity = (
            min_liquidity if min_liquidity is not None
            else settings.MIN_LIQUIDITY_THRESHOLD_USDC
        )
        self.w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                self.rpc_url,
                request_kwargs={"timeout": timeout or settings.RPC_TIMEOUT_SECONDS},
            )
        )
        self.weth = Web3.to_checksum_address(settings.WETH_ADDRESS)
        self.usdc = Web3.to_checksum_address(settings.USDC_ADDRESS)
        self.reserve = self.w3.eth.contract(
            address=Web3.to_checksum_address(settings.RESERVE_CONTRACT_ADDRESS),
            abi=RESERVE_ABI,
        )
        self.quoter = self.w3.eth.contract(
            address=Web3.to_checksum_address(settings.V3_QUOTER_ADDRESS),
            abi=QUOTER_V2_ABI,
        )
        self.router = self.w3.eth.contract(
            address=Web3.to_checksum_address(settings.V2_ROUTER_ADDRESS),
            abi=ROUTER_V2_ABI,
        )

    async def is_token_supported(self, token_address: str) -> bool:
        """Ask the reserve contract whether it settles this token."""
        with tracer.start_as_current_span("reserve.is_token_supported") as span:
            span.set_attribute("token.address", token_address)
            try:
                supported = await self.reserve.functions.supportedTokens(
                    Web3.to_checksum_address(token_address)
                ).call()
            except Exception as e:
                raise ReserveQueryError(f"Reserve support query failed: {e}") from e
            span.set_attribute("token.supported", bool(supported))
            return bool(supported)

    async def quote(
        self,
        token_address: str,
        decimals: int,
        token_amount: Decimal = Decimal("1"),
    ) -> ReserveQuote:
        """
        Value a token amount in USDC through the best available route.

        Args:
            token_address: ERC-20 contract address on Base
            decimals: Token decimals used to scale the input amount
            token_amount: Human-unit amount to value

        Returns:
            ReserveQuote: Best-route valuation and liquidity flag

        Raises:
            ReserveQueryError: No route produced a quote
        """
        with tracer.start_as_current_span("reserve.quote") as span:
            span.set_attribute("token.address", token_address)
            token = Web3.to_checksum_address(token_address)

            if token == self.usdc:
                routes = [RouteQuote("Direct (USDC)", token_amount)]
            else:
                amount_in = int(token_amount * (Decimal(10) ** decimals))
                routes = await self._quote_routes(token, amount_in)

            best = select_best_route(routes)
            if best is None:
                raise ReserveQueryError(f"No liquidity route for token {token_address}")

            span.set_attribute("quote.best_route", best.label)
            return ReserveQuote(
                token_amount=token_amount,
                stable_value=best.usdc_out,
                price_per_token=best.usdc_out / token_amount,
                best_route=best.label,
                has_adequate_liquidity=best.usdc_out >= self.min_liquidity,
            )

    async def check_connection(self) -> Dict[str, Any]:
        """Verify RPC connectivity, chain id and the reserve contract."""
        try:
            chain_id = await self.w3.eth.chain_id
        except Exception as e:
            raise ReserveQueryError(f"RPC unreachable: {e}") from e
        if chain_id != settings.BASE_CHAIN_ID:
            raise ReserveQueryError(
                f"Wrong network: expected chain {settings.BASE_CHAIN_ID}, got {chain_id}"
            )
        try:
            configuration = await self.reserve.functions.getConfiguration().call()
        except Exception as e:
            raise ReserveQueryError(f"Reserve contract unreachable: {e}") from e
        return {
            "chainId": chain_id,
            "reserveContract": self.reserve.address,
            "totalOrders": int(configuration[4]),
        }

    # --► ROUTE QUOTING

    async def _quote_routes(self, token: str, amount_in: int) -> List[RouteQuote]:
        """Quote every route concurrently; failed routes are dropped, order kept."""
        candidates: List[tuple[str, Any]] = []
        for fee in self.fee_tiers:
            candidates.append(
                (f"V3 Direct ({fee_tier_label(fee)} fee)", self._v3_single(token, self.usdc, fee, amount_in))
            )
        candidates.append(("V2 Direct", self._v2_path([token, self.usdc], amount_in)))
        for fee in self.fee_tiers:
            candidates.append(
                (f"V3 Route via {fee_tier_label(fee)}", self._v3_via_weth(token, fee, amount_in))
            )
        candidates.append(("V2 Route", self._v2_path([token, self.weth, self.usdc], amount_in)))

        results = await asyncio.gather(
            *(coro for _, coro in candidates), return_exceptions=True
        )

        routes: List[RouteQuote] = []
        for (label, _), result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.debug("Route unavailable", route=label, error=str(result))
                continue
            routes.append(RouteQuote(label, _from_units(result, USDC_DECIMALS)))
        return routes

    async def _v3_single(self, token_in: str, token_out: str, fee: int, amount_in: int) -> int:
        result = await self.quoter.functions.quoteExactInputSingle(
            (token_in, token_out, amount_in, fee, 0)
        ).call()
        return int(result[0])

    async def _v2_path(self, path: List[str], amount_in: int) -> int:
        amounts = await self.router.functions.getAmountsOut(amount_in, path).call()
        return int(amounts[-1])

    async def _v3_via_weth(self, token: str, fee: int, amount_in: int) -> int:
        weth_out = await self._v3_single(token, self.weth, fee, amount_in)
        for second_fee in SECOND_HOP_FEE_TIERS:
            try:
                return await self._v3_single(self.weth, self.usdc, second_fee, weth_out)
            except Exception:
                continue
        return await self._v2_path([self.weth, self.usdc], weth_out)


def _from_units(raw: int, decimals: int) -> Decimal:
    return Decimal(raw) / (Decimal(10) ** decimals)


# Global instance
_reserve_quoter: Optional[Web3ReserveQuoter] = None


def get_reserve_quoter() -> ReserveQuoter:
    """
    Get global reserve quoter instance.

    Returns:
        ReserveQuoter: Shared Web3 quoter; the provider pools its connections
    """
    global _reserve_quoter
    if _reserve_quoter is None:
        _reserve_quoter = Web3ReserveQuoter()
    return _reserve_quoter
