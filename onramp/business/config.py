# ==== TYPED BUSINESS CONFIGURATION ==== #

"""
Typed merchant configuration for the onramp order engine.

Business records store supported tokens and fee entries as per-network JSON
documents. This module validates those documents once, at the boundary, into
explicit per-network token records (a discriminated union over Base, Solana
and Ethereum descriptors) so the engine never duck-types them at use sites.

Loading is a pure function: it never fills in defaults or writes back to the
record. Seeding the default token catalogue is an explicit command
(see onramp.cli.seed).
"""

import re
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from onramp.business.reason_codes import NETWORK_SCAN_ORDER, Network
from onramp.settings import settings


EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
BASE58_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


# ==== TOKEN DESCRIPTORS ==== #


class _TokenDescriptor(BaseModel):
    """Fields shared by every network's token descriptor."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    symbol: str = Field(..., min_length=1, max_length=16)
    name: Optional[str] = None
    contract_address: str
    decimals: int = Field(..., ge=0, le=36)
    type: Optional[str] = None
    is_active: bool = True
    is_trading_enabled: bool = True
    is_default: bool = False
    logo_url: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def is_tradable(self) -> bool:
        return self.is_active and self.is_trading_enabled


class _EvmToken(_TokenDescriptor):

    @field_validator("contract_address")
    @classmethod
    def _validate_evm_address(cls, v: str) -> str:
        v = v.strip()
        if not EVM_ADDRESS_RE.match(v):
            raise ValueError(f"invalid EVM contract address: {v}")
        return v


class BaseToken(_EvmToken):
    """Token deployed on Base; the only network with on-chain reserve checks."""

    network: Literal["base"] = "base"


class EthereumToken(_EvmToken):
    """Token deployed on Ethereum mainnet."""

    network: Literal["ethereum"] = "ethereum"


class SolanaToken(_TokenDescriptor):
    """SPL token identified by its base58 mint address."""

    network: Literal["solana"] = "solana"

    @field_validator("contract_address")
    @classmethod
    def _validate_mint_address(cls, v: str) -> str:
        v = v.strip()
        if not BASE58_ADDRESS_RE.match(v):
            raise ValueError(f"invalid Solana mint address: {v}")
        return v


TokenDescriptor = Annotated[
    Union[BaseToken, SolanaToken, EthereumToken],
    Field(discriminator="network"),
]


# ==== FEE CONFIGURATION ==== #


class FeeEntry(BaseModel):
    """Per-token fee percentage configured by the business."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    contract_address: str
    # Two places, matching the persisted order column
    fee_percentage: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    is_active: bool = True

    @field_validator("fee_percentage")
    @classmethod
    def _cap_fee(cls, v: Decimal) -> Decimal:
        if v > settings.MAX_FEE_PERCENTAGE:
            raise ValueError(
                f"fee percentage {v} exceeds maximum {settings.MAX_FEE_PERCENTAGE}"
            )
        return v


# ==== BUSINESS CONFIGURATION ==== #


class BusinessConfig(BaseModel):
    """Validated, read-only view of a merchant's onramp configuration."""

    model_config = ConfigDict(frozen=True)

    business_id: str
    business_name: str
    supported_tokens: Dict[Network, List[TokenDescriptor]] = Field(default_factory=dict)
    fee_configuration: Dict[Network, List[FeeEntry]] = Field(default_factory=dict)
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None

    def configured_networks(self) -> List[str]:
        return [network.value for network in self.supported_tokens]

    def tradable_tokens(self, network: Network) -> List[TokenDescriptor]:
        """Tokens that are both active and trading-enabled on a network."""
        return [t for t in self.supported_tokens.get(network, []) if t.is_tradable]

    def is_network_configured(self, network: Network) -> bool:
        return bool(self.tradable_tokens(network))

    def find_tradable_token(self, network: Network, symbol: str) -> Optional[TokenDescriptor]:
        symbol = symbol.strip().upper()
        for token in self.tradable_tokens(network):
            if token.symbol == symbol:
                return token
        return None

    def find_active_token(
        self,
        symbol: str,
        preferred_network: Optional[Network] = None,
    ) -> Optional[TokenDescriptor]:
        """
        Find the first active token with a matching symbol across networks.

        Networks are scanned in NETWORK_SCAN_ORDER; a preferred network, when
        given, is scanned first.

        Args:
            symbol: Token symbol, case-insensitive
            preferred_network: Network to scan before the default order

        Returns:
            Optional[TokenDescriptor]: Matching descriptor or None
        """
        symbol = symbol.strip().upper()
        order = list(NETWORK_SCAN_ORDER)
        if preferred_network is not None:
            order.remove(preferred_network)
            order.insert(0, preferred_network)

        for network in order:
            for token in self.supported_tokens.get(network, []):
                if token.is_active and token.symbol == symbol:
                    return token
        return None

    def fee_entry_for(self, network: Network, contract_address: str) -> Optional[FeeEntry]:
        """Active fee entry whose address matches case-insensitively."""
        wanted = contract_address.lower()
        for entry in self.fee_configuration.get(network, []):
            if entry.is_active and entry.contract_address.lower() == wanted:
                return entry
        return None


def _tag_network(documents: Optional[Mapping[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Copy per-network documents, stamping each entry with its network key."""
    tagged: Dict[str, List[Dict[str, Any]]] = {}
    for network, entries in (documents or {}).items():
        if network not in Network._value2member_map_:
            continue
        tagged[network] = [{**entry, "network": network} for entry in entries or []]
    return tagged


def load_business_config(record: Any) -> BusinessConfig:
    """
    Build a validated BusinessConfig from a stored business record.

    The record is read, never mutated. Unknown networks are ignored; malformed
    token or fee entries raise pydantic.ValidationError.

    Args:
        record: Object exposing business_id, business_name, supported_tokens,
            fee_configuration, webhook_url and webhook_secret attributes

    Returns:
        BusinessConfig: Validated configuration
    """
    return BusinessConfig.model_validate({
        "business_id": record.business_id,
        "business_name": record.business_name,
        "supported_tokens": _tag_network(record.supported_tokens),
        "fee_configuration": {
            network: list(entries or [])
            for network, entries in (record.fee_configuration or {}).items()
            if network in Network._value2member_map_
        },
        "webhook_url": record.webhook_url,
        "webhook_secret": record.webhook_secret,
    })


# ==== DEFAULT TOKEN CATALOGUE ==== #


def default_supported_tokens() -> Dict[Network, List[TokenDescriptor]]:
    """
    Return the default token catalogue offered to new businesses.

    Returns:
        Dict[Network, List[TokenDescriptor]]: Fresh, validated descriptors
    """
    return {
        Network.BASE: [
            BaseToken(symbol="ETH", name="Ethereum", type="native", decimals=18, is_default=True,
                      contract_address="0x4200000000000000000000000000000000000006"),
            BaseToken(symbol="USDC", name="USD Coin", type="stablecoin", decimals=6, is_default=True,
                      contract_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"),
            BaseToken(symbol="USDT", name="Tether USD", type="stablecoin", decimals=6, is_default=True,
                      contract_address="0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2"),
        ],
        Network.SOLANA: [
            SolanaToken(symbol="SOL", name="Solana", type="native", decimals=9, is_default=True,
                        contract_address="So11111111111111111111111111111111111111112"),
            SolanaToken(symbol="USDC", name="USD Coin", type="stablecoin", decimals=6, is_default=True,
                        contract_address="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"),
            SolanaToken(symbol="USDT", name="Tether USD", type="stablecoin", decimals=6, is_default=True,
                        contract_address="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"),
        ],
        Network.ETHEREUM: [
            EthereumToken(symbol="ETH", name="Ethereum", type="native", decimals=18, is_default=True,
                          contract_address="0x0000000000000000000000000000000000000000"),
            EthereumToken(symbol="USDC", name="USD Coin", type="stablecoin", decimals=6, is_default=True,
                          contract_address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
            EthereumToken(symbol="USDT", name="Tether USD", type="stablecoin", decimals=6, is_default=True,
                          contract_address="0xdAC17F958D2ee523a2206206994597C13D831ec7"),
        ],
    }


def serialize_tokens(tokens: Mapping[Network, List[TokenDescriptor]]) -> Dict[str, List[Dict[str, Any]]]:
    """Render descriptors back into the stored per-network JSON shape."""
    return {
        network.value: [t.model_dump(by_alias=True, mode="json") for t in entries]
        for network, entries in tokens.items()
    }
