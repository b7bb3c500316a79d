# ==== ONRAMP REASON CODES AND ENUMERATIONS ==== #

"""
Reason codes and lifecycle enumerations for the onramp order engine.

This module defines the machine-readable codes returned to merchants, the
token support verdict reasons, the order status lifecycle and the outbound
webhook event names.
"""

from enum import Enum
from typing import FrozenSet


# ==== NETWORKS ==== #


class Network(str, Enum):
    """Blockchain networks a business can configure tokens on."""
    
    BASE = "base"
    SOLANA = "solana"
    ETHEREUM = "ethereum"


# Scan order used when resolving a token symbol across networks
NETWORK_SCAN_ORDER = (Network.BASE, Network.SOLANA, Network.ETHEREUM)


# ==== ORDER LIFECYCLE ==== #


class OrderStatus(str, Enum):
    """
    Business onramp order status lifecycle.
    
    Status progression: INITIATED → PROCESSING → COMPLETED | FAILED.
    COMPLETED and FAILED are terminal.
    """
    
    INITIATED = "initiated"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    
    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.FAILED}
)

# Statuses counted as "pending" in merchant summaries
PENDING_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.INITIATED, OrderStatus.PROCESSING}
)


# ==== TOKEN SUPPORT VERDICTS ==== #


class TokenSupportReason(str, Enum):
    """
    Verdict reasons produced while confirming a token is usable for an order.
    """
    
    FULLY_SUPPORTED = "FULLY_SUPPORTED"
    BUSINESS_SUPPORTED_ONLY = "BUSINESS_SUPPORTED_ONLY"
    TOKEN_NOT_SUPPORTED_BY_BUSINESS = "TOKEN_NOT_SUPPORTED_BY_BUSINESS"
    TOKEN_NOT_SUPPORTED_BY_SMART_CONTRACT = "TOKEN_NOT_SUPPORTED_BY_SMART_CONTRACT"
    NO_LIQUIDITY_AVAILABLE = "NO_LIQUIDITY_AVAILABLE"
    INSUFFICIENT_LIQUIDITY = "INSUFFICIENT_LIQUIDITY"
    VALIDATION_ERROR = "VALIDATION_ERROR"


# Recommendation text attached to rejected verdicts
REASON_RECOMMENDATIONS = {
    TokenSupportReason.TOKEN_NOT_SUPPORTED_BY_SMART_CONTRACT: (
        "Contact support to add this token to the smart contract"
    ),
    TokenSupportReason.INSUFFICIENT_LIQUIDITY: (
        "Try a different token with better liquidity"
    ),
}
DEFAULT_RECOMMENDATION = "Contact support for assistance"


# ==== ERROR CODES ==== #


class ErrorCode(str, Enum):
    """Machine-readable error codes rendered in API error bodies."""
    
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_AMOUNT_RANGE = "INVALID_AMOUNT_RANGE"
    NETWORK_NOT_CONFIGURED = "NETWORK_NOT_CONFIGURED"
    UNKNOWN_BUSINESS = "UNKNOWN_BUSINESS"
    NOT_FOUND = "NOT_FOUND"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    PRICE_CALCULATION_FAILED = "PRICE_CALCULATION_FAILED"
    INVALID_FEE_RESULT = "INVALID_FEE_RESULT"
    PAYMENT_LINK_FAILED = "PAYMENT_LINK_FAILED"
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"
    INVALID_WEBHOOK_PAYLOAD = "INVALID_WEBHOOK_PAYLOAD"
    UNKNOWN_SETTLEMENT_STATUS = "UNKNOWN_SETTLEMENT_STATUS"
    ORDER_ALREADY_FINALIZED = "ORDER_ALREADY_FINALIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ==== PRICING SOURCES ==== #


class PricingSource(str, Enum):
    """Where a unit price came from."""
    
    SMART_CONTRACT_DEX = "smart_contract_dex"
    INTERNAL_API = "internal_api"


class FiatRateSource(str, Enum):
    """Where the stable-currency to fiat rate came from on the DEX path."""
    
    INTERNAL_API = "internal_api"
    FALLBACK = "fallback"


# ==== WEBHOOK EVENTS ==== #


class WebhookEvent(str, Enum):
    """Outbound merchant webhook event names."""
    
    ORDER_CREATED = "order.created"
    ORDER_COMPLETED = "order.completed"
    ORDER_FAILED = "order.failed"
    ORDER_STATUS_UPDATE = "order.status_update"


class SettlementStatus(str, Enum):
    """Statuses accepted on the inbound settlement channel."""
    
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
