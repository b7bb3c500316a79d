# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures for the onramp order engine.

Every test gets a fresh in-memory SQLite database. API tests run the real
application through httpx's ASGI transport with the on-chain quoter,
reference price API, payment provider and webhook dispatcher replaced by
AsyncMocks through FastAPI dependency overrides.
"""

import os
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

# Set environment variables BEFORE importing any onramp modules
os.environ.update({
    "APP_ENV": "test",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "INTERNAL_API_BASE_URL": "http://internal-api.test",
    "MONNIFY_BASE_URL": "http://monnify.test",
    "MONNIFY_API_KEY": "test-api-key",
    "MONNIFY_SECRET_KEY": "test-secret-key",
    "MONNIFY_CONTRACT_CODE": "1234567890",
    "LIQUIDITY_WEBHOOK_SECRET": "test-liquidity-secret",
    "MERCHANT_WEBHOOK_SECRET": "test-merchant-default",
    "LOG_LEVEL": "WARNING",
})

# Now import onramp modules after environment is set
from onramp.business.config import default_supported_tokens, serialize_tokens
from onramp.business.reason_codes import Network
from onramp.main import create_app
from onramp.services.payment_links import PaymentLink, get_payment_link_client
from onramp.services.reference_prices import get_reference_price_client
from onramp.services.reserve_client import ReserveQuote, get_reserve_quoter
from onramp.services.webhook_dispatcher import DeliveryResult, get_webhook_dispatcher
from onramp.storage.db import close_database, create_all, get_session
from onramp.storage.models import Business


BUSINESS_ID = "biz_test_001"
MERCHANT_WEBHOOK_URL = "https://merchant.example.com/hooks/onramp"
MERCHANT_SECRET = "merchant-secret"

BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
BASE_WETH = "0x4200000000000000000000000000000000000006"


# ==== DATABASE FIXTURES ==== #


@pytest_asyncio.fixture
async def database():
    """Fresh in-memory database with all tables for one test."""
    await close_database()
    await create_all()
    yield
    await close_database()


@pytest_asyncio.fixture
async def db_session(database):
    """Database session for direct reads and writes in tests."""
    async with get_session() as session:
        yield session


def business_record(**overrides) -> Business:
    """
    Business with Base and Solana tokens and a 1% fee on Base USDC.

    Ethereum is deliberately left unconfigured.
    """
    catalogue = default_supported_tokens()
    fields = {
        "business_id": BUSINESS_ID,
        "business_name": "Acme Payments",
        "supported_tokens": serialize_tokens({
            Network.BASE: catalogue[Network.BASE],
            Network.SOLANA: catalogue[Network.SOLANA],
        }),
        "fee_configuration": {
            "base": [
                {"contractAddress": BASE_USDC.lower(), "feePercentage": 1, "isActive": True},
            ],
        },
        "webhook_url": MERCHANT_WEBHOOK_URL,
        "webhook_secret": MERCHANT_SECRET,
    }
    fields.update(overrides)
    return Business(**fields)


@pytest_asyncio.fixture
async def business(database):
    """Persisted test business."""
    async with get_session() as session:
        record = business_record()
        session.add(record)
    return record


# ==== COLLABORATOR FIXTURES ==== #


def reserve_quote(stable_value: str = "1", adequate: bool = True, route: str = "Direct (USDC)") -> ReserveQuote:
    value = Decimal(stable_value)
    return ReserveQuote(
        token_amount=Decimal("1"),
        stable_value=value,
        price_per_token=value,
        best_route=route,
        has_adequate_liquidity=adequate,
    )


@pytest.fixture
def reserve():
    """On-chain quoter: every token supported, USDC valued at 1."""
    mock = AsyncMock()
    mock.is_token_supported.return_value = True
    mock.quote.return_value = reserve_quote()
    mock.check_connection.return_value = {"chainId": 8453, "totalOrders": 12}
    return mock


@pytest.fixture
def reference():
    """Reference price API: 1500 NGN per USDC, 250 NGN per SOL-side token."""
    mock = AsyncMock()
    mock.get_usdc_ngn_rate.return_value = Decimal("1500")
    mock.get_unit_price_ngn.return_value = Decimal("1500")
    mock.check_health.return_value = {"usdcNgnRate": Decimal("1500")}
    return mock


@pytest.fixture
def payment_links():
    """Payment provider issuing a fixed checkout link."""
    mock = AsyncMock()
    mock.create_payment_link.return_value = PaymentLink(
        checkout_url="https://sandbox.monnify.com/checkout/MNFY|123",
        payment_reference="BIZRAMP-ref",
        transaction_reference="MNFY|20261018|000123",
    )
    return mock


@pytest.fixture
def dispatcher():
    """Merchant webhook dispatcher that always delivers."""
    mock = AsyncMock()
    mock.send.return_value = DeliveryResult(sent=True, status_code=200)
    return mock


# ==== APPLICATION FIXTURES ==== #


@pytest.fixture
def app(database, reserve, reference, payment_links, dispatcher):
    """FastAPI application with collaborators overridden."""
    application = create_app()
    application.dependency_overrides[get_reserve_quoter] = lambda: reserve
    application.dependency_overrides[get_reference_price_client] = lambda: reference
    application.dependency_overrides[get_payment_link_client] = lambda: payment_links
    application.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    return application


@pytest_asyncio.fixture
async def client(app):
    """HTTP client bound to the application, without business headers."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def business_headers():
    return {"X-Business-Id": BUSINESS_ID}


@pytest.fixture
def order_payload():
    """Valid order request for 50,000 NGN of Base USDC."""
    return {
        "customerEmail": "Ada.Obi@Example.com",
        "customerName": "Ada Obi",
        "amount": 50000,
        "targetToken": "usdc",
        "targetNetwork": "base",
        "customerWallet": "0x1234567890abcdef1234567890abcdef12345678",
        "metadata": {"cartId": "cart-42"},
    }
