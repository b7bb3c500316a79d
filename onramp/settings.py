# ==== APPLICATION SETTINGS CONFIGURATION ==== #

"""
Application settings configuration for the onramp order engine.

This module provides centralized configuration management using Pydantic Settings
with environment variable loading for order limits, pricing collaborators,
on-chain endpoints, payment provider credentials and webhook secrets.
"""

from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


# ==== MAIN SETTINGS CLASS ==== #


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    
    Groups configuration for the service shell, database, pricing collaborators,
    Base network contracts, order policy and webhook signing.
    """
    
    model_config = SettingsConfigDict(
        env_file='.env', 
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )
    
    # --► CORE APPLICATION SETTINGS
    APP_ENV: str = "dev"
    SERVICE_NAME: str = "onramp-engine"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    
    # --► DATABASE CONFIGURATION
    DATABASE_URL: str
    
    # --► INTERNAL REFERENCE API (PRICES AND FIAT RATES)
    INTERNAL_API_BASE_URL: str = "http://localhost:5002"
    INTERNAL_API_TIMEOUT_SECONDS: float = 10.0
    RATE_API_TIMEOUT_SECONDS: float = 5.0
    FALLBACK_USDC_NGN_RATE: Decimal = Decimal("1650")
    
    # --► BASE NETWORK CONFIGURATION
    BASE_RPC_URL: str = "https://mainnet.base.org"
    BASE_CHAIN_ID: int = 8453
    RPC_TIMEOUT_SECONDS: float = 10.0
    RESERVE_CONTRACT_ADDRESS: str = "0x37588aD0e6ccf52a8f7DEe694f803E722FEFb390"
    WETH_ADDRESS: str = "0x4200000000000000000000000000000000000006"
    USDC_ADDRESS: str = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    V2_ROUTER_ADDRESS: str = "0x4752ba5dbc23f44d87826276bf6fd6b1c372ad24"
    V3_QUOTER_ADDRESS: str = "0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a"
    V3_FEE_TIERS: List[int] = [100, 500, 3000, 10000]
    MIN_LIQUIDITY_THRESHOLD_USDC: Decimal = Decimal("50")
    
    # --► ORDER POLICY
    FIAT_CURRENCY: str = "NGN"
    MIN_ORDER_AMOUNT: Decimal = Decimal("1000")
    MAX_ORDER_AMOUNT: Decimal = Decimal("10000000")
    MAX_FEE_PERCENTAGE: Decimal = Decimal("10")
    ORDER_EXPIRY_MINUTES: int = 30
    QUOTE_VALID_SECONDS: int = 300
    
    # --► WEBHOOK SIGNING AND DELIVERY
    LIQUIDITY_WEBHOOK_SECRET: str = "liquidity-secret"
    MERCHANT_WEBHOOK_SECRET: str = "default-secret"
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_USER_AGENT: str = "RampService/1.0"
    
    # --► PAYMENT LINK PROVIDER (MONNIFY)
    MONNIFY_BASE_URL: str = "https://api.monnify.com"
    MONNIFY_API_KEY: str | None = None
    MONNIFY_SECRET_KEY: str | None = None
    MONNIFY_CONTRACT_CODE: str | None = None
    PAYMENT_LINK_TIMEOUT_SECONDS: float = 15.0
    FRONTEND_URL: str = "http://localhost:3000"
    
    # --► OBSERVABILITY CONFIGURATION
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = None
    OTEL_SERVICE_NAME: str | None = None
    OTEL_RESOURCE_ATTRIBUTES: str | None = None


# ==== GLOBAL SETTINGS INSTANCE ==== #


# Global settings instance for application-wide access
settings = Settings()
