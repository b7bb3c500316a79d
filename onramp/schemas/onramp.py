# ==== MERCHANT API SCHEMAS ==== #

"""
Pydantic schemas for the merchant-facing onramp API.

Request bodies use camelCase on the wire; Python code uses snake_case field
names through the alias generator.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from onramp.business.reason_codes import OrderStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class QuoteRequest(_CamelModel):
    """Price quote for a fiat amount in a target token."""

    amount: Decimal = Field(..., gt=0)
    target_token: str = Field(..., min_length=1, max_length=16)
    target_network: str = Field(..., min_length=1, max_length=16)

    @field_validator("target_token")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.upper()

    @field_validator("target_network")
    @classmethod
    def _lower_network(cls, v: str) -> str:
        return v.lower()


class CreateOrderRequest(QuoteRequest):
    """
    Onramp order placed by a business for one of its customers.

    Example:
        {
            "customerEmail": "ada@example.com",
            "customerName": "Ada Obi",
            "amount": 50000,
            "targetToken": "USDC",
            "targetNetwork": "base",
            "customerWallet": "0x1234...abcd"
        }
    """

    customer_email: EmailStr
    customer_name: str = Field(..., min_length=1, max_length=256)
    customer_wallet: str = Field(..., min_length=1, max_length=128)
    customer_phone: Optional[str] = Field(None, max_length=32)
    redirect_url: Optional[str] = Field(None, max_length=512)
    webhook_url: Optional[str] = Field(None, max_length=512)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer_email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


class OrderListQuery(_CamelModel):
    """Filters, pagination and sorting for order listing."""

    status: Optional[OrderStatus] = None
    target_token: Optional[str] = None
    target_network: Optional[str] = None
    customer_email: Optional[str] = None
    start_date: Optional[dt.datetime] = None
    end_date: Optional[dt.datetime] = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort_by: Literal["createdAt", "amount", "status"] = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"


Timeframe = Literal["7d", "30d", "90d", "1y", "all"]
