# ==== LIQUIDITY WEBHOOK SCHEMAS ==== #

"""
Pydantic schemas for inbound liquidity-provider webhooks.

Each channel posts ``{"event": ..., "data": {...}}`` with camelCase fields.
Settlement status is kept as a plain string here so an unknown status can be
rejected with its own error code rather than a generic validation error.
"""

from decimal import Decimal
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WebhookData(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    order_id: str = Field(..., min_length=1, max_length=64)


class SettlementData(_WebhookData):
    liquidity_server_order_id: Optional[str] = None
    status: str = Field(..., min_length=1)
    transaction_hash: Optional[str] = None
    actual_token_amount: Optional[Decimal] = Field(None, ge=0)
    error_message: Optional[str] = None
    processed_at: Optional[str] = None


class UpdateData(_WebhookData):
    liquidity_server_order_id: Optional[str] = None
    status: Optional[str] = None
    status_message: Optional[str] = None
    updated_at: Optional[str] = None


class ErrorData(_WebhookData):
    error_code: Optional[str] = None
    error_message: str = Field(..., min_length=1)
    retryable: bool = False
    occurred_at: Optional[str] = None


DataT = TypeVar("DataT", bound=_WebhookData)


class WebhookEnvelope(BaseModel, Generic[DataT]):
    event: Optional[str] = None
    data: DataT


SettlementWebhook = WebhookEnvelope[SettlementData]
UpdateWebhook = WebhookEnvelope[UpdateData]
ErrorWebhook = WebhookEnvelope[ErrorData]
