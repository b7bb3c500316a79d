"""SQLAlchemy models for the onramp order engine."""

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    String, JSON, Text, DateTime, Numeric, Integer, Index, TypeDecorator
)
from sqlalchemy.orm import Mapped, mapped_column

from onramp.business.reason_codes import OrderStatus
from onramp.storage.db import Base


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Attach UTC to a stored naive timestamp so it renders with an offset."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=dt.timezone.utc)


class DecimalString(TypeDecorator):
    """
    Exact Decimal storage for SQLite, which keeps NUMERIC values as floats.

    Values are written as their decimal string and read back unchanged.
    Aggregates such as SUM come back from SQLite as numbers and are
    converted through their string form.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


# Fiat and token amounts: 38 digits, 18 fractional covers 18-decimal tokens
MONEY = Numeric(38, 18).with_variant(DecimalString(), "sqlite")
PERCENTAGE = Numeric(5, 2).with_variant(DecimalString(), "sqlite")


class Business(Base):
    """Merchant configuration record, read-only for the engine."""

    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    business_name: Mapped[str] = mapped_column(String(128), nullable=False)
    supported_tokens: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=True)
    fee_configuration: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=True)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    webhook_secret: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )


class BusinessOnrampOrder(Base):
    """
    Crypto purchase order placed by a business on behalf of a customer.

    Created as INITIATED by the order lifecycle manager; after creation only
    the settlement webhook processor moves it through PROCESSING to a
    terminal COMPLETED or FAILED state.
    """

    __tablename__ = "business_onramp_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    order_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    business_order_reference: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # Parties
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_email: Mapped[str] = mapped_column(String(256), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(256), nullable=False)
    customer_wallet: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Commercial terms
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    target_token: Mapped[str] = mapped_column(String(16), nullable=False)
    target_network: Mapped[str] = mapped_column(String(16), nullable=False)
    token_contract_address: Mapped[str] = mapped_column(String(128), nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    estimated_token_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    fee_percentage: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False, default=Decimal("0"))
    fee_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    actual_token_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(16), default=OrderStatus.INITIATED.value, nullable=False
    )
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    settlement_initiated_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    liquidity_server_order_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Integration bookkeeping
    redirect_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    webhook_status: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    checkout_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    # "metadata" is reserved on declarative classes
    order_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("ix_onramp_orders_business_created", "business_id", "created_at"),
        Index("ix_onramp_orders_business_status", "business_id", "status"),
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.order_status.is_terminal

    def is_expired(self, now: dt.datetime | None = None) -> bool:
        """Lazy expiry guard: only un-progressed orders can expire."""
        if self.status != OrderStatus.INITIATED.value:
            return False
        return (now or utcnow()) > self.expires_at

    # --► STATUS TRANSITIONS

    def mark_processing(self, liquidity_server_order_id: str | None = None) -> None:
        self.status = OrderStatus.PROCESSING.value
        self.settlement_initiated_at = utcnow()
        if liquidity_server_order_id:
            self.liquidity_server_order_id = liquidity_server_order_id

    def mark_completed(
        self,
        transaction_hash: str | None,
        actual_token_amount: Decimal | None,
        liquidity_server_order_id: str | None = None,
    ) -> None:
        self.status = OrderStatus.COMPLETED.value
        self.completed_at = utcnow()
        self.transaction_hash = transaction_hash
        self.actual_token_amount = (
            actual_token_amount if actual_token_amount is not None
            else self.estimated_token_amount
        )
        if liquidity_server_order_id:
            self.liquidity_server_order_id = liquidity_server_order_id

    def mark_failed(self, error_message: str | None) -> None:
        self.status = OrderStatus.FAILED.value
        self.error_message = error_message or "Settlement failed"

    def append_note(self, note: str) -> None:
        """Append an advisory note; never touches the authoritative status."""
        stamped = f"[{utcnow().isoformat(timespec='seconds')}Z] {note}"
        self.notes = f"{self.notes}\n{stamped}" if self.notes else stamped
