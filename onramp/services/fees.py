"""Business fee computation for onramp orders."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Dict, Optional

from onramp.business.config import FeeEntry
from onramp.business.reason_codes import ErrorCode
from onramp.errors import OnrampError
from onramp.settings import settings


WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True)
class FeeBreakdown:
    amount: Decimal
    fee_percentage: Decimal
    fee_amount: Decimal
    net_amount: Decimal
    gross_token_amount: Decimal
    final_token_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grossAmount": self.amount,
            "feePercentage": self.fee_percentage,
            "feeAmount": self.fee_amount,
            "netAmount": self.net_amount,
        }


def quantize_token_amount(value: Decimal, decimals: int) -> Decimal:
    """Round half-up to the token's declared precision."""
    # Large amounts of 18-decimal tokens exceed the default 28-digit context
    with localcontext() as ctx:
        ctx.prec = 80
        return value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def calculate_fees(
    amount: Decimal,
    fee_entry: Optional[FeeEntry],
    fiat_to_token_rate: Decimal,
    token_decimals: int,
) -> FeeBreakdown:
    """
    Apply the business fee to a fiat amount and convert the remainder to tokens.

    The fee rounds half-up to whole fiat units so fee + net always equals the
    amount exactly; token amounts round to the token's decimals only here.

    Args:
        amount: Gross fiat amount paid by the customer
        fee_entry: Active fee entry matching the token, None means no fee
        fiat_to_token_rate: Tokens per fiat unit, unrounded
        token_decimals: Token precision

    Returns:
        FeeBreakdown: Fee, net and token amounts

    Raises:
        OnrampError: INVALID_FEE_RESULT if the net amount would be negative
    """
    fee_percentage = fee_entry.fee_percentage if fee_entry is not None else Decimal("0")
    fee_percentage = min(fee_percentage, settings.MAX_FEE_PERCENTAGE)

    fee_amount = (amount * fee_percentage / Decimal(100)).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
    net_amount = amount - fee_amount
    if net_amount < 0:
        raise OnrampError(
            f"Fee {fee_amount} exceeds order amount {amount}",
            code=ErrorCode.INVALID_FEE_RESULT.value,
            status_code=400,
        )

    return FeeBreakdown(
        amount=amount,
        fee_percentage=fee_percentage,
        fee_amount=fee_amount,
        net_amount=net_amount,
        gross_token_amount=quantize_token_amount(amount * fiat_to_token_rate, token_decimals),
        final_token_amount=quantize_token_amount(net_amount * fiat_to_token_rate, token_decimals),
    )
