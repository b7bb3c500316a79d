"""Unit tests for fee calculation and token amount rounding."""

from decimal import Decimal

import pytest

from onramp.business.config import FeeEntry
from onramp.errors import OnrampError
from onramp.services.fees import calculate_fees, quantize_token_amount


USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def fee(percentage: str, active: bool = True) -> FeeEntry:
    return FeeEntry(contract_address=USDC, fee_percentage=Decimal(percentage), is_active=active)


@pytest.mark.unit
class TestCalculateFees:
    """Test cases for calculate_fees."""

    def test_one_percent_fee_on_fifty_thousand(self):
        """1% of 50,000 leaves 49,500 converted at 1/1500."""
        result = calculate_fees(Decimal("50000"), fee("1"), Decimal(1) / Decimal(1500), 6)

        assert result.fee_amount == Decimal("500")
        assert result.net_amount == Decimal("49500")
        assert result.fee_amount + result.net_amount == Decimal("50000")
        assert result.final_token_amount == Decimal("33.000000")
        assert result.gross_token_amount == Decimal("33.333333")

    def test_no_fee_entry_means_zero_fee(self):
        result = calculate_fees(Decimal("10000"), None, Decimal("0.001"), 6)

        assert result.fee_percentage == Decimal("0")
        assert result.fee_amount == Decimal("0")
        assert result.net_amount == Decimal("10000")
        assert result.final_token_amount == Decimal("10.000000")

    def test_fee_rounds_half_up_to_whole_units(self):
        """1.5% of 1,001 is 15.015, which rounds to 15."""
        result = calculate_fees(Decimal("1001"), fee("1.5"), Decimal("1"), 2)
        assert result.fee_amount == Decimal("15")

        # 2.5% of 1,010 is 25.25 -> 25; 2.5% of 1,020 is 25.5 -> 26
        assert calculate_fees(Decimal("1010"), fee("2.5"), Decimal("1"), 2).fee_amount == Decimal("25")
        assert calculate_fees(Decimal("1020"), fee("2.5"), Decimal("1"), 2).fee_amount == Decimal("26")

    def test_eighteen_decimal_tokens_keep_precision(self):
        result = calculate_fees(
            Decimal("10000000"), None, Decimal(1) / Decimal("5500000"), 18
        )
        assert result.final_token_amount == Decimal("1.818181818181818182")

    def test_negative_net_amount_is_rejected(self, monkeypatch):
        from onramp.services import fees as fees_module

        monkeypatch.setattr(fees_module.settings, "MAX_FEE_PERCENTAGE", Decimal("200"))
        entry = FeeEntry.model_construct(
            contract_address=USDC, fee_percentage=Decimal("150"), is_active=True
        )

        with pytest.raises(OnrampError) as exc_info:
            calculate_fees(Decimal("1000"), entry, Decimal("1"), 6)

        assert exc_info.value.code == "INVALID_FEE_RESULT"
        assert exc_info.value.status_code == 400


@pytest.mark.unit
def test_quantize_token_amount_half_up():
    assert quantize_token_amount(Decimal("1.0000005"), 6) == Decimal("1.000001")
    assert quantize_token_amount(Decimal("1.0000004"), 6) == Decimal("1.000000")
    assert quantize_token_amount(Decimal("7"), 0) == Decimal("7")
