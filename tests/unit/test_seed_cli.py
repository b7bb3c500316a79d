"""Unit tests for the default token seeding command."""

import pytest
from click.testing import CliRunner

from onramp.cli.seed import cli, merge_default_tokens


@pytest.mark.unit
class TestMergeDefaultTokens:
    """Test cases for merge_default_tokens."""

    def test_empty_catalogue_gets_every_network(self):
        merged, seeded = merge_default_tokens(None)

        assert seeded == ["base", "solana", "ethereum"]
        assert [t["symbol"] for t in merged["base"]] == ["ETH", "USDC", "USDT"]

    def test_existing_networks_are_kept(self):
        own = {"base": [{"symbol": "DEGEN", "contractAddress": "0x4ed4E862860beD51a9570b96d89aF5E1B0Efefed",
                         "decimals": 18}]}

        merged, seeded = merge_default_tokens(own)

        assert seeded == ["solana", "ethereum"]
        assert merged["base"] == own["base"]

    def test_empty_network_list_is_seeded(self):
        merged, seeded = merge_default_tokens({"solana": []})

        assert "solana" in seeded
        assert len(merged["solana"]) == 3


@pytest.mark.unit
def test_seed_requires_a_target():
    result = CliRunner().invoke(cli, ["seed-default-tokens"])

    assert result.exit_code != 0
    assert "--business-id" in result.output
