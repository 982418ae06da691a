"""
Tests for asset resolution and base-unit conversion.
"""
from decimal import Decimal

import pytest

from agentcall_sdk.chain.assets import (
    Asset, AssetKind, NETWORK_DEFAULTS, WRAPPED_SOL_MINT, explorer_url, from_base_units,
    get_token_mint, resolve_agent_asset, resolve_asset, to_base_units,
)
from agentcall_sdk.chain.exceptions import AssetDecimalsMismatch, InvalidAmountError, UnsupportedAssetKind
from agentcall_sdk.exceptions import CallErrorCode


def test_native_references_resolve_to_sol():
    for ref in ("SOL", "sol", "native", WRAPPED_SOL_MINT, Asset.native()):
        asset = resolve_asset(ref, "devnet")
        assert asset.kind == AssetKind.NATIVE
        assert asset.decimals == 9
        assert asset.mint is None


def test_usdc_resolves_by_symbol_and_mint():
    mint = NETWORK_DEFAULTS["mainnet"]["usdc_mint"]
    by_symbol = resolve_asset("USDC", "mainnet")
    by_mint = resolve_asset(mint, "mainnet")
    assert by_symbol == by_mint
    assert by_symbol.mint == mint
    assert by_symbol.decimals == 6


def test_mint_from_another_network_is_unsupported():
    devnet_mint = NETWORK_DEFAULTS["devnet"]["usdc_mint"]
    with pytest.raises(UnsupportedAssetKind) as exc_info:
        resolve_asset(devnet_mint, "mainnet")
    assert exc_info.value.error_code == CallErrorCode.UNSUPPORTED_ASSET_KIND


@pytest.mark.parametrize("ref", ["DOGE", "", None, 42])
def test_unknown_references_are_unsupported(ref):
    with pytest.raises(UnsupportedAssetKind):
        resolve_asset(ref, "devnet")


def test_extra_tokens_extend_the_registry():
    bonk = Asset.token("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", 5, "BONK")
    assert resolve_asset("BONK", "mainnet", {bonk.mint: bonk}) == bonk
    with pytest.raises(UnsupportedAssetKind):
        resolve_asset("BONK", "mainnet")


def test_token_asset_without_mint_is_unsupported():
    with pytest.raises(UnsupportedAssetKind):
        resolve_asset(Asset(kind=AssetKind.TOKEN, decimals=6), "mainnet")


def test_agent_asset_accepts_an_unregistered_mint():
    mint = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
    asset = resolve_agent_asset(mint, 5, "mainnet")
    assert asset == Asset.token(mint, 5)


def test_agent_asset_uses_the_registry_when_decimals_agree():
    assert resolve_agent_asset("USDC", 6, "devnet").mint == NETWORK_DEFAULTS["devnet"]["usdc_mint"]
    assert resolve_agent_asset("SOL", 9, "devnet").is_native


@pytest.mark.parametrize("ref,decimals", [
    (NETWORK_DEFAULTS["mainnet"]["usdc_mint"], 9),
    ("USDC", 2),
    ("SOL", 6),
])
def test_agent_asset_rejects_decimals_that_disagree(ref, decimals):
    with pytest.raises(AssetDecimalsMismatch) as exc_info:
        resolve_agent_asset(ref, decimals, "mainnet")
    assert exc_info.value.error_code == CallErrorCode.ASSET_DECIMALS_MISMATCH


@pytest.mark.parametrize("ref", ["DOGE", "not-a-mint", ""])
def test_agent_asset_rejects_non_mint_references(ref):
    with pytest.raises(UnsupportedAssetKind) as exc_info:
        resolve_agent_asset(ref, 6, "mainnet")
    assert exc_info.value.error_code == CallErrorCode.UNSUPPORTED_ASSET_KIND


def test_get_token_mint():
    assert get_token_mint("usdc", "devnet") == NETWORK_DEFAULTS["devnet"]["usdc_mint"]
    assert get_token_mint("SOL", "mainnet") == WRAPPED_SOL_MINT
    with pytest.raises(ValueError, match="Unknown token/network"):
        get_token_mint("BTC", "mainnet")
    with pytest.raises(ValueError, match="Unknown network"):
        get_token_mint("USDC", "testnet")


def test_to_base_units_floors():
    assert to_base_units("0.25", 6) == 250_000
    assert to_base_units(Decimal("1.0000009"), 6) == 1_000_000
    assert to_base_units(3, 9) == 3_000_000_000


@pytest.mark.parametrize("amount", [0.1, True, "abc", "-1"])
def test_to_base_units_rejects_bad_amounts(amount):
    with pytest.raises(InvalidAmountError):
        to_base_units(amount, 6)


def test_from_base_units():
    assert from_base_units(250_000, 6) == Decimal("0.25")


def test_explorer_url_includes_cluster_off_mainnet():
    assert explorer_url("sig", "devnet") == "https://explorer.solana.com/tx/sig?cluster=devnet"
    assert explorer_url("sig", "mainnet") == "https://explorer.solana.com/tx/sig"
