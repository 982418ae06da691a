"""
Tests for associated token account provisioning.
"""
from unittest.mock import AsyncMock

import pytest
from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from agentcall_sdk.chain.assets import Asset, USDC_DECIMALS
from agentcall_sdk.chain.exceptions import AccountLookupError, UnsupportedAssetKind
from agentcall_sdk.chain.provisioner import (
    AccountProvisioner, create_associated_account_instruction, derive_associated_account,
)
from agentcall_sdk.chain.stub_ledger import StubLedger

from test_helpers import TEST_USDC_MINT

USDC = Asset.token(TEST_USDC_MINT, USDC_DECIMALS, "USDC")
MINT = Pubkey.from_string(TEST_USDC_MINT)


def test_derivation_matches_spl_token():
    owner = Pubkey.new_unique()
    assert derive_associated_account(owner, MINT) == get_associated_token_address(owner, MINT)


def test_derivation_is_deterministic():
    owner = Pubkey.new_unique()
    assert derive_associated_account(owner, MINT) == derive_associated_account(owner, MINT)


def test_create_instruction_layout():
    payer, owner = Pubkey.new_unique(), Pubkey.new_unique()
    ix = create_associated_account_instruction(payer, owner, MINT)
    assert ix.program_id == ASSOCIATED_TOKEN_PROGRAM_ID
    assert bytes(ix.data) == b"\x01"
    assert ix.accounts[0].pubkey == payer
    assert ix.accounts[0].is_signer
    assert ix.accounts[1].pubkey == derive_associated_account(owner, MINT)
    assert ix.accounts[2].pubkey == owner
    assert ix.accounts[3].pubkey == MINT

    strict = create_associated_account_instruction(payer, owner, MINT, idempotent=False)
    assert bytes(strict.data) == b"\x00"


async def test_native_asset_is_a_no_op():
    ledger = StubLedger()
    recipients = [Pubkey.new_unique(), Pubkey.new_unique()]
    result = await AccountProvisioner(ledger).ensure_accounts(Asset.native(), recipients, Pubkey.new_unique())

    assert result.resolved_addresses == recipients
    assert result.creation_ops == []
    assert result.created_count == 0
    assert ledger.interactions == 0


async def test_missing_accounts_get_one_creation_each():
    agent, protocol, payer = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()
    ledger = StubLedger()
    result = await AccountProvisioner(ledger).ensure_accounts(USDC, [agent, protocol], payer)

    assert result.created_count == 2
    assert result.existed_count == 0
    assert [op.owner for op in result.creation_ops] == [agent, protocol]
    assert result.resolved_addresses == [
        derive_associated_account(agent, MINT),
        derive_associated_account(protocol, MINT),
    ]
    assert ledger.calls["accounts_exist"] == 1


async def test_existing_accounts_are_not_recreated():
    agent, protocol, payer = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()
    ledger = StubLedger(existing_accounts=[derive_associated_account(agent, MINT)])
    result = await AccountProvisioner(ledger).ensure_accounts(USDC, [agent, protocol], payer)

    assert result.existed_count == 1
    assert result.created_count == 1
    assert result.creation_ops[0].owner == protocol
    assert result.total == 2


async def test_duplicate_recipient_is_provisioned_once():
    owner, payer = Pubkey.new_unique(), Pubkey.new_unique()
    result = await AccountProvisioner(StubLedger()).ensure_accounts(USDC, [owner, owner], payer)

    assert result.created_count == 1
    assert result.resolved_addresses[0] == result.resolved_addresses[1]


async def test_invalid_mint_is_unsupported():
    bad = Asset.token("not-a-mint", 6)
    with pytest.raises(UnsupportedAssetKind):
        await AccountProvisioner(StubLedger()).ensure_accounts(bad, [Pubkey.new_unique()], Pubkey.new_unique())


async def test_lookup_failure_propagates():
    ledger = StubLedger()
    ledger.accounts_exist = AsyncMock(side_effect=AccountLookupError("rpc down"))
    with pytest.raises(AccountLookupError):
        await AccountProvisioner(ledger).ensure_accounts(USDC, [Pubkey.new_unique()], Pubkey.new_unique())
