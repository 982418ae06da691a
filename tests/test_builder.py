"""
Tests for the settlement transaction builder.
"""
import pytest
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from agentcall_sdk.chain.assets import Asset, USDC_DECIMALS
from agentcall_sdk.chain.builder import (
    OperationKind, Recipient, TransactionBuilder, compute_protocol_fee, split_amount,
)
from agentcall_sdk.chain.exceptions import (
    FreshnessFetchFailed, InvalidAmountError, UnsupportedAssetKind,
)
from agentcall_sdk.chain.provisioner import derive_associated_account
from agentcall_sdk.chain.stub_ledger import StubLedger

from test_helpers import TEST_NETWORK, TEST_USDC_MINT

MINT = Pubkey.from_string(TEST_USDC_MINT)


@pytest.fixture
def parties():
    return Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()


def test_split_amount():
    assert split_amount(1_000_000, 200_000) == (800_000, 200_000)
    assert split_amount(5, 0) == (5, 0)
    assert split_amount(5, 5) == (0, 5)


@pytest.mark.parametrize("total,fee", [(10, 11), (-1, 0), (10, -1), (10.0, 1), (10, True)])
def test_split_amount_rejects_invalid(total, fee):
    with pytest.raises(InvalidAmountError):
        split_amount(total, fee)


def test_compute_protocol_fee_floors():
    assert compute_protocol_fee(1_000_000, 1000) == 100_000
    assert compute_protocol_fee(999, 1000) == 99
    assert compute_protocol_fee(1, 1000) == 0
    with pytest.raises(InvalidAmountError):
        compute_protocol_fee(100, 10_001)


async def test_native_plan(parties):
    """total=1,000,000, fee=200,000 on the native asset."""
    payer, agent, protocol = parties
    ledger = StubLedger()
    plan = await TransactionBuilder(ledger, network=TEST_NETWORK).build(
        payer, agent, protocol, 1_000_000, 200_000, "SOL"
    )

    transfers = plan.transfer_operations()
    assert len(transfers) == 2
    assert plan.creation_operations() == []
    assert [(op.recipient, op.address, op.amount) for op in transfers] == [
        (Recipient.AGENT, agent, 800_000),
        (Recipient.PROTOCOL, protocol, 200_000),
    ]
    assert plan.agent_amount + plan.protocol_fee == plan.total_amount == 1_000_000
    assert all(ix.program_id == SYSTEM_PROGRAM_ID for ix in plan.instructions())
    assert ledger.calls["accounts_exist"] == 0


async def test_token_plan_with_missing_accounts(parties):
    """Token asset with both payout accounts missing."""
    payer, agent, protocol = parties
    ledger = StubLedger()
    usdc = Asset.token(TEST_USDC_MINT, USDC_DECIMALS, "USDC")
    plan = await TransactionBuilder(ledger, network=TEST_NETWORK).build(
        payer, agent, protocol, 1_000_000, 100_000, usdc
    )

    kinds = [op.kind for op in plan.operations]
    assert kinds == [
        OperationKind.CREATE_ACCOUNT, OperationKind.CREATE_ACCOUNT,
        OperationKind.TRANSFER, OperationKind.TRANSFER,
    ]
    assert plan.created_accounts == 2

    instructions = plan.instructions()
    assert [ix.program_id for ix in instructions] == [
        ASSOCIATED_TOKEN_PROGRAM_ID, ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID,
    ]
    agent_transfer, protocol_transfer = plan.transfer_operations()
    assert agent_transfer.address == derive_associated_account(agent, MINT)
    assert agent_transfer.amount == 900_000
    assert protocol_transfer.address == derive_associated_account(protocol, MINT)
    assert protocol_transfer.amount == 100_000
    # transfer_checked: source, mint, destination, owner
    assert instructions[2].accounts[0].pubkey == derive_associated_account(payer, MINT)
    assert instructions[2].accounts[3].pubkey == payer


async def test_token_plan_with_existing_accounts(parties):
    payer, agent, protocol = parties
    ledger = StubLedger(existing_accounts=[
        derive_associated_account(agent, MINT),
        derive_associated_account(protocol, MINT),
    ])
    plan = await TransactionBuilder(ledger, network=TEST_NETWORK).build(
        payer, agent, protocol, 500, 50, "USDC"
    )
    assert plan.created_accounts == 0
    assert len(plan.operations) == 2


async def test_plan_accepts_base58_addresses(parties):
    payer, agent, protocol = parties
    plan = await TransactionBuilder(StubLedger(), network=TEST_NETWORK).build(
        str(payer), str(agent), str(protocol), 10, 1, "SOL"
    )
    assert plan.fee_payer == payer


async def test_to_transaction_uses_plan_blockhash(parties):
    payer, agent, protocol = parties
    plan = await TransactionBuilder(StubLedger(), network=TEST_NETWORK).build(
        payer, agent, protocol, 10, 1, "SOL"
    )
    tx = plan.to_transaction()
    assert tx.message.recent_blockhash == plan.freshness.blockhash
    assert tx.message.account_keys[0] == payer


async def test_each_build_fetches_a_new_freshness_token(parties):
    payer, agent, protocol = parties
    ledger = StubLedger()
    builder = TransactionBuilder(ledger, network=TEST_NETWORK)
    first = await builder.build(payer, agent, protocol, 10, 1, "SOL")
    second = await builder.build(payer, agent, protocol, 10, 1, "SOL")
    assert first.freshness.blockhash != second.freshness.blockhash
    assert ledger.calls["get_freshness_token"] == 2


async def test_unsupported_asset(parties):
    payer, agent, protocol = parties
    ledger = StubLedger()
    with pytest.raises(UnsupportedAssetKind):
        await TransactionBuilder(ledger, network=TEST_NETWORK).build(payer, agent, protocol, 10, 1, "DOGE")
    assert ledger.interactions == 0


async def test_freshness_failure_propagates(parties):
    payer, agent, protocol = parties
    ledger = StubLedger()
    ledger.freshness_error = ConnectionError("node unreachable")
    with pytest.raises(FreshnessFetchFailed):
        await TransactionBuilder(ledger, network=TEST_NETWORK).build(payer, agent, protocol, 10, 1, "SOL")
    assert ledger.calls["get_freshness_token"] == 1
