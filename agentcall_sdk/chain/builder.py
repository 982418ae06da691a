"""
Settlement transaction builder.

Builds the single atomic transaction that pays an agent: optional account
creations, then the agent-share transfer and the protocol-fee transfer.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import TransferCheckedParams, transfer_checked

from .assets import Asset, resolve_asset
from .exceptions import InvalidAmountError
from .ledger import FreshnessToken, LedgerClient
from .provisioner import AccountProvisioner, derive_associated_account

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


def _require_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{name} must be an integer amount of base units, got {type(value).__name__}")
    return value


def split_amount(total: int, fee: int) -> Tuple[int, int]:
    """
    Split a total into (agent share, protocol fee) in integer base units.

    Raises:
        InvalidAmountError: If an amount is not an int, is negative, or fee > total
    """
    total = _require_int("total", total)
    fee = _require_int("fee", fee)
    if fee < 0 or total < 0:
        raise InvalidAmountError(f"Amounts must be non-negative (total={total}, fee={fee})")
    if fee > total:
        raise InvalidAmountError(f"Protocol fee {fee} exceeds total {total}")
    return total - fee, fee


def compute_protocol_fee(total: int, fee_bps: int) -> int:
    """Protocol fee for a total price, rounded down to whole base units."""
    total = _require_int("total", total)
    fee_bps = _require_int("fee_bps", fee_bps)
    if not 0 <= fee_bps <= BPS_DENOMINATOR:
        raise InvalidAmountError(f"fee_bps must be between 0 and {BPS_DENOMINATOR}, got {fee_bps}")
    return total * fee_bps // BPS_DENOMINATOR


class OperationKind(str, Enum):
    CREATE_ACCOUNT = "create_account"
    TRANSFER = "transfer"


class Recipient(str, Enum):
    AGENT = "agent"
    PROTOCOL = "protocol"


@dataclass(frozen=True)
class SettlementOperation:
    """One on-chain operation in a settlement plan."""
    kind: OperationKind
    recipient: Recipient
    owner: Pubkey
    address: Pubkey
    instruction: Instruction
    amount: int = 0


@dataclass
class SettlementPlan:
    """
    Ordered settlement operations plus everything needed to sign them.

    Account creations always precede the two transfers.
    """
    fee_payer: Pubkey
    freshness: FreshnessToken
    asset: Asset
    total_amount: int
    agent_amount: int
    protocol_fee: int
    operations: List[SettlementOperation] = field(default_factory=list)

    def creation_operations(self) -> List[SettlementOperation]:
        return [op for op in self.operations if op.kind == OperationKind.CREATE_ACCOUNT]

    def transfer_operations(self) -> List[SettlementOperation]:
        return [op for op in self.operations if op.kind == OperationKind.TRANSFER]

    @property
    def created_accounts(self) -> int:
        return len(self.creation_operations())

    def instructions(self) -> List[Instruction]:
        return [op.instruction for op in self.operations]

    def to_transaction(self) -> Transaction:
        """Unsigned transaction for this plan, bound to its blockhash."""
        message = Message.new_with_blockhash(self.instructions(), self.fee_payer, self.freshness.blockhash)
        return Transaction.new_unsigned(message)


def _as_pubkey(name: str, value: Union[Pubkey, str]) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(value)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid {name} address {value!r}: {e}") from e


class TransactionBuilder:
    """
    Compose settlement plans for native and token payments.

    Args:
        ledger: Ledger client for blockhash and account queries
        provisioner: Account provisioner (defaults to one over ``ledger``)
        network: Network whose token registry resolves asset references
    """

    def __init__(
        self,
        ledger: LedgerClient,
        provisioner: Optional[AccountProvisioner] = None,
        network: str = "mainnet",
    ):
        self.ledger = ledger
        self.provisioner = provisioner or AccountProvisioner(ledger)
        self.network = network

    async def build(
        self,
        payer: Union[Pubkey, str],
        agent_payout: Union[Pubkey, str],
        protocol_payout: Union[Pubkey, str],
        total_amount: int,
        protocol_fee_amount: int,
        asset: Union[Asset, str],
    ) -> SettlementPlan:
        """
        Build the settlement plan for one call.

        Args:
            payer: Wallet paying for the call and for any account creation
            agent_payout: Agent's payout wallet
            protocol_payout: Protocol fee wallet
            total_amount: Total price in base units
            protocol_fee_amount: Protocol's share of the total in base units
            asset: Asset or asset reference

        Returns:
            SettlementPlan with creations first, then agent and protocol transfers

        Raises:
            UnsupportedAssetKind: If the asset is neither native nor a known token
            InvalidAmountError: If the amounts are not valid integers
            FreshnessFetchFailed: If the blockhash query fails (not retried here)
            AccountLookupError: If the existence query fails
        """
        resolved_asset = resolve_asset(asset, self.network)
        agent_amount, fee = split_amount(total_amount, protocol_fee_amount)

        payer_key = _as_pubkey("payer", payer)
        agent_key = _as_pubkey("agent payout", agent_payout)
        protocol_key = _as_pubkey("protocol payout", protocol_payout)

        # Fetched per call and never cached across calls
        freshness = await self.ledger.get_freshness_token()

        plan = SettlementPlan(
            fee_payer=payer_key,
            freshness=freshness,
            asset=resolved_asset,
            total_amount=total_amount,
            agent_amount=agent_amount,
            protocol_fee=fee,
        )

        if resolved_asset.is_native:
            plan.operations.append(SettlementOperation(
                kind=OperationKind.TRANSFER,
                recipient=Recipient.AGENT,
                owner=agent_key,
                address=agent_key,
                amount=agent_amount,
                instruction=transfer(TransferParams(from_pubkey=payer_key, to_pubkey=agent_key, lamports=agent_amount)),
            ))
            plan.operations.append(SettlementOperation(
                kind=OperationKind.TRANSFER,
                recipient=Recipient.PROTOCOL,
                owner=protocol_key,
                address=protocol_key,
                amount=fee,
                instruction=transfer(TransferParams(from_pubkey=payer_key, to_pubkey=protocol_key, lamports=fee)),
            ))
        else:
            await self._add_token_operations(plan, payer_key, agent_key, protocol_key)

        logger.debug(
            f"Built settlement plan: asset={resolved_asset.symbol or resolved_asset.mint} "
            f"total={total_amount} agent={agent_amount} fee={fee} "
            f"creations={plan.created_accounts} blockhash={freshness.blockhash}"
        )
        return plan

    async def _add_token_operations(
        self,
        plan: SettlementPlan,
        payer: Pubkey,
        agent: Pubkey,
        protocol: Pubkey,
    ) -> None:
        asset = plan.asset
        mint = Pubkey.from_string(asset.mint)
        # The payer must already hold the token, so its account is not provisioned
        payer_account = derive_associated_account(payer, mint)

        provisioning = await self.provisioner.ensure_accounts(asset, [agent, protocol], payer)
        agent_account, protocol_account = provisioning.resolved_addresses

        for creation in provisioning.creation_ops:
            recipient = Recipient.AGENT if creation.owner == agent else Recipient.PROTOCOL
            plan.operations.append(SettlementOperation(
                kind=OperationKind.CREATE_ACCOUNT,
                recipient=recipient,
                owner=creation.owner,
                address=creation.address,
                instruction=creation.instruction,
            ))

        for recipient, owner, account, amount in (
            (Recipient.AGENT, agent, agent_account, plan.agent_amount),
            (Recipient.PROTOCOL, protocol, protocol_account, plan.protocol_fee),
        ):
            instruction = transfer_checked(TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=payer_account,
                mint=mint,
                dest=account,
                owner=payer,
                amount=amount,
                decimals=asset.decimals,
            ))
            plan.operations.append(SettlementOperation(
                kind=OperationKind.TRANSFER,
                recipient=recipient,
                owner=owner,
                address=account,
                amount=amount,
                instruction=instruction,
            ))
