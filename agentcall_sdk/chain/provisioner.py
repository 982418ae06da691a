"""
Associated token account provisioning.

Token transfers on Solana go to an associated token account (ATA) that is
derived from (owner, mint). A recipient whose ATA does not exist yet cannot
receive a token transfer, so the settlement transaction has to create it.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from .assets import Asset
from .ledger import LedgerClient
from .exceptions import UnsupportedAssetKind

logger = logging.getLogger(__name__)

# Associated token program instruction tags
_CREATE = 0
_CREATE_IDEMPOTENT = 1


def derive_associated_account(
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """
    Derive the associated token account address for an owner and mint.

    Pure and deterministic: no network access, and the result does not depend
    on whether the account exists.
    """
    address, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program_id), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def create_associated_account_instruction(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    idempotent: bool = True,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """
    Build the payer-funded instruction that creates an owner's ATA.

    The idempotent form succeeds when the account already exists, so two
    callers racing to create the same account both settle.
    """
    address = derive_associated_account(owner, mint, token_program_id)
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_program_id, is_signer=False, is_writable=False),
    ]
    data = bytes([_CREATE_IDEMPOTENT if idempotent else _CREATE])
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, data, accounts)


@dataclass(frozen=True)
class AccountCreation:
    """A single account-creation operation."""
    owner: Pubkey
    address: Pubkey
    instruction: Instruction


@dataclass
class ProvisioningResult:
    """
    Outcome of ``AccountProvisioner.ensure_accounts``.

    ``resolved_addresses`` lines up with the recipients passed in.
    """
    resolved_addresses: List[Pubkey]
    creation_ops: List[AccountCreation] = field(default_factory=list)
    existed_count: int = 0
    created_count: int = 0

    @property
    def total(self) -> int:
        return self.existed_count + self.created_count


class AccountProvisioner:
    """
    Determine which recipient accounts must be created before a transfer.

    Args:
        ledger: Ledger client used for existence checks
        idempotent: Emit idempotent creation instructions (default True)
    """

    def __init__(self, ledger: LedgerClient, idempotent: bool = True):
        self.ledger = ledger
        self.idempotent = idempotent

    async def ensure_accounts(
        self,
        asset: Asset,
        recipients: Sequence[Pubkey],
        payer: Pubkey,
    ) -> ProvisioningResult:
        """
        Resolve recipient addresses for an asset and list missing accounts.

        Args:
            asset: Settlement asset
            recipients: Recipient wallet identities
            payer: Wallet that funds account creation

        Returns:
            ProvisioningResult with one creation op per missing account

        Raises:
            UnsupportedAssetKind: If a token asset has no mint
            AccountLookupError: If the existence query fails
        """
        if asset.is_native:
            # Native transfers go straight to the wallet
            return ProvisioningResult(resolved_addresses=list(recipients))

        if not asset.mint:
            raise UnsupportedAssetKind(f"Token asset {asset.symbol or asset!r} has no mint address")

        try:
            mint = Pubkey.from_string(asset.mint)
        except ValueError as e:
            raise UnsupportedAssetKind(f"Invalid mint address {asset.mint!r}: {e}") from e
        resolved = [derive_associated_account(owner, mint) for owner in recipients]

        # Same owner listed twice shares one account
        unique: Dict[Pubkey, Pubkey] = {}
        for owner, address in zip(recipients, resolved):
            unique.setdefault(address, owner)
        addresses = list(unique)

        exists = await self.ledger.accounts_exist(addresses)

        result = ProvisioningResult(resolved_addresses=resolved)
        for address, present in zip(addresses, exists):
            owner = unique[address]
            if present:
                result.existed_count += 1
                continue
            instruction = create_associated_account_instruction(
                payer, owner, mint, idempotent=self.idempotent
            )
            result.creation_ops.append(AccountCreation(owner=owner, address=address, instruction=instruction))
            result.created_count += 1
            logger.debug(f"Account {address} for owner {owner} missing; creation funded by {payer}")

        logger.debug(
            f"Accounts for mint {asset.mint}: {result.existed_count} existing, "
            f"{result.created_count} to be created"
        )
        return result
