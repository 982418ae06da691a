"""
In-memory ledger implementation.

This module provides a ledger that needs no RPC node. It tracks account
existence, blockhash validity and submitted transactions so that the call
protocol can be exercised end to end in development and tests.
"""
import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID

from .exceptions import FreshnessExpiredError, FreshnessFetchFailed
from .ledger import ConfirmationState, ConfirmationStatus, FreshnessToken, LedgerClient

logger = logging.getLogger(__name__)

# Roughly how many blocks a Solana blockhash stays valid
BLOCKHASH_VALIDITY = 150


class StubLedger(LedgerClient):
    """
    A simple in-memory ledger.

    Args:
        existing_accounts: Accounts that already exist on the simulated chain
        block_height: Starting block height
        confirm_after: Number of ``confirm`` polls that report pending before confirmation
    """

    def __init__(
        self,
        existing_accounts: Optional[Iterable[Pubkey]] = None,
        block_height: int = 1_000,
        confirm_after: int = 0,
    ):
        self.existing_accounts: Set[Pubkey] = set(existing_accounts or [])
        self.block_height = block_height
        self.confirm_after = confirm_after

        self.submitted: List[Transaction] = []
        self.calls: Counter = Counter()
        self.freshness_error: Optional[Exception] = None
        self.submit_errors: List[Exception] = []
        self.failed_signatures: Set[str] = set()
        self.never_confirm = False
        self.fail_transactions = False

        self._issued: Dict[Hash, int] = {}
        self._polls: Counter = Counter()
        self._landed: Set[str] = set()

    @property
    def interactions(self) -> int:
        """Total number of calls made against this ledger."""
        return sum(self.calls.values())

    def advance_blocks(self, count: int) -> None:
        """Move the simulated chain forward."""
        self.block_height += count

    async def get_freshness_token(self) -> FreshnessToken:
        self.calls["get_freshness_token"] += 1
        if self.freshness_error is not None:
            raise FreshnessFetchFailed(f"Failed to fetch latest blockhash: {self.freshness_error}")
        blockhash = Hash.new_unique()
        last_valid = self.block_height + BLOCKHASH_VALIDITY
        self._issued[blockhash] = last_valid
        return FreshnessToken(blockhash=blockhash, last_valid_block_height=last_valid)

    async def accounts_exist(self, addresses: Sequence[Pubkey]) -> List[bool]:
        self.calls["accounts_exist"] += 1
        return [address in self.existing_accounts for address in addresses]

    async def submit_transaction(self, transaction: Transaction) -> str:
        self.calls["submit_transaction"] += 1
        if self.submit_errors:
            raise self.submit_errors.pop(0)

        blockhash = transaction.message.recent_blockhash
        last_valid = self._issued.get(blockhash)
        if last_valid is None or self.block_height > last_valid:
            raise FreshnessExpiredError("Transaction rejected: Blockhash not found")

        self.submitted.append(transaction)
        signature = str(transaction.signatures[0])
        self._apply(transaction)
        self._landed.add(signature)
        if self.fail_transactions:
            self.failed_signatures.add(signature)
        logger.debug(f"StubLedger accepted transaction {signature}")
        return signature

    def _apply(self, transaction: Transaction) -> None:
        # Only account creation changes state the settlement core can observe
        message = transaction.message
        keys = message.account_keys
        for compiled in message.instructions:
            program = keys[compiled.program_id_index]
            if program == ASSOCIATED_TOKEN_PROGRAM_ID:
                created = keys[compiled.accounts[1]]
                self.existing_accounts.add(created)

    async def confirm(self, signature: str) -> ConfirmationStatus:
        self.calls["confirm"] += 1
        if signature not in self._landed:
            return ConfirmationStatus(ConfirmationState.PENDING)
        if signature in self.failed_signatures:
            return ConfirmationStatus(ConfirmationState.FAILED, err="InstructionError")
        if self.never_confirm:
            return ConfirmationStatus(ConfirmationState.PENDING)
        self._polls[signature] += 1
        if self._polls[signature] <= self.confirm_after:
            return ConfirmationStatus(ConfirmationState.PENDING)
        return ConfirmationStatus(ConfirmationState.CONFIRMED)

    async def get_block_height(self) -> int:
        self.calls["get_block_height"] += 1
        return self.block_height
