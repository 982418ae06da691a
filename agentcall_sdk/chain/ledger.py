"""
Ledger client layer.

This module provides an abstraction over the chain query/submit interface
used by the settlement core, and the Solana JSON-RPC implementation of it.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.rpc.errors import SendTransactionPreflightFailureMessage
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import (
    InstructionErrorCustom, TransactionConfirmationStatus, TransactionErrorFieldless,
    TransactionErrorInstructionError,
)
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID

from .exceptions import (
    LedgerError, FreshnessFetchFailed, FreshnessExpiredError, AccountLookupError,
    AccountAlreadyExistsError, LedgerSubmissionError,
)

logger = logging.getLogger(__name__)

# getMultipleAccounts accepts at most 100 keys per request
MAX_ACCOUNTS_PER_QUERY = 100

# Text markers, used only when the node returns no structured error
_EXPIRED_MARKERS = ("blockhash not found", "blockhashnotfound", "block height exceeded")
_ALREADY_EXISTS_MARKERS = ("already in use", "accountalreadyinuse", "already exists")

# SystemError::AccountAlreadyInUse, raised through the associated-token program's create
ACCOUNT_ALREADY_IN_USE_CODE = 0


@dataclass(frozen=True)
class FreshnessToken:
    """
    Recent chain reference that makes a transaction valid.

    The ledger rejects the transaction once the block height passes
    ``last_valid_block_height``.
    """
    blockhash: Hash
    last_valid_block_height: int


class ConfirmationState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass(frozen=True)
class ConfirmationStatus:
    """Status of a submitted transaction."""
    state: ConfirmationState
    err: Any = None

    @property
    def is_confirmed(self) -> bool:
        return self.state in (ConfirmationState.CONFIRMED, ConfirmationState.FINALIZED)

    @property
    def is_failed(self) -> bool:
        return self.state == ConfirmationState.FAILED


def _is_account_creation_race(
    err: TransactionErrorInstructionError,
    transaction: Optional[Transaction],
) -> bool:
    if transaction is None or not isinstance(err.err, InstructionErrorCustom):
        return False
    if err.err.code != ACCOUNT_ALREADY_IN_USE_CODE:
        return False
    message = transaction.message
    if err.index >= len(message.instructions):
        return False
    program_id = message.account_keys[message.instructions[err.index].program_id_index]
    return program_id == ASSOCIATED_TOKEN_PROGRAM_ID


def classify_submission_error(error: Any, transaction: Optional[Transaction] = None) -> type:
    """
    Map a ledger rejection to the matching exception class.

    A preflight failure is classified on the transaction error it carries:
    an unknown blockhash means the transaction expired, and an
    account-already-in-use failure counts only when it comes from one of the
    transaction's account-creation instructions. Anything else the node
    reports without a structured error falls back to its text.

    Args:
        error: Error payload from ``RPCException``, or its message
        transaction: The rejected transaction, used to locate the failing instruction

    Returns:
        FreshnessExpiredError, AccountAlreadyExistsError or LedgerSubmissionError
    """
    if isinstance(error, SendTransactionPreflightFailureMessage):
        err = error.data.err
        if isinstance(err, TransactionErrorFieldless) and err == TransactionErrorFieldless.BlockhashNotFound:
            return FreshnessExpiredError
        if isinstance(err, TransactionErrorInstructionError) and _is_account_creation_race(err, transaction):
            return AccountAlreadyExistsError
        return LedgerSubmissionError

    lowered = str(error).lower()
    if any(marker in lowered for marker in _EXPIRED_MARKERS):
        return FreshnessExpiredError
    if any(marker in lowered for marker in _ALREADY_EXISTS_MARKERS):
        return AccountAlreadyExistsError
    return LedgerSubmissionError


class LedgerClient(ABC):
    """
    Abstract base class for ledger clients.

    All methods are coroutines; each one is a suspension point that does not
    block other concurrent calls.
    """

    @abstractmethod
    async def get_freshness_token(self) -> FreshnessToken:
        """
        Fetch a recent blockhash and its validity height.

        Raises:
            FreshnessFetchFailed: If the query fails
        """
        pass

    @abstractmethod
    async def accounts_exist(self, addresses: Sequence[Pubkey]) -> List[bool]:
        """
        Check which accounts exist on-chain.

        Returns:
            One boolean per address, in order

        Raises:
            AccountLookupError: If the query fails
        """
        pass

    async def account_exists(self, address: Pubkey) -> bool:
        """Check whether a single account exists on-chain."""
        return (await self.accounts_exist([address]))[0]

    @abstractmethod
    async def submit_transaction(self, transaction: Transaction) -> str:
        """
        Submit a signed transaction.

        Returns:
            Transaction signature (base58)

        Raises:
            FreshnessExpiredError: If the blockhash is no longer valid
            AccountAlreadyExistsError: If an account creation lost a race
            LedgerSubmissionError: For any other rejection
        """
        pass

    @abstractmethod
    async def confirm(self, signature: str) -> ConfirmationStatus:
        """Report the current status of a submitted transaction."""
        pass

    @abstractmethod
    async def get_block_height(self) -> int:
        """Current block height."""
        pass

    async def close(self) -> None:
        """Close any open connections or resources."""
        pass


class SolanaLedgerClient(LedgerClient):
    """
    Ledger client backed by a Solana JSON-RPC node.

    Args:
        rpc_url: RPC endpoint URL
        commitment: Commitment used for reads and confirmation ("confirmed" or "finalized")
        timeout: Per-request timeout in seconds
        client: Pre-built AsyncClient (mainly for tests)
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        timeout: float = 30.0,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.commitment: Commitment = Finalized if commitment == "finalized" else Confirmed
        self.client = client or AsyncClient(rpc_url, commitment=self.commitment, timeout=timeout)
        logger.debug(f"Initialized Solana ledger client for {rpc_url} ({self.commitment})")

    async def get_freshness_token(self) -> FreshnessToken:
        try:
            resp = await self.client.get_latest_blockhash(commitment=self.commitment)
        except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
            logger.error(f"Failed to fetch latest blockhash: {e}")
            raise FreshnessFetchFailed(f"Failed to fetch latest blockhash: {e}") from e
        value = resp.value
        token = FreshnessToken(
            blockhash=value.blockhash,
            last_valid_block_height=value.last_valid_block_height,
        )
        logger.debug(f"Fetched blockhash {token.blockhash} valid until height {token.last_valid_block_height}")
        return token

    async def accounts_exist(self, addresses: Sequence[Pubkey]) -> List[bool]:
        results: List[bool] = []
        keys = list(addresses)
        for start in range(0, len(keys), MAX_ACCOUNTS_PER_QUERY):
            batch = keys[start:start + MAX_ACCOUNTS_PER_QUERY]
            try:
                resp = await self.client.get_multiple_accounts(batch, commitment=self.commitment)
            except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
                logger.error(f"Account lookup failed: {e}")
                raise AccountLookupError(f"Account lookup failed: {e}") from e
            results.extend(account is not None for account in resp.value)
        return results

    async def submit_transaction(self, transaction: Transaction) -> str:
        opts = TxOpts(skip_preflight=False, preflight_commitment=self.commitment)
        try:
            resp = await self.client.send_raw_transaction(bytes(transaction), opts=opts)
        except RPCException as e:
            detail = e.args[0] if e.args else e
            message = str(detail)
            error_cls = classify_submission_error(detail, transaction)
            logger.warning(f"Transaction rejected by ledger ({error_cls.__name__}): {message}")
            raise error_cls(f"Transaction rejected: {message}") from e
        except (SolanaRpcException, httpx.HTTPError) as e:
            logger.error(f"Failed to send transaction: {e}")
            raise LedgerSubmissionError(f"Failed to send transaction: {e}") from e

        signature = str(resp.value)
        logger.info(f"Transaction sent: {signature}")
        return signature

    async def confirm(self, signature: str) -> ConfirmationStatus:
        try:
            resp = await self.client.get_signature_statuses([Signature.from_string(signature)])
        except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
            # A failed status query is not a failed transaction; keep polling
            logger.warning(f"Signature status query failed for {signature}: {e}")
            return ConfirmationStatus(ConfirmationState.PENDING)

        statuses = resp.value
        status = statuses[0] if statuses else None
        if status is None:
            return ConfirmationStatus(ConfirmationState.PENDING)
        if status.err is not None:
            return ConfirmationStatus(ConfirmationState.FAILED, err=status.err)

        level = status.confirmation_status
        if level == TransactionConfirmationStatus.Finalized:
            return ConfirmationStatus(ConfirmationState.FINALIZED)
        if level == TransactionConfirmationStatus.Confirmed and self.commitment == Confirmed:
            return ConfirmationStatus(ConfirmationState.CONFIRMED)
        return ConfirmationStatus(ConfirmationState.PENDING)

    async def get_block_height(self) -> int:
        try:
            resp = await self.client.get_block_height(commitment=self.commitment)
        except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
            raise LedgerError(f"Failed to fetch block height: {e}") from e
        return resp.value

    async def close(self) -> None:
        await self.client.close()
