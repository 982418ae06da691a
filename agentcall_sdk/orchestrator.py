"""
Call orchestrator.

Runs one paid agent call as a fixed sequence of states:

    created -> input_validated -> endpoint_invoked -> output_validated
            -> settled -> receipted

A call only reaches settlement after the agent's output has been checked
against the agent's output schema; every failure path before that point
leaves the ledger untouched.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from solders.pubkey import Pubkey

from .chain._rate_limited_log import rate_limited_log
from .chain.assets import Asset, explorer_url, resolve_agent_asset
from .chain.builder import TransactionBuilder, compute_protocol_fee
from .chain.exceptions import (
    AccountAlreadyExistsError, FreshnessExpiredError, LedgerError,
)
from .chain.ledger import ConfirmationStatus, FreshnessToken, LedgerClient, SolanaLedgerClient
from .config import AgentCallConfig
from .context import from_caller_context, root_context
from .endpoint import AgentEndpointClient
from .exceptions import (
    AgentCallError, CallErrorCode, EndpointError, EndpointMalformedResponseError,
    EndpointResponseError, EndpointTimeoutError, EndpointTransportError, InputRejectedError,
    OutputRejectedError, ReceiptError, SettlementFailedError,
)
from .models import Agent, AgentIdentity, CallerContext, CallIntent, Receipt
from .receipts import InMemoryReceiptStore, JsonFileReceiptStore, ReceiptStore
from .schema import Violation, validate
from .signer import Signer
from .utils import canonical_json, hash_payload, sanitize_payload

logger = logging.getLogger(__name__)

# A plan is rebuilt at most once, for an expired blockhash or a lost account-creation race
MAX_SETTLEMENT_ATTEMPTS = 2


class CallState(str, Enum):
    CREATED = "created"
    INPUT_VALIDATED = "input_validated"
    ENDPOINT_INVOKED = "endpoint_invoked"
    OUTPUT_VALIDATED = "output_validated"
    SETTLED = "settled"
    RECEIPTED = "receipted"

    INPUT_REJECTED = "input_rejected"
    ENDPOINT_FAILED = "endpoint_failed"
    OUTPUT_REJECTED = "output_rejected"
    SETTLEMENT_FAILED = "settlement_failed"

    @property
    def is_failure(self) -> bool:
        return self in FAILURE_STATES


FAILURE_STATES = frozenset({
    CallState.INPUT_REJECTED,
    CallState.ENDPOINT_FAILED,
    CallState.OUTPUT_REJECTED,
    CallState.SETTLEMENT_FAILED,
})


@dataclass
class CallOutcome:
    """
    Result of one call.

    ``state`` is the final state and ``history`` every state the call passed
    through. A failed call carries a stable ``error_code``; a call that
    settled carries the transaction signature even if the receipt could not
    be stored.
    """
    intent_id: str
    agent_id: str
    state: CallState = CallState.CREATED
    history: List[CallState] = field(default_factory=lambda: [CallState.CREATED])
    error_code: Optional[CallErrorCode] = None
    error_message: Optional[str] = None
    violations: List[Violation] = field(default_factory=list)
    endpoint_status: Optional[int] = None
    output: Any = None
    tx_signature: Optional[str] = None
    receipt_id: Optional[str] = None
    agent_received: int = 0
    protocol_fee: int = 0
    created_accounts: int = 0
    submitted_transactions: int = 0
    explorer_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True once the call has settled on-chain."""
        return self.state in (CallState.SETTLED, CallState.RECEIPTED)

    @property
    def paid(self) -> bool:
        return self.ok

    def raise_for_state(self) -> "CallOutcome":
        """
        Raise the matching exception for a failed outcome.

        Returns:
            self, when the call completed with a stored receipt

        Raises:
            InputRejectedError, EndpointError subclass, OutputRejectedError,
            SettlementFailedError, or ReceiptError when settlement succeeded
            but the receipt was not stored. AgentCallError for any other
            error recorded on a settled call.
        """
        message = self.error_message or (self.error_code.value if self.error_code else self.state.value)
        if self.state == CallState.INPUT_REJECTED:
            raise InputRejectedError(message, violations=self.violations, error_code=self.error_code)
        if self.state == CallState.ENDPOINT_FAILED:
            if self.error_code == CallErrorCode.ENDPOINT_TIMEOUT:
                raise EndpointTimeoutError(message)
            if self.error_code == CallErrorCode.ENDPOINT_ERROR_STATUS:
                raise EndpointResponseError(message, status_code=self.endpoint_status or 0)
            if self.error_code == CallErrorCode.ENDPOINT_MALFORMED_RESPONSE:
                raise EndpointMalformedResponseError(message)
            raise EndpointTransportError(message)
        if self.state == CallState.OUTPUT_REJECTED:
            raise OutputRejectedError(message, violations=self.violations)
        if self.state == CallState.SETTLEMENT_FAILED:
            raise SettlementFailedError(message, error_code=self.error_code, tx_signature=self.tx_signature)
        if self.error_code == CallErrorCode.RECEIPT_PERSIST_FAILED:
            raise ReceiptError(f"{message} (transaction {self.tx_signature})")
        if self.error_code is not None:
            raise AgentCallError(f"{message} (transaction {self.tx_signature})", error_code=self.error_code)
        return self


@dataclass
class CallRequest:
    """One entry of a fan-out passed to ``CallOrchestrator.call_many``."""
    agent: Agent
    input: Any
    signer: Signer
    caller_context: Optional[CallerContext] = None


class _PollResult(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"
    TIMEOUT = "timeout"


class CallOrchestrator:
    """
    Runs paid agent calls.

    Args:
        ledger: Ledger client used for settlement
        endpoint: Agent endpoint client (defaults to a new ``AgentEndpointClient``)
        receipts: Receipt store (defaults to an in-memory store)
        config: SDK configuration (defaults to mainnet)
        builder: Transaction builder (defaults to one over ``ledger``)

    The signer is not held by the orchestrator; pass one to every call.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        endpoint: Optional[AgentEndpointClient] = None,
        receipts: Optional[ReceiptStore] = None,
        config: Optional[AgentCallConfig] = None,
        builder: Optional[TransactionBuilder] = None,
    ):
        self.ledger = ledger
        self.endpoint = endpoint or AgentEndpointClient()
        self.receipts = receipts if receipts is not None else InMemoryReceiptStore()
        self.config = config or AgentCallConfig()
        self.builder = builder or TransactionBuilder(ledger, network=self.config.network)

    @classmethod
    def from_config(cls, config: Optional[AgentCallConfig] = None) -> "CallOrchestrator":
        """Orchestrator wired to a Solana RPC node and the JSON receipt store."""
        config = config or AgentCallConfig.from_env()
        ledger = SolanaLedgerClient(config.rpc_url, commitment=config.commitment)
        receipts = JsonFileReceiptStore(config.receipt_store_path)
        return cls(ledger, receipts=receipts, config=config)

    async def __aenter__(self) -> "CallOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.endpoint.close()
        await self.ledger.close()

    def _advance(self, outcome: CallOutcome, state: CallState) -> None:
        outcome.state = state
        outcome.history.append(state)
        logger.info(f"Call {outcome.intent_id} to {outcome.agent_id}: {state.value}")

    def _fail(
        self,
        outcome: CallOutcome,
        state: CallState,
        code: CallErrorCode,
        message: str,
        violations: Optional[List[Violation]] = None,
    ) -> CallOutcome:
        outcome.error_code = code
        outcome.error_message = message
        outcome.violations = list(violations or [])
        self._advance(outcome, state)
        if state == CallState.SETTLEMENT_FAILED:
            # The caller holds a valid result that was not paid for
            logger.error(
                f"Settlement failed for call {outcome.intent_id} to {outcome.agent_id} "
                f"[{code.value}]: {message}"
                + (f" (last signature {outcome.tx_signature})" if outcome.tx_signature else "")
            )
        else:
            logger.warning(f"Call {outcome.intent_id} to {outcome.agent_id} failed [{code.value}]: {message}")
        return outcome

    def _context_for(self, intent_id: str, payer: str, supplied: Optional[CallerContext]) -> CallerContext:
        if supplied is not None:
            return supplied
        if self.config.agent_id:
            identity = AgentIdentity(agent_id=self.config.agent_id, wallet=payer, name=self.config.agent_name)
            return from_caller_context(None, identity, intent_id=intent_id)
        return root_context(payer, intent_id)

    async def call(
        self,
        agent: Agent,
        input_value: Any,
        signer: Signer,
        caller_context: Optional[CallerContext] = None,
    ) -> CallOutcome:
        """
        Call an agent and settle payment for a valid result.

        Args:
            agent: Agent to call
            input_value: Input checked against ``agent.input_schema``
            signer: Payer's signing capability, used only for this call
            caller_context: Context to forward unchanged; built from the
                payer (and ``config.agent_id`` when set) when omitted

        Returns:
            CallOutcome describing the final state. Protocol failures are
            reported in the outcome, not raised.
        """
        outcome = CallOutcome(intent_id=str(uuid.uuid4()), agent_id=agent.id)
        return await self._run(outcome, agent, input_value, signer, caller_context)

    async def _run(
        self,
        outcome: CallOutcome,
        agent: Agent,
        input_value: Any,
        signer: Signer,
        caller_context: Optional[CallerContext],
    ) -> CallOutcome:
        payer = str(signer.pubkey)
        context = self._context_for(outcome.intent_id, payer, caller_context)
        intent = CallIntent(
            intent_id=outcome.intent_id,
            agent_id=agent.id,
            input=input_value,
            caller_wallet=payer,
            caller_context=context,
        )
        logger.info(f"Call {intent.intent_id} to {agent.id} created by {payer}")

        # created -> input_validated
        if not agent.is_active:
            return self._fail(outcome, CallState.INPUT_REJECTED, CallErrorCode.AGENT_INACTIVE,
                              f"Agent {agent.id} is not active")

        result = validate(intent.input, agent.input_schema)
        if not result.ok:
            return self._fail(outcome, CallState.INPUT_REJECTED, CallErrorCode.INPUT_REJECTED,
                              f"Input rejected: {'; '.join(result.messages())}", result.violations)
        try:
            canonical_json(intent.input)
        except (TypeError, ValueError) as e:
            return self._fail(outcome, CallState.INPUT_REJECTED, CallErrorCode.INPUT_REJECTED,
                              f"Input is not JSON-encodable: {e}")

        try:
            asset = resolve_agent_asset(
                agent.token_mint, agent.token_decimals, self.config.network, self.config.extra_tokens
            )
            fee_bps = agent.fee_bps if agent.fee_bps is not None else self.config.fee_bps
            protocol_fee = compute_protocol_fee(agent.price_base, fee_bps)
            Pubkey.from_string(agent.payout_wallet)
            Pubkey.from_string(self.config.protocol_wallet)
        except AgentCallError as e:
            return self._fail(outcome, CallState.INPUT_REJECTED, e.error_code, str(e))
        except ValueError as e:
            return self._fail(outcome, CallState.INPUT_REJECTED, CallErrorCode.INPUT_REJECTED,
                              f"Invalid payout address: {e}")

        self._advance(outcome, CallState.INPUT_VALIDATED)

        # input_validated -> endpoint_invoked
        self._advance(outcome, CallState.ENDPOINT_INVOKED)
        timeout = self.config.timeout_for(agent)
        try:
            output = await self.endpoint.invoke(agent, intent.input, context, timeout)
        except EndpointError as e:
            if isinstance(e, EndpointResponseError):
                outcome.endpoint_status = e.status_code
            return self._fail(outcome, CallState.ENDPOINT_FAILED, e.error_code, str(e))

        # endpoint_invoked -> output_validated
        result = validate(output, agent.output_schema)
        if not result.ok:
            logger.debug(f"Rejected output for call {intent.intent_id}: {sanitize_payload(output)}")
            return self._fail(outcome, CallState.OUTPUT_REJECTED, CallErrorCode.OUTPUT_REJECTED,
                              f"Output rejected: {'; '.join(result.messages())}", result.violations)
        try:
            canonical_json(output)
        except (TypeError, ValueError) as e:
            return self._fail(outcome, CallState.OUTPUT_REJECTED, CallErrorCode.OUTPUT_REJECTED,
                              f"Output is not JSON-encodable: {e}")
        outcome.output = output
        self._advance(outcome, CallState.OUTPUT_VALIDATED)

        # output_validated -> settled
        plan = await self._settle(outcome, agent, asset, protocol_fee, signer)
        if plan is None:
            return outcome
        self._advance(outcome, CallState.SETTLED)

        # settled -> receipted
        receipt = Receipt(
            intent_id=intent.intent_id,
            agent_id=agent.id,
            agent_name=agent.name,
            caller_wallet=payer,
            caller_agent_id=context.caller_agent_id,
            payout_wallet=agent.payout_wallet,
            protocol_wallet=self.config.protocol_wallet,
            asset=asset.mint or asset.symbol,
            token_decimals=asset.decimals,
            total_amount=plan.total_amount,
            agent_amount=plan.agent_amount,
            protocol_fee=plan.protocol_fee,
            input_hash=hash_payload(intent.input),
            output_hash=hash_payload(output),
            tx_signature=outcome.tx_signature,
            explorer_url=outcome.explorer_url or "",
            created_accounts=plan.created_accounts,
            confirmed_at=datetime.now(timezone.utc),
        )
        try:
            await asyncio.to_thread(self.receipts.save, receipt)
        except (ReceiptError, OSError) as e:
            # Payment went through; the outcome stays settled and keeps its signature
            outcome.error_code = CallErrorCode.RECEIPT_PERSIST_FAILED
            outcome.error_message = f"Receipt could not be stored: {e}"
            logger.error(
                f"Call {intent.intent_id} settled in {outcome.tx_signature} "
                f"but the receipt could not be stored: {e}"
            )
            return outcome

        outcome.receipt_id = receipt.receipt_id
        self._advance(outcome, CallState.RECEIPTED)
        return outcome

    async def _settle(
        self,
        outcome: CallOutcome,
        agent: Agent,
        asset: Asset,
        protocol_fee: int,
        signer: Signer,
    ):
        """Build, sign, submit and confirm. Returns the confirmed plan, or None after failing the outcome."""
        for attempt in range(1, MAX_SETTLEMENT_ATTEMPTS + 1):
            can_retry = attempt < MAX_SETTLEMENT_ATTEMPTS

            try:
                plan = await self.builder.build(
                    payer=signer.pubkey,
                    agent_payout=agent.payout_wallet,
                    protocol_payout=self.config.protocol_wallet,
                    total_amount=agent.price_base,
                    protocol_fee_amount=protocol_fee,
                    asset=asset,
                )
            except LedgerError as e:
                self._fail(outcome, CallState.SETTLEMENT_FAILED, e.error_code, str(e))
                return None

            try:
                transaction = signer.sign_transaction(plan.to_transaction())
            except Exception as e:
                self._fail(outcome, CallState.SETTLEMENT_FAILED, CallErrorCode.SIGNING_FAILED,
                           f"Signing failed: {e}")
                return None

            try:
                signature = await self.ledger.submit_transaction(transaction)
            except (FreshnessExpiredError, AccountAlreadyExistsError) as e:
                if can_retry:
                    logger.warning(f"Submission for call {outcome.intent_id} rejected ({e}); rebuilding plan")
                    continue
                self._fail(outcome, CallState.SETTLEMENT_FAILED, e.error_code, str(e))
                return None
            except LedgerError as e:
                self._fail(outcome, CallState.SETTLEMENT_FAILED, e.error_code, str(e))
                return None

            outcome.submitted_transactions += 1
            outcome.tx_signature = signature
            outcome.explorer_url = explorer_url(signature, self.config.network)
            logger.info(f"Call {outcome.intent_id} submitted settlement {signature}")

            result, status = await self._await_confirmation(signature, plan.freshness)
            if result == _PollResult.CONFIRMED:
                outcome.agent_received = plan.agent_amount
                outcome.protocol_fee = plan.protocol_fee
                outcome.created_accounts = plan.created_accounts
                return plan
            if result == _PollResult.EXPIRED:
                if can_retry:
                    logger.warning(
                        f"Settlement {signature} expired at height {plan.freshness.last_valid_block_height}; "
                        "rebuilding plan"
                    )
                    continue
                self._fail(outcome, CallState.SETTLEMENT_FAILED, CallErrorCode.FRESHNESS_EXPIRED,
                           f"Transaction {signature} expired before confirmation")
                return None
            if result == _PollResult.FAILED:
                self._fail(outcome, CallState.SETTLEMENT_FAILED, CallErrorCode.TRANSACTION_FAILED,
                           f"Transaction {signature} failed: {status.err if status else 'unknown error'}")
                return None
            self._fail(outcome, CallState.SETTLEMENT_FAILED, CallErrorCode.CONFIRMATION_TIMEOUT,
                       f"Transaction {signature} not confirmed after {self.config.confirmation_polls} polls")
            return None
        return None

    async def _await_confirmation(self, signature: str, freshness: FreshnessToken):
        delay = self.config.confirmation_backoff
        polls = self.config.confirmation_polls
        for poll in range(1, polls + 1):
            status: ConfirmationStatus = await self.ledger.confirm(signature)
            if status.is_confirmed:
                logger.info(f"Transaction {signature} confirmed after {poll} poll(s)")
                return _PollResult.CONFIRMED, status
            if status.is_failed:
                return _PollResult.FAILED, status

            try:
                height = await self.ledger.get_block_height()
            except LedgerError as e:
                logger.debug(f"Block height query failed while confirming {signature}: {e}")
                height = None
            if height is not None and height > freshness.last_valid_block_height:
                # Past this height the transaction can no longer land; check once more
                final = await self.ledger.confirm(signature)
                if final.is_confirmed:
                    return _PollResult.CONFIRMED, final
                return _PollResult.EXPIRED, final

            rate_limited_log(
                f"Transaction {signature} not yet confirmed (poll {poll}/{polls})",
                level="info",
                interval=30,
                logger_instance=logger,
                key=f"confirm:{signature}",
            )
            if poll < polls:
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.config.confirmation_backoff_max)
        return _PollResult.TIMEOUT, None

    async def call_many(self, requests: Iterable[CallRequest]) -> List[CallOutcome]:
        """
        Run independent calls concurrently.

        Each call is ordered internally; no ordering holds between calls.
        One outcome is returned per request, in request order, whether it
        succeeded or failed.
        """
        return list(await asyncio.gather(*(self._call_isolated(r) for r in requests)))

    async def _call_isolated(self, request: CallRequest) -> CallOutcome:
        outcome = CallOutcome(intent_id=str(uuid.uuid4()), agent_id=request.agent.id)
        try:
            return await self._run(outcome, request.agent, request.input, request.signer,
                                   request.caller_context)
        except Exception as e:
            logger.exception(f"Call {outcome.intent_id} to {outcome.agent_id} raised unexpectedly")
            return self._abort(outcome, e)

    def _abort(self, outcome: CallOutcome, error: Exception) -> CallOutcome:
        """Close an outcome interrupted by an unexpected error in the state it had reached."""
        message = f"Unexpected {type(error).__name__}: {error}"
        if outcome.state == CallState.SETTLED:
            # Paid; keep the signature and report the missing receipt
            outcome.error_code = CallErrorCode.INTERNAL_ERROR
            outcome.error_message = message
            return outcome
        if outcome.state == CallState.OUTPUT_VALIDATED:
            return self._fail(outcome, CallState.SETTLEMENT_FAILED, CallErrorCode.INTERNAL_ERROR, message)
        if outcome.state == CallState.ENDPOINT_INVOKED:
            return self._fail(outcome, CallState.ENDPOINT_FAILED, CallErrorCode.INTERNAL_ERROR, message)
        return self._fail(outcome, CallState.INPUT_REJECTED, CallErrorCode.INTERNAL_ERROR, message)
