"""
Exceptions for the agentcall SDK.

Every failure cause has its own stable ``CallErrorCode`` so that callers
never need to match on message strings.
"""
from enum import Enum
from typing import Any, List, Optional


class CallErrorCode(str, Enum):
    """
    Stable classification of call failures.

    The value is what appears in ``CallOutcome.error_code`` and in logs.
    """
    INPUT_REJECTED = "input_rejected"
    AGENT_INACTIVE = "agent_inactive"
    CONTEXT_INVALID = "context_invalid"

    ENDPOINT_TIMEOUT = "endpoint_timeout"
    ENDPOINT_TRANSPORT = "endpoint_transport"
    ENDPOINT_ERROR_STATUS = "endpoint_error_status"
    ENDPOINT_MALFORMED_RESPONSE = "endpoint_malformed_response"

    OUTPUT_REJECTED = "output_rejected"

    UNSUPPORTED_ASSET_KIND = "unsupported_asset_kind"
    ASSET_DECIMALS_MISMATCH = "asset_decimals_mismatch"
    INVALID_AMOUNT = "invalid_amount"
    FRESHNESS_FETCH_FAILED = "freshness_fetch_failed"
    FRESHNESS_EXPIRED = "freshness_expired"
    ACCOUNT_ALREADY_EXISTS = "account_already_exists"
    ACCOUNT_LOOKUP_FAILED = "account_lookup_failed"
    SIGNING_FAILED = "signing_failed"
    SUBMISSION_FAILED = "submission_failed"
    TRANSACTION_FAILED = "transaction_failed"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"

    RECEIPT_PERSIST_FAILED = "receipt_persist_failed"

    INTERNAL_ERROR = "internal_error"


class AgentCallError(Exception):
    """Base exception for all agentcall SDK errors."""

    default_code: Optional[CallErrorCode] = None

    def __init__(self, message: str, error_code: Optional[CallErrorCode] = None):
        self.error_code = error_code or self.default_code
        super().__init__(message)


class ConfigurationError(AgentCallError):
    """Raised when required configuration is missing or invalid."""
    pass


class SchemaValidationError(AgentCallError):
    """Raised by ``require_valid`` when a value does not match its schema."""

    default_code = CallErrorCode.INPUT_REJECTED

    def __init__(self, message: str, violations: Optional[List[Any]] = None,
                 error_code: Optional[CallErrorCode] = None):
        self.violations = list(violations or [])
        super().__init__(message, error_code)


class InputRejectedError(SchemaValidationError):
    """Caller input failed validation. The caller is not charged."""
    default_code = CallErrorCode.INPUT_REJECTED


class OutputRejectedError(SchemaValidationError):
    """Agent output failed validation. The caller is not charged."""
    default_code = CallErrorCode.OUTPUT_REJECTED


class EndpointError(AgentCallError):
    """Base class for failures talking to a remote agent endpoint."""
    default_code = CallErrorCode.ENDPOINT_TRANSPORT


class EndpointTimeoutError(EndpointError):
    """The agent endpoint did not answer within its deadline."""
    default_code = CallErrorCode.ENDPOINT_TIMEOUT


class EndpointTransportError(EndpointError):
    """Connection-level failure reaching the agent endpoint."""
    default_code = CallErrorCode.ENDPOINT_TRANSPORT


class EndpointResponseError(EndpointError):
    """The agent endpoint answered with a non-success status."""

    default_code = CallErrorCode.ENDPOINT_ERROR_STATUS

    def __init__(self, message: str, status_code: int, upstream_error: Optional[str] = None):
        self.status_code = status_code
        self.upstream_error = upstream_error
        super().__init__(message)


class EndpointMalformedResponseError(EndpointError):
    """The agent endpoint answered with a body that is not JSON."""
    default_code = CallErrorCode.ENDPOINT_MALFORMED_RESPONSE


class SettlementFailedError(AgentCallError):
    """
    A valid result was produced but payment could not be confirmed.

    Raised by ``CallOutcome.raise_for_state``. ``tx_signature`` is set when a
    transaction reached the ledger before the failure.
    """

    default_code = CallErrorCode.SUBMISSION_FAILED

    def __init__(self, message: str, error_code: Optional[CallErrorCode] = None,
                 tx_signature: Optional[str] = None):
        self.tx_signature = tx_signature
        super().__init__(message, error_code)


class ContextError(AgentCallError):
    """Raised when a caller context is missing or malformed."""
    default_code = CallErrorCode.CONTEXT_INVALID


class ContextCycleError(ContextError):
    """Raised when deriving a context would make the call chain cyclic."""
    pass


class ReceiptError(AgentCallError):
    """Base class for receipt store errors."""
    default_code = CallErrorCode.RECEIPT_PERSIST_FAILED


class ReceiptExistsError(ReceiptError):
    """Raised when a receipt id or transaction signature is stored twice."""
    pass


class ReceiptNotFoundError(ReceiptError):
    """Raised when a receipt lookup finds nothing."""
    pass
