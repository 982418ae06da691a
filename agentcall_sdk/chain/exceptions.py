"""
Exceptions for the chain module.
"""
from ..exceptions import AgentCallError, CallErrorCode


class LedgerError(AgentCallError):
    """Base exception for ledger-related errors."""
    default_code = CallErrorCode.SUBMISSION_FAILED


class UnsupportedAssetKind(LedgerError):
    """Raised when an asset reference is neither the native coin nor a known token."""
    default_code = CallErrorCode.UNSUPPORTED_ASSET_KIND


class AssetDecimalsMismatch(UnsupportedAssetKind):
    """Raised when an agent record disagrees with the token registry about a mint's decimals."""
    default_code = CallErrorCode.ASSET_DECIMALS_MISMATCH


class InvalidAmountError(LedgerError, ValueError):
    """Raised when settlement amounts are not non-negative integers with fee <= total."""
    default_code = CallErrorCode.INVALID_AMOUNT


class FreshnessFetchFailed(LedgerError):
    """Raised when the recent blockhash cannot be fetched."""
    default_code = CallErrorCode.FRESHNESS_FETCH_FAILED


class FreshnessExpiredError(LedgerError):
    """Raised when a transaction's blockhash is no longer accepted by the ledger."""
    default_code = CallErrorCode.FRESHNESS_EXPIRED


class AccountLookupError(LedgerError):
    """Raised when account existence cannot be determined."""
    default_code = CallErrorCode.ACCOUNT_LOOKUP_FAILED


class AccountAlreadyExistsError(LedgerError):
    """Raised when the ledger rejects an account creation because it already exists."""
    default_code = CallErrorCode.ACCOUNT_ALREADY_EXISTS


class LedgerSubmissionError(LedgerError):
    """Raised when the ledger rejects a submitted transaction."""
    default_code = CallErrorCode.SUBMISSION_FAILED
