"""
Chain module for the agentcall SDK.

This module builds and submits settlement transactions on Solana: asset
resolution, associated-account provisioning, transaction building and the
ledger client interface.
"""
from .assets import (
    Asset, AssetKind, NETWORK_DEFAULTS, explorer_url, from_base_units,
    get_token_mint, known_tokens, resolve_agent_asset, resolve_asset, to_base_units,
)
from .builder import (
    OperationKind, Recipient, SettlementOperation, SettlementPlan, TransactionBuilder,
    compute_protocol_fee, split_amount,
)
from .exceptions import (
    AccountAlreadyExistsError, AccountLookupError, AssetDecimalsMismatch, FreshnessExpiredError,
    FreshnessFetchFailed, InvalidAmountError, LedgerError, LedgerSubmissionError,
    UnsupportedAssetKind,
)
from .ledger import (
    ConfirmationState, ConfirmationStatus, FreshnessToken, LedgerClient, SolanaLedgerClient,
)
from .provisioner import (
    AccountCreation, AccountProvisioner, ProvisioningResult, derive_associated_account,
)
from .stub_ledger import StubLedger

__all__ = [
    'Asset', 'AssetKind', 'NETWORK_DEFAULTS', 'explorer_url', 'from_base_units',
    'get_token_mint', 'known_tokens', 'resolve_agent_asset', 'resolve_asset', 'to_base_units',
    'OperationKind', 'Recipient', 'SettlementOperation', 'SettlementPlan', 'TransactionBuilder',
    'compute_protocol_fee', 'split_amount',
    'AccountAlreadyExistsError', 'AccountLookupError', 'AssetDecimalsMismatch', 'FreshnessExpiredError',
    'FreshnessFetchFailed', 'InvalidAmountError', 'LedgerError', 'LedgerSubmissionError',
    'UnsupportedAssetKind',
    'ConfirmationState', 'ConfirmationStatus', 'FreshnessToken', 'LedgerClient', 'SolanaLedgerClient',
    'AccountCreation', 'AccountProvisioner', 'ProvisioningResult', 'derive_associated_account',
    'StubLedger',
]
