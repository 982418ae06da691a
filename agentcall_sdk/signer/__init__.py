"""
Signer interface for settlement transactions.

Signing key material is passed into each call as a capability; the SDK
never keeps a process-wide signer.
"""
from typing import Protocol, runtime_checkable

from solders.pubkey import Pubkey
from solders.transaction import Transaction


@runtime_checkable
class Signer(Protocol):
    """Protocol for transaction signers"""

    @property
    def pubkey(self) -> Pubkey:
        """Public key of the paying wallet"""
        ...

    def sign_transaction(self, transaction: Transaction) -> Transaction:
        """Sign transaction and return the signed transaction"""
        ...


__all__ = ["Signer"]
