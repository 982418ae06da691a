"""
Local keypair signer.
"""
import json
import logging
import os
from pathlib import Path
from typing import Sequence, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

logger = logging.getLogger(__name__)


class KeypairSigner:
    """
    Signer backed by an in-memory Solana keypair.

    Use the ``from_*`` constructors to load keys from solana-keygen JSON
    files, base58 strings or environment variables.
    """

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self._keypair.pubkey())

    def sign_transaction(self, transaction: Transaction) -> Transaction:
        transaction.sign([self._keypair], transaction.message.recent_blockhash)
        return transaction

    @classmethod
    def generate(cls) -> "KeypairSigner":
        return cls(Keypair())

    @classmethod
    def from_secret_bytes(cls, secret: Union[bytes, Sequence[int]]) -> "KeypairSigner":
        """
        Load from a 64-byte secret key (the solana-keygen array format).

        Raises:
            ValueError: If the secret is not 64 bytes
        """
        raw = bytes(secret)
        if len(raw) != 64:
            raise ValueError(f"Secret key must be 64 bytes, got {len(raw)}")
        return cls(Keypair.from_bytes(raw))

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairSigner":
        return cls(Keypair.from_base58_string(secret.strip()))

    @classmethod
    def from_json(cls, data: str) -> "KeypairSigner":
        """Load from a JSON array string such as ``"[12, 34, ...]"``."""
        try:
            values = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Secret key is not valid JSON: {e}")
        if not isinstance(values, list) or not all(isinstance(v, int) for v in values):
            raise ValueError("Secret key JSON must be an array of integers")
        return cls.from_secret_bytes(values)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "KeypairSigner":
        """Load a solana-keygen keypair file."""
        key_path = Path(path).expanduser()
        signer = cls.from_json(key_path.read_text())
        logger.info(f"Loaded signer {signer.address[:6]}… from {key_path}")
        return signer

    @classmethod
    def from_env(cls, var_name: str = "AGENTCALL_WALLET_SECRET") -> "KeypairSigner":
        """
        Load from an environment variable holding a JSON array or base58 secret.

        Raises:
            ValueError: If the variable is unset or malformed
        """
        value = os.environ.get(var_name)
        if not value:
            raise ValueError(f"Environment variable {var_name} is not set")
        value = value.strip()
        if value.startswith("["):
            return cls.from_json(value)
        return cls.from_base58(value)

    def __repr__(self) -> str:
        # Never include key material
        return f"KeypairSigner({self.address})"
