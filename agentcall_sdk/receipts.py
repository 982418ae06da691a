"""
Receipt storage.

Receipts are append-only: a stored receipt is never modified or deleted,
and the same receipt id or transaction signature cannot be stored twice.
"""
import json
import logging
import os
import stat
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import portalocker

from .exceptions import ReceiptError, ReceiptExistsError, ReceiptNotFoundError
from .models import Receipt

logger = logging.getLogger(__name__)

DEFAULT_RECEIPT_STORE_PATH = "~/.agentcall/receipts.json"


def validate_receipt_id(receipt_id: str) -> str:
    """
    Check that a receipt identifier is a UUID.

    Raises:
        ValueError: If the identifier is not a valid UUID
    """
    try:
        return str(uuid.UUID(str(receipt_id)))
    except ValueError:
        raise ValueError(f"Invalid receipt id '{receipt_id}': must be a UUID")


class ReceiptStore(ABC):
    """Abstract base class for receipt stores."""

    @abstractmethod
    def save(self, receipt: Receipt) -> None:
        """
        Persist a receipt.

        Raises:
            ReceiptExistsError: If the receipt id or signature is already stored
            ReceiptError: If the receipt cannot be persisted
        """
        pass

    @abstractmethod
    def get(self, receipt_id: str) -> Receipt:
        """
        Look up a receipt by identifier.

        Raises:
            ValueError: If ``receipt_id`` is not a UUID
            ReceiptNotFoundError: If no receipt has that identifier
        """
        pass

    @abstractmethod
    def find_by_signature(self, tx_signature: str) -> Optional[Receipt]:
        pass

    @abstractmethod
    def find_by_intent(self, intent_id: str) -> List[Receipt]:
        pass

    @abstractmethod
    def list(self) -> List[Receipt]:
        pass


class InMemoryReceiptStore(ReceiptStore):
    """Thread-safe receipt store held in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._receipts: Dict[str, Receipt] = {}
        self._by_signature: Dict[str, str] = {}

    def save(self, receipt: Receipt) -> None:
        with self._lock:
            if receipt.receipt_id in self._receipts:
                raise ReceiptExistsError(f"Receipt {receipt.receipt_id} already exists")
            if receipt.tx_signature in self._by_signature:
                raise ReceiptExistsError(f"A receipt for transaction {receipt.tx_signature} already exists")
            self._receipts[receipt.receipt_id] = receipt
            self._by_signature[receipt.tx_signature] = receipt.receipt_id
        logger.debug(f"Stored receipt {receipt.receipt_id} for {receipt.tx_signature}")

    def get(self, receipt_id: str) -> Receipt:
        receipt_id = validate_receipt_id(receipt_id)
        with self._lock:
            receipt = self._receipts.get(receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(f"Receipt {receipt_id} not found")
        return receipt

    def find_by_signature(self, tx_signature: str) -> Optional[Receipt]:
        with self._lock:
            receipt_id = self._by_signature.get(tx_signature)
            return self._receipts.get(receipt_id) if receipt_id else None

    def find_by_intent(self, intent_id: str) -> List[Receipt]:
        with self._lock:
            return [r for r in self._receipts.values() if r.intent_id == intent_id]

    def list(self) -> List[Receipt]:
        with self._lock:
            return list(self._receipts.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._receipts)


class JsonFileReceiptStore(ReceiptStore):
    """Thread-safe and process-safe receipt store backed by a JSON file"""

    def __init__(self, store_path: Optional[str] = None):
        """
        Initialize the receipt store.

        Args:
            store_path: Optional custom path for the receipt file
        """
        # Use AGENTCALL_RECEIPT_STORE_PATH or default to ~/.agentcall/receipts.json
        if store_path:
            self.store_path = Path(store_path).expanduser()
        else:
            default_path = os.environ.get("AGENTCALL_RECEIPT_STORE_PATH", DEFAULT_RECEIPT_STORE_PATH)
            self.store_path = Path(default_path).expanduser()

        self._ensure_dir()

    def _ensure_dir(self):
        """Ensure the store directory and file exist with proper permissions"""
        directory = self.store_path.parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            if os.name == 'posix':
                os.chmod(directory, stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR)  # 0700

        if not self.store_path.exists():
            with portalocker.Lock(self._get_lock_path(), timeout=10):
                if not self.store_path.exists():
                    self._write_unlocked({"receipts": {}})

        if os.name == 'posix':
            os.chmod(self.store_path, stat.S_IRUSR | stat.S_IWUSR)  # 0600

    def _get_lock_path(self) -> str:
        return str(self.store_path) + '.lock'

    def _read_unlocked(self) -> Dict[str, Any]:
        try:
            with open(self.store_path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {"receipts": {}}
        except json.JSONDecodeError as e:
            # An unreadable audit log must not be silently replaced
            raise ReceiptError(f"Receipt store {self.store_path} is corrupt: {e}")
        data.setdefault("receipts", {})
        return data

    def _write_unlocked(self, data: Dict[str, Any]) -> None:
        tmp_path = self.store_path.with_suffix(self.store_path.suffix + '.tmp')
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        if os.name == 'posix':
            os.chmod(tmp_path, stat.S_IRUSR | stat.S_IWUSR)
        os.replace(tmp_path, self.store_path)

    def read(self) -> Dict[str, Any]:
        """
        Read the store with proper locking.

        Returns:
            Dictionary with store contents
        """
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            return self._read_unlocked()

    def _receipts(self) -> List[Receipt]:
        return [Receipt.model_validate(entry) for entry in self.read()["receipts"].values()]

    def save(self, receipt: Receipt) -> None:
        try:
            with portalocker.Lock(self._get_lock_path(), timeout=10):
                store = self._read_unlocked()
                entries = store["receipts"]
                if receipt.receipt_id in entries:
                    raise ReceiptExistsError(f"Receipt {receipt.receipt_id} already exists")
                if any(entry.get("tx_signature") == receipt.tx_signature for entry in entries.values()):
                    raise ReceiptExistsError(f"A receipt for transaction {receipt.tx_signature} already exists")
                entries[receipt.receipt_id] = receipt.model_dump(mode="json")
                self._write_unlocked(store)
        except portalocker.exceptions.LockException as e:
            raise ReceiptError(f"Could not lock receipt store {self.store_path}: {e}")
        except OSError as e:
            raise ReceiptError(f"Could not write receipt store {self.store_path}: {e}")
        logger.debug(f"Stored receipt {receipt.receipt_id} in {self.store_path}")

    def get(self, receipt_id: str) -> Receipt:
        receipt_id = validate_receipt_id(receipt_id)
        entry = self.read()["receipts"].get(receipt_id)
        if entry is None:
            raise ReceiptNotFoundError(f"Receipt {receipt_id} not found")
        return Receipt.model_validate(entry)

    def find_by_signature(self, tx_signature: str) -> Optional[Receipt]:
        for receipt in self._receipts():
            if receipt.tx_signature == tx_signature:
                return receipt
        return None

    def find_by_intent(self, intent_id: str) -> List[Receipt]:
        return [r for r in self._receipts() if r.intent_id == intent_id]

    def list(self) -> List[Receipt]:
        return self._receipts()
