"""
Utility functions for hashing and log-safe payload handling.
"""
import json
import hashlib
from typing import Any, Dict


def canonical_json(value: Any) -> str:
    """
    Serialize a value to canonical JSON (sorted keys, compact separators).

    Args:
        value: Any JSON-serializable value

    Returns:
        Canonical JSON string

    Raises:
        TypeError: If the value holds a type JSON cannot represent
        ValueError: If the value holds NaN or an infinite float
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def sha256_hex(data: Any) -> str:
    """
    Compute the SHA-256 hex digest of a string or bytes.

    Args:
        data: String or bytes to hash

    Returns:
        Lowercase hex digest (64 chars)
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hash_payload(value: Any) -> str:
    """
    Content hash used in receipts: SHA-256 over the canonical JSON form.

    Two payloads that differ only in key order hash identically.
    """
    return sha256_hex(canonical_json(value))


def sanitize_payload(payload: Any, max_keys: int = 10) -> Dict[str, Any]:
    """
    Summarize a payload for logging without exposing its contents.

    Args:
        payload: Agent input or output value
        max_keys: Maximum number of top-level keys to list

    Returns:
        Dictionary describing the payload's shape and size
    """
    try:
        size = len(canonical_json(payload))
    except (TypeError, ValueError):
        return {"type": type(payload).__name__, "serializable": False}

    summary: Dict[str, Any] = {"type": type(payload).__name__, "size": size}
    if isinstance(payload, dict):
        keys = sorted(str(k) for k in payload.keys())
        summary["keys"] = keys[:max_keys]
        if len(keys) > max_keys:
            summary["keys_truncated"] = len(keys) - max_keys
    elif isinstance(payload, list):
        summary["items"] = len(payload)
    return summary
