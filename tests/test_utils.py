"""
Tests for hashing and payload helpers.
"""
import pytest

from agentcall_sdk.utils import canonical_json, hash_payload, sanitize_payload, sha256_hex


def test_canonical_json_is_order_independent():
    assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
    assert hash_payload({"b": 1, "a": 2}) == hash_payload({"a": 2, "b": 1})


def test_sha256_hex():
    assert sha256_hex("hello") == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
    assert sha256_hex(b"hello") == sha256_hex("hello")


def test_sanitize_payload_hides_values():
    summary = sanitize_payload({"text": "secret prompt", "lang": "en"})
    assert summary["type"] == "dict"
    assert summary["keys"] == ["lang", "text"]
    assert "secret prompt" not in str(summary)


def test_sanitize_payload_truncates_keys():
    summary = sanitize_payload({f"k{i:02d}": i for i in range(15)}, max_keys=10)
    assert len(summary["keys"]) == 10
    assert summary["keys_truncated"] == 5


def test_sanitize_payload_non_serializable():
    assert sanitize_payload(object()) == {"type": "object", "serializable": False}
    assert sanitize_payload([1, 2, 3])["items"] == 3


@pytest.mark.parametrize("value", [float("nan"), {"w": float("inf")}, {"tags": {"a"}}, {"blob": b"x"}])
def test_canonical_json_rejects_values_json_cannot_carry(value):
    with pytest.raises((TypeError, ValueError)):
        canonical_json(value)


def test_sanitize_payload_summarizes_nan_without_raising():
    assert sanitize_payload({"w": float("nan")}) == {"type": "dict", "serializable": False}
