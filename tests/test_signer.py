"""
Tests for the keypair signer.
"""
import json

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from agentcall_sdk.signer import Signer
from agentcall_sdk.signer.local import KeypairSigner


def test_satisfies_signer_protocol():
    assert isinstance(KeypairSigner.generate(), Signer)


def test_signs_transactions():
    signer = KeypairSigner.generate()
    message = Message.new_with_blockhash([], signer.pubkey, Hash.new_unique())
    tx = signer.sign_transaction(Transaction.new_unsigned(message))
    tx.verify()
    assert tx.signatures[0] != Transaction.new_unsigned(message).signatures[0]


def test_loaders_agree():
    keypair = Keypair()
    secret = list(bytes(keypair))

    assert KeypairSigner.from_secret_bytes(secret).pubkey == keypair.pubkey()
    assert KeypairSigner.from_json(json.dumps(secret)).pubkey == keypair.pubkey()
    assert KeypairSigner.from_base58(str(keypair)).pubkey == keypair.pubkey()


def test_from_file(tmp_path):
    keypair = Keypair()
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(keypair))))
    assert KeypairSigner.from_file(path).address == str(keypair.pubkey())


def test_from_env(monkeypatch):
    keypair = Keypair()
    monkeypatch.setenv("AGENTCALL_WALLET_SECRET", json.dumps(list(bytes(keypair))))
    assert KeypairSigner.from_env().pubkey == keypair.pubkey()

    monkeypatch.setenv("AGENTCALL_WALLET_SECRET", str(keypair))
    assert KeypairSigner.from_env().pubkey == keypair.pubkey()

    monkeypatch.delenv("AGENTCALL_WALLET_SECRET")
    with pytest.raises(ValueError, match="not set"):
        KeypairSigner.from_env()


@pytest.mark.parametrize("data", ["not json", '{"a": 1}', "[1, 2, 3]"])
def test_from_json_rejects_bad_input(data):
    with pytest.raises(ValueError):
        KeypairSigner.from_json(data)


def test_repr_hides_secret():
    keypair = Keypair()
    signer = KeypairSigner(keypair)
    assert repr(signer) == f"KeypairSigner({keypair.pubkey()})"
    assert str(keypair) not in repr(signer)
