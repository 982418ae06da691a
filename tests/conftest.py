"""
Pytest fixtures for the agentcall SDK tests.
"""
import pytest

from agentcall_sdk.chain._rate_limited_log import reset_rate_limits
from agentcall_sdk.chain.stub_ledger import StubLedger
from agentcall_sdk.orchestrator import CallOrchestrator
from agentcall_sdk.receipts import InMemoryReceiptStore
from agentcall_sdk.signer.local import KeypairSigner

from test_helpers import FakeEndpoint, create_test_agent, create_test_config


@pytest.fixture(autouse=True)
def _reset_log_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer AGENTCALL_* settings out of the tests."""
    for name in (
        "AGENTCALL_NETWORK", "AGENTCALL_RPC_URL", "AGENTCALL_PROTOCOL_WALLET",
        "AGENTCALL_AGENT_ID", "AGENTCALL_AGENT_NAME", "AGENTCALL_RECEIPT_STORE_PATH",
        "AGENTCALL_FEE_BPS", "AGENTCALL_WALLET_SECRET", "AGENTCALL_INSECURE_ENDPOINTS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def ledger():
    return StubLedger()


@pytest.fixture
def signer():
    return KeypairSigner.generate()


@pytest.fixture
def config():
    return create_test_config()


@pytest.fixture
def agent():
    return create_test_agent()


@pytest.fixture
def endpoint():
    return FakeEndpoint()


@pytest.fixture
def receipts():
    return InMemoryReceiptStore()


@pytest.fixture
def orchestrator(ledger, endpoint, receipts, config):
    return CallOrchestrator(ledger, endpoint=endpoint, receipts=receipts, config=config)
