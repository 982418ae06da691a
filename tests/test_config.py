"""
Tests for SDK configuration.
"""
import pytest

from agentcall_sdk.chain.assets import NETWORK_DEFAULTS
from agentcall_sdk.config import AgentCallConfig, get_default_config, load_agent_env
from agentcall_sdk.exceptions import ConfigurationError

from test_helpers import create_test_agent


@pytest.mark.parametrize("network", ["mainnet", "devnet"])
def test_network_defaults(network):
    config = get_default_config(network)
    assert config.rpc_url == NETWORK_DEFAULTS[network]["rpc_url"]
    assert config.protocol_wallet == NETWORK_DEFAULTS[network]["protocol_wallet"]
    assert config.fee_bps == 1000
    assert config.simple_timeout == 20.0
    assert config.coordinator_timeout == 180.0


def test_invalid_network():
    with pytest.raises(ValueError, match="Invalid network"):
        get_default_config("testnet")


@pytest.mark.parametrize("changes", [
    {"fee_bps": 10_001},
    {"confirmation_polls": 0},
    {"commitment": "processed"},
])
def test_invalid_values(changes):
    with pytest.raises(ValueError):
        AgentCallConfig(**changes)


def test_from_env():
    env = {
        "AGENTCALL_NETWORK": "devnet",
        "AGENTCALL_RPC_URL": "https://rpc.example.com",
        "AGENTCALL_AGENT_ID": "agent-from-env",
        "AGENTCALL_FEE_BPS": "500",
        "AGENTCALL_CONFIRMATION_POLLS": "3",
    }
    config = AgentCallConfig.from_env(env)
    assert config.network == "devnet"
    assert config.rpc_url == "https://rpc.example.com"
    assert config.agent_id == "agent-from-env"
    assert config.fee_bps == 500
    assert config.confirmation_polls == 3
    assert config.protocol_wallet == NETWORK_DEFAULTS["devnet"]["protocol_wallet"]


def test_explicit_values_beat_env():
    config = AgentCallConfig.from_env({"AGENTCALL_AGENT_ID": "from-env"}, agent_id="from-config")
    assert config.agent_id == "from-config"


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("AGENTCALL_NETWORK", "devnet")
    assert AgentCallConfig.from_env().network == "devnet"


def test_from_env_rejects_bad_numbers():
    with pytest.raises(ConfigurationError, match="AGENTCALL_FEE_BPS"):
        AgentCallConfig.from_env({"AGENTCALL_FEE_BPS": "ten percent"})


def test_timeout_for_agent_types():
    config = get_default_config("devnet")
    assert config.timeout_for(create_test_agent()) == 20.0
    assert config.timeout_for(create_test_agent(agent_type="coordinator")) == 180.0
    assert config.timeout_for(create_test_agent(timeout_seconds=5)) == 5


def test_with_overrides_keeps_original():
    config = get_default_config("devnet")
    faster = config.with_overrides(simple_timeout=1.0)
    assert faster.simple_timeout == 1.0
    assert config.simple_timeout == 20.0


def test_load_agent_env():
    env = {"ANTHROPIC_API_KEY": "key", "SUMMARIZER_WALLET": ""}
    values = load_agent_env({"ANTHROPIC_API_KEY": "required", "DEBUG": "optional"}, env)
    assert values == {"ANTHROPIC_API_KEY": "key", "DEBUG": None}


def test_load_agent_env_lists_every_missing_variable():
    with pytest.raises(ConfigurationError) as exc_info:
        load_agent_env({"A_KEY": "required", "B_KEY": "required", "C_KEY": "optional"}, {})
    assert "A_KEY" in str(exc_info.value)
    assert "B_KEY" in str(exc_info.value)
    assert "C_KEY" not in str(exc_info.value)


def test_load_agent_env_rejects_unknown_requirement():
    with pytest.raises(ValueError):
        load_agent_env({"A_KEY": "maybe"}, {"A_KEY": "x"})
