"""
Shared constants and factories for the agentcall SDK tests.
"""
from typing import Any, List, Optional

from solders.pubkey import Pubkey

from agentcall_sdk.chain.assets import NETWORK_DEFAULTS
from agentcall_sdk.config import AgentCallConfig
from agentcall_sdk.exceptions import EndpointTimeoutError
from agentcall_sdk.models import Agent

# Test constants used throughout tests
TEST_NETWORK = "devnet"
TEST_ENDPOINT = "https://agent.example.com/run"
TEST_USDC_MINT = NETWORK_DEFAULTS[TEST_NETWORK]["usdc_mint"]
TEST_PROTOCOL_WALLET = str(Pubkey.new_unique())
TEST_AGENT_WALLET = str(Pubkey.new_unique())

SUMMARY_INPUT_SCHEMA = {
    "type": "object",
    "required": ["text"],
    "properties": {"text": {"type": "string", "minLength": 1}},
}
SUMMARY_OUTPUT_SCHEMA = {
    "type": "object",
    "required": ["summary"],
    "properties": {"summary": {"type": "string"}},
}


def create_test_agent(**overrides: Any) -> Agent:
    """Agent record with a simple summarize contract, priced in lamports."""
    fields = {
        "id": "agent-summarizer",
        "name": "Summarizer",
        "endpoint": TEST_ENDPOINT,
        "owner_wallet": TEST_AGENT_WALLET,
        "input_schema": SUMMARY_INPUT_SCHEMA,
        "output_schema": SUMMARY_OUTPUT_SCHEMA,
        "price_base": 1_000_000,
        "token_mint": "SOL",
        "token_decimals": 9,
        "fee_bps": 2_000,
    }
    fields.update(overrides)
    return Agent(**fields)


def create_test_config(**overrides: Any) -> AgentCallConfig:
    """Devnet config with no confirmation backoff so tests run instantly."""
    fields = {
        "network": TEST_NETWORK,
        "protocol_wallet": TEST_PROTOCOL_WALLET,
        "confirmation_polls": 5,
        "confirmation_backoff": 0,
        "confirmation_backoff_max": 0,
    }
    fields.update(overrides)
    return AgentCallConfig(**fields)


class FakeEndpoint:
    """
    In-process stand-in for AgentEndpointClient.

    Returns ``output`` (or raises ``error``) and records every invocation.
    """

    def __init__(self, output: Any = None, error: Optional[Exception] = None):
        self.output = {"summary": "short"} if output is None else output
        self.error = error
        self.calls: List[dict] = []

    async def invoke(self, agent, input_value, context, timeout):
        self.calls.append({
            "agent": agent,
            "input": input_value,
            "context": context,
            "timeout": timeout,
        })
        if self.error is not None:
            raise self.error
        return self.output

    async def close(self):
        pass


class TimingOutEndpoint(FakeEndpoint):
    """Endpoint that never answers within its deadline."""

    def __init__(self):
        super().__init__(error=EndpointTimeoutError("Agent agent-summarizer did not respond within 20.0s"))
