#!/usr/bin/env python3
"""
Example coordinator agent that fans out to sub-agents.

The handler receives ``{"input", "caller_context"}``, derives its own
context for the sub-calls and returns whatever the sub-agents produced,
tagging the ones that failed.
"""
import asyncio
import json
import logging

from agentcall_sdk import (
    Agent, AgentCallConfig, AgentIdentity, CallOrchestrator, CallRequest, CallState, KeypairSigner,
    from_caller_context, load_agent_env, parse_request_body,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def sub_agent(agent_id: str, endpoint: str, wallet: str) -> Agent:
    return Agent(
        id=agent_id,
        endpoint=endpoint,
        owner_wallet=wallet,
        input_schema={"type": "object", "required": ["text"]},
        output_schema={"type": "object"},
        price_base=5_000,
        token_mint="USDC",
        token_decimals=6,
    )


async def handle(body: dict, orchestrator: CallOrchestrator, identity: AgentIdentity, signer) -> dict:
    input_value, received = parse_request_body(body)
    context = from_caller_context(received, identity)
    logger.info(f"Called by {received.caller_agent_id or received.caller_wallet}; chain {context.call_chain}")

    agents = [
        sub_agent("summarizer", "https://agents.example.com/summarize", identity.wallet),
        sub_agent("sentiment", "https://agents.example.com/sentiment", identity.wallet),
    ]
    outcomes = await orchestrator.call_many(
        CallRequest(agent, input_value, signer, caller_context=context) for agent in agents
    )

    return {
        agent.id: (
            {"ok": True, "output": o.output, "tx": o.tx_signature}
            if o.state == CallState.RECEIPTED
            else {"ok": False, "error": o.error_code.value if o.error_code else o.state.value}
        )
        for agent, o in zip(agents, outcomes)
    }


async def main():
    env = load_agent_env({"AGENTCALL_WALLET_SECRET": "required", "AGENTCALL_AGENT_ID": "required"})
    config = AgentCallConfig.from_env()
    signer = KeypairSigner.from_env()
    identity = AgentIdentity(agent_id=env["AGENTCALL_AGENT_ID"], wallet=signer.address, name=config.agent_name)

    request = {
        "input": {"text": "The launch went well and customers are happy."},
        "caller_context": {"caller_wallet": signer.address, "intent_id": "demo-intent"},
    }
    async with CallOrchestrator.from_config(config) as orchestrator:
        result = await handle(request, orchestrator, identity, signer)
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
