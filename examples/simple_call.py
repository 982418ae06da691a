#!/usr/bin/env python3
"""
Simple example of calling a paid agent with the agentcall SDK.
"""
import asyncio
import os

from agentcall_sdk import Agent, AgentCallConfig, CallOrchestrator, CallState, KeypairSigner


async def main():
    """
    Demonstrate a single paid call.

    This example shows how to:
    1. Load configuration and a wallet from the environment
    2. Describe the agent being called
    3. Call it and inspect the outcome
    """
    if not os.environ.get("AGENTCALL_WALLET_SECRET"):
        print("ERROR: AGENTCALL_WALLET_SECRET environment variable is required")
        return

    config = AgentCallConfig.from_env(network=os.environ.get("AGENTCALL_NETWORK", "devnet"))
    signer = KeypairSigner.from_env()

    agent = Agent(
        id="title-generator",
        name="Title Generator",
        endpoint=os.environ.get("AGENT_ENDPOINT", "https://agents.example.com/title-generator"),
        owner_wallet=os.environ.get("AGENT_WALLET", str(signer.pubkey)),
        input_schema={
            "type": "object",
            "required": ["text"],
            "properties": {"text": {"type": "string", "minLength": 1}},
        },
        output_schema={
            "type": "object",
            "required": ["title"],
            "properties": {"title": {"type": "string"}},
        },
        price_base=10_000,
        token_mint="USDC",
        token_decimals=6,
    )

    async with CallOrchestrator.from_config(config) as orchestrator:
        outcome = await orchestrator.call(agent, {"text": "Solana settles in about 400ms."}, signer)

    if outcome.state == CallState.RECEIPTED:
        print(f"Output: {outcome.output}")
        print(f"Agent received: {outcome.agent_received} (fee {outcome.protocol_fee})")
        print(f"Receipt: {outcome.receipt_id}")
        print(f"Explorer: {outcome.explorer_url}")
    else:
        print(f"Call ended in {outcome.state.value}: [{outcome.error_code.value}] {outcome.error_message}")
        for violation in outcome.violations:
            print(f"  {violation}")


if __name__ == "__main__":
    asyncio.run(main())
