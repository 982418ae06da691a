"""
SDK configuration.

Values are layered: explicit constructor arguments win, then ``AGENTCALL_*``
environment variables, then the network defaults.
"""
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional

from .chain.assets import Asset, NETWORK_DEFAULTS
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_FEE_BPS = 1000
SIMPLE_ENDPOINT_TIMEOUT = 20.0
COORDINATOR_ENDPOINT_TIMEOUT = 180.0


@dataclass
class AgentCallConfig:
    """
    Settings shared by every call an orchestrator makes.

    Attributes:
        network: ``"mainnet"`` or ``"devnet"``
        rpc_url: Solana RPC endpoint
        protocol_wallet: Wallet receiving the protocol fee
        fee_bps: Protocol fee in basis points, used when the agent sets none
        simple_timeout: Endpoint deadline for simple agents, in seconds
        coordinator_timeout: Endpoint deadline for coordinator agents, in seconds
        confirmation_polls: Maximum number of confirmation polls
        confirmation_backoff: Delay before the second poll, doubled after each poll
        confirmation_backoff_max: Upper bound on the poll delay
        commitment: ``"confirmed"`` or ``"finalized"``
        agent_id: Identity used when this process calls agents as a coordinator
        agent_name: Display name for ``agent_id``
        receipt_store_path: Path of the JSON receipt store
        extra_tokens: Additional settlement tokens keyed by mint address
    """
    network: str = "mainnet"
    rpc_url: Optional[str] = None
    protocol_wallet: Optional[str] = None
    fee_bps: int = DEFAULT_FEE_BPS
    simple_timeout: float = SIMPLE_ENDPOINT_TIMEOUT
    coordinator_timeout: float = COORDINATOR_ENDPOINT_TIMEOUT
    confirmation_polls: int = 10
    confirmation_backoff: float = 0.5
    confirmation_backoff_max: float = 8.0
    commitment: str = "confirmed"
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    receipt_store_path: Optional[str] = None
    extra_tokens: Dict[str, Asset] = field(default_factory=dict)

    def __post_init__(self):
        if self.network not in NETWORK_DEFAULTS:
            raise ValueError(
                f"Invalid network: {self.network}. Must be one of {', '.join(sorted(NETWORK_DEFAULTS))}"
            )
        defaults = NETWORK_DEFAULTS[self.network]
        if not self.rpc_url:
            self.rpc_url = defaults["rpc_url"]
        if not self.protocol_wallet:
            self.protocol_wallet = defaults["protocol_wallet"]
        if not 0 <= self.fee_bps <= 10_000:
            raise ValueError(f"fee_bps must be between 0 and 10000, got {self.fee_bps}")
        if self.confirmation_polls < 1:
            raise ValueError("confirmation_polls must be at least 1")
        if self.commitment not in ("confirmed", "finalized"):
            raise ValueError(f"commitment must be 'confirmed' or 'finalized', got {self.commitment!r}")

    def timeout_for(self, agent) -> float:
        """Endpoint deadline for an agent: its own override, else by agent type."""
        if agent.timeout_seconds:
            return agent.timeout_seconds
        return self.coordinator_timeout if agent.is_coordinator else self.simple_timeout

    def with_overrides(self, **changes) -> "AgentCallConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides) -> "AgentCallConfig":
        """
        Build a config from ``AGENTCALL_*`` environment variables.

        Keyword overrides take priority over the environment.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
            ValueError: If the network is invalid
        """
        env = os.environ if env is None else env
        values: Dict[str, object] = {}

        string_vars = {
            "network": "AGENTCALL_NETWORK",
            "rpc_url": "AGENTCALL_RPC_URL",
            "protocol_wallet": "AGENTCALL_PROTOCOL_WALLET",
            "commitment": "AGENTCALL_COMMITMENT",
            "agent_id": "AGENTCALL_AGENT_ID",
            "agent_name": "AGENTCALL_AGENT_NAME",
            "receipt_store_path": "AGENTCALL_RECEIPT_STORE_PATH",
        }
        for attr, var in string_vars.items():
            if env.get(var):
                values[attr] = env[var]

        numeric_vars = {
            "fee_bps": ("AGENTCALL_FEE_BPS", int),
            "simple_timeout": ("AGENTCALL_SIMPLE_TIMEOUT", float),
            "coordinator_timeout": ("AGENTCALL_COORDINATOR_TIMEOUT", float),
            "confirmation_polls": ("AGENTCALL_CONFIRMATION_POLLS", int),
        }
        for attr, (var, convert) in numeric_vars.items():
            raw = env.get(var)
            if raw:
                try:
                    values[attr] = convert(raw)
                except ValueError:
                    raise ConfigurationError(f"{var} must be a number, got {raw!r}")

        # Explicit values beat the environment
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)
        logger.debug(f"Loaded config for {config.network} (rpc={config.rpc_url})")
        return config


def get_default_config(network: str = "mainnet") -> AgentCallConfig:
    """
    Default configuration for a network.

    Raises:
        ValueError: If the network is unknown
    """
    return AgentCallConfig(network=network)


def load_agent_env(
    spec: Mapping[str, str],
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Optional[str]]:
    """
    Load environment variables an agent service depends on.

    Args:
        spec: Mapping of variable name to ``"required"`` or ``"optional"``
        env: Environment to read (defaults to ``os.environ``)

    Returns:
        Mapping of variable name to value (``None`` for unset optional variables)

    Raises:
        ConfigurationError: Listing every missing required variable
        ValueError: If a spec entry is neither required nor optional
    """
    env = os.environ if env is None else env
    values: Dict[str, Optional[str]] = {}
    missing = []

    for name, requirement in spec.items():
        if requirement not in ("required", "optional"):
            raise ValueError(f"{name}: expected 'required' or 'optional', got {requirement!r}")
        value = env.get(name)
        if not value and requirement == "required":
            missing.append(name)
        values[name] = value or None

    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )
    return values
