"""
Data models for the agentcall SDK.
"""
import time
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .version import CONTEXT_VERSION


def _now_ms() -> int:
    return int(time.time() * 1000)


class AgentType(str, Enum):
    """Endpoint class; coordinators call other agents and get longer deadlines."""
    SIMPLE = "simple"
    COORDINATOR = "coordinator"


class Agent(BaseModel):
    """Agent record as registered with the marketplace"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str = ""
    endpoint_url: str = Field(..., alias="endpoint")
    payout_wallet: str = Field(..., alias="owner_wallet")
    input_schema: Dict[str, Any] = Field(default_factory=dict)
    output_schema: Dict[str, Any] = Field(default_factory=dict)
    price_base: int = Field(..., ge=0)
    token_mint: str = "SOL"
    token_decimals: int = Field(9, ge=0)
    fee_bps: Optional[int] = Field(None, ge=0, le=10_000)
    agent_type: AgentType = AgentType.SIMPLE
    timeout_seconds: Optional[float] = Field(None, gt=0)
    is_active: bool = True

    @field_validator("price_base", mode="before")
    @classmethod
    def _integer_price(cls, value: Any) -> Any:
        # Settlement math is integer-only
        if isinstance(value, float) or isinstance(value, bool):
            raise ValueError("price_base must be an integer number of base units")
        return value

    @property
    def is_coordinator(self) -> bool:
        return self.agent_type == AgentType.COORDINATOR


class AgentIdentity(BaseModel):
    """Identity an agent uses when it calls other agents"""
    model_config = ConfigDict(frozen=True)

    agent_id: str
    wallet: str
    name: Optional[str] = None


class CallerContext(BaseModel):
    """
    Caller identity passed to agent endpoints with every request.

    ``caller_agent_id`` is ``None`` when the immediate caller is an end user.
    ``origin_wallet`` and ``call_chain`` keep the chain back to the root caller.
    """
    model_config = ConfigDict(frozen=True)

    caller_wallet: str
    caller_agent_id: Optional[str] = None
    caller_agent_name: Optional[str] = None
    intent_id: str
    timestamp: int = Field(default_factory=_now_ms)
    version: str = CONTEXT_VERSION
    origin_wallet: Optional[str] = None
    call_chain: List[str] = Field(default_factory=list)

    @property
    def is_agent_caller(self) -> bool:
        return self.caller_agent_id is not None

    @property
    def root_wallet(self) -> str:
        return self.origin_wallet or self.caller_wallet

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class CallIntent(BaseModel):
    """A single invocation; lives only for the duration of the call"""
    model_config = ConfigDict(frozen=True)

    intent_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str
    input: Any = None
    caller_wallet: str
    caller_context: Optional[CallerContext] = None
    created_at: int = Field(default_factory=_now_ms)


class Receipt(BaseModel):
    """Immutable audit record of a confirmed settlement"""
    model_config = ConfigDict(frozen=True)

    receipt_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    intent_id: str
    agent_id: str
    agent_name: str = ""
    caller_wallet: str
    caller_agent_id: Optional[str] = None
    payout_wallet: str
    protocol_wallet: str
    asset: str
    token_decimals: int
    total_amount: int
    agent_amount: int
    protocol_fee: int
    input_hash: str
    output_hash: str
    tx_signature: str
    explorer_url: str = ""
    created_accounts: int = 0
    confirmed_at: datetime
