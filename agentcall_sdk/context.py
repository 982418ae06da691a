"""
Caller-context propagation.

Every agent request carries a ``CallerContext`` so the agent can tell a
human caller from another agent. When an agent calls sub-agents it derives a
new context that names itself as the calling agent while keeping the chain
back to the original caller.
"""
import logging
import uuid
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from .exceptions import ContextCycleError, ContextError
from .models import AgentIdentity, CallerContext

logger = logging.getLogger(__name__)


def root_context(caller_wallet: str, intent_id: Optional[str] = None) -> CallerContext:
    """
    Context for a call made directly by an end user.

    Args:
        caller_wallet: Wallet paying for the call
        intent_id: Intent identifier (generated when omitted)
    """
    return CallerContext(
        caller_wallet=caller_wallet,
        intent_id=intent_id or str(uuid.uuid4()),
        origin_wallet=caller_wallet,
    )


def from_caller_context(
    parent: Optional[CallerContext],
    local_identity: AgentIdentity,
    intent_id: Optional[str] = None,
) -> CallerContext:
    """
    Derive the context an agent sends when it becomes a caller.

    The new context names ``local_identity`` as the calling agent. The root
    caller and the originating intent are carried over from ``parent``; with
    no parent the call originates from ``local_identity`` itself.

    Args:
        parent: Context the agent received, or None
        local_identity: The agent making the sub-call
        intent_id: Intent identifier for a context with no parent (generated when omitted)

    Returns:
        A new CallerContext

    Raises:
        ContextCycleError: If ``local_identity`` is already in the parent's chain
    """
    if parent is None:
        return CallerContext(
            caller_wallet=local_identity.wallet,
            caller_agent_id=local_identity.agent_id,
            caller_agent_name=local_identity.name,
            intent_id=intent_id or str(uuid.uuid4()),
            origin_wallet=local_identity.wallet,
            call_chain=[local_identity.agent_id],
        )

    if local_identity.agent_id in parent.call_chain:
        raise ContextCycleError(
            f"Agent {local_identity.agent_id} already appears in call chain "
            f"{' -> '.join(parent.call_chain)}"
        )

    chain = list(parent.call_chain)
    # A caller_agent_id missing from the chain came from an older context
    if parent.caller_agent_id and parent.caller_agent_id not in chain:
        chain.append(parent.caller_agent_id)
    chain.append(local_identity.agent_id)

    derived = CallerContext(
        caller_wallet=local_identity.wallet,
        caller_agent_id=local_identity.agent_id,
        caller_agent_name=local_identity.name,
        intent_id=parent.intent_id,
        origin_wallet=parent.root_wallet,
        call_chain=chain,
    )
    logger.debug(f"Derived caller context for {local_identity.agent_id} (depth {len(chain)})")
    return derived


def parse_caller_context(data: Any) -> CallerContext:
    """
    Parse a caller context received over the wire.

    Raises:
        ContextError: If the data is missing or malformed
    """
    if isinstance(data, CallerContext):
        return data
    if not isinstance(data, Mapping):
        raise ContextError("Missing 'caller_context' in request body")
    try:
        return CallerContext.model_validate(dict(data))
    except ValidationError as e:
        raise ContextError(f"Invalid 'caller_context': {e}")


def parse_request_body(body: Any) -> Tuple[Any, CallerContext]:
    """
    Split an agent request body into its input and caller context.

    Args:
        body: Decoded JSON body ``{"input": ..., "caller_context": {...}}``

    Returns:
        Tuple of (input, CallerContext)

    Raises:
        ContextError: If ``input`` or ``caller_context`` is missing
    """
    if not isinstance(body, Mapping):
        raise ContextError("Request body must be a JSON object")
    if body.get("input") is None:
        raise ContextError("Missing 'input' field in request body")
    return body["input"], parse_caller_context(body.get("caller_context"))


def build_request_body(input_value: Any, context: CallerContext) -> Dict[str, Any]:
    """Request body sent to an agent endpoint."""
    return {"input": input_value, "caller_context": context.to_wire()}
