"""
agentcall SDK.

Call price-tagged remote agents and settle payment on Solana only when the
agent returns output that matches its declared schema.
"""
from .config import AgentCallConfig, get_default_config, load_agent_env
from .context import build_request_body, from_caller_context, parse_request_body, root_context
from .endpoint import AgentEndpointClient
from .exceptions import (
    AgentCallError, CallErrorCode, ConfigurationError, ContextCycleError, ContextError,
    EndpointError, EndpointMalformedResponseError, EndpointResponseError, EndpointTimeoutError,
    EndpointTransportError, InputRejectedError, OutputRejectedError, ReceiptError,
    ReceiptExistsError, ReceiptNotFoundError, SchemaValidationError, SettlementFailedError,
)
from .models import Agent, AgentIdentity, AgentType, CallerContext, CallIntent, Receipt
from .orchestrator import CallOrchestrator, CallOutcome, CallRequest, CallState
from .receipts import InMemoryReceiptStore, JsonFileReceiptStore, ReceiptStore
from .schema import ValidationResult, Violation, require_valid, validate
from .signer import Signer
from .signer.local import KeypairSigner
from .version import __version__

__all__ = [
    'AgentCallConfig', 'get_default_config', 'load_agent_env',
    'build_request_body', 'from_caller_context', 'parse_request_body', 'root_context',
    'AgentEndpointClient',
    'AgentCallError', 'CallErrorCode', 'ConfigurationError', 'ContextCycleError', 'ContextError',
    'EndpointError', 'EndpointMalformedResponseError', 'EndpointResponseError', 'EndpointTimeoutError',
    'EndpointTransportError', 'InputRejectedError', 'OutputRejectedError', 'ReceiptError',
    'ReceiptExistsError', 'ReceiptNotFoundError', 'SchemaValidationError', 'SettlementFailedError',
    'Agent', 'AgentIdentity', 'AgentType', 'CallerContext', 'CallIntent', 'Receipt',
    'CallOrchestrator', 'CallOutcome', 'CallRequest', 'CallState',
    'InMemoryReceiptStore', 'JsonFileReceiptStore', 'ReceiptStore',
    'ValidationResult', 'Violation', 'require_valid', 'validate',
    'Signer', 'KeypairSigner',
    '__version__',
]
