"""
Client for remote agent endpoints.

Sends ``{"input": ..., "caller_context": ...}`` to the agent's endpoint and
returns the decoded output. The call carries a hard deadline; when it
expires the in-flight request is cancelled.
"""
import asyncio
import json
import logging
import os
import urllib.parse
from typing import Any, Dict, Optional

import httpx

from .context import build_request_body
from .exceptions import (
    EndpointMalformedResponseError, EndpointResponseError, EndpointTimeoutError,
    EndpointTransportError,
)
from .models import Agent, CallerContext
from .utils import sanitize_payload
from .version import __version__

logger = logging.getLogger(__name__)


def validate_endpoint_url(url: str) -> None:
    """
    Validate that an endpoint URL is safe to send requests to.

    Raises:
        ValueError: If the URL is malformed or uses plain HTTP for a remote host
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Invalid endpoint URL '{url}'")
    is_local = parsed.hostname in ("localhost", "127.0.0.1", "::1")
    if parsed.scheme != "https" and not is_local:
        if os.environ.get("AGENTCALL_INSECURE_ENDPOINTS") != "1":
            raise ValueError(
                f"Endpoint URL must use https:// for security (got: {parsed.scheme}://). "
                "Set AGENTCALL_INSECURE_ENDPOINTS=1 to allow HTTP for development."
            )


class AgentEndpointClient:
    """
    Async HTTP client for agent endpoints.

    Args:
        client: Shared ``httpx.AsyncClient`` (one is created when omitted)
        api_key: Optional bearer token sent with every request
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, api_key: Optional[str] = None):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"agentcall-sdk/{__version__}",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def invoke(
        self,
        agent: Agent,
        input_value: Any,
        context: CallerContext,
        timeout: float,
    ) -> Any:
        """
        Invoke an agent endpoint.

        Args:
            agent: Agent being called
            input_value: Validated input
            context: Caller context, sent unchanged
            timeout: Hard deadline in seconds for the whole request

        Returns:
            Decoded JSON output

        Raises:
            EndpointTimeoutError: If the deadline passes
            EndpointTransportError: If the request cannot be encoded or the endpoint cannot be reached
            EndpointResponseError: If the endpoint answers with a non-2xx status
            EndpointMalformedResponseError: If the body is not JSON
        """
        try:
            validate_endpoint_url(agent.endpoint_url)
        except ValueError as e:
            raise EndpointTransportError(str(e))

        body = build_request_body(input_value, context)
        try:
            content = json.dumps(body, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise EndpointTransportError(f"Request for agent {agent.id} is not JSON-encodable: {e}") from e
        logger.debug(
            f"Invoking agent {agent.id} at {agent.endpoint_url} "
            f"(timeout={timeout}s, input={sanitize_payload(input_value)})"
        )

        try:
            response = await asyncio.wait_for(
                self.client.post(
                    agent.endpoint_url,
                    content=content,
                    headers=self._headers(),
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"Agent {agent.id} did not respond within {timeout}s")
            raise EndpointTimeoutError(f"Agent {agent.id} did not respond within {timeout}s") from e
        except httpx.HTTPError as e:
            logger.warning(f"Agent {agent.id} request failed: {e}")
            raise EndpointTransportError(f"Agent {agent.id} request failed: {e}") from e

        if not response.is_success:
            upstream = self._upstream_error(response)
            logger.warning(f"Agent {agent.id} returned HTTP {response.status_code}: {upstream}")
            raise EndpointResponseError(
                f"Agent {agent.id} returned HTTP {response.status_code}"
                + (f": {upstream}" if upstream else ""),
                status_code=response.status_code,
                upstream_error=upstream,
            )

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            logger.warning(f"Unexpected Content-Type from agent {agent.id}: {content_type}")

        try:
            output = response.json()
        except ValueError as e:
            raise EndpointMalformedResponseError(f"Agent {agent.id} returned a non-JSON body: {e}") from e

        logger.debug(f"Agent {agent.id} responded: {sanitize_payload(output)}")
        return output

    @staticmethod
    def _upstream_error(response: httpx.Response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] or None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return None

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
