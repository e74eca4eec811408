"""
Agent-side transport.

GatewayClient POSTs envelopes to the gateway the same way the admin page
scripts do: JSON body, anti-forgery token in the X-CSRF-Token header.
When the configuration carries no token, the client fetches one from the
client configuration endpoint on first use.
"""

from typing import Any, Mapping, Optional, Union

import httpx

from .config import CLIENT_CONFIG_PATH, GatewayConfig
from .envelope import Envelope, Identifier, Operation
from .proxy_logger import log_debug, log_warn
from .tokens import CSRF_HEADER

DEFAULT_TIMEOUT_SECONDS = 30.0


class GatewayCallError(Exception):
    """The gateway answered with a non-2xx status or an unreadable body."""

    def __init__(self, message: str, status: Optional[int] = None, result: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.result = result


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict) and body.get("message"):
        if body.get("details"):
            return f"{body['message']}: {body['details']}"
        return str(body["message"])
    return f"Gateway error {status}"


class GatewayClient:
    """
    Async client for the gateway endpoint.

    An injected httpx.AsyncClient (e.g. one bound to the ASGI app in tests)
    is used as-is and never closed by this class.
    """

    def __init__(
        self,
        config: GatewayConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.config = config
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None
        self._token = config.csrf_token

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.gateway_base_url(),
                timeout=self.timeout,
            )
        return self._client

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def token(self) -> Optional[str]:
        """The anti-forgery token, fetched from the config endpoint if not configured."""
        if self._token is None:
            response = await self._http().get(CLIENT_CONFIG_PATH)
            if response.is_success:
                try:
                    self._token = response.json().get("csrf_token")
                except ValueError:
                    log_warn("Client config endpoint returned a non-JSON body")
        return self._token

    async def send(self, envelope: Union[Envelope, Mapping[str, Any]]) -> dict[str, Any]:
        """
        POST one envelope to the gateway.

        Returns:
            The full ResultEnvelope on a 2xx response

        Raises:
            GatewayCallError: non-2xx status, or a body that is not a JSON object
        """
        payload = envelope.to_wire() if isinstance(envelope, Envelope) else dict(envelope)

        headers = {"Content-Type": "application/json"}
        token = await self.token()
        if token:
            headers[CSRF_HEADER] = token

        response = await self._http().post(self.config.proxy_url, json=payload, headers=headers)

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            message = _error_message(body, response.status_code)
            log_debug(f"Gateway call {payload.get('operation')} failed: {response.status_code}")
            raise GatewayCallError(
                message,
                status=response.status_code,
                result=body if isinstance(body, dict) else None,
            )

        if not isinstance(body, dict):
            raise GatewayCallError(f"Gateway error {response.status_code}", status=response.status_code)

        return body

    async def call(
        self,
        operation: Operation,
        resource_type: str,
        id: Optional[Identifier] = None,
        query: Optional[Mapping[str, Any]] = None,
        data: Any = None,
        ids: Optional[list] = None,
    ) -> dict[str, Any]:
        """Build an envelope from keyword fields and send it."""
        envelope = Envelope(
            operation=operation,
            resource_type=resource_type,
            id=id,
            query=dict(query or {}),
            data=data,
            ids=list(ids or []),
        )
        return await self.send(envelope)
