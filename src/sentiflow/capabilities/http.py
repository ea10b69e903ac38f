"""
Remote task invocation over HTTP.

The payload is POSTed as JSON to the capability URL. The response body is
either the output object itself or an envelope holding it under
`result_path` (``{"Payload": {...}}`` by default, the shape a function
invocation API returns). Envelopes describing a function error
(``errorMessage``/``errorType``) count as invocation failures.
"""

import json
from typing import Any

import httpx

from ..observability.logging import get_logger
from ..observability.metrics import counter
from .base import Capability, CapabilityError, FailureReason, ensure_payload

logger = get_logger(__name__)

FUNCTION_ERROR_HEADER = "x-amz-function-error"


class HttpCapability(Capability):
    """Capability backed by an HTTP endpoint."""

    def __init__(
        self,
        name: str,
        url: str,
        timeout: float = 300.0,
        result_path: str | None = "Payload",
        headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(name)
        self.url = url
        self.timeout = timeout
        self.result_path = result_path
        self.headers = headers or {}
        self._http_client = http_client
        self._owned_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._owned_client and self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST the payload and return the output object."""
        try:
            response = await self._client().post(
                self.url,
                json=payload,
                headers={"Content-Type": "application/json", **self.headers},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            counter("capability_http_errors_total").add(1, {"capability": self.name})
            raise CapabilityError(
                f"{self.name} timed out after {self.timeout}s", FailureReason.TIMEOUT
            ) from e
        except httpx.HTTPStatusError as e:
            counter("capability_http_errors_total").add(1, {"capability": self.name})
            raise CapabilityError(
                f"{self.name} returned HTTP {e.response.status_code}",
                FailureReason.INVOCATION_ERROR,
                {"status_code": e.response.status_code, "body": e.response.text[:500]},
            ) from e
        except httpx.HTTPError as e:
            counter("capability_http_errors_total").add(1, {"capability": self.name})
            raise CapabilityError(
                f"{self.name} request failed: {e}", FailureReason.INVOCATION_ERROR
            ) from e

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise CapabilityError(
                f"{self.name} returned a non-JSON body", FailureReason.MALFORMED_RESPONSE
            ) from e

        return self._extract_output(body, response.headers.get(FUNCTION_ERROR_HEADER))

    def _extract_output(self, body: Any, function_error: str | None) -> dict[str, Any]:
        if self.result_path and isinstance(body, dict) and self.result_path in body:
            body = body[self.result_path]

        if function_error or (isinstance(body, dict) and "errorMessage" in body):
            details = body if isinstance(body, dict) else {}
            raise CapabilityError(
                f"{self.name} failed: {details.get('errorMessage', function_error)}",
                FailureReason.INVOCATION_ERROR,
                {"error_type": details.get("errorType", function_error)},
            )

        return ensure_payload(body, self.name)
