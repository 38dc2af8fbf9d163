"""
Exceptions raised while proxying a request, rendered as OpenAI error bodies.
"""

import json
from typing import Any

import httpx
from fastapi.responses import JSONResponse

# Anthropic error types for upstream responses that carry no JSON error body
ANTHROPIC_ERROR_TYPES = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "not_found_error",
    413: "request_too_large",
    429: "rate_limit_error",
    500: "api_error",
    502: "api_error",
    503: "overloaded_error",
    529: "overloaded_error",
}


class ProxyError(Exception):
    """Error produced by the proxy itself."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_type: str = "api_error",
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type

    def to_openai_error(self) -> dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "param": None,
                "code": None,
            }
        }

    def to_json_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_openai_error())


class InvalidRequestError(ProxyError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400, error_type="invalid_request_error")


class UpstreamError(ProxyError):
    """Error returned by the Anthropic API, keeping its status and error type."""

    @classmethod
    def from_response(cls, status_code: int, body: bytes | str) -> "UpstreamError":
        """Build from a non-2xx upstream response body."""
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        error_type = ANTHROPIC_ERROR_TYPES.get(status_code, "api_error")
        message = text or f"HTTP {status_code}"

        try:
            data = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            data = None

        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            error_type = data["error"].get("type", error_type)
            message = data["error"].get("message", message)

        return cls(message, status_code=status_code, error_type=error_type)

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "UpstreamError":
        """Build from an ``error`` event received mid-stream."""
        error = event.get("error") or {}
        return cls(
            error.get("message", "Unknown upstream error"),
            status_code=500,
            error_type=error.get("type", "api_error"),
        )


def error_from_transport(exc: httpx.RequestError) -> ProxyError:
    """Map an httpx transport failure to a gateway error."""
    if isinstance(exc, httpx.TimeoutException):
        return ProxyError(f"Request to Claude API timed out: {exc}", status_code=504)
    if isinstance(exc, httpx.ConnectError):
        return ProxyError(f"Unable to connect to Claude API: {exc}", status_code=502)
    return ProxyError(f"Failed to call Claude API: {exc}", status_code=502)
