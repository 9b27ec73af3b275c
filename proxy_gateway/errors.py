"""
Error kinds raised while forwarding a request, and their mapping to HTTP responses.

Every failure of the forwarding pipeline is one of the six ``ProxyError``
subclasses below. ``map_error`` turns any of them into a status code and a
JSON body; the ``message`` of an error is what the caller gets to see, the
underlying transport exception (``__cause__``) is only ever logged.
"""

from typing import Dict, Tuple, Type

from fastapi.responses import JSONResponse


class ProxyError(Exception):
    """Base class of all forwarding failures."""

    title = "Proxy error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RequestBuildError(ProxyError):
    """The inbound request is malformed or outside the configured prefix."""

    title = "Request build failed"


class InvalidHeaderError(ProxyError):
    """An inbound header cannot be represented on the outbound request."""

    title = "Invalid request header"


class DispatchError(ProxyError):
    """The upstream was unreachable, reset the connection or timed out."""

    title = "Upstream request failed"


class BodyReadError(ProxyError):
    """The upstream response body could not be consumed."""

    title = "Response body read failed"


class ResponseConversionError(ProxyError):
    """The upstream response could not be translated back to the caller."""

    title = "Response conversion failed"


class ConfigError(ProxyError):
    """Startup configuration is invalid."""

    title = "Configuration error"


ERROR_STATUS: Dict[Type[ProxyError], int] = {
    RequestBuildError: 400,
    InvalidHeaderError: 400,
    DispatchError: 500,
    BodyReadError: 500,
    ResponseConversionError: 500,
    ConfigError: 500,
}


def is_client_error(error: ProxyError) -> bool:
    return map_error(error)[0] < 500


def map_error(error: ProxyError) -> Tuple[int, dict]:
    """
    Map a forwarding error to an HTTP status and a diagnostic body.

    Args:
        error: One of the six ProxyError kinds

    Returns:
        Tuple of (status code, JSON-serializable body)

    Raises:
        TypeError: If error is not one of the known kinds
    """
    status = ERROR_STATUS.get(type(error))
    if status is None:
        raise TypeError(f"Unmapped error kind: {type(error).__name__}")
    return status, {"error": error.title, "details": error.message}


def error_response(error: ProxyError) -> JSONResponse:
    status, body = map_error(error)
    return JSONResponse(status_code=status, content=body)
