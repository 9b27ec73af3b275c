import asyncio
import logging
from typing import List, Tuple

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import Response
from opentelemetry import trace
from starlette.requests import ClientDisconnect

from proxy_gateway.config import AppConfig
from proxy_gateway.errors import (
    BodyReadError,
    DispatchError,
    InvalidHeaderError,
    ProxyError,
    RequestBuildError,
    ResponseConversionError,
    error_response,
    is_client_error,
)
from proxy_gateway.utils import masked_headers
from proxy_gateway.utils.exception_logging import log_exception_with_details

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Connection-scoped request headers, regenerated by the outbound client
REQUEST_HOP_BY_HOP_HEADERS = {
    b"host",
    b"connection",
    b"transfer-encoding",
    b"content-length",
}

# Connection-scoped response headers, regenerated when answering the caller
RESPONSE_HOP_BY_HOP_HEADERS = {
    b"connection",
    b"keep-alive",
    b"transfer-encoding",
    b"content-length",
}

# Responses whose upstream content-length describes a body that is never sent
BODYLESS_STATUS_CODES = {204, 304}


def strip_prefix(path: str, prefix: str) -> str:
    """
    Remove the proxy prefix from a request path.

    The prefix only matches on a segment boundary: with prefix "/api",
    "/api" and "/api/x" match, "/apix" does not.

    Raises:
        RequestBuildError: If the path is not under the prefix
    """
    if prefix == "/":
        return path or "/"
    if path != prefix and not path.startswith(prefix + "/"):
        raise RequestBuildError(
            f"Path {path} is not under the proxied prefix {prefix}"
        )
    return path[len(prefix):] or "/"


def get_target_url(request: Request, config: AppConfig) -> str:
    """Construct the upstream URL from the raw request path and query string."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        # Some servers put the query string into raw_path as well
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.scope.get("path", "/")

    path = strip_prefix(path, config.proxy.path_prefix)

    query_string = request.scope.get("query_string", b"").decode("latin-1")
    if query_string:
        path = f"{path}?{query_string}"

    return f"{config.upstream_base_url}{path}"


def _is_visible_ascii(value: bytes) -> bool:
    return all(byte == 0x09 or 0x20 <= byte <= 0x7E for byte in value)


def prepare_headers(request: Request) -> List[Tuple[str, str]]:
    """
    Headers for the upstream request.

    Keeps the inbound order and repeated headers, drops connection-scoped ones.

    Raises:
        InvalidHeaderError: If a value is not visible ASCII
    """
    headers = []
    for name, value in request.headers.raw:
        if name.lower() in REQUEST_HOP_BY_HOP_HEADERS:
            continue
        header_name = name.decode("latin-1")
        if not _is_visible_ascii(value):
            raise InvalidHeaderError(f"Header {header_name} cannot be forwarded")
        headers.append((header_name, value.decode("ascii")))
    return headers


def build_response(upstream: httpx.Response, body: bytes, method: str) -> Response:
    """
    Translate the upstream response for the caller.

    Status, headers and body are copied as received. The content-length is
    recomputed from the body, except for responses that never carry one
    (HEAD, 204, 304) where the upstream value is kept.

    Raises:
        ResponseConversionError: If the status or a header cannot be sent back
    """
    status_code = upstream.status_code
    if not 100 <= status_code <= 599:
        raise ResponseConversionError(
            f"Upstream returned an unsupported status code {status_code}"
        )

    keep_length = method == "HEAD" or status_code in BODYLESS_STATUS_CODES
    raw_headers = []
    for name, value in upstream.headers.raw:
        key = name.lower()
        if key in RESPONSE_HOP_BY_HOP_HEADERS:
            if not (keep_length and key == b"content-length"):
                continue
        if any(byte in b"\r\n\x00" for byte in key + value):
            raise ResponseConversionError(
                "Upstream response contains a header that cannot be forwarded"
            )
        raw_headers.append((key, value))
    if not keep_length:
        raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    response = Response(content=body, status_code=status_code)
    response.raw_headers = raw_headers
    return response


async def _exchange(
    client: httpx.AsyncClient, outbound: httpx.Request
) -> Tuple[httpx.Response, bytes]:
    """Send the request and read the raw (still content-encoded) body."""
    try:
        upstream = await client.send(outbound, stream=True)
    except httpx.TimeoutException as e:
        raise DispatchError("Upstream request timed out") from e
    except httpx.HTTPError as e:
        raise DispatchError("Upstream request failed") from e

    try:
        body = b"".join([chunk async for chunk in upstream.aiter_raw()])
    except httpx.TimeoutException as e:
        raise DispatchError("Upstream request timed out") from e
    except httpx.HTTPError as e:
        raise BodyReadError("Upstream response body could not be read") from e
    finally:
        await upstream.aclose()
    return upstream, body


async def _forward(
    request: Request, config: AppConfig, client: httpx.AsyncClient, span
) -> Response:
    target_url = get_target_url(request, config)
    span.set_attribute("proxy.target_url", target_url)

    headers = prepare_headers(request)

    try:
        body = await request.body()
    except ClientDisconnect as e:
        raise RequestBuildError("Client disconnected before sending the body") from e

    try:
        outbound = client.build_request(
            request.method, target_url, headers=headers, content=body
        )
    except (httpx.InvalidURL, ValueError) as e:
        raise RequestBuildError(f"Cannot build upstream request for {target_url}") from e

    logger.info(f"[Proxy] {request.method} {request.url.path} -> {target_url}")
    logger.debug(f"[Proxy] Request headers: {masked_headers(headers)}")
    logger.debug(f"[Proxy] Request body: {len(body)} bytes")

    try:
        upstream, upstream_body = await asyncio.wait_for(
            _exchange(client, outbound), timeout=config.request.timeout
        )
    except asyncio.TimeoutError as e:
        raise DispatchError("Upstream request timed out") from e

    span.set_attribute("proxy.status_code", upstream.status_code)
    logger.debug(
        f"[Proxy] Upstream responded {upstream.status_code} "
        f"with {len(upstream_body)} bytes"
    )
    return build_response(upstream, upstream_body, request.method)


async def forward_to_target(
    request: Request, config: AppConfig, client: httpx.AsyncClient
) -> Response:
    """
    Forward an inbound request to the configured upstream.

    Only paths under the configured prefix are forwarded; the prefix is
    stripped and the query string appended unchanged. The upstream status,
    headers and body come back as received. Every failure is answered with
    the mapped error response, the serving process never sees an exception.
    """
    with tracer.start_as_current_span("proxy_request") as span:
        span.set_attribute("proxy.method", request.method)
        try:
            return await _forward(request, config, client, span)
        except ProxyError as e:
            span.set_attribute("proxy.error", type(e).__name__)
            if is_client_error(e):
                logger.warning(
                    f"[Proxy] Rejected {request.method} {request.url.path}: {e.message}"
                )
            else:
                log_exception_with_details(
                    logger, f"[Proxy] {request.method} {request.url.path} failed:", e
                )
            return error_response(e)


async def proxy_all(request: Request):
    """Catch-all route; forwarding decides whether the path is proxied."""
    return await forward_to_target(
        request, request.app.state.config, request.app.state.client
    )


# No method filter, custom methods (PROPFIND, PURGE, ...) are forwarded too
router.add_route("/{path:path}", proxy_all, include_in_schema=False)
