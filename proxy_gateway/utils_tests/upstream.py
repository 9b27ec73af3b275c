import inspect
from typing import Callable, List, Optional, Sequence, Tuple

import httpx
from starlette.requests import Request


def make_request(
    method: str = "GET",
    path: str = "/federation-server/api/data",
    query: bytes = b"",
    headers: Optional[Sequence[Tuple[bytes, bytes]]] = None,
    body: bytes = b"",
) -> Request:
    """Build a Starlette request the way an ASGI server hands it over."""
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "root_path": "",
        "query_string": query,
        "headers": list(headers or [(b"host", b"127.0.0.1:3000")]),
        "client": ("127.0.0.1", 51000),
        "server": ("127.0.0.1", 3000),
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def upstream_response(
    status_code: int = 200,
    body: bytes = b"",
    headers: Optional[Sequence[Tuple[str, str]]] = None,
) -> httpx.Response:
    """A response as it comes off the wire, body not yet read."""
    return httpx.Response(
        status_code, headers=list(headers or []), stream=httpx.ByteStream(body)
    )


class RecordingUpstream:
    """
    Mock transport handler that records every request it receives.

    Set ``handler`` to a (sync or async) callable taking the httpx.Request to
    control the answer; it may raise httpx transport errors.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable = lambda request: upstream_response(200, b"ok")

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        result = self.handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))
