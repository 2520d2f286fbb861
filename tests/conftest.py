"""
Shared test fixtures and helpers for Plume test suite.
"""

import pytest
from typing import Any, Dict, List, Optional

from plume.config import set_default_config
from plume.request import ServerRequest
from plume.stream import Stream
from plume.transport import BufferedResponse, RawRequest


@pytest.fixture(autouse=True)
def reset_default_config():
    """Every test starts from the built-in HttpConfig defaults."""
    set_default_config(None)
    yield
    set_default_config(None)


# ============================================================================
# ASGI Helpers
# ============================================================================


def _make_scope(
    method: str = "GET",
    path: str = "/",
    query_string: str = "",
    headers: Optional[List[tuple]] = None,
    scheme: str = "http",
    client: Optional[tuple] = None,
) -> dict:
    """Build a minimal ASGI HTTP scope."""
    raw_headers = []
    for name, value in headers or []:
        raw_headers.append(
            (name.encode("latin-1") if isinstance(name, str) else name,
             value.encode("latin-1") if isinstance(value, str) else value)
        )
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": query_string.encode("utf-8"),
        "headers": raw_headers,
        "scheme": scheme,
        "server": ("127.0.0.1", 8000),
        "client": client or ("127.0.0.1", 12345),
        "root_path": "",
    }


def _make_receive(body: bytes = b"", *, chunks: Optional[List[bytes]] = None):
    """Create an ASGI receive callable from body bytes or chunked list."""
    if chunks:
        messages = [
            {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
            for i, chunk in enumerate(chunks)
        ]
    else:
        messages = [{"type": "http.request", "body": body, "more_body": False}]

    idx = 0

    async def receive():
        nonlocal idx
        if idx < len(messages):
            msg = messages[idx]
            idx += 1
            return msg
        return {"type": "http.disconnect"}

    return receive


class SendRecorder:
    """ASGI send callable that records every message."""

    def __init__(self):
        self.messages: List[dict] = []

    async def __call__(self, message: dict) -> None:
        self.messages.append(message)

    @property
    def status(self) -> int:
        return self.messages[0]["status"]

    @property
    def headers(self) -> Dict[str, str]:
        return {k.decode("latin-1"): v.decode("latin-1") for k, v in self.messages[0]["headers"]}

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages[1:])


BOUNDARY = "plumeboundary"


def _encode_multipart(
    fields: Optional[List[tuple]] = None,
    files: Optional[List[tuple]] = None,
    boundary: str = BOUNDARY,
) -> bytes:
    """Encode (name, value) fields and (name, filename, content, type) files."""
    body = bytearray()
    for name, value in fields or []:
        body += f"--{boundary}\r\n".encode("latin-1")
        body += f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("latin-1")
        body += value.encode("utf-8") + b"\r\n"
    for name, filename, content, content_type in files or []:
        body += f"--{boundary}\r\n".encode("latin-1")
        body += (
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode("latin-1")
        body += content + b"\r\n"
    body += f"--{boundary}--\r\n".encode("latin-1")
    return bytes(body)


@pytest.fixture
def encode_multipart():
    return _encode_multipart


@pytest.fixture
def make_scope():
    return _make_scope


@pytest.fixture
def make_receive():
    return _make_receive


@pytest.fixture
def send_recorder():
    return SendRecorder()


# ============================================================================
# Message Helpers
# ============================================================================


def _make_server_request(
    method: str = "GET",
    request_uri: str = "/",
    headers: Optional[Dict[str, Any]] = None,
    body: bytes = b"",
    **server,
) -> ServerRequest:
    """Build a ServerRequest through a RawRequest transport."""
    server_params = {
        "request_method": method,
        "request_uri": request_uri,
        "server_protocol": "HTTP/1.1",
        "http_host": "example.com",
    }
    server_params.update(server)
    raw = RawRequest(server=server_params, headers=headers or {}, body=body)
    return ServerRequest.from_transport(raw)


@pytest.fixture
def make_server_request():
    return _make_server_request


@pytest.fixture
def transport():
    return BufferedResponse()


@pytest.fixture
def stream():
    s = Stream(b"hello world")
    yield s
    s.close()
