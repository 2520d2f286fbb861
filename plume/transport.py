"""
Transport - The seam between Plume and a host server.

Provides:
- TransportRequest / TransportResponse protocols describing what a host
  server hands in and what it accepts back
- RawRequest: plain dataclass implementation of TransportRequest
- BufferedResponse: TransportResponse that records everything and can
  replay itself onto an ASGI ``send`` callable
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import (
    Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional,
    Protocol, Sequence, Tuple, Union, runtime_checkable,
)


# ============================================================================
# Protocols
# ============================================================================

@runtime_checkable
class TransportRequest(Protocol):
    """Raw request as produced by a host server."""

    server: Mapping[str, Any]
    headers: Mapping[str, Any]
    cookies: Mapping[str, Any]
    query: Mapping[str, Any]
    parsed_body: Any
    files: Mapping[str, Any]

    def raw_content(self) -> bytes:
        ...


@runtime_checkable
class TransportResponse(Protocol):
    """Sink a Response renders onto at send time."""

    def header(self, name: str, values: Union[str, Sequence[str]]) -> bool:
        ...

    def status(self, code: int, reason: str = "") -> bool:
        ...

    def write(self, data: Union[bytes, str]) -> bool:
        ...

    def end(self, data: Union[bytes, str] = b"") -> bool:
        ...

    def sendfile(self, path: Union[str, os.PathLike]) -> bool:
        ...


# ============================================================================
# RawRequest
# ============================================================================

@dataclass
class RawRequest:
    """
    Transport request built from plain data.

    ``server`` keys are lower-case server variables (``request_method``,
    ``request_uri``, ``query_string``, ``server_protocol``, ``http_host``,
    ``server_port``, ``https``, ...). ``files`` is an upload-descriptor tree.
    """

    server: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, Any] = field(default_factory=dict)
    cookies: Dict[str, Any] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    parsed_body: Any = None
    files: Dict[str, Any] = field(default_factory=dict)
    body: bytes = b""

    def raw_content(self) -> bytes:
        return self.body


# ============================================================================
# BufferedResponse
# ============================================================================

class BufferedResponse:
    """
    In-memory TransportResponse.

    Headers and status are frozen once the first chunk is written. After
    ``end`` (or a successful ``sendfile``) further writes return False.
    """

    def __init__(self):
        self.status_code = 200
        self.reason = ""
        self._headers: Dict[str, List[str]] = {}
        self._chunks: List[bytes] = []
        self.file_path: Optional[str] = None
        self.headers_sent = False
        self.ended = False

    # ========================================================================
    # TransportResponse
    # ========================================================================

    def header(self, name: str, values: Union[str, Sequence[str]]) -> bool:
        if self.headers_sent:
            return False
        if isinstance(values, str):
            values = [values]
        self._headers[name.lower()] = [str(value) for value in values]
        return True

    def status(self, code: int, reason: str = "") -> bool:
        if self.headers_sent:
            return False
        self.status_code = code
        self.reason = reason
        return True

    def write(self, data: Union[bytes, str]) -> bool:
        if self.ended:
            return False
        self.headers_sent = True
        self._chunks.append(_to_bytes(data))
        return True

    def end(self, data: Union[bytes, str] = b"") -> bool:
        if self.ended:
            return False
        if data:
            self._chunks.append(_to_bytes(data))
        self.headers_sent = True
        self.ended = True
        return True

    def sendfile(self, path: Union[str, os.PathLike]) -> bool:
        if self.ended or not os.path.isfile(path):
            return False
        self.file_path = os.fspath(path)
        self.headers_sent = True
        self.ended = True
        return True

    # ========================================================================
    # Inspection
    # ========================================================================

    @property
    def headers(self) -> Dict[str, List[str]]:
        return {name: list(values) for name, values in self._headers.items()}

    @property
    def body(self) -> bytes:
        """Buffered body (the file content when ``sendfile`` was used)."""
        if self.file_path is not None:
            with open(self.file_path, "rb") as f:
                return f.read()
        return b"".join(self._chunks)

    def _prepare_headers(self, content_length: int) -> List[Tuple[bytes, bytes]]:
        """ASGI header list (latin-1 byte pairs, one per value)."""
        headers_list = []
        _append = headers_list.append

        for name, values in self._headers.items():
            name_bytes = name.encode("latin-1")
            for value in values:
                _append((name_bytes, value.encode("latin-1")))

        if "content-length" not in self._headers:
            _append((b"content-length", str(content_length).encode("latin-1")))

        return headers_list

    async def flush_asgi(
        self,
        send: Callable[[dict], Awaitable[None]],
        chunk_size: int = 64 * 1024,
    ) -> None:
        """Replay status, headers and body as ASGI ``http.response.*`` events."""
        if self.file_path is not None:
            content_length = os.path.getsize(self.file_path)
        else:
            content_length = sum(len(chunk) for chunk in self._chunks)

        await send({
            "type": "http.response.start",
            "status": self.status_code,
            "headers": self._prepare_headers(content_length),
        })

        if self.file_path is not None:
            with open(self.file_path, "rb") as f:
                while True:
                    chunk = f.read(chunk_size)
                    if not chunk:
                        break
                    await send({"type": "http.response.body", "body": chunk, "more_body": True})
            await send({"type": "http.response.body", "body": b"", "more_body": False})
            return

        await send({
            "type": "http.response.body",
            "body": b"".join(self._chunks),
            "more_body": False,
        })


def _to_bytes(data: Union[bytes, bytearray, str, Iterable[int]]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)
