"""
Response - HTTP response message with send-time transport rendering.

Provides:
- Response: status code/reason phrase on top of Message
- chunk/send/send_file: push headers, status and body onto a bound
  TransportResponse
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Optional, Union

from .config import HttpConfig, get_default_config
from .faults import InvalidArgument, InvalidStatusCode, ResponseNotBound
from .message import HeadersInput, Message
from .status import REASON_PHRASES, UNUSED_STATUS_CODE

if TYPE_CHECKING:
    from .transport import TransportResponse

logger = logging.getLogger("plume.response")


class Response(Message):
    """
    HTTP response.

    A Response may be bound to a transport sink; the send helpers render the
    message onto it. Binding returns a new Response like every other
    ``with_*`` call.

    Example:
        ```python
        response = Response(201, headers={"Location": "/items/7"}, body=b"created")
        response.reason_phrase          # "Created"

        response.with_transport(transport).send()
        ```
    """

    def __init__(
        self,
        status_code: int = 200,
        reason_phrase: str = "",
        headers: Optional[HeadersInput] = None,
        body: Any = None,
        protocol_version: str = "1.1",
        *,
        transport: Optional["TransportResponse"] = None,
        config: Optional[HttpConfig] = None,
    ):
        code = self._filter_status_code(status_code)
        reason_phrase = self._filter_reason_phrase(reason_phrase)

        super().__init__(headers, body, protocol_version)

        self._status_code = code
        self._reason_phrase = reason_phrase or REASON_PHRASES[code]
        self._transport = transport
        self._config = config

    @classmethod
    def from_transport(
        cls,
        transport: Optional["TransportResponse"] = None,
        config: Optional[HttpConfig] = None,
    ) -> "Response":
        """Empty 200 response bound to ``transport``."""
        return cls(200, transport=transport, config=config)

    # ========================================================================
    # Status
    # ========================================================================

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def reason_phrase(self) -> str:
        return self._reason_phrase

    def with_status(self, code: int, reason_phrase: str = "") -> "Response":
        """New response with ``code``; empty reason falls back to the registry."""
        code = self._filter_status_code(code)
        reason_phrase = self._filter_reason_phrase(reason_phrase)

        clone = self._clone()
        clone._status_code = code
        clone._reason_phrase = reason_phrase or REASON_PHRASES[code]
        return clone

    @staticmethod
    def _filter_status_code(code: Any) -> int:
        if not isinstance(code, int) or isinstance(code, bool):
            raise InvalidStatusCode(f"Status code must be an integer, got {type(code).__name__}")

        if code == UNUSED_STATUS_CODE:
            raise InvalidStatusCode("Invalid status code! Status code 306 is unused.", status=code)

        if code not in REASON_PHRASES:
            raise InvalidStatusCode(f"Status code [{code}] is invalid", status=code)

        return code

    @staticmethod
    def _filter_reason_phrase(reason_phrase: Any) -> str:
        if reason_phrase is None:
            return ""
        if not isinstance(reason_phrase, str) or "\r" in reason_phrase or "\n" in reason_phrase:
            raise InvalidArgument(f"Invalid reason phrase: {reason_phrase!r}")
        return reason_phrase

    # ========================================================================
    # Transport binding
    # ========================================================================

    @property
    def transport(self) -> Optional["TransportResponse"]:
        return self._transport

    @property
    def config(self) -> HttpConfig:
        return self._config or get_default_config()

    def with_transport(self, transport: "TransportResponse") -> "Response":
        clone = self._clone()
        clone._transport = transport
        return clone

    def _prepare_transport(self) -> "TransportResponse":
        """Push Server header, message headers and status onto the transport."""
        transport = self._transport
        if transport is None:
            raise ResponseNotBound()

        config = self.config
        transport.header("Server", config.server_header)

        headers = self._headers
        if "content-type" not in headers:
            headers = {**headers, "content-type": [config.default_content_type]}

        for name, values in headers.items():
            transport.header(name, list(values))

        transport.status(self._status_code, self._reason_phrase)

        return transport

    # ========================================================================
    # Sending
    # ========================================================================

    def chunk(self, data: Union[bytes, str] = b"") -> bool:
        """Write one chunk of a streamed response."""
        return self._prepare_transport().write(data)

    def send(self, data: Union[bytes, str] = b"") -> bool:
        """
        Finish the response.

        Sends ``data``, or the message body when ``data`` is empty.
        """
        transport = self._prepare_transport()
        if not data:
            data = bytes(self._body)

        logger.debug(f"Sending {self._status_code} response ({len(data)} bytes)")
        return transport.end(data)

    def send_file(self, path: Union[str, os.PathLike]) -> bool:
        """Send a local file as the response body."""
        transport = self._prepare_transport()
        logger.debug(f"Sending file {path} with {self._status_code} response")
        return transport.sendfile(os.fspath(path))

    # ========================================================================
    # Wire form
    # ========================================================================

    def _start_line(self) -> str:
        return f"HTTP/{self._protocol_version} {self._status_code} {self._reason_phrase}"

    def __repr__(self) -> str:
        return f"<Response {self._status_code} {self._reason_phrase}>"
