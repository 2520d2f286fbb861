"""
Request - Client and server-side HTTP request messages.

Provides:
- HTTPMethod: the nine standard request methods
- Request: method, request target and Uri on top of Message
- ServerRequest: server params, cookies, query, parsed body, uploaded
  files and attributes, buildable straight from a transport request
"""

from __future__ import annotations

import re
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Union

from .config import HttpConfig, get_default_config
from .faults import InvalidArgument, InvalidMethod, InvalidParsedBody
from .message import HeadersInput, Message
from .parsers import UploadedFilesParser, UriParser
from .uploads import UploadedFileEntry
from .uri import Uri

if TYPE_CHECKING:
    from .transport import TransportRequest


class HTTPMethod(str, Enum):
    """Standard HTTP request methods (case sensitive)."""
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    PATCH = "PATCH"


_METHODS = frozenset(method.value for method in HTTPMethod)
_WHITESPACE_RE = re.compile(r"\s")


def _copy_tree(value: Any) -> Any:
    """Copy nested dicts and lists; leaves are shared."""
    if isinstance(value, Mapping):
        return {key: _copy_tree(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy_tree(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_copy_tree(item) for item in value)
    return value


class Request(Message):
    """
    Outgoing or generic HTTP request.

    Example:
        ```python
        request = Request("GET", "http://example.com/items?page=2")
        request.request_target           # "/items?page=2"
        request.get_header_line("Host")  # "example.com"
        ```
    """

    def __init__(
        self,
        method: Union[str, HTTPMethod] = "GET",
        uri: Union[Uri, str, None] = None,
        headers: Optional[HeadersInput] = None,
        body: Any = None,
        protocol_version: str = "1.1",
    ):
        self._method = self._filter_method(method)
        self._request_target = ""
        self._uri: Optional[Uri] = self._resolve_uri(uri)

        super().__init__(headers, body, protocol_version)

        if not self.has_header("host"):
            self._set_host_header()

    # ========================================================================
    # Method
    # ========================================================================

    @property
    def method(self) -> str:
        return self._method

    def with_method(self, method: Union[str, HTTPMethod]) -> "Request":
        method = self._filter_method(method)
        clone = self._clone()
        clone._method = method
        return clone

    @staticmethod
    def _filter_method(method: Any) -> str:
        if isinstance(method, HTTPMethod):
            return method.value
        if not isinstance(method, str) or method not in _METHODS:
            raise InvalidMethod(f"HTTP method {method!r} is invalid", method=str(method))
        return method

    # ========================================================================
    # Request target
    # ========================================================================

    @property
    def request_target(self) -> str:
        """Explicit target if set, else path and query of the Uri ('/' when empty)."""
        if self._request_target:
            return self._request_target

        if self._uri is None:
            return "/"

        target = self._uri.path
        if self._uri.query:
            target += "?" + self._uri.query

        return target or "/"

    def with_request_target(self, request_target: str) -> "Request":
        if not isinstance(request_target, str) or _WHITESPACE_RE.search(request_target):
            raise InvalidArgument(
                "Request target must be a string without whitespace",
                request_target=str(request_target),
            )
        clone = self._clone()
        clone._request_target = request_target
        return clone

    # ========================================================================
    # Uri
    # ========================================================================

    @property
    def uri(self) -> Uri:
        if self._uri is None:
            self._uri = Uri()
        return self._uri

    def with_uri(self, uri: Union[Uri, str], preserve_host: bool = False) -> "Request":
        """
        Replace the Uri.

        The Host header is updated from the new Uri's host unless
        ``preserve_host`` is set and the request already carries a Host.
        A Uri without a host never clears the header.
        """
        uri = self._resolve_uri(uri) or Uri()

        clone = self._clone()
        clone._uri = uri

        if preserve_host and self.get_header_line("host"):
            return clone

        clone._set_host_header()
        return clone

    @staticmethod
    def _resolve_uri(uri: Union[Uri, str, None]) -> Optional[Uri]:
        if uri is None or isinstance(uri, Uri):
            return uri
        return Uri(uri)

    def _set_host_header(self) -> None:
        """Put ``host[:port]`` of the Uri first in the header map."""
        if self._uri is None or self._uri.host == "":
            return

        host = self._uri.host
        if self._uri.port is not None:
            host += f":{self._uri.port}"

        headers = {"host": [host]}
        headers.update((name, values) for name, values in self._headers.items() if name != "host")
        self._headers = headers

    # ========================================================================
    # Wire form
    # ========================================================================

    def _start_line(self) -> str:
        return f"{self._method} {self.request_target} HTTP/{self._protocol_version}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._method} {self.request_target}>"


class ServerRequest(Request):
    """
    Incoming request as seen by a server-side handler.

    Carries the environment a host server hands over (server params), the
    decoded cookie/query maps, the parsed body, the uploaded file tree and
    per-request attributes set by interceptors.
    """

    def __init__(
        self,
        method: Union[str, HTTPMethod] = "GET",
        uri: Union[Uri, str, None] = None,
        headers: Optional[HeadersInput] = None,
        body: Any = None,
        protocol_version: str = "1.1",
        server_params: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(method, uri, headers, body, protocol_version)

        self._server_params: Dict[str, Any] = dict(server_params or {})
        self._cookie_params: Dict[str, Any] = {}
        self._query_params: Dict[str, Any] = {}
        self._parsed_body: Union[Mapping, Sequence, None] = None
        self._uploaded_files: Dict[str, Any] = {}
        self._attributes: Dict[str, Any] = {}

    @classmethod
    def from_transport(
        cls,
        transport: "TransportRequest",
        config: Optional[HttpConfig] = None,
    ) -> "ServerRequest":
        """
        Build a ServerRequest from a host server's raw request.

        Args:
            transport: Transport request (server vars, headers, body, ...)
            config: HttpConfig for upload limits (process default if None)

        Raises:
            InvalidArgument: If any part of the transport request is invalid
        """
        config = config or get_default_config()

        server = {str(key).lower(): value for key, value in (transport.server or {}).items()}
        headers = dict(transport.headers or {})

        method = server.get("request_method") or "GET"
        protocol = str(server.get("server_protocol") or "HTTP/1.1")
        if protocol.upper().startswith("HTTP/"):
            protocol = protocol[5:]

        files = UploadedFilesParser(
            max_depth=config.upload_max_depth,
            max_files=config.upload_max_files,
        )(transport.files or {})

        request = cls(
            method,
            UriParser()(server, headers),
            headers,
            transport.raw_content() or b"",
            protocol,
            server_params=server,
        )

        return (
            request
            .with_cookie_params(transport.cookies or {})
            .with_query_params(transport.query or {})
            .with_uploaded_files(files)
            .with_parsed_body(transport.parsed_body)
        )

    # ========================================================================
    # Server environment
    # ========================================================================

    @property
    def server_params(self) -> Dict[str, Any]:
        return dict(self._server_params)

    @property
    def cookie_params(self) -> Dict[str, Any]:
        return dict(self._cookie_params)

    def with_cookie_params(self, cookies: Mapping[str, Any]) -> "ServerRequest":
        cookies = self._require_mapping(cookies, "Cookie params")
        clone = self._clone()
        clone._cookie_params = cookies
        return clone

    @property
    def query_params(self) -> Dict[str, Any]:
        return dict(self._query_params)

    def with_query_params(self, query: Mapping[str, Any]) -> "ServerRequest":
        query = self._require_mapping(query, "Query params")
        clone = self._clone()
        clone._query_params = query
        return clone

    @staticmethod
    def _require_mapping(value: Any, what: str) -> Dict[str, Any]:
        if not isinstance(value, Mapping):
            raise InvalidArgument(f"{what} must be a mapping, got {type(value).__name__}")
        return dict(value)

    # ========================================================================
    # Uploaded files
    # ========================================================================

    @property
    def uploaded_files(self) -> Dict[str, Any]:
        return _copy_tree(self._uploaded_files)

    def with_uploaded_files(self, uploaded_files: Mapping[str, Any]) -> "ServerRequest":
        """
        Replace the uploaded file tree.

        Raises:
            InvalidArgument: If a leaf is not an UploadedFileEntry
        """
        uploaded_files = self._require_mapping(uploaded_files, "Uploaded files")

        stack: List[Any] = list(uploaded_files.values())
        while stack:
            node = stack.pop()
            if isinstance(node, Mapping):
                stack.extend(node.values())
            elif isinstance(node, (list, tuple)):
                stack.extend(node)
            elif not isinstance(node, UploadedFileEntry):
                raise InvalidArgument(
                    f"Uploaded file tree leaves must be UploadedFileEntry, got {type(node).__name__}"
                )

        clone = self._clone()
        clone._uploaded_files = _copy_tree(uploaded_files)
        return clone

    # ========================================================================
    # Parsed body
    # ========================================================================

    @property
    def parsed_body(self) -> Union[Mapping, Sequence, None]:
        return _copy_tree(self._parsed_body)

    def with_parsed_body(self, data: Union[Mapping, Sequence, None]) -> "ServerRequest":
        if not (
            data is None
            or isinstance(data, Mapping)
            or (isinstance(data, Sequence) and not isinstance(data, (str, bytes, bytearray)))
        ):
            raise InvalidParsedBody(body_type=type(data).__name__)

        clone = self._clone()
        clone._parsed_body = _copy_tree(data)
        return clone

    # ========================================================================
    # Attributes
    # ========================================================================

    @property
    def attributes(self) -> Dict[str, Any]:
        return dict(self._attributes)

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self._attributes.get(name, default)

    def with_attribute(self, name: str, value: Any) -> "ServerRequest":
        clone = self._clone()
        clone._attributes = {**self._attributes, name: value}
        return clone

    def without_attribute(self, name: str) -> "ServerRequest":
        if name not in self._attributes:
            return self

        clone = self._clone()
        clone._attributes = {k: v for k, v in self._attributes.items() if k != name}
        return clone
