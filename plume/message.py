"""
Message - Copy-on-write HTTP message base.

Provides:
- Case-insensitive, multi-valued header map kept in insertion order
- Header name/value validation (token names, no CR/LF/NUL in values)
- Body resolution from Stream, file object, bytes, str or None
- Wire rendering (start line, headers, blank line, body)

Requests and responses derive from Message; every ``with_*`` call returns a
new message and leaves the receiver untouched.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .faults import InvalidArgument, InvalidHeaderName, InvalidHeaderValue
from .stream import Stream

HeaderValue = Union[str, Iterable[str]]
HeadersInput = Union[Mapping[str, HeaderValue], Iterable[Tuple[str, HeaderValue]]]

_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_FORBIDDEN_VALUE_CHARS = ("\r", "\n", "\x00")
_PROTOCOL_VERSION_RE = re.compile(r"^\d(?:\.\d)?$")


def resolve_body(body: Any) -> Stream:
    """
    Resolve a body source into a Stream.

    Accepts a Stream (used as-is), an open binary file object, bytes, str or
    None (fresh empty stream).

    Raises:
        InvalidArgument: For any other type
    """
    if isinstance(body, Stream):
        return body
    if body is None:
        return Stream()
    if isinstance(body, (bytes, bytearray, str)):
        return Stream(body)
    if callable(getattr(body, "read", None)):
        return Stream.from_resource(body)

    raise InvalidArgument(
        f"Message body must be a Stream, file object, bytes, str or None, "
        f"got {type(body).__name__}"
    )


def filter_header_name(name: Any) -> str:
    """Validate a header name and return its lower-cased key."""
    if not isinstance(name, str):
        raise InvalidHeaderName(
            f"Header name must be a string, got {type(name).__name__}"
        )
    if not _TOKEN_RE.fullmatch(name):
        raise InvalidHeaderName(f"Invalid header name: {name!r}", header_name=name)
    return name.lower()


def filter_header_values(name: str, value: Any) -> List[str]:
    """Normalize a header value (scalar or sequence) to a list of strings."""
    if isinstance(value, (list, tuple)):
        values = [v if isinstance(v, str) else str(v) for v in value]
    else:
        values = [value if isinstance(value, str) else str(value)]

    for item in values:
        if any(char in item for char in _FORBIDDEN_VALUE_CHARS):
            raise InvalidHeaderValue(
                f"Invalid header value: {item!r}",
                header_name=name,
            )

    return values


class Message:
    """
    Base HTTP message.

    Holds the header map (``dict[str, list[str]]`` keyed by lower-cased
    name), the protocol version and the body Stream.
    """

    def __init__(
        self,
        headers: Optional[HeadersInput] = None,
        body: Any = None,
        protocol_version: str = "1.1",
    ):
        self._headers: Dict[str, List[str]] = {}
        self._protocol_version = self._filter_protocol_version(protocol_version)
        if headers:
            self._add_headers(headers)
        self._body = resolve_body(body)

    # ========================================================================
    # Cloning
    # ========================================================================

    def _clone(self) -> "Message":
        """Shallow clone with a fresh header map; the body is shared."""
        clone = copy.copy(self)
        clone._headers = {name: list(values) for name, values in self._headers.items()}
        return clone

    def _add_headers(self, headers: HeadersInput) -> None:
        items = headers.items() if isinstance(headers, Mapping) else headers
        for name, value in items:
            key = filter_header_name(name)
            self._headers.setdefault(key, []).extend(filter_header_values(name, value))

    # ========================================================================
    # Protocol version
    # ========================================================================

    @property
    def protocol_version(self) -> str:
        return self._protocol_version

    def with_protocol_version(self, version: str) -> "Message":
        version = self._filter_protocol_version(version)
        clone = self._clone()
        clone._protocol_version = version
        return clone

    @staticmethod
    def _filter_protocol_version(version: Any) -> str:
        if not isinstance(version, str) or not _PROTOCOL_VERSION_RE.fullmatch(version):
            raise InvalidArgument(f"Invalid HTTP protocol version: {version!r}")
        return version

    # ========================================================================
    # Headers
    # ========================================================================

    @property
    def headers(self) -> Dict[str, List[str]]:
        """Copy of the header map."""
        return {name: list(values) for name, values in self._headers.items()}

    def has_header(self, name: str) -> bool:
        return isinstance(name, str) and name.lower() in self._headers

    def get_header(self, name: str) -> List[str]:
        """All values of a header ([] when absent)."""
        if not isinstance(name, str):
            return []
        return list(self._headers.get(name.lower(), []))

    def get_header_line(self, name: str) -> str:
        """Values of a header joined with ','."""
        return ",".join(self.get_header(name))

    def with_header(self, name: str, value: HeaderValue) -> "Message":
        """Replace all values of a header."""
        key = filter_header_name(name)
        values = filter_header_values(name, value)
        clone = self._clone()
        clone._headers[key] = values
        return clone

    def with_added_header(self, name: str, value: HeaderValue) -> "Message":
        """Append value(s) to a header."""
        key = filter_header_name(name)
        values = filter_header_values(name, value)
        clone = self._clone()
        clone._headers.setdefault(key, []).extend(values)
        return clone

    def without_header(self, name: str) -> "Message":
        clone = self._clone()
        if isinstance(name, str):
            clone._headers.pop(name.lower(), None)
        return clone

    # ========================================================================
    # Body
    # ========================================================================

    @property
    def body(self) -> Stream:
        return self._body

    def with_body(self, body: Any) -> "Message":
        stream = resolve_body(body)
        clone = self._clone()
        clone._body = stream
        return clone

    # ========================================================================
    # Wire form
    # ========================================================================

    def _start_line(self) -> str:
        raise NotImplementedError

    def _head(self) -> str:
        lines = [self._start_line()]
        for name, values in self._headers.items():
            separator = "; " if name == "cookie" else ","
            lines.append(f"{name}: {separator.join(values)}")
        return "\r\n".join(lines) + "\r\n\r\n"

    def __bytes__(self) -> bytes:
        return self._head().encode("latin-1", errors="replace") + bytes(self._body)

    def __str__(self) -> str:
        return self._head() + str(self._body)
