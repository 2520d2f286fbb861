"""
Uri - RFC 3986 URI value object.

Provides:
- Component parsing with the RFC 3986 Appendix B expression
- Per-component validation (scheme, host, port) and idempotent
  percent-encoding (user-info, path, query, fragment)
- Canonical re-serialisation with well-known port elision

Uri instances are immutable; every ``with_*`` call returns a new Uri.
"""

from __future__ import annotations

import copy
import ipaddress
import re
from typing import Optional
from urllib.parse import quote

from .faults import InvalidUri

STANDARD_PORTS = {"http": 80, "https": 443}

_URI_RE = re.compile(r"^(?:([^:/?#]+):)?(?://([^/?#]*))?([^?#]*)(?:\?([^#]*))?(?:#(.*))?$", re.S)
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+\-.]*$")
_REG_NAME_RE = re.compile(r"^(?:[A-Za-z0-9\-._~!$&'()*+,;=]|%[0-9A-Fa-f]{2})*$")
_IPV_FUTURE_RE = re.compile(r"^[vV][0-9A-Fa-f]+\.[A-Za-z0-9\-._~!$&'()*+,;=:]+$")
_IPV4_LIKE_RE = re.compile(r"^[0-9.]+$")

# Runs of characters outside each component's grammar, or a stray "%"
_USER_ENCODE_RE = re.compile(r"(?:[^A-Za-z0-9\-._~!$&'()*+,;=%]+|%(?![A-Fa-f0-9]{2}))")
_PASSWORD_ENCODE_RE = re.compile(r"(?:[^A-Za-z0-9\-._~!$&'()*+,;=:%]+|%(?![A-Fa-f0-9]{2}))")
_PATH_ENCODE_RE = re.compile(r"(?:[^A-Za-z0-9\-._~!$&'()*+,;=:@/%]+|%(?![A-Fa-f0-9]{2}))")
_QUERY_ENCODE_RE = re.compile(r"(?:[^A-Za-z0-9\-._~!$&'()*+,;=:@/?%]+|%(?![A-Fa-f0-9]{2}))")


def _encode(pattern: re.Pattern, value: str) -> str:
    return pattern.sub(lambda match: quote(match.group(0), safe=""), value)


def _require_str(value, component: str) -> str:
    if not isinstance(value, str):
        raise InvalidUri(
            f"Uri {component} must be a string, got {type(value).__name__}",
            component=component,
        )
    return value


class Uri:
    """
    Immutable RFC 3986 URI.

    Example:
        ```python
        uri = Uri("HTTP://Example.COM:80/a b?q=1#top")
        uri.host                    # "example.com"
        uri.port                    # None (well-known port elided)
        str(uri)                    # "http://example.com/a%20b?q=1#top"
        str(uri.with_port(8080))    # "http://example.com:8080/a%20b?q=1#top"
        ```
    """

    def __init__(self, uri: str = ""):
        """
        Parse a URI reference.

        Raises:
            InvalidUri: Malformed syntax or an invalid component
        """
        _require_str(uri, "reference")

        self._scheme = ""
        self._user_info = ""
        self._host = ""
        self._port: Optional[int] = None
        self._path = ""
        self._query = ""
        self._fragment = ""

        if uri == "":
            return

        match = _URI_RE.match(uri)
        if match is None:
            raise InvalidUri("URI is malformed", uri=uri)

        scheme, authority, path, query, fragment = match.groups()

        self._scheme = self._filter_scheme(scheme or "")

        if authority:
            user_info, host, port = self._split_authority(authority)
            self._host = self._filter_host(host)
            self._port = self._filter_port(port)
            if user_info is not None:
                user, sep, password = user_info.partition(":")
                self._user_info = self._filter_user_info(user, password if sep else None)

        self._path = self._filter_path(path)
        self._query = self._filter_query(query or "")
        self._fragment = self._filter_fragment(fragment or "")

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def authority(self) -> str:
        """``[user-info "@"] host [":" port]``, or '' when there is no host."""
        if self._host == "":
            return ""

        authority = self._host
        if self._user_info:
            authority = f"{self._user_info}@{authority}"
        if self._port is not None:
            authority = f"{authority}:{self._port}"
        return authority

    @property
    def user_info(self) -> str:
        return self._user_info

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def path(self) -> str:
        return self._path

    @property
    def query(self) -> str:
        return self._query

    @property
    def fragment(self) -> str:
        return self._fragment

    # ========================================================================
    # Mutators (copy-on-write)
    # ========================================================================

    def _clone(self, **components) -> "Uri":
        clone = copy.copy(self)
        for name, value in components.items():
            setattr(clone, f"_{name}", value)
        return clone

    def with_scheme(self, scheme: str) -> "Uri":
        scheme = self._filter_scheme(_require_str(scheme, "scheme"))
        port = None if self._is_standard_port(scheme, self._port) else self._port
        return self._clone(scheme=scheme, port=port)

    def with_user_info(self, user: str, password: Optional[str] = None) -> "Uri":
        _require_str(user, "user")
        if password is not None:
            _require_str(password, "password")
        return self._clone(user_info=self._filter_user_info(user, password))

    def with_host(self, host: str) -> "Uri":
        return self._clone(host=self._filter_host(_require_str(host, "host")))

    def with_port(self, port: Optional[int]) -> "Uri":
        return self._clone(port=self._filter_port(port))

    def with_path(self, path: str) -> "Uri":
        return self._clone(path=self._filter_path(_require_str(path, "path")))

    def with_query(self, query: str) -> "Uri":
        return self._clone(query=self._filter_query(_require_str(query, "query")))

    def with_fragment(self, fragment: str) -> "Uri":
        return self._clone(fragment=self._filter_fragment(_require_str(fragment, "fragment")))

    # ========================================================================
    # Rendering
    # ========================================================================

    def __str__(self) -> str:
        parts = []

        if self._scheme:
            parts.append(f"{self._scheme}:")

        authority = self.authority
        if authority:
            parts.append(f"//{authority}")

        path = self._path
        if authority and path and not path.startswith("/"):
            path = "/" + path
        elif not authority and path.startswith("//"):
            path = "/" + path.lstrip("/")
        parts.append(path)

        if self._query:
            parts.append(f"?{self._query}")
        if self._fragment:
            parts.append(f"#{self._fragment}")

        return "".join(parts)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Uri):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))

    def __repr__(self) -> str:
        return f"Uri({str(self)!r})"

    # ========================================================================
    # Component filters
    # ========================================================================

    @staticmethod
    def _split_authority(authority: str):
        """Split ``[user-info@]host[:port]`` into its raw parts."""
        user_info, sep, host_port = authority.rpartition("@")
        if not sep:
            user_info = None

        if host_port.startswith("["):
            end = host_port.find("]")
            if end == -1:
                raise InvalidUri("Unbalanced IP literal brackets in authority", authority=authority)
            host = host_port[:end + 1]
            rest = host_port[end + 1:]
            if rest and not rest.startswith(":"):
                raise InvalidUri("Unexpected characters after IP literal", authority=authority)
            port = rest[1:] if rest else None
        elif "[" in host_port or "]" in host_port:
            raise InvalidUri("Unbalanced IP literal brackets in authority", authority=authority)
        else:
            host, sep, port = host_port.partition(":")
            if not sep:
                port = None

        if port:
            if not (port.isascii() and port.isdecimal()):
                raise InvalidUri("Port must be numeric", authority=authority)
            port = int(port)
        else:
            port = None

        if host == "" and (port is not None or user_info is not None):
            raise InvalidUri("URI with user info or port must have a host", authority=authority)

        return user_info, host, port

    @staticmethod
    def _filter_scheme(scheme: str) -> str:
        if scheme == "":
            return ""

        if not _SCHEME_RE.fullmatch(scheme):
            raise InvalidUri("Scheme must be compliant with RFC 3986", scheme=scheme)

        return scheme.lower()

    @staticmethod
    def _filter_host(host: str) -> str:
        if host == "":
            return ""

        if host.startswith("[") or host.endswith("]"):
            if not (host.startswith("[") and host.endswith("]")) or len(host) < 3:
                raise InvalidUri("Unbalanced IP literal brackets", host=host)
            return f"[{Uri._filter_ip_literal(host[1:-1])}]"

        if ":" in host:
            # Unbracketed IPv6 literal
            return f"[{Uri._filter_ip_literal(host)}]"

        if "." in host and _IPV4_LIKE_RE.fullmatch(host):
            try:
                ipaddress.IPv4Address(host)
            except ValueError as exc:
                raise InvalidUri("Host is not a valid IPv4 address", host=host) from exc
            return host

        if not _REG_NAME_RE.fullmatch(host):
            raise InvalidUri("Host must be compliant with RFC 3986", host=host)

        return host.lower()

    @staticmethod
    def _filter_ip_literal(literal: str) -> str:
        if literal[:1] in ("v", "V"):
            if not _IPV_FUTURE_RE.fullmatch(literal):
                raise InvalidUri("IP literal is not a valid IPvFuture address", host=literal)
            return literal.lower()

        try:
            ipaddress.IPv6Address(literal)
        except ValueError as exc:
            raise InvalidUri("IP literal is not a valid IPv6 address", host=literal) from exc

        return literal.lower()

    def _filter_port(self, port) -> Optional[int]:
        if port is None:
            return None

        if not isinstance(port, int) or isinstance(port, bool):
            raise InvalidUri(f"Port must be an integer, got {type(port).__name__}", port=port)

        if port < 1 or port > 65535:
            raise InvalidUri("TCP or UDP port must be between 1 and 65535", port=port)

        return None if self._is_standard_port(self._scheme, port) else port

    @staticmethod
    def _filter_user_info(user: str, password: Optional[str] = None) -> str:
        if user == "":
            return ""

        user_info = _encode(_USER_ENCODE_RE, user)
        if password:
            user_info += ":" + _encode(_PASSWORD_ENCODE_RE, password)
        return user_info

    def _filter_path(self, path: str) -> str:
        if self._scheme == "" and path.startswith(":"):
            raise InvalidUri("Path of a URI without a scheme cannot begin with a colon", path=path)

        authority = self.authority

        if authority == "" and path.startswith("//"):
            raise InvalidUri(
                "Path of a URI without an authority cannot begin with two slashes",
                path=path,
            )

        if authority != "" and path != "" and not path.startswith("/"):
            raise InvalidUri(
                "Path of a URI with an authority must be empty or begin with a slash",
                path=path,
            )

        return _encode(_PATH_ENCODE_RE, path)

    @staticmethod
    def _filter_query(query: str) -> str:
        return _encode(_QUERY_ENCODE_RE, query)

    @staticmethod
    def _filter_fragment(fragment: str) -> str:
        return _encode(_QUERY_ENCODE_RE, fragment)

    @staticmethod
    def _is_standard_port(scheme: str, port: Optional[int]) -> bool:
        return port is not None and STANDARD_PORTS.get(scheme) == port
