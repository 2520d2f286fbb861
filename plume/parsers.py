"""
Transport parsers.

Provides:
- UploadedFilesParser: upload-descriptor tree -> tree of UploadedFileEntry
- UriParser: server variables + headers -> Uri
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import get_default_config
from .faults import InvalidArgument, InvalidUri, UploadTreeTooDeep, UploadTreeTooLarge
from .uploads import UploadedFileEntry
from .uri import Uri

DESCRIPTOR_KEYS = ("name", "type", "tmp_name", "error", "size")

_ABSOLUTE_FORM_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+\-.]*://[^/?#]*")


# ============================================================================
# UploadedFilesParser
# ============================================================================

class UploadedFilesParser:
    """
    Normalize an upload-descriptor tree.

    A descriptor is a mapping with the keys ``name``, ``type``,
    ``tmp_name``, ``error`` and ``size``. Batch fields (``files[]``) arrive
    with each key holding an indexed structure instead of a scalar; those
    are transposed into one descriptor per index.

    Example:
        ```python
        tree = {
            "files": {
                "name": ["a.txt", "b.txt"],
                "type": ["text/plain", "text/plain"],
                "tmp_name": ["/tmp/p1", "/tmp/p2"],
                "error": [0, 0],
                "size": [3, 4],
            }
        }
        UploadedFilesParser()(tree)
        # {"files": {0: <UploadedFileEntry a.txt>, 1: <UploadedFileEntry b.txt>}}
        ```
    """

    def __init__(self, max_depth: Optional[int] = None, max_files: Optional[int] = None):
        config = get_default_config()
        self.max_depth = max_depth or config.upload_max_depth
        self.max_files = max_files or config.upload_max_files

    def __call__(self, files: Mapping[Any, Any]) -> Dict[Any, Any]:
        """
        Parse a descriptor tree into an isomorphic tree of entries.

        Raises:
            InvalidArgument: A descriptor is invalid
            UploadTreeTooDeep: Nesting exceeds ``max_depth``
            UploadTreeTooLarge: More than ``max_files`` entries
        """
        if not isinstance(files, Mapping):
            raise InvalidArgument(
                f"Upload descriptor tree must be a mapping, got {type(files).__name__}"
            )

        parsed: Dict[Any, Any] = {}
        count = 0
        stack: List[Tuple[Mapping, Dict[Any, Any], int]] = [(files, parsed, 1)]

        while stack:
            source, target, depth = stack.pop()

            if depth > self.max_depth:
                raise UploadTreeTooDeep(depth=depth, max_depth=self.max_depth)

            for field, node in source.items():
                if not isinstance(node, Mapping):
                    continue

                error = node.get("error")

                if error is None:
                    # Field group
                    child: Dict[Any, Any] = {}
                    target[field] = child
                    stack.append((node, child, depth + 1))
                elif isinstance(error, (Mapping, list, tuple)):
                    child = {}
                    target[field] = child
                    stack.append((self._transpose(node), child, depth + 1))
                else:
                    count += 1
                    if count > self.max_files:
                        raise UploadTreeTooLarge(max_files=self.max_files)
                    target[field] = self._create_entry(node)

        return parsed

    @staticmethod
    def _transpose(descriptor: Mapping) -> Dict[Any, Dict[str, Any]]:
        """Turn parallel indexed structures into one descriptor per index."""
        errors = descriptor["error"]
        indexes = errors.keys() if isinstance(errors, Mapping) else range(len(errors))

        return {
            index: {key: _pick(descriptor.get(key), index) for key in DESCRIPTOR_KEYS}
            for index in indexes
        }

    @staticmethod
    def _create_entry(descriptor: Mapping) -> UploadedFileEntry:
        return UploadedFileEntry(
            descriptor.get("tmp_name") or None,
            _to_int(descriptor.get("error")),
            _to_int(descriptor.get("size")),
            descriptor.get("name"),
            descriptor.get("type"),
        )


def _pick(values: Any, index: Any) -> Any:
    """Element ``index`` of a mapping or list, None when missing."""
    if isinstance(values, Mapping):
        return values.get(index)
    if isinstance(values, (list, tuple)) and isinstance(index, int) and 0 <= index < len(values):
        return values[index]
    return None


def _is_ascii_digits(text: str) -> bool:
    return text.isascii() and text.isdecimal()


def _to_int(value: Any) -> Any:
    """Coerce numeric strings; anything else is passed through for validation."""
    if isinstance(value, str) and _is_ascii_digits(value.strip()):
        return int(value)
    return value


# ============================================================================
# UriParser
# ============================================================================

class UriParser:
    """
    Reconstruct the request Uri from server variables and headers.

    Server variable keys are lower-case (``https``, ``http_host``,
    ``server_name``, ``server_addr``, ``server_port``, ``request_uri``,
    ``query_string``).
    """

    def __call__(
        self,
        server: Mapping[str, Any],
        headers: Optional[Mapping[str, Any]] = None,
    ) -> Uri:
        server = {str(key).lower(): value for key, value in server.items()}
        headers = {str(key).lower(): value for key, value in (headers or {}).items()}

        uri = Uri().with_scheme(self._parse_scheme(server))
        uri, explicit_port = self._parse_host_and_port(uri, server, headers)

        server_port = server.get("server_port")
        if not explicit_port and server_port not in (None, ""):
            uri = uri.with_port(self._to_port(server_port))

        return self._parse_path_and_query(uri, server)

    @staticmethod
    def _parse_scheme(server: Mapping[str, Any]) -> str:
        https = server.get("https")
        if https and str(https).lower() != "off":
            return "https"
        return "http"

    def _parse_host_and_port(self, uri: Uri, server: Mapping[str, Any], headers: Mapping[str, Any]):
        if server.get("http_host"):
            return self._apply_host(uri, str(server["http_host"]))
        if server.get("server_name"):
            return uri.with_host(str(server["server_name"])), False
        if server.get("server_addr"):
            return uri.with_host(str(server["server_addr"])), False

        host = headers.get("host")
        if isinstance(host, (list, tuple)):
            host = host[0] if host else None
        if host:
            return self._apply_host(uri, str(host))

        return uri, False

    def _apply_host(self, uri: Uri, value: str):
        """Apply ``host[:port]`` (IPv6 literals in brackets)."""
        host, port = self._split_host_port(value.strip())
        uri = uri.with_host(host)
        if port:
            return uri.with_port(self._to_port(port)), True
        return uri, False

    @staticmethod
    def _split_host_port(value: str) -> Tuple[str, str]:
        if value.startswith("["):
            end = value.find("]")
            if end != -1:
                rest = value[end + 1:]
                return value[:end + 1], rest[1:] if rest.startswith(":") else ""
            return value, ""

        if value.count(":") == 1:
            host, _, port = value.partition(":")
            return host, port

        # No port, or a bare IPv6 literal
        return value, ""

    @staticmethod
    def _to_port(value: Any) -> int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        text = str(value).strip()
        if not _is_ascii_digits(text):
            raise InvalidUri(f"Invalid port {value!r}", port=str(value))
        return int(text)

    @staticmethod
    def _parse_path_and_query(uri: Uri, server: Mapping[str, Any]) -> Uri:
        request_uri = server.get("request_uri")

        if request_uri:
            target = str(request_uri)
            match = _ABSOLUTE_FORM_RE.match(target)
            if match:
                target = target[match.end():]

            path, sep, query = target.partition("?")
            if path != "*":
                uri = uri.with_path(path)
            if sep:
                return uri.with_query(query)

        query_string = server.get("query_string")
        if query_string:
            uri = uri.with_query(str(query_string))

        return uri
