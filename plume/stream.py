"""
Stream - Byte stream over a seekable or non-seekable backing resource.

Provides:
- Stream: owned binary file object with fixed capability flags
- Construction from bytes/str (spooled temporary buffer), a file path,
  or an already-open binary file object
- Detach semantics: once detached, only ``close``/``detach`` succeed

A Stream is mutable and scoped to a single request; it must not be shared
across concurrently handled requests.
"""

from __future__ import annotations

import io
import os
import tempfile
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, Optional, Union

from .config import get_default_config
from .faults import (
    InvalidArgument,
    RuntimeFailure,
    StreamCapabilityFailure,
    StreamDetached,
    StreamIOFailure,
)

PathLike = Union[str, Path]

# Modes are compared without their "b"/"t" flags
READ_MODES = frozenset({"r", "r+", "w+", "a+", "x+"})
WRITE_MODES = frozenset({"r+", "w", "w+", "a", "a+", "x", "x+"})

CHUNK_SIZE = 64 * 1024


def _normalize_mode(mode: Any) -> str:
    """Validate an open mode and strip its binary/text flags ('rb+' -> 'r+')."""
    if not isinstance(mode, str):
        raise InvalidArgument(f"Invalid mode {mode!r}")

    base = mode.replace("b", "").replace("t", "")
    if base not in READ_MODES and base not in WRITE_MODES:
        raise InvalidArgument(f"Invalid mode {mode!r}", mode=mode)
    return base


def _resource_mode(resource: Any) -> Optional[str]:
    """Normalized open mode of a file object, or None when it has none."""
    mode = getattr(resource, "mode", None)
    if not isinstance(mode, str):
        return None
    try:
        return _normalize_mode(mode)
    except InvalidArgument:
        return None


def _is_resource(value: Any) -> bool:
    return callable(getattr(value, "read", None)) or callable(getattr(value, "write", None))


class Stream:
    """
    Byte-oriented stream.

    States:
        Open: seekable/readable/writable flags fixed at construction
        Detached: resource released; every operation except ``close`` and
            ``detach`` raises StreamDetached

    Example:
        ```python
        body = Stream(b"hello")
        body.read(5)              # b"hello"
        body.write(b" world")     # raises unless writable

        with Stream.from_file("upload.bin") as stream:
            data = stream.get_contents()
        ```
    """

    def __init__(
        self,
        content: Union[bytes, bytearray, str, BinaryIO] = b"",
        mode: str = "r+b",
        *,
        size: Optional[int] = None,
        seekable: Optional[bool] = None,
        readable: Optional[bool] = None,
        writable: Optional[bool] = None,
    ):
        """
        Initialize Stream.

        Args:
            content: Initial bytes/str (copied into a temporary buffer) or an
                open binary file object (owned from now on)
            mode: Open mode whose capabilities apply to bytes/str content
            size: Known size, overrides the computed one when positive
            seekable: Override for the seekable flag
            readable: Override for the readable flag
            writable: Override for the writable flag

        Raises:
            InvalidArgument: Unsupported content type or mode
            StreamIOFailure: The temporary buffer could not be written
        """
        self._resource: Optional[BinaryIO] = None
        self._eof = False

        if isinstance(content, (bytes, bytearray, str)):
            base_mode = _normalize_mode(mode)
            self._resource = self._create_buffer(content)
            if seekable is None:
                seekable = True
        elif isinstance(content, io.TextIOBase):
            raise InvalidArgument("Stream resource must be opened in binary mode")
        elif _is_resource(content):
            base_mode = _resource_mode(content)
            self._resource = content
        else:
            raise InvalidArgument(
                "Stream content must be bytes, str or a binary file object",
                content_type=type(content).__name__,
            )

        self._set_capabilities(base_mode, seekable, readable, writable)

        if isinstance(size, int) and not isinstance(size, bool) and size > 0:
            self._size: Optional[int] = size
        else:
            self._size = self._stat_size()

    # ========================================================================
    # Construction helpers
    # ========================================================================

    @classmethod
    def from_file(cls, path: PathLike, mode: str = "rb") -> "Stream":
        """
        Open a file and wrap it in a Stream.

        Raises:
            InvalidArgument: Unsupported mode
            StreamIOFailure: The file could not be opened
        """
        _normalize_mode(mode)
        binary_mode = mode.replace("t", "")
        if "b" not in binary_mode:
            binary_mode += "b"

        try:
            handle = open(os.fspath(path), binary_mode)
        except OSError as exc:
            raise StreamIOFailure(
                f"Unable to create a stream from file [{path}]",
                path=str(path),
                reason=str(exc),
            ) from exc

        return cls(handle)

    @classmethod
    def from_resource(cls, resource: Union["Stream", BinaryIO]) -> "Stream":
        """Wrap an open binary file object (a Stream is returned as-is)."""
        if isinstance(resource, Stream):
            return resource
        return cls(resource)

    def _create_buffer(self, content: Union[bytes, bytearray, str]) -> BinaryIO:
        """Copy content into a spooled temporary buffer positioned at 0."""
        if isinstance(content, str):
            content = content.encode("utf-8")

        buffer = tempfile.SpooledTemporaryFile(
            max_size=get_default_config().stream_spool_max_size,
            mode="w+b",
        )
        try:
            buffer.write(content)
            buffer.seek(0)
        except OSError as exc:
            buffer.close()
            raise StreamIOFailure("Unable to create a stream from string", reason=str(exc)) from exc

        return buffer

    def _set_capabilities(
        self,
        base_mode: Optional[str],
        seekable: Optional[bool],
        readable: Optional[bool],
        writable: Optional[bool],
    ) -> None:
        if isinstance(seekable, bool):
            self._seekable = seekable
        else:
            self._seekable = self._probe("seekable", default=hasattr(self._resource, "seek"))

        if isinstance(readable, bool):
            self._readable = readable
        elif base_mode is not None:
            self._readable = base_mode in READ_MODES
        else:
            self._readable = self._probe("readable", default=hasattr(self._resource, "read"))

        if isinstance(writable, bool):
            self._writable = writable
        elif base_mode is not None:
            self._writable = base_mode in WRITE_MODES
        else:
            self._writable = self._probe("writable", default=hasattr(self._resource, "write"))

    def _probe(self, name: str, default: bool) -> bool:
        """Ask the resource for a capability (``seekable()`` and friends)."""
        method = getattr(self._resource, name, None)
        if not callable(method):
            return default
        try:
            return bool(method())
        except (OSError, ValueError):
            return False

    def _stat_size(self) -> Optional[int]:
        """Current size of the backing resource, or None when unknown."""
        resource = self._resource
        if resource is None:
            return None

        if self._seekable:
            try:
                position = resource.tell()
                resource.seek(0, os.SEEK_END)
                end = resource.tell()
                resource.seek(position)
                return end
            except (OSError, ValueError):
                pass

        fileno = getattr(resource, "fileno", None)
        if callable(fileno):
            try:
                return os.fstat(fileno()).st_size
            except (OSError, ValueError):
                return None

        return None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def close(self) -> None:
        """Release the backing resource, then detach. No-op once detached."""
        if self._resource is None:
            return

        try:
            self._resource.close()
        except OSError as exc:
            raise StreamIOFailure("Unable to close the stream", reason=str(exc)) from exc

        self.detach()

    def detach(self) -> Optional[BinaryIO]:
        """
        Hand the backing resource back to the caller.

        The stream is unusable afterwards.

        Returns:
            The resource, or None if already detached
        """
        resource = self._resource
        if resource is None:
            return None

        self._resource = None
        self._size = None
        self._seekable = False
        self._readable = False
        self._writable = False
        self._eof = False

        return resource

    @property
    def detached(self) -> bool:
        return self._resource is None

    def _assert_attached(self) -> BinaryIO:
        if self._resource is None:
            raise StreamDetached()
        return self._resource

    # ========================================================================
    # Capabilities
    # ========================================================================

    def get_size(self) -> Optional[int]:
        return self._size

    def is_seekable(self) -> bool:
        return self._seekable

    def is_readable(self) -> bool:
        return self._readable

    def is_writable(self) -> bool:
        return self._writable

    # ========================================================================
    # Positioning
    # ========================================================================

    def tell(self) -> int:
        resource = self._assert_attached()
        try:
            return resource.tell()
        except (OSError, ValueError) as exc:
            raise StreamIOFailure(
                "Unable to tell the current position of the stream read/write pointer",
                reason=str(exc),
            ) from exc

    def eof(self) -> bool:
        """True when the pointer is at the end of the stream."""
        resource = self._assert_attached()

        if not self._seekable:
            return self._eof

        try:
            position = resource.tell()
            resource.seek(0, os.SEEK_END)
            end = resource.tell()
            resource.seek(position)
        except (OSError, ValueError) as exc:
            raise StreamIOFailure("Unable to determine end of stream", reason=str(exc)) from exc

        return position >= end

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> None:
        resource = self._assert_attached()

        if not self._seekable:
            raise StreamCapabilityFailure("Stream is not seekable")

        try:
            resource.seek(offset, whence)
        except (OSError, ValueError) as exc:
            raise StreamIOFailure(
                "Can not seek to a position in the stream",
                offset=offset,
                whence=whence,
            ) from exc

    def rewind(self) -> None:
        self.seek(0)

    # ========================================================================
    # I/O
    # ========================================================================

    def write(self, data: Union[bytes, bytearray, str]) -> int:
        """
        Write data at the current position.

        Returns:
            Number of bytes written
        """
        resource = self._assert_attached()

        if not self._writable:
            raise StreamCapabilityFailure("Stream is not writable")

        if isinstance(data, str):
            data = data.encode("utf-8")

        try:
            written = resource.write(data)
        except (OSError, ValueError, TypeError) as exc:
            raise StreamIOFailure("Unable to write data to the stream", reason=str(exc)) from exc

        self._size = self._stat_size()

        return len(data) if written is None else written

    def read(self, length: int) -> bytes:
        """Read up to ``length`` bytes from the current position."""
        resource = self._assert_attached()

        if not self._readable:
            raise StreamCapabilityFailure("Stream is not readable")

        if not isinstance(length, int) or isinstance(length, bool) or length < 0:
            raise InvalidArgument("Length must be a non-negative integer", length=length)

        try:
            data = resource.read(length)
        except (OSError, ValueError) as exc:
            raise StreamIOFailure("Unable to read data from the stream", reason=str(exc)) from exc

        # Non-blocking raw resources return None when no data is ready
        if data is None:
            return b""

        if length and not data:
            self._eof = True

        return bytes(data)

    def get_contents(self) -> bytes:
        """Read everything from the current position to the end."""
        resource = self._assert_attached()

        if not self._readable:
            raise StreamCapabilityFailure("Stream is not readable")

        try:
            data = resource.read()
        except (OSError, ValueError) as exc:
            raise StreamIOFailure("Unable to get contents of the stream", reason=str(exc)) from exc

        self._eof = True
        return bytes(data or b"")

    def get_metadata(self, key: Optional[str] = None) -> Union[Dict[str, Any], Any]:
        """
        Describe the backing resource.

        Args:
            key: Single entry to return (None for the whole mapping)
        """
        resource = self._assert_attached()

        meta = {
            "mode": getattr(resource, "mode", None),
            "seekable": self._seekable,
            "readable": self._readable,
            "writable": self._writable,
            "uri": getattr(resource, "name", None),
            "stream_type": type(resource).__name__,
            "closed": bool(getattr(resource, "closed", False)),
        }

        if key is None:
            return meta
        return meta.get(key)

    # ========================================================================
    # Rendering & protocols
    # ========================================================================

    def __bytes__(self) -> bytes:
        """Whole content (rewinding when seekable); b'' on any failure."""
        try:
            if self._seekable:
                self.rewind()
            return self.get_contents()
        except RuntimeFailure:
            return b""

    def __str__(self) -> str:
        return bytes(self).decode("utf-8", errors="replace")

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk

    def __enter__(self) -> "Stream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        if self._resource is None:
            return "<Stream detached>"
        return (
            f"<Stream size={self._size} seekable={self._seekable} "
            f"readable={self._readable} writable={self._writable}>"
        )
