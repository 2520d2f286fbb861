"""
Uploaded files.

Provides:
- UploadError: outcome codes of a file upload
- UploadedFileEntry: one uploaded file, backed by a Stream or a path on disk
"""

from __future__ import annotations

import logging
import os
import shutil
from enum import IntEnum
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

from .config import get_default_config
from .faults import (
    InvalidArgument,
    InvalidUploadError,
    RuntimeFailure,
    UploadMoveFailure,
    UploadStateFailure,
)
from .stream import Stream

logger = logging.getLogger("plume.uploads")


class UploadError(IntEnum):
    """Upload outcome (values follow the classic CGI upload error codes)."""
    OK = 0
    INI_SIZE = 1
    FORM_SIZE = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8


# ============================================================================
# UploadedFileEntry
# ============================================================================

class UploadedFileEntry:
    """
    A single uploaded file.

    Exactly one of a Stream or a file path backs a successful upload. The
    entry is one-shot: after ``move_to`` succeeds it refuses further access.
    Client filename and media type are untrusted values from the request.
    """

    def __init__(
        self,
        file: Union[Stream, BinaryIO, str, os.PathLike, None],
        error: Union[UploadError, int] = UploadError.OK,
        size: Optional[int] = None,
        client_filename: Optional[str] = None,
        client_media_type: Optional[str] = None,
        *,
        chunk_size: Optional[int] = None,
    ):
        """
        Initialize UploadedFileEntry.

        Args:
            file: Stream, binary file object or path of the uploaded content
                (ignored when ``error`` is not OK)
            error: Upload outcome
            size: Declared size in bytes
            client_filename: Filename sent by the client
            client_media_type: Media type sent by the client
            chunk_size: Block size used when copying a stream-backed file

        Raises:
            InvalidUploadError: Unknown error code
            InvalidArgument: Missing or unsupported file for a successful upload
        """
        self._error = self._filter_error(error)
        self._size = size
        self._client_filename = client_filename
        self._client_media_type = client_media_type
        self._chunk_size = chunk_size or get_default_config().upload_copy_chunk_size
        self._stream: Optional[Stream] = None
        self._file: Optional[str] = None
        self._moved = False

        if self._chunk_size <= 0:
            raise InvalidArgument("Chunk size must be positive", chunk_size=chunk_size)

        if self._error is UploadError.OK:
            self._set_file_or_stream(file)

    @classmethod
    def from_bytes(
        cls,
        content: bytes,
        filename: Optional[str] = None,
        media_type: str = "application/octet-stream",
    ) -> "UploadedFileEntry":
        """Create an in-memory upload."""
        return cls(
            Stream(content),
            UploadError.OK,
            len(content),
            filename,
            media_type,
        )

    @staticmethod
    def _filter_error(error: Any) -> UploadError:
        if isinstance(error, bool) or not isinstance(error, int):
            raise InvalidUploadError(error=repr(error))
        try:
            return UploadError(error)
        except ValueError as exc:
            raise InvalidUploadError(error=error) from exc

    def _set_file_or_stream(self, file: Any) -> None:
        if isinstance(file, Stream):
            self._stream = file
        elif isinstance(file, (str, os.PathLike)) and os.fspath(file) != "":
            self._file = os.fspath(file)
        elif file is not None and callable(getattr(file, "read", None)):
            self._stream = Stream.from_resource(file)
        else:
            raise InvalidArgument("Invalid stream or file provided for UploadedFileEntry")

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def size(self) -> Optional[int]:
        return self._size

    @property
    def error(self) -> UploadError:
        return self._error

    @property
    def client_filename(self) -> Optional[str]:
        return self._client_filename

    @property
    def client_media_type(self) -> Optional[str]:
        return self._client_media_type

    @property
    def moved(self) -> bool:
        return self._moved

    # ========================================================================
    # Access
    # ========================================================================

    def _validate_active(self) -> None:
        if self._error is not UploadError.OK:
            raise UploadStateFailure(
                "Cannot retrieve stream due to upload error",
                error=int(self._error),
            )
        if self._moved:
            raise UploadStateFailure("Cannot retrieve stream after it has already been moved")

    def get_stream(self) -> Stream:
        """
        Stream of the uploaded content.

        Path-backed files are opened read-only on each call.

        Raises:
            UploadStateFailure: Upload errored or was already moved
            StreamIOFailure: The backing file could not be opened
        """
        self._validate_active()

        if self._stream is not None:
            return self._stream

        return Stream.from_file(self._file, "rb")

    def move_to(self, target_path: Union[str, os.PathLike]) -> None:
        """
        Move the uploaded file to a new location.

        Raises:
            UploadStateFailure: Upload errored or was already moved
            InvalidArgument: Empty or non-path target
            UploadMoveFailure: The move or copy failed
        """
        self._validate_active()

        if not isinstance(target_path, (str, os.PathLike)) or os.fspath(target_path) == "":
            raise InvalidArgument(
                "Invalid path provided for move operation; must be a non-empty string"
            )

        target = Path(target_path)

        if self._file is not None:
            try:
                shutil.move(self._file, target)
            except OSError as exc:
                raise UploadMoveFailure(
                    f"Uploaded file could not be moved to {target}",
                    target=str(target),
                    reason=str(exc),
                ) from exc
        else:
            self._copy_stream(target)

        self._moved = True
        logger.debug(f"Moved upload {self._client_filename!r} to {target}")

    def _copy_stream(self, target: Path) -> None:
        source = self._stream
        try:
            if source.is_seekable():
                source.rewind()

            with Stream.from_file(target, "wb") as destination:
                while True:
                    chunk = source.read(self._chunk_size)
                    if not chunk:
                        break
                    destination.write(chunk)
        except RuntimeFailure as exc:
            raise UploadMoveFailure(
                f"Uploaded file could not be moved to {target}",
                target=str(target),
                reason=str(exc),
            ) from exc

    def __repr__(self) -> str:
        return (
            f"<UploadedFileEntry filename={self._client_filename!r} "
            f"size={self._size} error={self._error.name}>"
        )
