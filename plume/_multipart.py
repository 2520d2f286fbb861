"""
Form body decoding for the ASGI bridge.

Provides:
- split_field_name / nest_fields: bracket-aware field names
  (``a[b][]=1`` -> ``{"a": {"b": {0: "1"}}}``)
- MultipartReader: multipart/form-data -> (fields, upload-descriptor tree)
  using python-multipart, writing file parts to temporary files
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from python_multipart import MultipartParser
from python_multipart.multipart import parse_options_header

from .config import HttpConfig
from .faults import InvalidArgument
from .parsers import DESCRIPTOR_KEYS
from .uploads import UploadError

logger = logging.getLogger("plume.asgi")

Segment = Union[str, int, None]

_FIELD_NAME_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT_RE = re.compile(r"\[([^\[\]]*)\]")


# ============================================================================
# Bracket-aware field names
# ============================================================================

def split_field_name(name: str) -> Tuple[str, List[Segment]]:
    """
    Split ``top[a][]`` into ``("top", ["a", None])``.

    ``None`` stands for an append segment (``[]``); digit segments become
    ints. Names that do not follow the bracket grammar are kept whole.
    """
    match = _FIELD_NAME_RE.match(name)
    if not match:
        return name, []

    segments: List[Segment] = []
    for segment in _SEGMENT_RE.findall(match.group(2)):
        if segment == "":
            segments.append(None)
        elif segment.isascii() and segment.isdecimal():
            segments.append(int(segment))
        else:
            segments.append(segment)

    return match.group(1), segments


def _child(node: Dict[Any, Any], key: Any) -> Dict[Any, Any]:
    """Sub-mapping at ``key``, replacing a scalar that is in the way."""
    value = node.get(key)
    if not isinstance(value, dict):
        value = node[key] = {}
    return value


def _resolve(node: Dict[Any, Any], segments: List[Segment]) -> List[Any]:
    """Replace append segments with the next free index along the path."""
    path = []
    for position, segment in enumerate(segments):
        if segment is None:
            segment = len(node)
        path.append(segment)
        if position < len(segments) - 1:
            node = _child(node, segment)
    return path


def nest_fields(pairs: Iterable[Tuple[str, Any]]) -> Dict[Any, Any]:
    """Build a nested mapping from ``(name, value)`` pairs, later wins."""
    result: Dict[Any, Any] = {}

    for name, value in pairs:
        top, segments = split_field_name(name)
        if not segments:
            result[top] = value
            continue

        path = _resolve(_child(result, top), segments)
        node = _child(result, top)
        for segment in path[:-1]:
            node = _child(node, segment)
        node[path[-1]] = value

    return result


def add_file_descriptor(files: Dict[Any, Any], name: str, descriptor: Dict[str, Any]) -> None:
    """
    Place one file descriptor into a batch-style descriptor tree.

    ``docs[a][]`` lands at ``files["docs"][key]["a"][index]`` for each of the
    descriptor keys, so batch fields come out as parallel indexed structures.
    """
    top, segments = split_field_name(name)

    if not segments:
        files[top] = {key: descriptor[key] for key in DESCRIPTOR_KEYS}
        return

    root = files.get(top)
    if not isinstance(root, dict) or not isinstance(root.get("error"), dict):
        root = files[top] = {}

    path = _resolve(_child(root, "error"), segments)

    for key in DESCRIPTOR_KEYS:
        node = _child(root, key)
        for segment in path[:-1]:
            node = _child(node, segment)
        node[path[-1]] = descriptor[key]


# ============================================================================
# MultipartReader
# ============================================================================

class MultipartReader:
    """
    Decode a multipart/form-data body.

    Text parts become form fields; file parts are written to temporary files
    and described in an upload-descriptor tree. Files larger than
    ``max_file_size`` are discarded with error INI_SIZE; a part with an empty
    filename yields NO_FILE.
    """

    def __init__(self, boundary: bytes, config: HttpConfig):
        self.boundary = boundary
        self.config = config
        self.temp_files: List[str] = []

    def parse(self, body: bytes) -> Tuple[Dict[Any, Any], Dict[Any, Any]]:
        """
        Parse ``body``.

        Returns:
            (fields, files) where fields is a nested mapping and files an
            upload-descriptor tree

        Raises:
            InvalidArgument: Malformed body or too many parts
        """
        config = self.config
        field_pairs: List[Tuple[str, str]] = []
        files: Dict[Any, Any] = {}

        part_count = 0
        state: Dict[str, Any] = {}
        header_state = {
            "field": bytearray(),
            "value": bytearray(),
            "headers": {},
        }

        def on_part_begin():
            nonlocal part_count

            part_count += 1
            if part_count > config.max_field_count:
                raise InvalidArgument(
                    "Too many multipart parts",
                    max_allowed=config.max_field_count,
                )

            state.clear()
            state.update(
                name=None,
                filename=None,
                content_type="application/octet-stream",
                data=bytearray(),
                handle=None,
                path="",
                size=0,
                error=UploadError.OK,
            )
            header_state["field"] = bytearray()
            header_state["value"] = bytearray()
            header_state["headers"] = {}

        def on_part_data(data: bytes, start: int, end: int):
            chunk = data[start:end]

            if state["filename"] is None:
                state["data"].extend(chunk)
                return

            if state["error"] is not UploadError.OK or state["handle"] is None:
                return

            state["size"] += len(chunk)
            if state["size"] > config.max_file_size:
                self._discard(state)
                state["error"] = UploadError.INI_SIZE
                return

            state["handle"].write(chunk)

        def on_part_end():
            handle = state.get("handle")
            if handle is not None:
                handle.close()
                state["handle"] = None

            name = state.get("name")
            if not name:
                return

            if state["filename"] is None:
                field_pairs.append((name, state["data"].decode("utf-8", errors="replace")))
                return

            error = state["error"]
            add_file_descriptor(files, name, {
                "name": state["filename"],
                "type": state["content_type"] if error is UploadError.OK else "",
                "tmp_name": state["path"] if error is UploadError.OK else "",
                "error": int(error),
                "size": state["size"] if error is UploadError.OK else 0,
            })

        def on_header_field(data: bytes, start: int, end: int):
            header_state["field"].extend(data[start:end])

        def on_header_value(data: bytes, start: int, end: int):
            header_state["value"].extend(data[start:end])

        def on_header_end():
            if header_state["field"]:
                field_name = header_state["field"].decode("utf-8", errors="replace").lower()
                field_value = header_state["value"].decode("utf-8", errors="replace")
                header_state["headers"][field_name] = field_value

            header_state["field"] = bytearray()
            header_state["value"] = bytearray()

        def on_headers_finished():
            content_disposition = header_state["headers"].get("content-disposition", "")
            if content_disposition:
                _, options = parse_options_header(content_disposition)

                name = options.get(b"name")
                if name is not None:
                    state["name"] = name.decode("utf-8", errors="replace")

                filename = options.get(b"filename")
                if filename is not None:
                    state["filename"] = _sanitize_filename(filename.decode("utf-8", errors="replace"))

            content_type = header_state["headers"].get("content-type")
            if content_type:
                state["content_type"] = content_type

            if state["filename"] is None or not state["name"]:
                return

            if state["filename"] == "":
                state["error"] = UploadError.NO_FILE
                return

            self._open_temp_file(state)

        callbacks = {
            "on_part_begin": on_part_begin,
            "on_part_data": on_part_data,
            "on_part_end": on_part_end,
            "on_header_field": on_header_field,
            "on_header_value": on_header_value,
            "on_header_end": on_header_end,
            "on_headers_finished": on_headers_finished,
        }

        parser = MultipartParser(self.boundary, callbacks)

        try:
            parser.write(body)
            parser.finalize()
        except InvalidArgument:
            self._close_open_handle(state)
            raise
        except ValueError as e:
            self._close_open_handle(state)
            raise InvalidArgument(f"Multipart parsing failed: {e}") from e

        return nest_fields(field_pairs), files

    def _open_temp_file(self, state: Dict[str, Any]) -> None:
        try:
            handle = tempfile.NamedTemporaryFile(
                prefix="plume-",
                dir=self.config.upload_tempdir,
                delete=False,
            )
        except OSError as e:
            logger.warning(f"Unable to create upload temp file: {e}")
            state["error"] = UploadError.NO_TMP_DIR
            return

        self.temp_files.append(handle.name)
        state["handle"] = handle
        state["path"] = handle.name

    def _discard(self, state: Dict[str, Any]) -> None:
        """Drop the temp file of an oversized part."""
        self._close_open_handle(state)
        path = state.get("path")
        if path:
            self._unlink(path)
            state["path"] = ""

    @staticmethod
    def _close_open_handle(state: Dict[str, Any]) -> None:
        handle = state.get("handle")
        if handle is not None:
            handle.close()
            state["handle"] = None

    def cleanup(self) -> None:
        """Remove temporary files that are still in place (not moved)."""
        for path in self.temp_files:
            self._unlink(path)
        self.temp_files = []

    @staticmethod
    def _unlink(path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def _sanitize_filename(filename: str) -> str:
    """Strip path components and NUL bytes from a client filename."""
    filename = filename.replace("\\", "/").replace("\x00", "")
    return os.path.basename(filename)
