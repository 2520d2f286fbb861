"""
Transport (transport.py)

Tests the RawRequest and BufferedResponse implementations of the transport
protocols and the ASGI replay of a buffered response.
"""

import pytest

from plume.transport import BufferedResponse, RawRequest, TransportRequest, TransportResponse


# ============================================================================
# RawRequest
# ============================================================================

class TestRawRequest:

    def test_defaults(self):
        raw = RawRequest()
        assert raw.server == {}
        assert raw.headers == {}
        assert raw.files == {}
        assert raw.parsed_body is None
        assert raw.raw_content() == b""

    def test_raw_content(self):
        assert RawRequest(body=b"payload").raw_content() == b"payload"

    def test_protocol(self):
        assert isinstance(RawRequest(), TransportRequest)


# ============================================================================
# BufferedResponse
# ============================================================================

class TestBufferedResponse:

    def test_protocol(self):
        assert isinstance(BufferedResponse(), TransportResponse)

    def test_defaults(self, transport):
        assert transport.status_code == 200
        assert transport.headers == {}
        assert transport.body == b""
        assert not transport.headers_sent
        assert not transport.ended

    def test_header(self, transport):
        assert transport.header("X-A", "1") is True
        assert transport.header("X-B", ["1", "2"]) is True
        assert transport.headers == {"x-a": ["1"], "x-b": ["1", "2"]}

    def test_header_replaces(self, transport):
        transport.header("X-A", "1")
        transport.header("x-a", "2")
        assert transport.headers["x-a"] == ["2"]

    def test_status(self, transport):
        assert transport.status(404, "Not Found") is True
        assert transport.status_code == 404
        assert transport.reason == "Not Found"

    def test_write_freezes_head(self, transport):
        transport.write(b"a")
        assert transport.header("X-A", "1") is False
        assert transport.status(500) is False
        assert transport.status_code == 200
        assert "x-a" not in transport.headers

    def test_write_and_end(self, transport):
        assert transport.write("a") is True
        assert transport.write(b"b") is True
        assert transport.end(b"c") is True
        assert transport.body == b"abc"
        assert transport.ended

    def test_no_writes_after_end(self, transport):
        transport.end(b"done")
        assert transport.end(b"again") is False
        assert transport.write(b"more") is False
        assert transport.body == b"done"

    def test_sendfile(self, transport, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"file body")
        assert transport.sendfile(path) is True
        assert transport.ended
        assert transport.body == b"file body"

    def test_sendfile_missing(self, transport, tmp_path):
        assert transport.sendfile(tmp_path / "missing") is False
        assert not transport.ended

    def test_sendfile_after_end(self, transport, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"x")
        transport.end()
        assert transport.sendfile(path) is False


# ============================================================================
# ASGI replay
# ============================================================================

class TestBufferedResponseFlush:

    @pytest.mark.asyncio
    async def test_flush(self, transport, send_recorder):
        transport.status(201, "Created")
        transport.header("Content-Type", "text/plain")
        transport.end(b"hello")
        await transport.flush_asgi(send_recorder)

        assert send_recorder.status == 201
        assert send_recorder.headers["content-type"] == "text/plain"
        assert send_recorder.headers["content-length"] == "5"
        assert send_recorder.body == b"hello"
        assert send_recorder.messages[-1]["more_body"] is False

    @pytest.mark.asyncio
    async def test_multi_valued_headers(self, transport, send_recorder):
        transport.header("Set-Cookie", ["a=1", "b=2"])
        transport.end()
        await transport.flush_asgi(send_recorder)
        cookies = [v for k, v in send_recorder.messages[0]["headers"] if k == b"set-cookie"]
        assert cookies == [b"a=1", b"b=2"]

    @pytest.mark.asyncio
    async def test_explicit_content_length_kept(self, transport, send_recorder):
        transport.header("Content-Length", "0")
        transport.end()
        await transport.flush_asgi(send_recorder)
        lengths = [v for k, v in send_recorder.messages[0]["headers"] if k == b"content-length"]
        assert lengths == [b"0"]

    @pytest.mark.asyncio
    async def test_flush_file_in_chunks(self, transport, send_recorder, tmp_path):
        path = tmp_path / "big.bin"
        path.write_bytes(b"0123456789")
        transport.sendfile(path)
        await transport.flush_asgi(send_recorder, chunk_size=4)

        assert send_recorder.headers["content-length"] == "10"
        bodies = [m["body"] for m in send_recorder.messages[1:]]
        assert bodies == [b"0123", b"4567", b"89", b""]
        assert send_recorder.body == b"0123456789"
        assert send_recorder.messages[-1]["more_body"] is False
