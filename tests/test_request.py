"""
Request / ServerRequest (request.py)

Tests method validation, request-target derivation, Host header
maintenance, wire rendering and the server-side accessors built from a
transport request.
"""

import pytest

from plume.faults import (
    InvalidArgument,
    InvalidMethod,
    InvalidParsedBody,
    InvalidUploadError,
    InvalidUri,
)
from plume.request import HTTPMethod, Request, ServerRequest
from plume.transport import RawRequest
from plume.uploads import UploadError, UploadedFileEntry
from plume.uri import Uri


# ============================================================================
# Request
# ============================================================================

class TestRequestMethod:

    def test_default_method(self):
        assert Request().method == "GET"

    def test_enum_method(self):
        assert Request(HTTPMethod.POST).method == "POST"

    @pytest.mark.parametrize("method", ["get", "FOO", "", 123, None])
    def test_invalid_method(self, method):
        with pytest.raises(InvalidMethod):
            Request(method)

    def test_with_method(self):
        request = Request("GET", "/")
        changed = request.with_method("DELETE")
        assert changed.method == "DELETE"
        assert request.method == "GET"

    def test_with_method_keeps_type(self):
        request = ServerRequest("GET", "/")
        assert isinstance(request.with_method("PUT"), ServerRequest)


class TestRequestTarget:

    def test_derived_from_uri(self):
        request = Request("GET", "http://example.com/items?page=2")
        assert request.request_target == "/items?page=2"

    def test_empty_path_is_slash(self):
        assert Request("GET", "http://example.com").request_target == "/"
        assert Request().request_target == "/"

    def test_explicit_target(self):
        request = Request("OPTIONS", "http://example.com/").with_request_target("*")
        assert request.request_target == "*"

    def test_target_with_whitespace(self):
        with pytest.raises(InvalidArgument):
            Request().with_request_target("/a b")

    def test_lazy_uri(self):
        assert Request().uri == Uri()

    def test_invalid_uri_string(self):
        with pytest.raises(InvalidUri):
            Request("GET", "http://host:99999/")


class TestRequestHostHeader:

    def test_host_from_uri(self):
        request = Request("GET", "http://example.com/")
        assert request.get_header_line("Host") == "example.com"

    def test_host_with_port(self):
        request = Request("GET", "http://example.com:8080/")
        assert request.get_header_line("host") == "example.com:8080"

    def test_host_is_first(self):
        request = Request("GET", "http://example.com/", {"Accept": "*/*"})
        assert list(request.headers) == ["host", "accept"]

    def test_explicit_host_kept(self):
        request = Request("GET", "http://example.com/", {"Host": "other.com"})
        assert request.get_header_line("host") == "other.com"

    def test_no_host_without_uri_host(self):
        assert not Request("GET", "/path").has_header("host")

    def test_with_uri_updates_host(self):
        request = Request("GET", "http://a.com/").with_uri("http://b.com/x")
        assert request.get_header_line("host") == "b.com"
        assert request.request_target == "/x"

    def test_with_uri_preserve_host(self):
        request = Request("GET", "http://a.com/").with_uri("http://b.com/x", preserve_host=True)
        assert request.get_header_line("host") == "a.com"
        assert request.uri.host == "b.com"

    def test_preserve_host_without_existing_host(self):
        request = Request().with_uri("http://b.com/", preserve_host=True)
        assert request.get_header_line("host") == "b.com"

    def test_hostless_uri_keeps_header(self):
        request = Request("GET", "http://a.com/").with_uri("/path")
        assert request.get_header_line("host") == "a.com"

    def test_with_uri_leaves_receiver(self):
        request = Request("GET", "http://a.com/")
        request.with_uri("http://b.com/")
        assert request.get_header_line("host") == "a.com"
        assert request.uri.host == "a.com"


class TestRequestRendering:

    def test_bytes(self):
        request = Request("POST", "http://h/p", {"Content-Type": "text/plain"}, "hi")
        assert bytes(request) == (
            b"POST /p HTTP/1.1\r\n"
            b"host: h\r\n"
            b"content-type: text/plain\r\n"
            b"\r\n"
            b"hi"
        )

    def test_cookie_header_joined_with_semicolon(self):
        request = Request("GET", "http://h/", [("Cookie", "a=1"), ("Cookie", "b=2")])
        assert "cookie: a=1; b=2\r\n" in str(request)

    def test_protocol_version_in_start_line(self):
        request = Request("GET", "http://h/", protocol_version="1.0")
        assert str(request).startswith("GET / HTTP/1.0\r\n")

    def test_repr(self):
        assert repr(Request("GET", "/a")) == "<Request GET /a>"


# ============================================================================
# ServerRequest
# ============================================================================

class TestServerRequestFromTransport:

    def test_basic(self, make_server_request):
        request = make_server_request(
            "POST",
            "/submit?x=1",
            headers={"Content-Type": "text/plain"},
            body=b"hi",
        )
        assert request.method == "POST"
        assert str(request.uri) == "http://example.com/submit?x=1"
        assert request.request_target == "/submit?x=1"
        assert request.protocol_version == "1.1"
        assert bytes(request.body) == b"hi"
        assert request.get_header_line("host") == "example.com"
        assert request.get_header_line("content-type") == "text/plain"
        assert request.server_params["request_method"] == "POST"

    def test_protocol_version_stripped(self, make_server_request):
        request = make_server_request(server_protocol="HTTP/1.0")
        assert request.protocol_version == "1.0"

    def test_https(self, make_server_request):
        assert make_server_request(https="on").uri.scheme == "https"
        assert make_server_request(https="off").uri.scheme == "http"

    def test_server_port(self, make_server_request):
        assert make_server_request(server_port="8080").uri.port == 8080

    def test_explicit_host_port_wins(self, make_server_request):
        request = make_server_request(http_host="example.com:9000", server_port="8080")
        assert request.uri.port == 9000

    def test_server_keys_lowercased(self):
        raw = RawRequest(server={"REQUEST_METHOD": "PUT", "HTTP_HOST": "h", "REQUEST_URI": "/x"})
        request = ServerRequest.from_transport(raw)
        assert request.method == "PUT"
        assert str(request.uri) == "http://h/x"
        assert "request_method" in request.server_params

    def test_cookies_query_and_parsed_body(self):
        raw = RawRequest(
            server={"request_method": "POST", "http_host": "h"},
            cookies={"session": "abc"},
            query={"page": "2"},
            parsed_body={"name": "plume"},
        )
        request = ServerRequest.from_transport(raw)
        assert request.cookie_params == {"session": "abc"}
        assert request.query_params == {"page": "2"}
        assert request.parsed_body == {"name": "plume"}

    def test_uploaded_files(self, tmp_path):
        upload = tmp_path / "upload"
        upload.write_bytes(b"png")
        raw = RawRequest(
            server={"request_method": "POST", "http_host": "h"},
            files={
                "avatar": {
                    "name": "a.png",
                    "type": "image/png",
                    "tmp_name": str(upload),
                    "error": 0,
                    "size": 3,
                }
            },
        )
        request = ServerRequest.from_transport(raw)
        entry = request.uploaded_files["avatar"]
        assert isinstance(entry, UploadedFileEntry)
        assert entry.client_filename == "a.png"
        assert entry.client_media_type == "image/png"
        assert entry.size == 3
        assert bytes(entry.get_stream()) == b"png"

    def test_invalid_upload_error(self):
        raw = RawRequest(
            server={"http_host": "h"},
            files={"f": {"name": "a", "type": "", "tmp_name": "", "error": 5, "size": 0}},
        )
        with pytest.raises(InvalidUploadError):
            ServerRequest.from_transport(raw)

    def test_invalid_parsed_body(self):
        raw = RawRequest(server={"http_host": "h"}, parsed_body="not a mapping")
        with pytest.raises(InvalidParsedBody):
            ServerRequest.from_transport(raw)


class TestServerRequestAccessors:

    def test_server_params(self):
        request = ServerRequest("GET", "/", server_params={"remote_addr": "1.2.3.4"})
        assert request.server_params == {"remote_addr": "1.2.3.4"}

    def test_accessors_return_copies(self):
        request = ServerRequest().with_query_params({"a": "1"}).with_cookie_params({"c": "1"})
        request.query_params["a"] = "changed"
        request.cookie_params["c"] = "changed"
        assert request.query_params == {"a": "1"}
        assert request.cookie_params == {"c": "1"}

    def test_query_params_must_be_mapping(self):
        with pytest.raises(InvalidArgument):
            ServerRequest().with_query_params([("a", "1")])

    def test_cookie_params_must_be_mapping(self):
        with pytest.raises(InvalidArgument):
            ServerRequest().with_cookie_params("a=1")

    def test_with_query_params_leaves_receiver(self):
        request = ServerRequest()
        request.with_query_params({"a": "1"})
        assert request.query_params == {}

    @pytest.mark.parametrize("data", [None, {"a": 1}, [1, 2], (1,)])
    def test_valid_parsed_body(self, data):
        assert ServerRequest().with_parsed_body(data).parsed_body == data

    def test_parsed_body_not_shared_with_clones(self):
        original = ServerRequest().with_parsed_body({"a": "1"})
        clone = original.with_attribute("k", "v")
        clone.parsed_body["a"] = "changed"
        assert original.parsed_body == {"a": "1"}
        assert clone.parsed_body == {"a": "1"}

    def test_parsed_body_copied_from_caller(self):
        data = {"user": {"tags": ["a"]}}
        request = ServerRequest().with_parsed_body(data)
        data["user"]["tags"].append("b")
        request.parsed_body["user"]["name"] = "x"
        assert request.parsed_body == {"user": {"tags": ["a"]}}

    @pytest.mark.parametrize("data", [5, "text", b"bytes", object()])
    def test_invalid_parsed_body(self, data):
        with pytest.raises(InvalidParsedBody):
            ServerRequest().with_parsed_body(data)


class TestServerRequestUploads:

    def test_nested_tree(self):
        entry = UploadedFileEntry.from_bytes(b"x", "x.txt")
        request = ServerRequest().with_uploaded_files({"docs": {"list": [entry]}})
        assert request.uploaded_files["docs"]["list"][0] is entry

    def test_nested_tree_not_shared(self):
        entry = UploadedFileEntry.from_bytes(b"x", "x.txt")
        tree = {"docs": {0: entry}}
        request = ServerRequest().with_uploaded_files(tree)
        tree["docs"][1] = "not an entry"
        request.uploaded_files["docs"][2] = "not an entry"
        assert request.uploaded_files == {"docs": {0: entry}}

    def test_errored_entry_is_valid_leaf(self):
        entry = UploadedFileEntry(None, UploadError.NO_FILE)
        request = ServerRequest().with_uploaded_files({"f": entry})
        assert request.uploaded_files["f"].error is UploadError.NO_FILE

    def test_invalid_leaf(self):
        with pytest.raises(InvalidArgument):
            ServerRequest().with_uploaded_files({"docs": {"a": "not an entry"}})

    def test_must_be_mapping(self):
        with pytest.raises(InvalidArgument):
            ServerRequest().with_uploaded_files([UploadedFileEntry.from_bytes(b"x")])


class TestServerRequestAttributes:

    def test_with_attribute(self):
        request = ServerRequest().with_attribute("user", "alice")
        assert request.get_attribute("user") == "alice"
        assert request.attributes == {"user": "alice"}

    def test_get_attribute_default(self):
        assert ServerRequest().get_attribute("missing", 42) == 42
        assert ServerRequest().get_attribute("missing") is None

    def test_with_attribute_leaves_receiver(self):
        request = ServerRequest()
        request.with_attribute("user", "alice")
        assert request.attributes == {}

    def test_without_attribute(self):
        request = ServerRequest().with_attribute("a", 1).with_attribute("b", 2)
        changed = request.without_attribute("a")
        assert changed.attributes == {"b": 2}
        assert request.attributes == {"a": 1, "b": 2}

    def test_without_absent_attribute_returns_self(self):
        request = ServerRequest()
        assert request.without_attribute("missing") is request

    def test_attributes_copy(self):
        request = ServerRequest().with_attribute("a", 1)
        request.attributes["a"] = 2
        assert request.get_attribute("a") == 1
