"""
ASGI bridge - Serve a RequestHandlerChain as an ASGI 3 application.

Per HTTP request the bridge reads the body, builds a RawRequest (server
variables, headers, cookies, query, form body and uploads), turns it into a
ServerRequest, dispatches the chain against a BufferedResponse and replays
the result onto the ASGI ``send`` callable.
"""

from __future__ import annotations

import inspect
import logging
import time
from http.cookies import SimpleCookie
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, quote

from python_multipart.multipart import parse_options_header

from ._multipart import MultipartReader, nest_fields
from .config import HttpConfig, get_default_config
from .faults import InvalidArgument
from .handler import RequestHandlerChain, Stage
from .request import ServerRequest
from .response import Response
from .transport import BufferedResponse, RawRequest

Hook = Callable[[], Any]


class ASGIBridge:
    """
    ASGI application wrapping a RequestHandlerChain.

    Example:
        ```python
        def hello(request, handler):
            return Response(200, body=b"hello")

        app = ASGIBridge([ExceptionInterceptor(), hello])
        # uvicorn module:app
        ```
    """

    def __init__(
        self,
        stages: Iterable[Stage],
        config: Optional[HttpConfig] = None,
        *,
        on_startup: Optional[Sequence[Hook]] = None,
        on_shutdown: Optional[Sequence[Hook]] = None,
    ):
        self.config = config or get_default_config()
        self.chain = RequestHandlerChain(stages, config=self.config)
        self.on_startup = list(on_startup or [])
        self.on_shutdown = list(on_shutdown or [])
        self.logger = logging.getLogger("plume.asgi")

    async def __call__(self, scope: dict, receive: Callable, send: Callable):
        scope_type = scope["type"]
        if scope_type == "http":
            await self.handle_http(scope, receive, send)
        elif scope_type == "lifespan":
            await self.handle_lifespan(scope, receive, send)
        else:
            self.logger.warning(f"Unsupported ASGI scope type: {scope_type}")

    # ========================================================================
    # HTTP
    # ========================================================================

    async def handle_http(self, scope: dict, receive: Callable, send: Callable):
        """Handle one HTTP request."""
        body = await self._read_body(receive)
        if body is None:
            await self._send_error(send, 413, "Request body too large")
            return

        reader: Optional[MultipartReader] = None
        try:
            raw, reader = self.build_raw_request(scope, body)
            request = ServerRequest.from_transport(raw, self.config)
        except InvalidArgument as e:
            self.logger.warning(f"Rejected request: {e}")
            if reader is not None:
                reader.cleanup()
            await self._send_error(send, 400, e.message)
            return
        except Exception as e:
            self.logger.error(f"Failed to build request: {e}", exc_info=True)
            if reader is not None:
                reader.cleanup()
            await self._send_error(send, 500, "Internal server error")
            return

        transport = BufferedResponse()
        try:
            response = self.chain.with_transport(transport).handle(request)
            if not transport.ended:
                if transport.headers_sent:
                    transport.end()
                else:
                    response.with_transport(transport).send()
        except Exception as e:
            self.logger.error(f"Critical error in request pipeline: {e}", exc_info=True)
            transport = None
        finally:
            if reader is not None:
                reader.cleanup()

        if transport is None:
            await self._send_error(send, 500, "Internal server error")
            return

        await transport.flush_asgi(send)

    async def _read_body(self, receive: Callable) -> Optional[bytes]:
        """Read the whole request body; None when it exceeds ``max_body_size``."""
        chunks: List[bytes] = []
        total = 0
        too_large = False

        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break

            chunk = message.get("body", b"")
            total += len(chunk)
            if total > self.config.max_body_size:
                too_large = True
            elif chunk:
                chunks.append(chunk)

            if not message.get("more_body", False):
                break

        if too_large:
            return None
        return b"".join(chunks)

    async def _send_error(self, send: Callable, status: int, message: str) -> None:
        transport = BufferedResponse()
        Response(
            status,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=message,
            transport=transport,
            config=self.config,
        ).send()
        await transport.flush_asgi(send)

    # ========================================================================
    # Transport request
    # ========================================================================

    def build_raw_request(
        self,
        scope: dict,
        body: bytes,
    ) -> Tuple[RawRequest, Optional[MultipartReader]]:
        """
        Translate an ASGI scope and body into a RawRequest.

        Returns:
            (raw request, multipart reader owning temp files or None)

        Raises:
            InvalidArgument: Malformed query, form or multipart body
        """
        headers: Dict[str, List[str]] = {}
        for name, value in scope.get("headers", ()):
            headers.setdefault(name.decode("latin-1").lower(), []).append(value.decode("latin-1"))

        server = self._server_params(scope, headers)
        query = self._parse_query(server["query_string"])
        cookies = self._parse_cookies(headers.get("cookie", []))

        parsed_body = None
        files: Dict[Any, Any] = {}
        reader = None

        content_type = ",".join(headers.get("content-type", []))
        if content_type and body:
            media_type, options = parse_options_header(content_type)

            if media_type == b"application/x-www-form-urlencoded":
                parsed_body = self._parse_query(body.decode("utf-8", errors="replace"))

            elif media_type == b"multipart/form-data":
                boundary = options.get(b"boundary")
                if not boundary:
                    raise InvalidArgument("No boundary in multipart Content-Type")
                reader = MultipartReader(boundary, self.config)
                try:
                    parsed_body, files = reader.parse(body)
                except InvalidArgument:
                    reader.cleanup()
                    raise

        raw = RawRequest(
            server=server,
            headers=headers,
            cookies=cookies,
            query=query,
            parsed_body=parsed_body,
            files=files,
            body=body,
        )
        return raw, reader

    @staticmethod
    def _server_params(scope: dict, headers: Dict[str, List[str]]) -> Dict[str, Any]:
        """Lower-case server variables in the classic CGI/Swoole layout."""
        raw_path = scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin-1").partition("?")[0]
        else:
            path = quote(scope.get("path", "/") or "/", safe="/%!$&'()*+,;=:@~")

        query_string = scope.get("query_string", b"").decode("latin-1")
        request_uri = f"{path}?{query_string}" if query_string else path

        now = time.time()
        server: Dict[str, Any] = {
            "request_method": scope.get("method", "GET"),
            "request_uri": request_uri,
            "path_info": scope.get("path", "/"),
            "query_string": query_string,
            "server_protocol": f"HTTP/{scope.get('http_version', '1.1')}",
            "https": "on" if scope.get("scheme") in ("https", "wss") else "off",
            "request_time": int(now),
            "request_time_float": now,
        }

        if headers.get("host"):
            server["http_host"] = headers["host"][0]

        server_addr = scope.get("server")
        if server_addr:
            server["server_addr"], server["server_port"] = server_addr[0], server_addr[1]

        client = scope.get("client")
        if client:
            server["remote_addr"], server["remote_port"] = client[0], client[1]

        return server

    def _parse_query(self, query_string: str) -> Dict[Any, Any]:
        if not query_string:
            return {}
        try:
            pairs = parse_qsl(
                query_string,
                keep_blank_values=True,
                max_num_fields=self.config.max_field_count,
            )
        except ValueError as e:
            raise InvalidArgument(f"Malformed query or form body: {e}") from e
        return nest_fields(pairs)

    @staticmethod
    def _parse_cookies(values: List[str]) -> Dict[str, str]:
        if not values:
            return {}
        cookie = SimpleCookie()
        cookie.load("; ".join(values))
        return {key: morsel.value for key, morsel in cookie.items()}

    # ========================================================================
    # Lifespan
    # ========================================================================

    async def handle_lifespan(self, scope: dict, receive: Callable, send: Callable):
        """Handle ASGI lifespan events."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    await self._run_hooks(self.on_startup)
                    await send({"type": "lifespan.startup.complete"})
                except Exception as e:
                    self.logger.error(f"Startup error: {e}", exc_info=True)
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
                    raise

            elif message["type"] == "lifespan.shutdown":
                try:
                    await self._run_hooks(self.on_shutdown)
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as e:
                    self.logger.error(f"Shutdown error: {e}", exc_info=True)
                    await send({"type": "lifespan.shutdown.failed", "message": str(e)})
                break

    @staticmethod
    async def _run_hooks(hooks: Sequence[Hook]) -> None:
        for hook in hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
