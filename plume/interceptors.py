"""
Ready-made interceptors for RequestHandlerChain.

Provides:
- RequestIdInterceptor: request id attribute + response header
- LoggingInterceptor: request line, status and timing
- ExceptionInterceptor: faults and exceptions -> plain-text error responses
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional

from .config import HttpConfig
from .faults import Fault, InvalidArgument
from .handler import RequestHandler
from .request import ServerRequest
from .response import Response

logger = logging.getLogger("plume.interceptors")


class RequestIdInterceptor:
    """
    Adds a unique request id to each request.

    Reuses the incoming header when present, otherwise generates 16 random
    bytes (hex). The id is stored as the ``request_id`` attribute and echoed
    on the response.
    """

    def __init__(self, header_name: str = "X-Request-ID"):
        self.header_name = header_name

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        request_id = request.get_header_line(self.header_name) or os.urandom(16).hex()

        response = handler.handle(request.with_attribute("request_id", request_id))
        return response.with_header(self.header_name, request_id)


class LoggingInterceptor:
    """Logs request/response with timing."""

    def __init__(self, slow_threshold_ms: float = 1000.0):
        self.slow_threshold_ms = slow_threshold_ms
        self.logger = logging.getLogger("plume.requests")

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        if not self.logger.isEnabledFor(logging.INFO):
            return handler.handle(request)

        start = time.monotonic()
        response = handler.handle(request)
        elapsed_ms = (time.monotonic() - start) * 1000.0

        self.logger.info(
            "%s %s - %d (%.1fms)",
            request.method, request.request_target, response.status_code, elapsed_ms,
        )

        if elapsed_ms > self.slow_threshold_ms:
            self.logger.warning(
                "Slow request: %s %s took %.1fms",
                request.method, request.request_target, elapsed_ms,
            )

        return response


class ExceptionInterceptor:
    """
    Converts errors raised further down the chain into responses.

    - InvalidArgument faults -> 400 with the fault message
    - other faults -> 500, message shown only for public faults (or debug)
    - any other exception -> 500 "Internal server error"

    The error response is bound to the chain's transport so it can be sent.
    """

    def __init__(self, debug: bool = False, config: Optional[HttpConfig] = None):
        self.debug = debug
        self.config = config

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        try:
            return handler.handle(request)

        except InvalidArgument as e:
            logger.warning(f"Fault {e.code}: {e.message}")
            return self._error_response(handler, 400, e.message, e.code)

        except Fault as e:
            logger.error(f"Fault {e.code}: {e.message}")
            message = e.message if (e.public or self.debug) else "Internal server error"
            return self._error_response(handler, 500, message, e.code)

        except Exception as e:
            logger.error(f"Unhandled exception: {e}", exc_info=True)
            message = str(e) if self.debug else "Internal server error"
            return self._error_response(handler, 500, message)

    def _error_response(
        self,
        handler: RequestHandler,
        status: int,
        message: str,
        code: Optional[str] = None,
    ) -> Response:
        headers = {"Content-Type": "text/plain; charset=utf-8"}
        if code:
            headers["X-Fault-Code"] = code

        return Response(
            status,
            headers=headers,
            body=message,
            transport=getattr(handler, "transport", None),
            config=self.config or getattr(handler, "config", None),
        )
