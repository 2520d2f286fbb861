"""
Plume - HTTP message abstraction layer

Complete integration of:
- Messages: immutable Request/ServerRequest/Response with copy-on-write headers
- Uri: RFC 3986 parsing, validation and canonical rendering
- Stream: byte streams with capability flags and detach semantics
- Uploads: uploaded file entries and descriptor-tree normalization
- Chain: sequential request handler chain with interceptors
- Faults: structured error handling with fault domains
- ASGI: bridge serving a handler chain as an ASGI application
"""

__version__ = "0.1.0"

# ============================================================================
# Messages
# ============================================================================

from .message import Message
from .request import HTTPMethod, Request, ServerRequest
from .response import Response
from .status import REASON_PHRASES, reason_phrase
from .stream import Stream
from .uri import Uri

# Upload handling
from .uploads import UploadError, UploadedFileEntry
from .parsers import UploadedFilesParser, UriParser

# ============================================================================
# Dispatch
# ============================================================================

from .handler import Interceptor, RequestHandler, RequestHandlerChain
from .interceptors import ExceptionInterceptor, LoggingInterceptor, RequestIdInterceptor
from .transport import BufferedResponse, RawRequest, TransportRequest, TransportResponse
from .asgi import ASGIBridge

# ============================================================================
# Configuration & Faults
# ============================================================================

from .config import ConfigLoader, HttpConfig, get_default_config, set_default_config
from .faults import (
    Fault,
    FaultDomain,
    Severity,
    InvalidArgument,
    RuntimeFailure,
    ConfigurationError,
    ConfigError,
)


__all__ = [
    # Messages
    "Message",
    "HTTPMethod",
    "Request",
    "ServerRequest",
    "Response",
    "REASON_PHRASES",
    "reason_phrase",
    "Stream",
    "Uri",
    # Uploads
    "UploadError",
    "UploadedFileEntry",
    "UploadedFilesParser",
    "UriParser",
    # Dispatch
    "Interceptor",
    "RequestHandler",
    "RequestHandlerChain",
    "ExceptionInterceptor",
    "LoggingInterceptor",
    "RequestIdInterceptor",
    "BufferedResponse",
    "RawRequest",
    "TransportRequest",
    "TransportResponse",
    "ASGIBridge",
    # Config & faults
    "ConfigLoader",
    "HttpConfig",
    "get_default_config",
    "set_default_config",
    "Fault",
    "FaultDomain",
    "Severity",
    "InvalidArgument",
    "RuntimeFailure",
    "ConfigurationError",
    "ConfigError",
]
