"""
Plume faults - Domain-specific fault types.

Provides the three fault families raised by the message layer:
- InvalidArgument faults (MESSAGE domain, also ValueError)
- RuntimeFailure faults (IO domain, also RuntimeError)
- ConfigurationError faults (CONFIG domain)
"""

from typing import Optional

from .core import Fault, FaultDomain, Severity


# ============================================================================
# InvalidArgument Faults
# ============================================================================

class InvalidArgument(Fault, ValueError):
    """A value handed to a constructor or ``with_*`` call is invalid."""
    code = "INVALID_ARGUMENT"
    message = "Invalid argument"
    domain = FaultDomain.MESSAGE

    def __init__(self, message: Optional[str] = None, **metadata):
        super().__init__(
            code=self.code,
            message=message or self.message,
            domain=self.domain,
            severity=Severity.WARN,
            public=True,
            metadata=metadata,
        )


class InvalidUri(InvalidArgument):
    """URI string or component is not RFC 3986 compliant."""
    code = "INVALID_URI"
    message = "Invalid URI"


class InvalidMethod(InvalidArgument):
    """Unsupported HTTP method."""
    code = "INVALID_METHOD"
    message = "Invalid HTTP method"


class InvalidStatusCode(InvalidArgument):
    """Unknown or forbidden status code."""
    code = "INVALID_STATUS_CODE"
    message = "Invalid status code"


class InvalidHeaderName(InvalidArgument):
    """Header name is not a string or not a valid token."""
    code = "INVALID_HEADER_NAME"
    message = "Invalid header name"


class InvalidHeaderValue(InvalidArgument):
    """Header value contains forbidden characters (injection attempt)."""
    code = "INVALID_HEADER_VALUE"
    message = "Invalid header value"


class InvalidParsedBody(InvalidArgument):
    """Parsed body must be a mapping, a sequence or None."""
    code = "INVALID_PARSED_BODY"
    message = "Parsed body must be a mapping, a sequence or None"


class InvalidUploadError(InvalidArgument):
    """Upload error status is not one of the defined outcomes."""
    code = "INVALID_UPLOAD_ERROR"
    message = "Invalid upload error status"


class UploadTreeTooDeep(InvalidArgument):
    """Upload descriptor tree nests deeper than allowed."""
    code = "UPLOAD_TREE_TOO_DEEP"
    message = "Upload descriptor tree is nested too deeply"


class UploadTreeTooLarge(InvalidArgument):
    """Upload descriptor tree holds more files than allowed."""
    code = "UPLOAD_TREE_TOO_LARGE"
    message = "Upload descriptor tree contains too many files"


# ============================================================================
# RuntimeFailure Faults
# ============================================================================

class RuntimeFailure(Fault, RuntimeError):
    """An operation cannot be carried out in the object's current state."""
    code = "RUNTIME_FAILURE"
    message = "Runtime failure"
    domain = FaultDomain.IO

    def __init__(self, message: Optional[str] = None, **metadata):
        super().__init__(
            code=self.code,
            message=message or self.message,
            domain=self.domain,
            severity=Severity.ERROR,
            public=False,
            metadata=metadata,
        )


class StreamDetached(RuntimeFailure):
    """Operation attempted on a detached stream."""
    code = "STREAM_DETACHED"
    message = "Stream resource is detached"


class StreamCapabilityFailure(RuntimeFailure):
    """Stream is not seekable, readable or writable as required."""
    code = "STREAM_CAPABILITY"
    message = "Stream does not support this operation"


class StreamIOFailure(RuntimeFailure):
    """The backing resource failed during read, write, seek or stat."""
    code = "STREAM_IO"
    message = "Stream I/O failed"


class UploadStateFailure(RuntimeFailure):
    """Uploaded file errored or was already moved."""
    code = "UPLOAD_STATE"
    message = "Uploaded file is not available"


class UploadMoveFailure(RuntimeFailure):
    """Uploaded file could not be moved."""
    code = "UPLOAD_MOVE_FAILED"
    message = "Uploaded file could not be moved"


class ResponseNotBound(RuntimeFailure):
    """Response has no transport to send through."""
    code = "RESPONSE_NOT_BOUND"
    message = "Response is not bound to a transport"
    domain = FaultDomain.FLOW


# ============================================================================
# ConfigurationError Faults
# ============================================================================

class ConfigurationError(Fault):
    """Components were assembled with an invalid configuration."""
    code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"
    domain = FaultDomain.CONFIG

    def __init__(self, message: Optional[str] = None, **metadata):
        super().__init__(
            code=self.code,
            message=message or self.message,
            domain=self.domain,
            severity=Severity.FATAL,
            public=False,
            metadata=metadata,
        )


class ConfigError(ConfigurationError):
    """Configuration value failed validation."""
    code = "CONFIG_INVALID"
    message = "Configuration validation failed"
