"""
Plume faults - Typed fault signals for the HTTP message layer.

Every error raised by Plume is a Fault: an exception carrying a stable code,
a domain and a severity. The three families map onto the built-in exception
hierarchy so callers can catch either:

- InvalidArgument    (ValueError)   - bad input, raised eagerly
- RuntimeFailure     (RuntimeError) - state or I/O failure
- ConfigurationError                - components wired incorrectly
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
    DOMAIN_DEFAULTS,
)

from .domains import (
    InvalidArgument,
    InvalidUri,
    InvalidMethod,
    InvalidStatusCode,
    InvalidHeaderName,
    InvalidHeaderValue,
    InvalidParsedBody,
    InvalidUploadError,
    UploadTreeTooDeep,
    UploadTreeTooLarge,
    RuntimeFailure,
    StreamDetached,
    StreamCapabilityFailure,
    StreamIOFailure,
    UploadStateFailure,
    UploadMoveFailure,
    ResponseNotBound,
    ConfigurationError,
    ConfigError,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",
    # InvalidArgument family
    "InvalidArgument",
    "InvalidUri",
    "InvalidMethod",
    "InvalidStatusCode",
    "InvalidHeaderName",
    "InvalidHeaderValue",
    "InvalidParsedBody",
    "InvalidUploadError",
    "UploadTreeTooDeep",
    "UploadTreeTooLarge",
    # RuntimeFailure family
    "RuntimeFailure",
    "StreamDetached",
    "StreamCapabilityFailure",
    "StreamIOFailure",
    "UploadStateFailure",
    "UploadMoveFailure",
    "ResponseNotBound",
    # ConfigurationError family
    "ConfigurationError",
    "ConfigError",
]
