"""
Faults (faults/)

Tests the Fault base class, domain defaults and the mapping of each fault
family onto the built-in exception hierarchy.
"""

import pytest

from plume.faults import (
    DOMAIN_DEFAULTS,
    ConfigError,
    ConfigurationError,
    Fault,
    FaultDomain,
    InvalidArgument,
    InvalidHeaderValue,
    InvalidUri,
    ResponseNotBound,
    RuntimeFailure,
    Severity,
    StreamDetached,
    UploadTreeTooDeep,
)


# ============================================================================
# Fault base
# ============================================================================

class TestFault:

    def test_explicit_fields(self):
        fault = Fault(code="CUSTOM", message="Something broke", domain=FaultDomain.FLOW)
        assert fault.code == "CUSTOM"
        assert fault.message == "Something broke"
        assert fault.domain == FaultDomain.FLOW
        assert fault.severity is Severity.ERROR
        assert fault.retryable is False
        assert fault.public is False
        assert fault.metadata == {}

    def test_missing_fields(self):
        with pytest.raises(TypeError):
            Fault(code="X")

    def test_str(self):
        fault = Fault(code="CUSTOM", message="Broken", domain=FaultDomain.IO)
        assert str(fault) == "[CUSTOM] Broken"

    def test_repr(self):
        fault = Fault(code="CUSTOM", message="Broken", domain=FaultDomain.IO)
        assert repr(fault) == "Fault(code='CUSTOM', domain=io, severity=error, public=False)"

    def test_to_dict(self):
        fault = InvalidUri("bad port", port=99999)
        assert fault.to_dict() == {
            "code": "INVALID_URI",
            "message": "bad port",
            "domain": "message",
            "severity": "warn",
            "retryable": False,
            "public": True,
            "metadata": {"port": 99999},
        }

    def test_explicit_severity_and_retry(self):
        fault = Fault(
            code="X",
            message="m",
            domain=FaultDomain.IO,
            severity=Severity.FATAL,
            retryable=True,
        )
        assert fault.severity is Severity.FATAL
        assert fault.retryable is True

    def test_domain_defaults(self):
        assert DOMAIN_DEFAULTS[FaultDomain.CONFIG]["severity"] is Severity.FATAL
        assert DOMAIN_DEFAULTS[FaultDomain.MESSAGE]["severity"] is Severity.WARN

    def test_domain_equality(self):
        assert FaultDomain.IO == FaultDomain("io")
        assert FaultDomain.IO == "io"
        assert hash(FaultDomain.IO) == hash(FaultDomain("io"))
        assert repr(FaultDomain.FLOW) == "FaultDomain(name='flow')"


# ============================================================================
# Families
# ============================================================================

class TestFaultFamilies:

    def test_invalid_argument(self):
        fault = InvalidHeaderValue(header_name="X-A")
        assert isinstance(fault, ValueError)
        assert isinstance(fault, InvalidArgument)
        assert fault.message == "Invalid header value"
        assert fault.metadata == {"header_name": "X-A"}
        assert fault.domain == FaultDomain.MESSAGE
        assert fault.public

    def test_message_override(self):
        assert InvalidUri("custom").message == "custom"
        assert InvalidUri().message == "Invalid URI"

    def test_limit_faults(self):
        fault = UploadTreeTooDeep(depth=40, max_depth=32)
        assert isinstance(fault, InvalidArgument)
        assert fault.code == "UPLOAD_TREE_TOO_DEEP"

    def test_runtime_failure(self):
        fault = StreamDetached()
        assert isinstance(fault, RuntimeError)
        assert isinstance(fault, RuntimeFailure)
        assert fault.domain == FaultDomain.IO
        assert not fault.public

    def test_response_not_bound_domain(self):
        fault = ResponseNotBound()
        assert isinstance(fault, RuntimeFailure)
        assert fault.domain == FaultDomain.FLOW

    def test_configuration_error(self):
        fault = ConfigError("bad value", field="max_body_size")
        assert isinstance(fault, ConfigurationError)
        assert not isinstance(fault, ValueError)
        assert fault.severity is Severity.FATAL
        assert fault.domain == FaultDomain.CONFIG

    def test_catch_by_builtin(self):
        with pytest.raises(ValueError):
            raise InvalidUri("x")
        with pytest.raises(RuntimeError):
            raise StreamDetached()

    def test_catch_by_fault(self):
        for exc in (InvalidUri(), StreamDetached(), ConfigError()):
            with pytest.raises(Fault):
                raise exc
