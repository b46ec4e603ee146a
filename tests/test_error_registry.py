"""
Tests for the error registry and the error envelope builder.
"""

import textwrap

import pytest

from app.core.errors import (
    CredentialCorruptedError,
    DecryptionError,
    GatewayError,
    InternalError,
    SetupRequired,
    UpstreamError,
    ValidationError,
)
from app.core.errors.middleware import build_error_body
from app.core.errors.registry import ErrorRegistry, RegistryValidationError, error_registry


@pytest.mark.parametrize(
    "exc_class",
    [ValidationError, SetupRequired, CredentialCorruptedError, DecryptionError, UpstreamError, InternalError],
)
def test_every_error_class_is_registered(exc_class):
    assert error_registry.get(exc_class.default_code) is not None


def test_invalid_code_rejected():
    with pytest.raises(ValueError):
        GatewayError("x", code="not-a-code")


def test_status_codes():
    assert error_registry.lookup("GW-AUTH-001").http_status == 401
    assert error_registry.lookup("GW-AUTH-002").http_status == 403
    assert error_registry.lookup("GW-CRED-001").http_status == 400
    assert error_registry.lookup("GW-UPS-001").http_status == 502


def test_lookup_unknown():
    with pytest.raises(KeyError):
        error_registry.lookup("GW-SYS-999")


class TestBuildErrorBody:
    def test_safe_message_in_production(self):
        status, body = build_error_body("GW-UPS-001", "secret internal detail")
        assert status == 502
        assert body["error"] == "Upstream service error"
        assert "secret internal detail" not in body["message"]
        assert body["timestamp"]

    def test_detail_exposed_in_development(self):
        _, body = build_error_body("GW-UPS-001", "secret internal detail", expose_detail=True)
        assert body["message"] == "secret internal detail"

    def test_extra_fields(self):
        _, body = build_error_body("GW-CRED-001", extra={"setupUrl": "/setup"})
        assert body["setupUrl"] == "/setup"

    def test_unknown_code_falls_back_to_500(self):
        status, body = build_error_body("GW-SYS-999")
        assert status == 500
        assert body["error"] == "Internal server error"


class TestRegistryValidation:
    def _load(self, tmp_path, content):
        path = tmp_path / "registry.yaml"
        path.write_text(textwrap.dedent(content))
        registry = ErrorRegistry()
        registry.load(str(path))
        return registry

    ENTRY = """
        - code: {code}
          domain: {domain}
          title: T
          severity: {severity}
          retryable: false
          user_action_required: false
          http_status: 400
          safe_message: m
          remediation: []
    """

    def _doc(self, *entries):
        return "schema_version: 1\nerrors:\n" + "".join(
            textwrap.indent(textwrap.dedent(self.ENTRY.format(**e)), "  ") for e in entries
        )

    def test_valid(self, tmp_path):
        registry = self._load(tmp_path, self._doc({"code": "GW-REQ-001", "domain": "REQ", "severity": "INFO"}))
        assert len(registry) == 1
        assert registry.schema_version == 1

    def test_domain_mismatch(self, tmp_path):
        with pytest.raises(RegistryValidationError, match="doesn't match"):
            self._load(tmp_path, self._doc({"code": "GW-REQ-001", "domain": "SYS", "severity": "INFO"}))

    def test_bad_severity(self, tmp_path):
        with pytest.raises(RegistryValidationError, match="severity"):
            self._load(tmp_path, self._doc({"code": "GW-REQ-001", "domain": "REQ", "severity": "LOUD"}))

    def test_duplicate(self, tmp_path):
        entry = {"code": "GW-REQ-001", "domain": "REQ", "severity": "INFO"}
        with pytest.raises(RegistryValidationError, match="Duplicate"):
            self._load(tmp_path, self._doc(entry, entry))
