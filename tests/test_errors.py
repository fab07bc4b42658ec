"""
Veil Error Tests
"""

from veil.errors import (
    AuxiliaryEncryptionError,
    ComplianceUnavailableError,
    ErrorCode,
    ExternalCollaboratorUnavailable,
    InvalidStateError,
    LedgerUnavailableError,
    OutOfRangeError,
    ValidationError,
    VeilError,
)


class TestErrors:
    """Error codes and audit serialization."""

    def test_hierarchy(self):
        assert issubclass(OutOfRangeError, ValidationError)
        assert issubclass(LedgerUnavailableError, ExternalCollaboratorUnavailable)
        assert issubclass(ComplianceUnavailableError, ExternalCollaboratorUnavailable)
        assert issubclass(AuxiliaryEncryptionError, ExternalCollaboratorUnavailable)
        assert issubclass(InvalidStateError, VeilError)

    def test_to_dict(self):
        err = OutOfRangeError(8, 0, 255)
        data = err.to_dict()
        assert data["code"] == ErrorCode.OUT_OF_RANGE.value
        assert data["name"] == "OUT_OF_RANGE"
        assert data["details"] == {"bit_length": 8, "min": 0, "max": 255}
        assert str(err).startswith("[1003]")

    def test_collaborator_details(self):
        err = LedgerUnavailableError("timeout")
        assert err.code == ErrorCode.LEDGER_UNAVAILABLE
        assert err.details == {"service": "ledger", "error": "timeout"}

    def test_no_details_omitted(self):
        assert "details" not in ValidationError("bad").to_dict()

    def test_invalid_state(self):
        err = InvalidStateError("ab" * 32, "CREATED", "VERIFIED_VALID")
        assert err.details["state"] == "CREATED"
        assert "VERIFIED_VALID" in err.message
