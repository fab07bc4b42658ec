"""
Veil Protocol Error Handling

All error codes and exception classes.

Verification failures are never raised: verifiers return False or a
structured VerificationResult. Exceptions here cover malformed input,
collaborator outages, and protocol state violations.
"""

from enum import IntEnum
from typing import Optional, Any


class ErrorCode(IntEnum):
    """Protocol error codes."""

    # 1xxx - Validation errors
    INVALID_PARAMETER = 1001
    INVALID_BLINDING = 1002
    OUT_OF_RANGE = 1003
    INVALID_INDEX = 1004
    INVALID_BIT_LENGTH = 1005
    INVALID_KEY = 1006
    INVALID_RING = 1007

    # 2xxx - Curve errors
    CURVE_OPERATION_FAILED = 2001
    HASH_TO_POINT_FAILED = 2002

    # 3xxx - External collaborators
    COLLABORATOR_UNAVAILABLE = 3001
    LEDGER_UNAVAILABLE = 3002
    COMPLIANCE_UNAVAILABLE = 3003
    AUXILIARY_ENCRYPTION_FAILED = 3004

    # 4xxx - Protocol errors
    INVALID_STATE = 4001
    COMPLIANCE_REQUIRED = 4002
    MALFORMED_BUNDLE = 4003


class VeilError(Exception):
    """Base exception for all Veil protocol errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for audit logs."""
        result = {
            "code": self.code.value,
            "name": self.code.name,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


# ==============================================================================
# Validation Errors (1xxx)
# ==============================================================================

class ValidationError(VeilError):
    """Malformed caller input."""

    def __init__(
        self,
        message: str,
        details: Any = None,
        code: ErrorCode = ErrorCode.INVALID_PARAMETER
    ):
        super().__init__(code, message, details)


class InvalidBlindingError(ValidationError):
    def __init__(self, message: str = "Blinding factor must be 32 bytes"):
        super().__init__(message, code=ErrorCode.INVALID_BLINDING)


class OutOfRangeError(ValidationError):
    def __init__(self, bit_length: int, min_value: int, max_value: int):
        # The offending value is deliberately left out of the message.
        super().__init__(
            f"Value is out of range [{min_value}, {max_value}] "
            f"for a {bit_length}-bit proof",
            {"bit_length": bit_length, "min": min_value, "max": max_value},
            code=ErrorCode.OUT_OF_RANGE,
        )


class InvalidIndexError(ValidationError):
    def __init__(self, index: int, ring_size: int):
        super().__init__(
            f"Invalid signer index {index} for ring size {ring_size}",
            {"index": index, "ring_size": ring_size},
            code=ErrorCode.INVALID_INDEX,
        )


class InvalidBitLengthError(ValidationError):
    def __init__(self, bit_length: int, allowed: tuple):
        super().__init__(
            f"Unsupported bit length {bit_length}, expected one of {list(allowed)}",
            {"bit_length": bit_length, "allowed": list(allowed)},
            code=ErrorCode.INVALID_BIT_LENGTH,
        )


class InvalidKeyError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, code=ErrorCode.INVALID_KEY)


class InvalidRingError(ValidationError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message, details, code=ErrorCode.INVALID_RING)


# ==============================================================================
# Curve Errors (2xxx)
# ==============================================================================

class CurveError(VeilError):
    def __init__(self, message: str, code: ErrorCode = ErrorCode.CURVE_OPERATION_FAILED):
        super().__init__(code, message)


class HashToPointError(CurveError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Hash to point failed after {attempts} attempts",
            code=ErrorCode.HASH_TO_POINT_FAILED,
        )


# ==============================================================================
# External Collaborator Errors (3xxx)
# ==============================================================================

class ExternalCollaboratorUnavailable(VeilError):
    """An external collaborator (ledger, compliance, MPC) failed."""

    def __init__(
        self,
        service: str,
        error: str,
        code: ErrorCode = ErrorCode.COLLABORATOR_UNAVAILABLE
    ):
        super().__init__(
            code,
            f"{service} unavailable: {error}",
            {"service": service, "error": error},
        )


class LedgerUnavailableError(ExternalCollaboratorUnavailable):
    def __init__(self, error: str):
        super().__init__("ledger", error, ErrorCode.LEDGER_UNAVAILABLE)


class ComplianceUnavailableError(ExternalCollaboratorUnavailable):
    def __init__(self, error: str):
        super().__init__("compliance", error, ErrorCode.COMPLIANCE_UNAVAILABLE)


class AuxiliaryEncryptionError(ExternalCollaboratorUnavailable):
    def __init__(self, error: str):
        super().__init__("auxiliary-encryption", error, ErrorCode.AUXILIARY_ENCRYPTION_FAILED)


# ==============================================================================
# Protocol Errors (4xxx)
# ==============================================================================

class InvalidStateError(VeilError):
    def __init__(self, bundle_hash: str, state: str, expected: str):
        super().__init__(
            ErrorCode.INVALID_STATE,
            f"Bundle {bundle_hash[:16]}... is {state}, expected {expected}",
            {"bundle_hash": bundle_hash, "state": state, "expected": expected},
        )


class ComplianceRequiredError(VeilError):
    def __init__(self, reason: str = "no compliance proof available"):
        super().__init__(
            ErrorCode.COMPLIANCE_REQUIRED,
            f"Compliance proof required: {reason}",
        )


class MalformedBundleError(VeilError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.MALFORMED_BUNDLE, message)
