"""
Veil - Transfer Bundle

Data model of a private transfer: stealth address, amount commitment,
range proof, ring signature, nullifier, recipient note and optional
compliance token / auxiliary binding, plus an integrity hash.

All points and scalars are fixed-length lowercase hex.
"""

from __future__ import annotations
import hashlib
import json
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from veil.constants import DOMAIN_BUNDLE, DOMAIN_NULLIFIER, DOMAIN_RING_MESSAGE
from veil.clients.compliance import ComplianceProof
from veil.crypto.note import EncryptedNote
from veil.crypto.range_proof import RangeProof
from veil.crypto.ring_signature import RingSignature
from veil.crypto.stealth import StealthAddress
from veil.errors import MalformedBundleError, ValidationError
from veil.protocol.auxiliary import AuxiliaryBinding

BUNDLE_VERSION = 1

# Verification checks in report order
CHECK_STEALTH_ADDRESS = "stealth_address"
CHECK_AMOUNT_COMMITMENT = "amount_commitment"
CHECK_RANGE_PROOF = "range_proof"
CHECK_RING_SIGNATURE = "ring_signature"
CHECK_NULLIFIER_UNUSED = "nullifier_unused"
CHECK_COMPLIANCE_VALID = "compliance_valid"
CHECK_NOT_EXPIRED = "not_expired"
CHECK_INTEGRITY = "integrity"

CHECK_NAMES = (
    CHECK_STEALTH_ADDRESS,
    CHECK_AMOUNT_COMMITMENT,
    CHECK_RANGE_PROOF,
    CHECK_RING_SIGNATURE,
    CHECK_NULLIFIER_UNUSED,
    CHECK_COMPLIANCE_VALID,
    CHECK_NOT_EXPIRED,
    CHECK_INTEGRITY,
)


class BundleState(IntEnum):
    """Bundle lifecycle: CREATED -> VERIFIED_{VALID,INVALID} -> CONSUMED."""
    CREATED = 0
    VERIFIED_VALID = 1
    VERIFIED_INVALID = 2
    CONSUMED = 3


def _canonical_json(data: Dict[str, Any]) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(',', ':')).encode('utf-8')


def derive_nullifier(
    sender_public_key: bytes,
    stealth_address: str,
    amount: int,
    output_index: int = 0
) -> bytes:
    """
    Nullifier = SHA-256(domain || sender || stealth address || amount || output index).

    Built only from spend-identifying data, so a retried spend yields the
    same nullifier. Freshness is checked separately.
    """
    if not 0 <= amount < 2**64:
        raise ValidationError("Amount must fit in 64 bits")
    if not 0 <= output_index < 2**32:
        raise ValidationError("Output index must fit in 32 bits")
    try:
        address = bytes.fromhex(stealth_address)
    except ValueError:
        raise ValidationError("Stealth address must be hex")
    return hashlib.sha256(
        DOMAIN_NULLIFIER
        + sender_public_key
        + address
        + struct.pack('<Q', amount)
        + struct.pack('<I', output_index)
    ).digest()


def compute_bundle_hash(fields: Dict[str, Any]) -> str:
    """
    Integrity digest over every serialized bundle field except the digest.

    Covers the stealth address, commitment, nullifier and timestamp together
    with the proofs, note and optional tokens, so no field can be swapped
    without changing the hash.
    """
    payload = {k: v for k, v in fields.items() if k != "bundle_hash"}
    return hashlib.sha256(DOMAIN_BUNDLE + _canonical_json(payload)).hexdigest()


def ring_message(commitment: str, stealth_address: str, timestamp: int) -> bytes:
    """Message signed by the ring: the amount enters through its commitment."""
    return DOMAIN_RING_MESSAGE + _canonical_json({
        "commitment": commitment,
        "recipient": stealth_address,
        "timestamp": timestamp,
    })


@dataclass
class TransferBundle:
    stealth_address: StealthAddress
    amount_commitment: str
    range_proof: RangeProof
    ring_signature: RingSignature
    nullifier: str
    timestamp: int
    bundle_hash: str
    encrypted_note: EncryptedNote
    compliance_proof: Optional[ComplianceProof] = None
    auxiliary: Optional[AuxiliaryBinding] = None
    output_index: int = 0
    version: int = BUNDLE_VERSION

    @property
    def key_image(self) -> bytes:
        return self.ring_signature.key_image

    @property
    def ring_size(self) -> int:
        return self.ring_signature.ring_size

    def expected_hash(self) -> str:
        return compute_bundle_hash(self.to_dict())

    def fingerprint(self) -> str:
        """Digest of the exact serialized bundle, bundle_hash included."""
        return hashlib.sha256(_canonical_json(self.to_dict())).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "stealth_address": self.stealth_address.to_dict(),
            "amount_commitment": self.amount_commitment,
            "range_proof": self.range_proof.to_dict(),
            "ring_signature": self.ring_signature.to_dict(),
            "nullifier": self.nullifier,
            "timestamp": self.timestamp,
            "bundle_hash": self.bundle_hash,
            "encrypted_note": self.encrypted_note.to_dict(),
            "compliance_proof": self.compliance_proof.to_dict() if self.compliance_proof else None,
            "auxiliary": self.auxiliary.to_dict() if self.auxiliary else None,
            "output_index": self.output_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransferBundle':
        """
        Parse a serialized bundle.

        Raises:
            MalformedBundleError: missing fields or bad encodings
        """
        try:
            version = int(data.get("version", BUNDLE_VERSION))
            if version != BUNDLE_VERSION:
                raise MalformedBundleError(f"Unsupported bundle version {version}")
            return cls(
                stealth_address=StealthAddress.from_dict(data["stealth_address"]),
                amount_commitment=str(data["amount_commitment"]),
                range_proof=RangeProof.from_dict(data["range_proof"]),
                ring_signature=RingSignature.from_dict(data["ring_signature"]),
                nullifier=str(data["nullifier"]),
                timestamp=int(data["timestamp"]),
                bundle_hash=str(data["bundle_hash"]),
                encrypted_note=EncryptedNote.from_dict(data["encrypted_note"]),
                compliance_proof=(
                    ComplianceProof.from_dict(data["compliance_proof"])
                    if data.get("compliance_proof") else None
                ),
                auxiliary=(
                    AuxiliaryBinding.from_dict(data["auxiliary"])
                    if data.get("auxiliary") else None
                ),
                output_index=int(data.get("output_index", 0)),
                version=version,
            )
        except (KeyError, ValueError, TypeError, AttributeError, ValidationError) as e:
            raise MalformedBundleError(f"Malformed bundle: {e}")

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> 'TransferBundle':
        try:
            data = json.loads(text)
        except ValueError as e:
            raise MalformedBundleError(f"Invalid bundle JSON: {e}")
        if not isinstance(data, dict):
            raise MalformedBundleError("Bundle JSON must be an object")
        return cls.from_dict(data)


@dataclass
class VerificationResult:
    """Per-check outcome; valid is the AND of all checks."""
    valid: bool
    checks: Dict[str, bool] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def failed_checks(self) -> List[str]:
        return [name for name, ok in self.checks.items() if not ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "checks": dict(self.checks),
            "errors": list(self.errors),
        }
