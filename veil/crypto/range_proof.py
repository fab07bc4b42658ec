"""
Veil - Range Proofs

Bit-decomposition range proofs for Pedersen commitments.

Proves that C = v*G + r*H commits to v with min <= v and v - min < 2^n,
without revealing v:

1. Decompose v - min into n bits b_i (least-significant first)
2. Commit to each bit: C_i = b_i*2^i*G + r_i*H, with sum(r_i) = r
3. Prove each C_i opens to 0 or 2^i with a Sigma-OR proof over H:
       Y_0 = C_i           (bit is 0)
       Y_1 = C_i - 2^i*G   (bit is 1)
4. Prove the residual C - min*G - sum(C_i) is 0*H (Schnorr over H),
   binding the bit commitments to the main commitment

Layout (fixed width, no length prefixes):
    commitment (32) || n * [C_i, e0, e1, s0, s1] (160 each) || [c, s] (64)

Size: 32 + 160*n + 64 bytes. Less compact than Bulletproofs but
self-contained and simple to audit.
"""

from __future__ import annotations
import logging
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from veil.constants import (
    ALLOWED_BIT_LENGTHS,
    AGGREGATION_PROOF_SIZE,
    BIT_PROOF_SIZE,
    DEFAULT_BIT_LENGTH,
    DOMAIN_AGGREGATION,
    DOMAIN_BIT_PROOF,
    IDENTITY_POINT,
    POINT_SIZE,
    SCALAR_SIZE,
)
from veil.crypto.curve import Ed25519Point, points_equal
from veil.crypto.pedersen import Pedersen
from veil.crypto import sigma
from veil.errors import (
    CurveError,
    InvalidBitLengthError,
    OutOfRangeError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ZERO_SCALAR = b'\x00' * SCALAR_SIZE
MAX_MIN_VALUE = 2**64 - 1


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class RangeBounds:
    """Declared range [min_value, max_value] and the proof width."""
    bit_length: int
    min_value: int = 0
    max_value: Optional[int] = None

    def __post_init__(self):
        # Before the shift below
        validate_bit_length(self.bit_length)
        if self.max_value is None:
            object.__setattr__(self, 'max_value', self.min_value + (1 << self.bit_length) - 1)

    def contains(self, value: int) -> bool:
        return self.min_value <= value <= self.max_value and value - self.min_value < (1 << self.bit_length)

    def to_dict(self) -> Dict[str, int]:
        return {
            "bit_length": self.bit_length,
            "min": self.min_value,
            "max": self.max_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RangeBounds':
        return cls(
            bit_length=int(data["bit_length"]),
            min_value=int(data.get("min", 0)),
            max_value=int(data["max"]) if data.get("max") is not None else None,
        )


@dataclass
class BitProof:
    """
    Proof that one bit commitment opens to 0 or 2^i.

    Invariant: e0 + e1 = Hs(domain || transcript || R0 || R1) mod L
    """
    commitment: bytes
    e0: bytes
    e1: bytes
    s0: bytes
    s1: bytes

    def serialize(self) -> bytes:
        return self.commitment + self.e0 + self.e1 + self.s0 + self.s1

    @classmethod
    def deserialize(cls, data: bytes) -> 'BitProof':
        if len(data) != BIT_PROOF_SIZE:
            raise ValidationError(f"Bit proof must be {BIT_PROOF_SIZE} bytes")
        return cls(
            commitment=data[0:32],
            e0=data[32:64],
            e1=data[64:96],
            s0=data[96:128],
            s1=data[128:160],
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "commitment": self.commitment.hex(),
            "e0": self.e0.hex(),
            "e1": self.e1.hex(),
            "s0": self.s0.hex(),
            "s1": self.s1.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'BitProof':
        return cls(**{k: bytes.fromhex(data[k]) for k in ("commitment", "e0", "e1", "s0", "s1")})

    def sigma_proof(self) -> sigma.SigmaOrProof:
        return sigma.SigmaOrProof(e0=self.e0, e1=self.e1, s0=self.s0, s1=self.s1)


@dataclass
class AggregationProof:
    """Schnorr proof that C - min*G - sum(C_i) is a multiple of H."""
    challenge: bytes
    response: bytes

    def serialize(self) -> bytes:
        return self.challenge + self.response

    def to_dict(self) -> Dict[str, str]:
        return {"challenge": self.challenge.hex(), "response": self.response.hex()}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'AggregationProof':
        return cls(
            challenge=bytes.fromhex(data["challenge"]),
            response=bytes.fromhex(data["response"]),
        )


@dataclass
class RangeProof:
    """Range proof: main commitment, n bit proofs, aggregation proof, bounds."""
    commitment: bytes
    bit_proofs: List[BitProof]
    aggregation_proof: AggregationProof
    range: RangeBounds

    @property
    def bit_length(self) -> int:
        return self.range.bit_length

    @property
    def size(self) -> int:
        return estimate_proof_size(len(self.bit_proofs))

    def to_bytes(self) -> bytes:
        """Serialize proof to its fixed layout."""
        data = bytearray(self.commitment)
        for bp in self.bit_proofs:
            data.extend(bp.serialize())
        data.extend(self.aggregation_proof.serialize())
        return bytes(data)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        min_value: int = 0,
        max_value: Optional[int] = None
    ) -> 'RangeProof':
        """
        Deserialize proof. The bit length is implied by the data length;
        the bounds are not part of the layout and must be supplied.
        """
        body = len(data) - POINT_SIZE - AGGREGATION_PROOF_SIZE
        if body < 0 or body % BIT_PROOF_SIZE != 0:
            raise ValidationError("Range proof data has invalid length")
        bit_length = body // BIT_PROOF_SIZE
        if bit_length not in ALLOWED_BIT_LENGTHS:
            raise InvalidBitLengthError(bit_length, ALLOWED_BIT_LENGTHS)

        offset = POINT_SIZE
        bit_proofs = []
        for _ in range(bit_length):
            bit_proofs.append(BitProof.deserialize(data[offset:offset + BIT_PROOF_SIZE]))
            offset += BIT_PROOF_SIZE

        aggregation = AggregationProof(
            challenge=data[offset:offset + SCALAR_SIZE],
            response=data[offset + SCALAR_SIZE:offset + 2 * SCALAR_SIZE],
        )
        return cls(
            commitment=data[:POINT_SIZE],
            bit_proofs=bit_proofs,
            aggregation_proof=aggregation,
            range=RangeBounds(bit_length, min_value, max_value),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commitment": self.commitment.hex(),
            "bit_proofs": [bp.to_dict() for bp in self.bit_proofs],
            "aggregation_proof": self.aggregation_proof.to_dict(),
            "range": self.range.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RangeProof':
        return cls(
            commitment=bytes.fromhex(data["commitment"]),
            bit_proofs=[BitProof.from_dict(bp) for bp in data["bit_proofs"]],
            aggregation_proof=AggregationProof.from_dict(data["aggregation_proof"]),
            range=RangeBounds.from_dict(data["range"]),
        )


# ============================================================================
# TRANSCRIPT
# ============================================================================

def _header(commitment: bytes, bounds: RangeBounds) -> bytes:
    return commitment + struct.pack('<BQ', bounds.bit_length, bounds.min_value)


def _power_of_two(i: int) -> bytes:
    return Ed25519Point.scalar_from_int(1 << i)


def _bit_statements(bit_commitment: bytes, i: int) -> tuple:
    """(Y_0, Y_1) = (C_i, C_i - 2^i*G)."""
    shifted = Ed25519Point.point_sub(bit_commitment, Ed25519Point.scalarmult_base(_power_of_two(i)))
    return (bit_commitment, shifted)


def _residual(commitment: bytes, min_value: int, bit_sum: bytes) -> bytes:
    """C - min*G - sum(C_i)."""
    target = commitment
    if min_value:
        target = Ed25519Point.point_sub(
            target, Ed25519Point.scalarmult_base(Ed25519Point.scalar_from_int(min_value))
        )
    return Ed25519Point.point_sub(target, bit_sum)


# ============================================================================
# PROVER
# ============================================================================

def validate_bit_length(bit_length: int) -> None:
    if bit_length not in ALLOWED_BIT_LENGTHS:
        raise InvalidBitLengthError(bit_length, ALLOWED_BIT_LENGTHS)


def generate_range_proof(
    value: int,
    blinding: bytes,
    bit_length: int = DEFAULT_BIT_LENGTH,
    min_value: int = 0,
    max_value: Optional[int] = None
) -> RangeProof:
    """
    Generate a range proof for commit(value, blinding).

    Args:
        value: Secret value
        blinding: 32-byte blinding factor of the commitment
        bit_length: Proof width, one of 8/16/32/64
        min_value: Lower bound; the proof covers value - min_value
        max_value: Optional explicit upper bound

    Returns:
        RangeProof

    Raises:
        InvalidBitLengthError: unsupported bit_length
        OutOfRangeError: value outside the declared range
        InvalidBlindingError: malformed blinding factor
    """
    validate_bit_length(bit_length)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError("Value must be an integer")
    if not 0 <= min_value <= MAX_MIN_VALUE:
        raise ValidationError("min_value must fit in 64 bits")

    if max_value is not None and max_value < min_value:
        raise ValidationError("max_value must not be below min_value")

    bounds = RangeBounds(bit_length, min_value, max_value)
    shifted = value - min_value
    if shifted < 0 or shifted >= (1 << bit_length) or value > bounds.max_value:
        raise OutOfRangeError(bit_length, bounds.min_value, bounds.max_value)

    r = Pedersen.blinding_scalar(blinding)
    commitment = Pedersen.commit(value, blinding)

    # Per-bit blinders; the last one closes sum(r_i) = r
    blinders: List[bytes] = []
    while True:
        blinders = [Ed25519Point.scalar_random() for _ in range(bit_length - 1)]
        last = r
        for b in blinders:
            last = Ed25519Point.scalar_sub(last, b)
        if not Ed25519Point.is_zero_scalar(last):
            blinders.append(last)
            break

    transcript = bytearray(_header(commitment, bounds))
    bit_proofs: List[BitProof] = []
    bit_commitments: List[bytes] = []

    for i in range(bit_length):
        bit = (shifted >> i) & 1
        c_i = Pedersen.commit(bit << i, blinders[i])
        transcript.extend(c_i)

        proof = sigma.prove_or(
            DOMAIN_BIT_PROOF,
            bytes(transcript),
            _bit_statements(c_i, i),
            bit,
            blinders[i],
        )
        bit_commitments.append(c_i)
        bit_proofs.append(BitProof(
            commitment=c_i,
            e0=proof.e0,
            e1=proof.e1,
            s0=proof.s0,
            s1=proof.s1,
        ))

    bit_sum = Ed25519Point.sum_points(bit_commitments)
    residual = _residual(commitment, min_value, bit_sum)
    aggregation = sigma.prove_schnorr(
        DOMAIN_AGGREGATION,
        (bytes(transcript), bit_sum),
        residual,
        ZERO_SCALAR,
    )

    return RangeProof(
        commitment=commitment,
        bit_proofs=bit_proofs,
        aggregation_proof=AggregationProof(
            challenge=aggregation.challenge,
            response=aggregation.response,
        ),
        range=bounds,
    )


# ============================================================================
# VERIFIER
# ============================================================================

def verify_range_proof(proof: RangeProof, commitment: bytes) -> bool:
    """
    Verify a range proof against an expected commitment.

    Returns False (never raises) on any structural or cryptographic mismatch.
    """
    try:
        bounds = proof.range
        n = bounds.bit_length

        if n not in ALLOWED_BIT_LENGTHS:
            logger.debug(f"Unsupported bit length {n}")
            return False
        if len(proof.bit_proofs) != n:
            logger.debug(f"Bit proof count mismatch: {len(proof.bit_proofs)} != {n}")
            return False
        if not 0 <= bounds.min_value <= MAX_MIN_VALUE:
            return False
        if not Ed25519Point.is_valid_point(proof.commitment):
            logger.debug("Main commitment is not a valid point")
            return False
        if not points_equal(proof.commitment, commitment):
            logger.debug("Commitment mismatch")
            return False

        transcript = bytearray(_header(proof.commitment, bounds))
        bit_commitments = []

        for i, bp in enumerate(proof.bit_proofs):
            if not Ed25519Point.is_valid_point(bp.commitment):
                logger.debug(f"Bit {i}: invalid commitment")
                return False
            transcript.extend(bp.commitment)
            if not sigma.verify_or(
                DOMAIN_BIT_PROOF,
                bytes(transcript),
                _bit_statements(bp.commitment, i),
                bp.sigma_proof(),
            ):
                logger.debug(f"Bit {i}: Sigma-OR proof failed")
                return False
            bit_commitments.append(bp.commitment)

        bit_sum = Ed25519Point.sum_points(bit_commitments)
        residual = _residual(proof.commitment, bounds.min_value, bit_sum)
        if not points_equal(residual, IDENTITY_POINT):
            logger.debug("Bit commitments do not sum to the main commitment")
            return False

        if not sigma.verify_schnorr(
            DOMAIN_AGGREGATION,
            (bytes(transcript), bit_sum),
            residual,
            sigma.SchnorrProof(
                challenge=proof.aggregation_proof.challenge,
                response=proof.aggregation_proof.response,
            ),
        ):
            logger.debug("Aggregation proof failed")
            return False

        return True

    except (CurveError, ValidationError, ValueError, TypeError, AttributeError,
            struct.error, OverflowError) as e:
        logger.warning(f"Range proof verification error: {e}")
        return False


# ============================================================================
# BATCH / HELPERS
# ============================================================================

def generate_batch_range_proofs(
    values: Sequence[int],
    blindings: Sequence[bytes],
    bit_length: int = DEFAULT_BIT_LENGTH
) -> List[RangeProof]:
    """Generate one range proof per (value, blinding) pair."""
    if len(values) != len(blindings):
        raise ValidationError("values and blindings must have the same length")
    return [generate_range_proof(v, r, bit_length) for v, r in zip(values, blindings)]


def verify_batch_range_proofs(
    proofs: Sequence[RangeProof],
    commitments: Sequence[bytes]
) -> bool:
    """Verify every proof against its commitment; any failure fails the batch."""
    if len(proofs) != len(commitments):
        logger.debug("Batch length mismatch")
        return False
    return all(verify_range_proof(p, c) for p, c in zip(proofs, commitments))


def estimate_proof_size(bit_length: int) -> int:
    """Proof size in bytes: commitment + per-bit proofs + aggregation proof."""
    return POINT_SIZE + bit_length * BIT_PROOF_SIZE + AGGREGATION_PROOF_SIZE


def recommended_bit_length(max_value: int) -> int:
    """Smallest supported width that covers max_value."""
    if max_value < 0:
        raise ValidationError("max_value must be non-negative")
    for bits in ALLOWED_BIT_LENGTHS:
        if max_value < (1 << bits):
            return bits
    raise OutOfRangeError(ALLOWED_BIT_LENGTHS[-1], 0, (1 << ALLOWED_BIT_LENGTHS[-1]) - 1)


def generate_compact_range_proof(value: int, blinding: bytes, max_bits: int = 32) -> RangeProof:
    """Range proof with a narrower width (8, 16 or 32 bits) for small amounts."""
    if max_bits not in (8, 16, 32):
        raise InvalidBitLengthError(max_bits, (8, 16, 32))
    return generate_range_proof(value, blinding, bit_length=max_bits)
