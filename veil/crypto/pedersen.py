"""
Veil - Pedersen Commitments

C = v*G + r*H where:
- v is the committed value (reduced mod L)
- r is the blinding factor (32 bytes, nonzero mod L)
- G is the Ed25519 base point, H the hash-derived second generator

Properties:
- Perfectly hiding: C reveals nothing about v while r stays secret
- Computationally binding: opening C two ways yields log_G(H)
- Homomorphic: C(v1, r1) + C(v2, r2) = C(v1+v2, r1+r2)
"""

from __future__ import annotations
import hmac
import logging
import struct
from dataclasses import dataclass, field
from typing import List, Optional

from veil.constants import SCALAR_SIZE
from veil.crypto.curve import Ed25519Point, Generators
from veil.errors import CurveError, InvalidBlindingError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class PedersenCommitment:
    """A commitment together with its opening."""
    commitment: bytes  # 32-byte curve point
    blinding: bytes = field(repr=False)  # KEEP SECRET
    value: int = field(repr=False)

    @property
    def hex(self) -> str:
        return self.commitment.hex()

    def serialize_public(self) -> bytes:
        """Serialize only commitment (safe to share)."""
        return self.commitment

    def serialize_full(self) -> bytes:
        """Serialize including secrets (for backup only)."""
        return self.commitment + self.blinding + struct.pack('<Q', self.value)

    @classmethod
    def deserialize_full(cls, data: bytes) -> 'PedersenCommitment':
        if len(data) != 72:
            raise ValidationError("Commitment backup must be 72 bytes")
        return cls(
            commitment=data[:32],
            blinding=data[32:64],
            value=struct.unpack('<Q', data[64:72])[0]
        )


class Pedersen:
    """Pedersen commitment scheme over (G, H)."""

    @staticmethod
    def generate_blinding_factor() -> bytes:
        """Draw a uniformly random nonzero blinding factor."""
        return Ed25519Point.scalar_random()

    @staticmethod
    def blinding_scalar(blinding: bytes) -> bytes:
        """
        Validate a blinding factor and return it reduced mod L.

        Raises:
            InvalidBlindingError: wrong length, or reduces to zero
        """
        if not isinstance(blinding, (bytes, bytearray)) or len(blinding) != SCALAR_SIZE:
            raise InvalidBlindingError()
        scalar = Ed25519Point.scalar_from_int(int.from_bytes(blinding, 'little'))
        if Ed25519Point.is_zero_scalar(scalar):
            raise InvalidBlindingError("Blinding factor must be nonzero mod the group order")
        return scalar

    @staticmethod
    def value_scalar(value: int) -> bytes:
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError("Committed value must be an integer")
        return Ed25519Point.scalar_from_int(value)

    @staticmethod
    def commit(value: int, blinding: bytes) -> bytes:
        """
        Create Pedersen commitment C = v*G + r*H.

        Args:
            value: Value to commit (reduced mod L, so negatives are allowed)
            blinding: 32-byte blinding factor

        Returns:
            32-byte commitment point
        """
        r = Pedersen.blinding_scalar(blinding)
        v = Pedersen.value_scalar(value)

        r_H = Ed25519Point.scalarmult(r, Generators.H())
        # Special case: v == 0 mod L, C = r*H (skip v*G term)
        if Ed25519Point.is_zero_scalar(v):
            return r_H
        return Ed25519Point.point_add(Ed25519Point.scalarmult_base(v), r_H)

    @staticmethod
    def create(value: int, blinding: Optional[bytes] = None) -> PedersenCommitment:
        """Commit to value with a fresh (or given) blinding factor."""
        if blinding is None:
            blinding = Pedersen.generate_blinding_factor()
        return PedersenCommitment(
            commitment=Pedersen.commit(value, blinding),
            blinding=bytes(blinding),
            value=value
        )

    @staticmethod
    def open_commitment(commitment: bytes, value: int, blinding: bytes) -> bool:
        """Check that (value, blinding) opens commitment."""
        try:
            expected = Pedersen.commit(value, blinding)
        except (ValidationError, CurveError):
            return False
        return len(commitment) == len(expected) and hmac.compare_digest(commitment, expected)

    @staticmethod
    def add_commitments(c1: bytes, c2: bytes) -> bytes:
        """Add two commitments (homomorphic addition)."""
        return Ed25519Point.point_add(c1, c2)

    @staticmethod
    def subtract_commitments(c1: bytes, c2: bytes) -> bytes:
        """Subtract commitments: C1 - C2."""
        return Ed25519Point.point_sub(c1, c2)

    @staticmethod
    def sum_commitments(commitments: List[bytes]) -> bytes:
        return Ed25519Point.sum_points(commitments)

    @staticmethod
    def add_blindings(r1: bytes, r2: bytes) -> bytes:
        """r1 + r2 mod L, the blinding of the summed commitment."""
        return Ed25519Point.scalar_add(
            Ed25519Point.scalar_from_int(int.from_bytes(r1, 'little')),
            Ed25519Point.scalar_from_int(int.from_bytes(r2, 'little')),
        )

    @staticmethod
    def is_valid_commitment(commitment: bytes) -> bool:
        """Encoding well-formedness: a valid subgroup point."""
        return Ed25519Point.is_valid_point(commitment)
