"""
Veil - Ed25519 Group Operations

Safe wrappers around libsodium (via PyNaCl) for the prime-order subgroup
of Ed25519: point validation, point addition/subtraction, scalar
multiplication, scalar arithmetic mod L, hash-to-scalar and hash-to-point.

Scalars are 32-byte little-endian encodings reduced mod L.
Points are 32-byte compressed Edwards encodings.
"""

from __future__ import annotations
import hashlib
import hmac
import logging
import secrets
import struct
from typing import Optional

import nacl.bindings
import nacl.exceptions

from veil.constants import (
    CURVE_ORDER,
    DOMAIN_H_GENERATOR,
    DOMAIN_HASH_TO_POINT,
    IDENTITY_POINT,
    POINT_SIZE,
    SCALAR_SIZE,
)
from veil.errors import CurveError, HashToPointError

logger = logging.getLogger(__name__)

HASH_TO_POINT_ATTEMPTS = 256


class Ed25519Point:
    """
    Ed25519 elliptic curve point operations using libsodium.

    All multiplications use the *_noclamp variants: scalars are plain
    integers mod L, never clamped X25519-style secrets.
    """

    POINT_SIZE = POINT_SIZE
    SCALAR_SIZE = SCALAR_SIZE

    # ------------------------------------------------------------------
    # Encoding helpers
    # ------------------------------------------------------------------

    @staticmethod
    def scalar_from_int(value: int) -> bytes:
        """Encode an integer as a reduced 32-byte scalar."""
        return (value % CURVE_ORDER).to_bytes(SCALAR_SIZE, 'little')

    @staticmethod
    def scalar_to_int(scalar: bytes) -> int:
        """Decode a 32-byte little-endian scalar, reduced mod L."""
        return int.from_bytes(scalar, 'little') % CURVE_ORDER

    @staticmethod
    def is_zero_scalar(scalar: bytes) -> bool:
        return Ed25519Point.scalar_to_int(scalar) == 0

    @staticmethod
    def is_canonical_scalar(scalar: bytes) -> bool:
        """True if scalar is 32 bytes and already reduced mod L."""
        return len(scalar) == SCALAR_SIZE and int.from_bytes(scalar, 'little') < CURVE_ORDER

    # ------------------------------------------------------------------
    # Point validation
    # ------------------------------------------------------------------

    @staticmethod
    def is_valid_point(point: bytes) -> bool:
        """
        Check if bytes represent a valid point of the prime-order subgroup.

        Rejects non-canonical encodings, points off the curve, small-order
        points (including the identity) and points outside the main subgroup.
        """
        if not isinstance(point, (bytes, bytearray)) or len(point) != POINT_SIZE:
            return False
        try:
            return nacl.bindings.crypto_core_ed25519_is_valid_point(bytes(point))
        except (nacl.exceptions.CryptoError, TypeError, ValueError):
            return False

    @staticmethod
    def is_identity(point: bytes) -> bool:
        return hmac.compare_digest(point, IDENTITY_POINT)

    # ------------------------------------------------------------------
    # Scalar arithmetic mod L
    # ------------------------------------------------------------------

    @staticmethod
    def scalar_reduce(data: bytes) -> bytes:
        """Reduce arbitrary-length data to a valid scalar."""
        if len(data) != 64:
            data = hashlib.sha512(data).digest()
        return nacl.bindings.crypto_core_ed25519_scalar_reduce(data)

    @staticmethod
    def scalar_add(a: bytes, b: bytes) -> bytes:
        """Add two scalars mod L."""
        return nacl.bindings.crypto_core_ed25519_scalar_add(a, b)

    @staticmethod
    def scalar_sub(a: bytes, b: bytes) -> bytes:
        """Subtract two scalars mod L: a - b."""
        return nacl.bindings.crypto_core_ed25519_scalar_sub(a, b)

    @staticmethod
    def scalar_mul(a: bytes, b: bytes) -> bytes:
        """Multiply two scalars mod L."""
        return nacl.bindings.crypto_core_ed25519_scalar_mul(a, b)

    @staticmethod
    def scalar_negate(s: bytes) -> bytes:
        """Negate scalar: -s mod L."""
        return nacl.bindings.crypto_core_ed25519_scalar_negate(s)

    @staticmethod
    def scalar_random() -> bytes:
        """Generate a uniformly random nonzero scalar."""
        while True:
            scalar = nacl.bindings.crypto_core_ed25519_scalar_reduce(secrets.token_bytes(64))
            if scalar != b'\x00' * SCALAR_SIZE:
                return scalar

    # ------------------------------------------------------------------
    # Point arithmetic
    # ------------------------------------------------------------------

    @staticmethod
    def point_add(p: bytes, q: bytes) -> bytes:
        """Add two Ed25519 points."""
        try:
            return nacl.bindings.crypto_core_ed25519_add(p, q)
        except (nacl.exceptions.CryptoError, nacl.exceptions.RuntimeError,
                TypeError, ValueError) as e:
            raise CurveError(f"Point addition failed: {e}")

    @staticmethod
    def point_sub(p: bytes, q: bytes) -> bytes:
        """Subtract Ed25519 points: p - q."""
        try:
            return nacl.bindings.crypto_core_ed25519_sub(p, q)
        except (nacl.exceptions.CryptoError, nacl.exceptions.RuntimeError,
                TypeError, ValueError) as e:
            raise CurveError(f"Point subtraction failed: {e}")

    @staticmethod
    def scalarmult_base(scalar: bytes) -> bytes:
        """Scalar multiplication with base point: s * G."""
        if Ed25519Point.is_zero_scalar(scalar):
            raise CurveError("Zero scalar multiplication not supported")
        try:
            return nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(scalar)
        except (nacl.exceptions.CryptoError, nacl.exceptions.RuntimeError,
                TypeError, ValueError) as e:
            raise CurveError(f"Base point multiplication failed: {e}")

    @staticmethod
    def scalarmult(scalar: bytes, point: bytes) -> bytes:
        """Scalar multiplication: s * P."""
        # libsodium refuses to return the identity, so zero is rejected up front
        if Ed25519Point.is_zero_scalar(scalar):
            raise CurveError("Zero scalar multiplication not supported")
        try:
            return nacl.bindings.crypto_scalarmult_ed25519_noclamp(scalar, point)
        except (nacl.exceptions.CryptoError, nacl.exceptions.RuntimeError,
                TypeError, ValueError) as e:
            raise CurveError(f"Scalar multiplication failed: {e}")

    @staticmethod
    def sum_points(points: list) -> bytes:
        """Sum a non-empty list of points."""
        if not points:
            raise CurveError("Cannot sum an empty point list")
        total = points[0]
        for point in points[1:]:
            total = Ed25519Point.point_add(total, point)
        return total

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    @staticmethod
    def hash_to_scalar(*parts: bytes) -> bytes:
        """Hash data to Ed25519 scalar using SHA-512 and reduction."""
        h = hashlib.sha512()
        for part in parts:
            h.update(part)
        return nacl.bindings.crypto_core_ed25519_scalar_reduce(h.digest())

    @staticmethod
    def hash_to_point(data: bytes) -> bytes:
        """
        Hash data to a valid point of the prime-order subgroup.

        Uses try-and-increment with domain separation, then clears the
        cofactor. The discrete log of the result is unknown.
        """
        cofactor = (8).to_bytes(SCALAR_SIZE, 'little')
        for counter in range(HASH_TO_POINT_ATTEMPTS):
            hash_input = DOMAIN_HASH_TO_POINT + data + struct.pack('<B', counter)
            candidate = bytearray(hashlib.sha256(hash_input).digest())

            # Sign bit from an extra hash bit
            extra = hashlib.sha256(hash_input + b'\xff').digest()[0]
            candidate[31] = (candidate[31] & 0x7F) | ((extra & 1) << 7)
            candidate = bytes(candidate)

            if not Ed25519Point.is_valid_point(candidate):
                continue
            try:
                result = Ed25519Point.scalarmult(cofactor, candidate)
            except CurveError:
                continue
            if Ed25519Point.is_valid_point(result):
                return result

        raise HashToPointError(HASH_TO_POINT_ATTEMPTS)

    @staticmethod
    def derive_public_key(secret: bytes) -> bytes:
        """Derive public key P = x * G from a secret scalar (no clamping)."""
        return Ed25519Point.scalarmult_base(secret)


# ============================================================================
# GENERATORS
# ============================================================================

class Generators:
    """
    Commitment generators G and H.

    G is the standard Ed25519 base point.
    H is derived by hashing G with a domain-separation tag.
    """

    _G: Optional[bytes] = None
    _H: Optional[bytes] = None

    @classmethod
    def G(cls) -> bytes:
        """Get generator G (Ed25519 base point)."""
        if cls._G is None:
            cls._G = Ed25519Point.scalarmult_base(Ed25519Point.scalar_from_int(1))
        return cls._G

    @classmethod
    def H(cls) -> bytes:
        """Get generator H (hash-derived, independent of G)."""
        if cls._H is None:
            cls._H = Ed25519Point.hash_to_point(DOMAIN_H_GENERATOR + cls.G())
        return cls._H


def mul_G(scalar: bytes) -> bytes:
    """s * G."""
    return Ed25519Point.scalarmult_base(scalar)


def mul_H(scalar: bytes) -> bytes:
    """s * H."""
    return Ed25519Point.scalarmult(scalar, Generators.H())


def points_equal(p: bytes, q: bytes) -> bool:
    """Constant-time point comparison."""
    return len(p) == len(q) and hmac.compare_digest(p, q)


def scalars_equal(a: bytes, b: bytes) -> bool:
    """Constant-time scalar comparison."""
    return len(a) == len(b) and hmac.compare_digest(a, b)


def decode_point(hex_string: str) -> bytes:
    """Decode a hex point, raising CurveError if it is not a subgroup point."""
    try:
        point = bytes.fromhex(hex_string)
    except (TypeError, ValueError) as e:
        raise CurveError(f"Invalid point encoding: {e}")
    if not Ed25519Point.is_valid_point(point):
        raise CurveError("Encoded value is not a valid group element")
    return point


def decode_scalar(hex_string: str) -> bytes:
    """Decode a hex scalar, raising CurveError unless it is canonical."""
    try:
        scalar = bytes.fromhex(hex_string)
    except (TypeError, ValueError) as e:
        raise CurveError(f"Invalid scalar encoding: {e}")
    if not Ed25519Point.is_canonical_scalar(scalar):
        raise CurveError("Encoded value is not a canonical scalar")
    return scalar
