"""
Veil Curve Tests
Ed25519 group wrappers, generators and key pairs
"""

import pytest

from veil.constants import CURVE_ORDER, IDENTITY_POINT
from veil.crypto.curve import (
    Ed25519Point,
    Generators,
    decode_point,
    decode_scalar,
    points_equal,
)
from veil.crypto.keys import KeyPair, validate_public_key
from veil.errors import CurveError, InvalidKeyError


# =============================================================================
# Test: Scalars
# =============================================================================

class TestScalars:
    """Tests for scalar encoding and arithmetic mod L."""

    def test_scalar_roundtrip_reduces(self):
        """Integers above L are reduced."""
        s = Ed25519Point.scalar_from_int(CURVE_ORDER + 5)
        assert Ed25519Point.scalar_to_int(s) == 5

    def test_zero_scalar(self):
        assert Ed25519Point.is_zero_scalar(Ed25519Point.scalar_from_int(0))
        assert Ed25519Point.is_zero_scalar(Ed25519Point.scalar_from_int(CURVE_ORDER))

    def test_canonical_scalar(self):
        assert Ed25519Point.is_canonical_scalar(Ed25519Point.scalar_from_int(7))
        assert not Ed25519Point.is_canonical_scalar(CURVE_ORDER.to_bytes(32, 'little'))
        assert not Ed25519Point.is_canonical_scalar(b'\x01' * 31)

    def test_scalar_arithmetic(self):
        a = Ed25519Point.scalar_from_int(10)
        b = Ed25519Point.scalar_from_int(3)
        assert Ed25519Point.scalar_to_int(Ed25519Point.scalar_add(a, b)) == 13
        assert Ed25519Point.scalar_to_int(Ed25519Point.scalar_sub(b, a)) == CURVE_ORDER - 7
        assert Ed25519Point.scalar_to_int(Ed25519Point.scalar_mul(a, b)) == 30
        assert Ed25519Point.scalar_to_int(Ed25519Point.scalar_negate(b)) == CURVE_ORDER - 3

    def test_scalar_random_nonzero(self):
        for _ in range(10):
            assert not Ed25519Point.is_zero_scalar(Ed25519Point.scalar_random())

    def test_hash_to_scalar_deterministic(self):
        assert Ed25519Point.hash_to_scalar(b"a", b"b") == Ed25519Point.hash_to_scalar(b"a", b"b")
        assert Ed25519Point.hash_to_scalar(b"a", b"b") != Ed25519Point.hash_to_scalar(b"a", b"c")


# =============================================================================
# Test: Points
# =============================================================================

class TestPoints:
    """Tests for point validation and arithmetic."""

    def test_identity_is_not_valid_point(self):
        """The identity is small-order and rejected as a group element."""
        assert not Ed25519Point.is_valid_point(IDENTITY_POINT)
        assert Ed25519Point.is_identity(IDENTITY_POINT)

    def test_wrong_length_rejected(self):
        assert not Ed25519Point.is_valid_point(b'\x00' * 31)
        assert not Ed25519Point.is_valid_point("not bytes")

    def test_add_sub_inverse(self):
        p = Ed25519Point.scalarmult_base(Ed25519Point.scalar_from_int(5))
        q = Ed25519Point.scalarmult_base(Ed25519Point.scalar_from_int(9))
        assert points_equal(Ed25519Point.point_sub(Ed25519Point.point_add(p, q), q), p)

    def test_scalar_distributes(self):
        """(a + b)*G == a*G + b*G."""
        a = Ed25519Point.scalar_random()
        b = Ed25519Point.scalar_random()
        lhs = Ed25519Point.scalarmult_base(Ed25519Point.scalar_add(a, b))
        rhs = Ed25519Point.point_add(Ed25519Point.scalarmult_base(a), Ed25519Point.scalarmult_base(b))
        assert lhs == rhs

    def test_zero_scalar_multiplication_rejected(self):
        with pytest.raises(CurveError):
            Ed25519Point.scalarmult_base(b'\x00' * 32)
        with pytest.raises(CurveError):
            Ed25519Point.scalarmult(b'\x00' * 32, Generators.G())

    def test_sum_points_empty(self):
        with pytest.raises(CurveError):
            Ed25519Point.sum_points([])

    def test_point_add_garbage(self):
        with pytest.raises(CurveError):
            Ed25519Point.point_add(b'\x01' * 31, Generators.G())

    def test_decode_helpers(self):
        g = Generators.G()
        assert decode_point(g.hex()) == g
        with pytest.raises(CurveError):
            decode_point("zz")
        with pytest.raises(CurveError):
            decode_point(IDENTITY_POINT.hex())
        with pytest.raises(CurveError):
            decode_scalar(CURVE_ORDER.to_bytes(32, 'little').hex())


# =============================================================================
# Test: Generators
# =============================================================================

class TestGenerators:
    """Tests for commitment generators."""

    def test_generators_valid_and_distinct(self):
        assert Ed25519Point.is_valid_point(Generators.G())
        assert Ed25519Point.is_valid_point(Generators.H())
        assert Generators.G() != Generators.H()

    def test_h_is_stable(self):
        assert Generators.H() == Ed25519Point.hash_to_point(b"Veil_Pedersen_H_v1" + Generators.G())

    def test_hash_to_point_domain_separated(self):
        p1 = Ed25519Point.hash_to_point(b"one")
        p2 = Ed25519Point.hash_to_point(b"two")
        assert Ed25519Point.is_valid_point(p1)
        assert p1 != p2


# =============================================================================
# Test: Key Pairs
# =============================================================================

class TestKeyPair:
    """Tests for key pair handling."""

    def test_generate(self):
        kp = KeyPair.generate()
        assert Ed25519Point.is_valid_point(kp.public_key)
        assert kp.public_key == Ed25519Point.scalarmult_base(kp.private_key)

    def test_from_seed_deterministic(self):
        assert KeyPair.from_seed(b"x") == KeyPair.from_seed(b"x")
        assert KeyPair.from_seed(b"x") != KeyPair.from_seed(b"y")

    def test_from_private_key(self):
        kp = KeyPair.generate()
        assert KeyPair.from_private_key(kp.private_key) == kp

    def test_invalid_private_keys(self):
        with pytest.raises(InvalidKeyError):
            KeyPair.from_private_key(b'\x00' * 32)
        with pytest.raises(InvalidKeyError):
            KeyPair.from_private_key(b'\x01' * 16)
        with pytest.raises(InvalidKeyError):
            KeyPair.from_seed(b"")

    def test_repr_hides_secret(self):
        kp = KeyPair.generate()
        assert kp.private_key.hex() not in repr(kp)

    def test_validate_public_key(self):
        kp = KeyPair.generate()
        assert validate_public_key(kp.public_key) == kp.public_key
        with pytest.raises(InvalidKeyError):
            validate_public_key(IDENTITY_POINT)
        with pytest.raises(InvalidKeyError):
            validate_public_key(b'\x02' * 10)
