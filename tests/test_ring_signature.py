"""
Veil Ring Signature Tests
LSAG signing, verification and linkability
"""

import pytest

from veil.crypto.curve import Ed25519Point
from veil.crypto.keys import KeyPair
from veil.crypto.ring_signature import (
    LSAG,
    RingSignature,
    generate_key_image,
    is_key_image_used,
)
from veil.errors import InvalidIndexError, InvalidRingError, ValidationError


@pytest.fixture
def keys():
    return [KeyPair.generate() for _ in range(5)]


@pytest.fixture
def ring(keys):
    return [k.public_key for k in keys]


# =============================================================================
# Test: Sign / Verify
# =============================================================================

class TestLSAG:
    """Tests for LSAG signatures."""

    @pytest.mark.parametrize("index", [0, 2, 4])
    def test_sign_and_verify(self, keys, ring, index):
        """Any ring position can sign."""
        sig = LSAG.sign(b"transfer", keys[index].private_key, index, ring)
        assert sig.ring_size == 5
        assert LSAG.verify(sig, b"transfer")

    def test_string_message(self, keys, ring):
        sig = LSAG.sign("hello", keys[1].private_key, 1, ring)
        assert LSAG.verify(sig, "hello")
        assert LSAG.verify(sig, b"hello")

    def test_wrong_message(self, keys, ring):
        sig = LSAG.sign(b"transfer", keys[0].private_key, 0, ring)
        assert not LSAG.verify(sig, b"other")

    def test_minimum_ring(self):
        a, b = KeyPair.generate(), KeyPair.generate()
        sig = LSAG.sign(b"m", b.private_key, 1, [a.public_key, b.public_key])
        assert LSAG.verify(sig, b"m")

    def test_key_image_matches_signer(self, keys, ring):
        sig = LSAG.sign(b"m", keys[3].private_key, 3, ring)
        assert sig.key_image == generate_key_image(keys[3].private_key, keys[3].public_key)


# =============================================================================
# Test: Input Validation
# =============================================================================

class TestLSAGValidation:
    """Tests for rejected signing inputs."""

    @pytest.mark.parametrize("index", [-1, 5, 100])
    def test_index_out_of_bounds(self, keys, ring, index):
        with pytest.raises(InvalidIndexError):
            LSAG.sign(b"m", keys[0].private_key, index, ring)

    def test_index_checked_before_ring(self, keys):
        """A bad index is reported even for a malformed ring."""
        with pytest.raises(InvalidIndexError):
            LSAG.sign(b"m", keys[0].private_key, 3, [keys[0].public_key])

    def test_ring_too_small(self, keys):
        with pytest.raises(InvalidRingError):
            LSAG.sign(b"m", keys[0].private_key, 0, [keys[0].public_key])

    def test_duplicate_members(self, keys):
        ring = [keys[0].public_key, keys[1].public_key, keys[1].public_key]
        with pytest.raises(InvalidRingError):
            LSAG.sign(b"m", keys[0].private_key, 0, ring)

    def test_invalid_member(self, keys):
        ring = [keys[0].public_key, b'\x00' * 32]
        with pytest.raises(InvalidRingError):
            LSAG.sign(b"m", keys[0].private_key, 0, ring)

    def test_key_mismatch(self, keys, ring):
        with pytest.raises(ValidationError):
            LSAG.sign(b"m", keys[0].private_key, 1, ring)


# =============================================================================
# Test: Tampering
# =============================================================================

class TestLSAGTampering:
    """Every stored challenge and response is checked."""

    def test_tampered_challenge(self, keys, ring):
        sig = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        sig.challenges[2] = Ed25519Point.scalar_random()
        assert not LSAG.verify(sig, b"m")

    def test_tampered_response(self, keys, ring):
        sig = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        sig.responses[4] = Ed25519Point.scalar_random()
        assert not LSAG.verify(sig, b"m")

    def test_swapped_ring_member(self, keys, ring):
        sig = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        sig.ring[1] = KeyPair.generate().public_key
        assert not LSAG.verify(sig, b"m")

    def test_foreign_key_image(self, keys, ring):
        sig = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        sig.key_image = generate_key_image(keys[1].private_key, keys[1].public_key)
        assert not LSAG.verify(sig, b"m")

    def test_length_mismatch(self, keys, ring):
        sig = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        sig.responses.pop()
        assert not LSAG.verify(sig, b"m")

    def test_garbage_never_raises(self):
        assert not LSAG.verify(None, b"m")


# =============================================================================
# Test: Linkability and Encoding
# =============================================================================

class TestLinkability:
    """Same secret -> same key image, regardless of ring and message."""

    def test_same_signer_links(self, keys, ring):
        other_ring = [keys[0].public_key] + [KeyPair.generate().public_key for _ in range(3)]
        sig1 = LSAG.sign(b"one", keys[0].private_key, 0, ring)
        sig2 = LSAG.sign(b"two", keys[0].private_key, 0, other_ring)
        assert LSAG.link(sig1, sig2)

    def test_different_signers_do_not_link(self, keys, ring):
        sig1 = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        sig2 = LSAG.sign(b"m", keys[1].private_key, 1, ring)
        assert not LSAG.link(sig1, sig2)

    def test_check_linkability(self, keys, ring):
        sigs = [
            LSAG.sign(b"a", keys[0].private_key, 0, ring),
            LSAG.sign(b"b", keys[1].private_key, 1, ring),
            LSAG.sign(b"c", keys[0].private_key, 0, ring),
        ]
        result = LSAG.check_linkability(sigs)
        assert result.linkable
        assert result.linked_indices == (0, 2)
        assert not LSAG.check_linkability(sigs[:2]).linkable

    def test_key_image_used(self, keys, ring):
        sig = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        assert is_key_image_used(sig.key_image, {sig.key_image})
        assert not is_key_image_used(sig.key_image, set())

    def test_batch(self, keys, ring):
        messages = [b"a", b"b"]
        sigs = LSAG.sign_batch(messages, keys[2].private_key, 2, ring)
        assert LSAG.verify_batch(sigs, messages)
        assert not LSAG.verify_batch(sigs, [b"a", b"x"])
        assert LSAG.extract_key_images(sigs) == [sigs[0].key_image] * 2

    def test_bytes_roundtrip(self, keys, ring):
        sig = LSAG.sign(b"m", keys[0].private_key, 0, ring)
        data = sig.to_bytes()
        assert len(data) == 64 + 96 * 5
        assert LSAG.verify(RingSignature.from_bytes(data), b"m")
        assert LSAG.verify(RingSignature.from_dict(sig.to_dict()), b"m")
        with pytest.raises(ValidationError):
            RingSignature.from_bytes(data[:-1])
