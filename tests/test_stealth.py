"""
Veil Stealth Address Tests
"""

import hashlib

import pytest

from veil.crypto.curve import Ed25519Point
from veil.crypto.keys import KeyPair
from veil.crypto import stealth
from veil.crypto.stealth import StealthAddress
from veil.errors import InvalidKeyError, ValidationError


class TestStealthAddress:
    """Tests for one-time address derivation."""

    def test_recipient_recovers_key(self, recipient):
        """The derived private key controls the published address."""
        sa = stealth.generate(recipient.public_key)
        derived = stealth.derive_for_recipient(recipient.private_key, sa.ephemeral_public_key)
        assert derived.address == sa.address
        assert Ed25519Point.scalarmult_base(derived.private_key) == derived.public_key

    def test_hex_recipient_key(self, recipient):
        sa = stealth.generate(recipient.public_key.hex())
        assert stealth.is_own(sa.address, recipient.private_key, sa.ephemeral_public_key)

    def test_unlinkable(self, recipient):
        """Fresh ephemeral key per call."""
        a = stealth.generate(recipient.public_key)
        b = stealth.generate(recipient.public_key)
        assert a.address != b.address
        assert a.ephemeral_public_key != b.ephemeral_public_key

    def test_shared_secret_hash(self, recipient):
        sa, seed = stealth.create(recipient.public_key)
        assert sa.shared_secret_hash == hashlib.sha256(seed).hexdigest()
        assert stealth.derive_shared_seed(recipient.private_key, sa.ephemeral_public_key) == seed

    def test_other_key_is_not_owner(self, recipient):
        sa = stealth.generate(recipient.public_key)
        assert not stealth.is_own(sa.address, KeyPair.generate().private_key, sa.ephemeral_public_key)

    def test_is_own_never_raises(self, recipient):
        assert not stealth.is_own("00", recipient.private_key, "not-hex")
        assert not stealth.is_own("00", b"short", bytes(32))

    def test_invalid_recipient_key(self):
        with pytest.raises(InvalidKeyError):
            stealth.generate(b'\x00' * 32)
        with pytest.raises(InvalidKeyError):
            stealth.generate("zz")

    def test_well_formed(self, recipient):
        sa = stealth.generate(recipient.public_key)
        assert sa.is_well_formed()
        broken = StealthAddress(
            address="00" * 32,
            ephemeral_public_key=sa.ephemeral_public_key,
            shared_secret_hash=sa.shared_secret_hash,
            created_at=sa.created_at,
        )
        assert not broken.is_well_formed()
        assert not StealthAddress("xyz", "xyz", "xyz", 0).is_well_formed()

    def test_dict_roundtrip(self, recipient):
        sa = stealth.generate(recipient.public_key)
        assert StealthAddress.from_dict(sa.to_dict()) == sa


class TestStealthScan:
    def test_scan_finds_own_outputs(self, recipient):
        other = KeyPair.generate()
        mine = stealth.generate_batch(recipient.public_key, 3)
        theirs = stealth.generate_batch(other.public_key, 2)
        found = stealth.scan(theirs + mine, recipient.private_key)
        assert found == mine

    def test_batch_negative(self, recipient):
        with pytest.raises(ValidationError):
            stealth.generate_batch(recipient.public_key, -1)
