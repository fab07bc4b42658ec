"""
Veil - Key Pairs

Ed25519 key pairs whose secret is a plain scalar mod L (no clamping),
so the same secret works for ECDH, key images and ring signatures.
"""

from __future__ import annotations
import hashlib
from dataclasses import dataclass, field

from veil.constants import DOMAIN_KEY_SEED, SCALAR_SIZE
from veil.crypto.curve import Ed25519Point
from veil.errors import InvalidKeyError


@dataclass(frozen=True)
class KeyPair:
    """
    Secret scalar x and public point P = x * G.

    The secret is excluded from repr so that key pairs can be logged safely.
    """
    public_key: bytes
    private_key: bytes = field(repr=False)

    @classmethod
    def generate(cls) -> 'KeyPair':
        """Generate a fresh random key pair."""
        secret = Ed25519Point.scalar_random()
        return cls(public_key=Ed25519Point.derive_public_key(secret), private_key=secret)

    @classmethod
    def from_private_key(cls, private_key: bytes) -> 'KeyPair':
        """Rebuild a key pair from its secret scalar."""
        if len(private_key) != SCALAR_SIZE:
            raise InvalidKeyError("Private key must be 32 bytes")
        if not Ed25519Point.is_canonical_scalar(private_key) or Ed25519Point.is_zero_scalar(private_key):
            raise InvalidKeyError("Private key must be a nonzero scalar below the group order")
        return cls(public_key=Ed25519Point.derive_public_key(private_key), private_key=private_key)

    @classmethod
    def from_seed(cls, seed: bytes) -> 'KeyPair':
        """Derive a key pair deterministically from a seed."""
        if not seed:
            raise InvalidKeyError("Seed must not be empty")
        secret = Ed25519Point.hash_to_scalar(DOMAIN_KEY_SEED, hashlib.sha256(seed).digest())
        return cls.from_private_key(secret)

    @property
    def public_hex(self) -> str:
        return self.public_key.hex()

    def matches(self, public_key: bytes) -> bool:
        """True if this key pair owns public_key."""
        return Ed25519Point.is_valid_point(public_key) and public_key == self.public_key


def validate_public_key(public_key: bytes, name: str = "public key") -> bytes:
    """Raise InvalidKeyError unless public_key is a valid group element."""
    if not isinstance(public_key, (bytes, bytearray)) or len(public_key) != 32:
        raise InvalidKeyError(f"Invalid {name} length")
    if not Ed25519Point.is_valid_point(bytes(public_key)):
        raise InvalidKeyError(f"Invalid {name}: not a valid group element")
    return bytes(public_key)
