"""
Veil - Stealth Addresses

One-time recipient addresses derived via Diffie-Hellman.

Protocol:
1. Sender picks random e, publishes E = e*G
2. Shared value: S = e*P_r = x_r*E
3. Seed: k = SHA-256(domain || S)
4. One-time key: x_o = Hs(domain_otk || k), address = x_o*G
5. Recipient re-derives x_o from (x_r, E) to spend

Every call draws a fresh e, so addresses for the same recipient are
unlinkable on the ledger.
"""

from __future__ import annotations
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple, Union

from veil.constants import DOMAIN_ONE_TIME_KEY, DOMAIN_STEALTH
from veil.crypto.curve import Ed25519Point
from veil.crypto.keys import KeyPair, validate_public_key
from veil.errors import CurveError, InvalidKeyError, ValidationError

logger = logging.getLogger(__name__)

PointLike = Union[bytes, str]


def _point(value: PointLike, name: str) -> bytes:
    if isinstance(value, str):
        try:
            value = bytes.fromhex(value)
        except ValueError:
            raise InvalidKeyError(f"Invalid {name} encoding")
    return validate_public_key(value, name)


@dataclass
class StealthAddress:
    """Published part of a stealth output."""
    address: str
    ephemeral_public_key: str
    shared_secret_hash: str
    created_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "ephemeral_public_key": self.ephemeral_public_key,
            "shared_secret_hash": self.shared_secret_hash,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StealthAddress':
        return cls(
            address=str(data["address"]),
            ephemeral_public_key=str(data["ephemeral_public_key"]),
            shared_secret_hash=str(data["shared_secret_hash"]),
            created_at=int(data["created_at"]),
        )

    def is_well_formed(self) -> bool:
        """Address and ephemeral key decode to valid group elements."""
        try:
            return (
                Ed25519Point.is_valid_point(bytes.fromhex(self.address))
                and Ed25519Point.is_valid_point(bytes.fromhex(self.ephemeral_public_key))
                and len(bytes.fromhex(self.shared_secret_hash)) == 32
            )
        except (TypeError, ValueError):
            return False


@dataclass
class DerivedKey:
    """Recipient's one-time key pair for a stealth address."""
    address: str
    public_key: bytes
    private_key: bytes = field(repr=False)


# ============================================================================
# DERIVATION
# ============================================================================

def _seed_from_shared(shared_point: bytes) -> bytes:
    return hashlib.sha256(DOMAIN_STEALTH + shared_point).digest()


def _one_time_keypair(seed: bytes) -> Tuple[bytes, bytes]:
    secret = Ed25519Point.hash_to_scalar(DOMAIN_ONE_TIME_KEY, seed)
    return secret, Ed25519Point.scalarmult_base(secret)


def derive_shared_seed(recipient_private_key: bytes, ephemeral_public_key: PointLike) -> bytes:
    """Recipient side of the DH exchange: SHA-256(domain || x_r*E)."""
    ephemeral = _point(ephemeral_public_key, "ephemeral public key")
    if len(recipient_private_key) != 32 or Ed25519Point.is_zero_scalar(recipient_private_key):
        raise InvalidKeyError("Recipient private key must be a nonzero 32-byte scalar")
    return _seed_from_shared(Ed25519Point.scalarmult(recipient_private_key, ephemeral))


def create(recipient_public_key: PointLike) -> Tuple[StealthAddress, bytes]:
    """
    Create a stealth address for recipient.

    Returns:
        (StealthAddress, shared seed); the seed stays with the sender
        and keys the recipient note
    """
    recipient = _point(recipient_public_key, "recipient public key")

    ephemeral = KeyPair.generate()
    seed = _seed_from_shared(Ed25519Point.scalarmult(ephemeral.private_key, recipient))
    _, one_time_public = _one_time_keypair(seed)

    stealth = StealthAddress(
        address=one_time_public.hex(),
        ephemeral_public_key=ephemeral.public_key.hex(),
        shared_secret_hash=hashlib.sha256(seed).hexdigest(),
        created_at=int(time.time() * 1000),
    )
    return stealth, seed


def generate(recipient_public_key: PointLike) -> StealthAddress:
    """Create a stealth address, discarding the sender-side seed."""
    stealth, _ = create(recipient_public_key)
    return stealth


def derive_for_recipient(recipient_private_key: bytes, ephemeral_public_key: PointLike) -> DerivedKey:
    """
    Re-derive the one-time key pair from (recipient private key, ephemeral key).

    Raises:
        InvalidKeyError: malformed key material
    """
    seed = derive_shared_seed(recipient_private_key, ephemeral_public_key)
    secret, public = _one_time_keypair(seed)
    return DerivedKey(address=public.hex(), public_key=public, private_key=secret)


def is_own(address: str, recipient_private_key: bytes, ephemeral_public_key: PointLike) -> bool:
    """True if address was derived for this recipient. Never raises."""
    try:
        derived = derive_for_recipient(recipient_private_key, ephemeral_public_key)
        return hmac.compare_digest(derived.address, address.lower())
    except (ValidationError, CurveError, TypeError, ValueError, AttributeError):
        return False


def generate_batch(recipient_public_key: PointLike, count: int) -> List[StealthAddress]:
    if count < 0:
        raise ValidationError("count must be non-negative")
    return [generate(recipient_public_key) for _ in range(count)]


def scan(addresses: Iterable[StealthAddress], recipient_private_key: bytes) -> List[StealthAddress]:
    """Return the addresses that belong to recipient_private_key."""
    owned = [
        sa for sa in addresses
        if is_own(sa.address, recipient_private_key, sa.ephemeral_public_key)
    ]
    logger.debug(f"Stealth scan matched {len(owned)} output(s)")
    return owned
