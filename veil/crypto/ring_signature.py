"""
Veil - Linkable Ring Signatures

LSAG (Linkable Spontaneous Anonymous Group) signatures that keep every
member's challenge, so a verifier checks each link of the ring and not
only the wrap-around.

For each member i:
    L_i = s_i * G + c_i * P_i
    R_i = s_i * Hp(P_i) + c_i * I
    c_{i+1} = Hs(domain || digest || L_i || R_i || ring || I)

Key image I = x * Hp(P) is identical for every signature by the same
key, which makes double spends detectable without revealing the signer.

Reference: "Linkable Spontaneous Anonymous Group Signature for Ad Hoc Groups"
by Liu, Wei, Wong (2004)
"""

from __future__ import annotations
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Container, Dict, List, Optional, Sequence, Tuple, Union

from veil.constants import (
    DOMAIN_KEY_IMAGE,
    DOMAIN_RING_SIG,
    HASH_SIZE,
    MAX_RING_SIZE,
    MIN_RING_SIZE,
    POINT_SIZE,
    SCALAR_SIZE,
)
from veil.crypto.curve import Ed25519Point, Generators, points_equal, scalars_equal
from veil.crypto.sigma import scaled
from veil.errors import (
    CurveError,
    InvalidIndexError,
    InvalidRingError,
    ValidationError,
)

logger = logging.getLogger(__name__)

Message = Union[bytes, str]


def _message_bytes(message: Message) -> bytes:
    if isinstance(message, str):
        return message.encode('utf-8')
    return bytes(message)


def message_digest(message: Message) -> bytes:
    return hashlib.sha256(_message_bytes(message)).digest()


# ============================================================================
# KEY IMAGES
# ============================================================================

def key_image_base(public_key: bytes) -> bytes:
    """Hp(P), the per-key base point of the key image."""
    return Ed25519Point.hash_to_point(DOMAIN_KEY_IMAGE + public_key)


def generate_key_image(secret_key: bytes, public_key: bytes) -> bytes:
    """
    Generate key image I = x * Hp(P).

    Args:
        secret_key: Secret key x (32 bytes)
        public_key: Public key P = x*G (32 bytes)

    Returns:
        Key image (32 bytes)
    """
    if len(secret_key) != SCALAR_SIZE:
        raise ValidationError("Secret key must be 32 bytes")
    if not Ed25519Point.is_valid_point(public_key):
        raise ValidationError("Invalid public key")
    return Ed25519Point.scalarmult(secret_key, key_image_base(public_key))


def is_key_image_used(key_image: bytes, used: Container[bytes]) -> bool:
    """Membership test against a set of spent key images."""
    return key_image in used


# ============================================================================
# SIGNATURE
# ============================================================================

@dataclass
class RingSignature:
    """
    Ring signature with a closed challenge cycle.

    Components:
    - ring: Public keys P_0..P_{n-1}
    - key_image: I = x * Hp(P_pi)
    - challenges: c_0..c_{n-1}
    - responses: s_0..s_{n-1}
    - message_digest: SHA-256 of the signed message
    """
    ring: List[bytes]
    key_image: bytes
    challenges: List[bytes]
    responses: List[bytes]
    message_digest: bytes

    @property
    def ring_size(self) -> int:
        return len(self.ring)

    def to_bytes(self) -> bytes:
        """ring || key_image || challenges || responses || digest (fixed width)."""
        data = bytearray()
        for pk in self.ring:
            data.extend(pk)
        data.extend(self.key_image)
        for c in self.challenges:
            data.extend(c)
        for s in self.responses:
            data.extend(s)
        data.extend(self.message_digest)
        return bytes(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'RingSignature':
        fixed = POINT_SIZE + HASH_SIZE
        per_member = POINT_SIZE + 2 * SCALAR_SIZE
        if len(data) < fixed or (len(data) - fixed) % per_member != 0:
            raise ValidationError("Ring signature data has invalid length")
        n = (len(data) - fixed) // per_member

        def chunks(start: int, count: int) -> List[bytes]:
            return [data[start + 32 * k:start + 32 * (k + 1)] for k in range(count)]

        ring = chunks(0, n)
        offset = 32 * n
        key_image = data[offset:offset + POINT_SIZE]
        offset += POINT_SIZE
        challenges = chunks(offset, n)
        offset += 32 * n
        responses = chunks(offset, n)
        offset += 32 * n
        return cls(
            ring=ring,
            key_image=key_image,
            challenges=challenges,
            responses=responses,
            message_digest=data[offset:offset + HASH_SIZE],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ring": [pk.hex() for pk in self.ring],
            "key_image": self.key_image.hex(),
            "challenges": [c.hex() for c in self.challenges],
            "responses": [s.hex() for s in self.responses],
            "message_digest": self.message_digest.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RingSignature':
        return cls(
            ring=[bytes.fromhex(pk) for pk in data["ring"]],
            key_image=bytes.fromhex(data["key_image"]),
            challenges=[bytes.fromhex(c) for c in data["challenges"]],
            responses=[bytes.fromhex(s) for s in data["responses"]],
            message_digest=bytes.fromhex(data["message_digest"]),
        )


@dataclass
class LinkabilityResult:
    linkable: bool
    linked_indices: Optional[Tuple[int, int]] = None
    key_image: Optional[bytes] = field(default=None, repr=False)


# ============================================================================
# LSAG
# ============================================================================

class LSAG:
    """
    Linkable Spontaneous Anonymous Group signatures.

    Properties:
    - Anonymity: Verifier cannot determine which ring member signed
    - Linkability: Same secret key produces same key image (detect double-spend)
    - Unforgeability: Only secret key holder can create valid signature
    - Spontaneity: No setup or coordination required
    """

    @staticmethod
    def _compute_challenge(
        digest: bytes,
        L: bytes,
        R: bytes,
        ring: Sequence[bytes],
        key_image: bytes
    ) -> bytes:
        """Compute challenge hash c = Hs(domain || m || L || R || ring || I)."""
        return Ed25519Point.hash_to_scalar(DOMAIN_RING_SIG, digest, L, R, *ring, key_image)

    @staticmethod
    def _member_points(
        response: bytes,
        challenge: bytes,
        public_key: bytes,
        hp: bytes,
        key_image: bytes
    ) -> Tuple[bytes, bytes]:
        """(L_i, R_i) reconstructed from public data."""
        L = Ed25519Point.point_add(scaled(response, Generators.G()), scaled(challenge, public_key))
        R = Ed25519Point.point_add(scaled(response, hp), scaled(challenge, key_image))
        return L, R

    @staticmethod
    def _validate_ring(ring: Sequence[bytes]) -> None:
        n = len(ring)
        if n < MIN_RING_SIZE:
            raise InvalidRingError(f"Ring must have at least {MIN_RING_SIZE} members")
        if n > MAX_RING_SIZE:
            raise InvalidRingError(f"Ring must have at most {MAX_RING_SIZE} members")
        for i, pk in enumerate(ring):
            if not Ed25519Point.is_valid_point(pk):
                raise InvalidRingError(f"Ring member {i} not valid point", {"member": i})
        if len(set(ring)) != n:
            raise InvalidRingError("Ring contains duplicate members")

    @staticmethod
    def sign(
        message: Message,
        signer_private_key: bytes,
        signer_index: int,
        ring_public_keys: Sequence[bytes]
    ) -> RingSignature:
        """
        Generate ring signature.

        Args:
            message: Message to sign (will be hashed)
            signer_private_key: Secret key of actual signer (x)
            signer_index: Index of actual signer in ring (pi)
            ring_public_keys: Ring members

        Returns:
            RingSignature

        Raises:
            InvalidIndexError: signer_index out of bounds
            ValidationError: bad ring, or key does not match ring[signer_index]
        """
        ring = [bytes(pk) for pk in ring_public_keys]
        n = len(ring)

        if not isinstance(signer_index, int) or signer_index < 0 or signer_index >= n:
            raise InvalidIndexError(signer_index, n)
        LSAG._validate_ring(ring)
        if len(signer_private_key) != SCALAR_SIZE or Ed25519Point.is_zero_scalar(signer_private_key):
            raise ValidationError("Secret key must be a nonzero 32-byte scalar")

        public_key = ring[signer_index]
        if not points_equal(Ed25519Point.derive_public_key(signer_private_key), public_key):
            raise ValidationError("Secret key doesn't match public key at signer index")

        digest = message_digest(message)
        hp = [key_image_base(pk) for pk in ring]
        key_image = Ed25519Point.scalarmult(signer_private_key, hp[signer_index])

        c: List[Optional[bytes]] = [None] * n
        s: List[Optional[bytes]] = [None] * n

        # L_pi = alpha * G, R_pi = alpha * Hp(P_pi)
        alpha = Ed25519Point.scalar_random()
        L_pi = Ed25519Point.scalarmult_base(alpha)
        R_pi = Ed25519Point.scalarmult(alpha, hp[signer_index])
        c[(signer_index + 1) % n] = LSAG._compute_challenge(digest, L_pi, R_pi, ring, key_image)

        # Walk forward around the ring with random responses
        for j in range(1, n):
            i = (signer_index + j) % n
            s[i] = Ed25519Point.scalar_random()
            L_i, R_i = LSAG._member_points(s[i], c[i], ring[i], hp[i], key_image)
            c[(i + 1) % n] = LSAG._compute_challenge(digest, L_i, R_i, ring, key_image)

        # Close the ring: s_pi = alpha - c_pi * x (mod L)
        s[signer_index] = Ed25519Point.scalar_sub(
            alpha, Ed25519Point.scalar_mul(c[signer_index], signer_private_key)
        )

        return RingSignature(
            ring=ring,
            key_image=key_image,
            challenges=c,
            responses=s,
            message_digest=digest,
        )

    @staticmethod
    def verify(signature: RingSignature, message: Message) -> bool:
        """
        Verify ring signature.

        Every recomputed challenge must equal the stored challenge of the
        next member, and the walk must return to challenges[0].

        Returns:
            True if signature is valid (never raises)
        """
        try:
            ring = signature.ring
            n = len(ring)

            if n < MIN_RING_SIZE or n > MAX_RING_SIZE:
                logger.debug(f"Ring size out of bounds: {n}")
                return False
            if len(signature.challenges) != n or len(signature.responses) != n:
                logger.debug("Challenge/response count mismatch")
                return False
            if len(set(ring)) != n:
                logger.debug("Duplicate ring members")
                return False

            if not hmac.compare_digest(message_digest(message), signature.message_digest):
                logger.debug("Message digest mismatch")
                return False

            if not Ed25519Point.is_valid_point(signature.key_image):
                logger.debug("Invalid key image structure")
                return False
            for i, pk in enumerate(ring):
                if not Ed25519Point.is_valid_point(pk):
                    logger.debug(f"Invalid ring member {i}")
                    return False
            for scalar in list(signature.challenges) + list(signature.responses):
                if not Ed25519Point.is_canonical_scalar(scalar):
                    logger.debug("Non-canonical scalar in signature")
                    return False

            for i in range(n):
                hp_i = key_image_base(ring[i])
                L_i, R_i = LSAG._member_points(
                    signature.responses[i], signature.challenges[i], ring[i], hp_i, signature.key_image
                )
                c_next = LSAG._compute_challenge(
                    signature.message_digest, L_i, R_i, ring, signature.key_image
                )
                # i + 1 == n wraps to challenges[0], closing the ring
                if not scalars_equal(c_next, signature.challenges[(i + 1) % n]):
                    logger.debug(f"Challenge mismatch after member {i}")
                    return False

            return True

        except (CurveError, ValidationError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ring signature verification error: {e}")
            return False

    @staticmethod
    def link(sig1: RingSignature, sig2: RingSignature) -> bool:
        """Check if two signatures are from the same secret key (constant-time)."""
        return points_equal(sig1.key_image, sig2.key_image)

    @staticmethod
    def check_linkability(signatures: Sequence[RingSignature]) -> LinkabilityResult:
        """
        Scan a batch for a repeated key image and report the first colliding pair.

        Runs independently of signature validity.
        """
        seen: Dict[bytes, int] = {}
        for j, sig in enumerate(signatures):
            first = seen.get(sig.key_image)
            if first is not None:
                return LinkabilityResult(linkable=True, linked_indices=(first, j), key_image=sig.key_image)
            seen[sig.key_image] = j
        return LinkabilityResult(linkable=False)

    @staticmethod
    def sign_batch(
        messages: Sequence[Message],
        signer_private_key: bytes,
        signer_index: int,
        ring_public_keys: Sequence[bytes]
    ) -> List[RingSignature]:
        """Sign several messages with the same key and ring."""
        return [
            LSAG.sign(m, signer_private_key, signer_index, ring_public_keys)
            for m in messages
        ]

    @staticmethod
    def verify_batch(
        signatures: Sequence[RingSignature],
        messages: Sequence[Message]
    ) -> bool:
        """Verify every signature; any single failure fails the batch."""
        if len(signatures) != len(messages):
            logger.debug("Batch length mismatch")
            return False
        return all(LSAG.verify(sig, m) for sig, m in zip(signatures, messages))

    @staticmethod
    def extract_key_images(signatures: Sequence[RingSignature]) -> List[bytes]:
        return [sig.key_image for sig in signatures]
