"""
Veil - Sigma Protocols

Non-interactive (Fiat-Shamir) Sigma protocols over Ed25519:

- Sigma-OR: knowledge of w with Y_0 = w*B or Y_1 = w*B, without revealing which.
  The true branch is proven honestly; the other branch is simulated by
  drawing (e_j, s_j) uniformly and solving R_j = s_j*B - e_j*Y_j.
  Both branches go through the same code path.
- Schnorr: knowledge of w with Y = w*B (w may be zero).
- Opening: knowledge of (v, r) with C = v*G + r*H (Okamoto).

Verification functions never raise; they return False on any mismatch
or malformed input.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from veil.constants import IDENTITY_POINT, SCALAR_SIZE
from veil.crypto.curve import Ed25519Point, Generators, scalars_equal
from veil.errors import CurveError, ValidationError

logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def scaled(scalar: bytes, point: bytes) -> bytes:
    """s * P, allowing a zero scalar or identity point (result: identity)."""
    if Ed25519Point.is_zero_scalar(scalar) or Ed25519Point.is_identity(point):
        return IDENTITY_POINT
    return Ed25519Point.scalarmult(scalar, point)


def linear_combination(s: bytes, base: bytes, e: bytes, statement: bytes) -> bytes:
    """s*B - e*Y, the verifier's reconstruction of a Sigma commitment."""
    return Ed25519Point.point_sub(scaled(s, base), scaled(e, statement))


def _require_scalar(value: bytes, name: str) -> None:
    if not isinstance(value, (bytes, bytearray)) or len(value) != SCALAR_SIZE:
        raise ValidationError(f"{name} must be a 32-byte scalar")


# ============================================================================
# SIGMA-OR
# ============================================================================

@dataclass(frozen=True)
class SigmaOrProof:
    """Two sub-challenges and two responses; e0 + e1 equals the Fiat-Shamir challenge."""
    e0: bytes
    e1: bytes
    s0: bytes
    s1: bytes

    @property
    def challenges(self) -> Tuple[bytes, bytes]:
        return (self.e0, self.e1)

    @property
    def responses(self) -> Tuple[bytes, bytes]:
        return (self.s0, self.s1)


def _or_challenge(domain: bytes, transcript: bytes, r0: bytes, r1: bytes) -> bytes:
    return Ed25519Point.hash_to_scalar(domain, transcript, r0, r1)


def prove_or(
    domain: bytes,
    transcript: bytes,
    statements: Tuple[bytes, bytes],
    true_index: int,
    witness: bytes,
    base: bytes = None
) -> SigmaOrProof:
    """
    Prove knowledge of witness for statements[true_index] = witness * base.

    Args:
        domain: Domain-separation tag for the challenge hash
        transcript: Bytes the challenge is bound to
        statements: (Y_0, Y_1)
        true_index: 0 or 1, the branch the witness opens
        witness: Secret scalar w
        base: Base point B (defaults to H)

    Returns:
        SigmaOrProof
    """
    if true_index not in (0, 1):
        raise ValidationError("Sigma-OR branch index must be 0 or 1")
    _require_scalar(witness, "witness")
    base = base or Generators.H()

    sim = 1 - true_index
    commitments = [b'', b'']
    challenges = [b'', b'']
    responses = [b'', b'']

    # Honest branch: R = k*B
    k = Ed25519Point.scalar_random()
    commitments[true_index] = Ed25519Point.scalarmult(k, base)

    # Simulated branch: R_j = s_j*B - e_j*Y_j
    challenges[sim] = Ed25519Point.scalar_random()
    responses[sim] = Ed25519Point.scalar_random()
    commitments[sim] = linear_combination(responses[sim], base, challenges[sim], statements[sim])

    e = _or_challenge(domain, transcript, commitments[0], commitments[1])

    challenges[true_index] = Ed25519Point.scalar_sub(e, challenges[sim])
    responses[true_index] = Ed25519Point.scalar_add(
        k, Ed25519Point.scalar_mul(challenges[true_index], witness)
    )

    return SigmaOrProof(
        e0=challenges[0],
        e1=challenges[1],
        s0=responses[0],
        s1=responses[1],
    )


def verify_or(
    domain: bytes,
    transcript: bytes,
    statements: Tuple[bytes, bytes],
    proof: SigmaOrProof,
    base: bytes = None
) -> bool:
    """Verify a Sigma-OR proof produced by prove_or."""
    try:
        base = base or Generators.H()
        for value in (proof.e0, proof.e1, proof.s0, proof.s1):
            if not Ed25519Point.is_canonical_scalar(value):
                return False

        r0 = linear_combination(proof.s0, base, proof.e0, statements[0])
        r1 = linear_combination(proof.s1, base, proof.e1, statements[1])

        e = _or_challenge(domain, transcript, r0, r1)
        return scalars_equal(Ed25519Point.scalar_add(proof.e0, proof.e1), e)

    except (CurveError, ValueError, TypeError) as e:
        logger.debug(f"Sigma-OR verification error: {e}")
        return False


# ============================================================================
# SCHNORR
# ============================================================================

@dataclass(frozen=True)
class SchnorrProof:
    challenge: bytes
    response: bytes


def _schnorr_challenge(domain: bytes, context: Sequence[bytes], statement: bytes, r: bytes) -> bytes:
    return Ed25519Point.hash_to_scalar(domain, *context, statement, r)


def prove_schnorr(
    domain: bytes,
    context: Sequence[bytes],
    statement: bytes,
    witness: bytes,
    base: bytes = None
) -> SchnorrProof:
    """Prove knowledge of w with statement = w * base. The witness may be zero."""
    _require_scalar(witness, "witness")
    base = base or Generators.H()

    k = Ed25519Point.scalar_random()
    r = Ed25519Point.scalarmult(k, base)
    c = _schnorr_challenge(domain, context, statement, r)
    s = Ed25519Point.scalar_add(k, Ed25519Point.scalar_mul(c, witness))
    return SchnorrProof(challenge=c, response=s)


def verify_schnorr(
    domain: bytes,
    context: Sequence[bytes],
    statement: bytes,
    proof: SchnorrProof,
    base: bytes = None
) -> bool:
    """Verify a Schnorr proof: recompute R = s*B - c*Y and rehash."""
    try:
        base = base or Generators.H()
        if not (Ed25519Point.is_canonical_scalar(proof.challenge)
                and Ed25519Point.is_canonical_scalar(proof.response)):
            return False
        r = linear_combination(proof.response, base, proof.challenge, statement)
        c = _schnorr_challenge(domain, context, statement, r)
        return scalars_equal(c, proof.challenge)
    except (CurveError, ValueError, TypeError) as e:
        logger.debug(f"Schnorr verification error: {e}")
        return False


# ============================================================================
# COMMITMENT OPENING
# ============================================================================

@dataclass(frozen=True)
class OpeningProof:
    challenge: bytes
    response_value: bytes
    response_blinding: bytes


def prove_opening(
    domain: bytes,
    context: Sequence[bytes],
    commitment: bytes,
    value: bytes,
    blinding: bytes
) -> OpeningProof:
    """
    Prove knowledge of (v, r) with commitment = v*G + r*H.

    R = k1*G + k2*H, c = Hs(domain || context || C || R),
    s1 = k1 + c*v, s2 = k2 + c*r.
    """
    _require_scalar(value, "value")
    _require_scalar(blinding, "blinding")

    k1 = Ed25519Point.scalar_random()
    k2 = Ed25519Point.scalar_random()
    r = Ed25519Point.point_add(
        Ed25519Point.scalarmult_base(k1),
        Ed25519Point.scalarmult(k2, Generators.H()),
    )
    c = _schnorr_challenge(domain, context, commitment, r)
    return OpeningProof(
        challenge=c,
        response_value=Ed25519Point.scalar_add(k1, Ed25519Point.scalar_mul(c, value)),
        response_blinding=Ed25519Point.scalar_add(k2, Ed25519Point.scalar_mul(c, blinding)),
    )


def verify_opening(
    domain: bytes,
    context: Sequence[bytes],
    commitment: bytes,
    proof: OpeningProof
) -> bool:
    """Verify an opening proof: R = s1*G + s2*H - c*C."""
    try:
        for value in (proof.challenge, proof.response_value, proof.response_blinding):
            if not Ed25519Point.is_canonical_scalar(value):
                return False
        r = Ed25519Point.point_sub(
            Ed25519Point.point_add(
                scaled(proof.response_value, Generators.G()),
                scaled(proof.response_blinding, Generators.H()),
            ),
            scaled(proof.challenge, commitment),
        )
        c = _schnorr_challenge(domain, context, commitment, r)
        return scalars_equal(c, proof.challenge)
    except (CurveError, ValueError, TypeError) as e:
        logger.debug(f"Opening proof verification error: {e}")
        return False
