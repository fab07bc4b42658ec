"""
Veil Cryptographic Primitives

Ed25519 group operations, Pedersen commitments, range proofs,
linkable ring signatures, stealth addresses and recipient notes.
"""

from veil.crypto.curve import Ed25519Point, Generators
from veil.crypto.keys import KeyPair
from veil.crypto.pedersen import Pedersen, PedersenCommitment
from veil.crypto.range_proof import (
    AggregationProof,
    BitProof,
    RangeBounds,
    RangeProof,
    estimate_proof_size,
    generate_batch_range_proofs,
    generate_compact_range_proof,
    generate_range_proof,
    recommended_bit_length,
    verify_batch_range_proofs,
    verify_range_proof,
)
from veil.crypto.ring_signature import (
    LSAG,
    LinkabilityResult,
    RingSignature,
    generate_key_image,
    is_key_image_used,
)
from veil.crypto.stealth import DerivedKey, StealthAddress
from veil.crypto.note import EncryptedNote, NotePlaintext

__all__ = [
    # Curve
    "Ed25519Point",
    "Generators",
    "KeyPair",
    # Commitments
    "Pedersen",
    "PedersenCommitment",
    # Range proofs
    "AggregationProof",
    "BitProof",
    "RangeBounds",
    "RangeProof",
    "estimate_proof_size",
    "generate_batch_range_proofs",
    "generate_compact_range_proof",
    "generate_range_proof",
    "recommended_bit_length",
    "verify_batch_range_proofs",
    "verify_range_proof",
    # Ring signatures
    "LSAG",
    "LinkabilityResult",
    "RingSignature",
    "generate_key_image",
    "is_key_image_used",
    # Stealth
    "DerivedKey",
    "StealthAddress",
    # Notes
    "EncryptedNote",
    "NotePlaintext",
]
