"""
Veil Protocol Constants

All protocol constants defined here for single source of truth.
"""

from typing import Final, Tuple

# ==============================================================================
# CURVE
# ==============================================================================

# Ed25519 prime subgroup order (L)
CURVE_ORDER: Final[int] = 2**252 + 27742317777372353535851937790883648493

POINT_SIZE: Final[int] = 32
SCALAR_SIZE: Final[int] = 32
HASH_SIZE: Final[int] = 32

# Compressed encoding of the neutral element (0, 1)
IDENTITY_POINT: Final[bytes] = b"\x01" + b"\x00" * 31

# ==============================================================================
# DOMAIN SEPARATION TAGS
# ==============================================================================

DOMAIN_H_GENERATOR: Final[bytes] = b"Veil_Pedersen_H_v1"
DOMAIN_HASH_TO_POINT: Final[bytes] = b"Veil_HashToPoint_v1"
DOMAIN_KEY_IMAGE: Final[bytes] = b"Veil_KeyImage_v1"
DOMAIN_RING_SIG: Final[bytes] = b"Veil_RingSig_v1"
DOMAIN_RING_MESSAGE: Final[bytes] = b"Veil_RingMessage_v1"
DOMAIN_BIT_PROOF: Final[bytes] = b"Veil_BitProof_v1"
DOMAIN_AGGREGATION: Final[bytes] = b"Veil_Aggregation_v1"
DOMAIN_OPENING: Final[bytes] = b"Veil_Opening_v1"
DOMAIN_STEALTH: Final[bytes] = b"Veil_Stealth_v1"
DOMAIN_ONE_TIME_KEY: Final[bytes] = b"Veil_OneTimeKey_v1"
DOMAIN_NOTE: Final[bytes] = b"Veil_Note_v1"
DOMAIN_NULLIFIER: Final[bytes] = b"Veil_Nullifier_v1"
DOMAIN_BUNDLE: Final[bytes] = b"Veil_Bundle_v1"
DOMAIN_AUXILIARY: Final[bytes] = b"Veil_Auxiliary_v1"
DOMAIN_KEY_SEED: Final[bytes] = b"Veil_KeySeed_v1"

# ==============================================================================
# RANGE PROOFS
# ==============================================================================

ALLOWED_BIT_LENGTHS: Final[Tuple[int, ...]] = (8, 16, 32, 64)
DEFAULT_BIT_LENGTH: Final[int] = 64
DEFAULT_RANGE_BITS: Final[int] = 32

# Per bit: commitment + e0 + e1 + s0 + s1
BIT_PROOF_SIZE: Final[int] = 5 * 32
# Aggregation: challenge + response
AGGREGATION_PROOF_SIZE: Final[int] = 2 * 32

# ==============================================================================
# RING SIGNATURES
# ==============================================================================

DEFAULT_RING_SIZE: Final[int] = 11
MIN_RING_SIZE: Final[int] = 2
MAX_RING_SIZE: Final[int] = 128

# ==============================================================================
# BUNDLES
# ==============================================================================

BUNDLE_FRESHNESS_WINDOW_MS: Final[int] = 60 * 60 * 1000   # 1 hour
MAX_CLOCK_SKEW_MS: Final[int] = 5 * 60 * 1000             # 5 minutes
MAX_MEMO_LENGTH: Final[int] = 512

# ==============================================================================
# DECOY SELECTION
# ==============================================================================

DECOY_FETCH_LIMIT: Final[int] = 50
DECOY_TIMEOUT_SEC: Final[float] = 5.0
DECOY_CACHE_MAX_ENTRIES: Final[int] = 1024
