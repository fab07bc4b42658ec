"""
Veil Transfer Protocol

Bundle data model, decoy selection, auxiliary binding and the
private transfer service.
"""

from veil.protocol.auxiliary import (
    AuxiliaryBinding,
    AuxiliaryCiphertext,
    AuxiliaryEncryptor,
    ClusterEncryptor,
    create_binding,
    verify_binding,
)
from veil.protocol.bundle import (
    CHECK_NAMES,
    BundleState,
    TransferBundle,
    VerificationResult,
    compute_bundle_hash,
    derive_nullifier,
    ring_message,
)
from veil.protocol.decoys import DecoySelector
from veil.protocol.service import PrivateTransferService, build_service

__all__ = [
    # Bundle
    "CHECK_NAMES",
    "BundleState",
    "TransferBundle",
    "VerificationResult",
    "compute_bundle_hash",
    "derive_nullifier",
    "ring_message",
    # Decoys
    "DecoySelector",
    # Auxiliary
    "AuxiliaryBinding",
    "AuxiliaryCiphertext",
    "AuxiliaryEncryptor",
    "ClusterEncryptor",
    "create_binding",
    "verify_binding",
    # Service
    "PrivateTransferService",
    "build_service",
]
