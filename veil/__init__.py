"""
Veil Private Transfer Protocol

Stealth addresses, Pedersen commitments with range proofs, linkable
ring signatures and nullifiers, composed into verifiable transfer
bundles that hide recipient, amount and sender.
"""

__version__ = "1.0.0"
__author__ = "Veil Protocol"

from veil.config import VeilConfig
from veil.crypto.keys import KeyPair
from veil.errors import ErrorCode, VeilError
from veil.protocol.bundle import BundleState, TransferBundle, VerificationResult
from veil.protocol.service import PrivateTransferService, build_service

__all__ = [
    "BundleState",
    "ErrorCode",
    "KeyPair",
    "PrivateTransferService",
    "TransferBundle",
    "VeilConfig",
    "VeilError",
    "VerificationResult",
    "build_service",
    "__version__",
]
