"""
Veil - Auxiliary Encryption Binding

Optional channel that hands (amount, blinding) to an MPC cluster in
encrypted form. The bundle carries the ciphertext plus a binding:

    binding_hash = SHA-256(ciphertext || commitment || timestamp)
    proof of knowledge of (v, r) with C = v*G + r*H, challenge bound
    to binding_hash

A verifier can check that the ciphertext was attached by whoever can
open the Pedersen commitment, without decrypting anything.
"""

from __future__ import annotations
import hashlib
import hmac
import logging
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

import nacl.exceptions
import nacl.public
import nacl.utils

from veil.constants import DOMAIN_AUXILIARY, DOMAIN_OPENING, SCALAR_SIZE
from veil.crypto.curve import Ed25519Point
from veil.crypto.pedersen import Pedersen
from veil.crypto import sigma
from veil.errors import AuxiliaryEncryptionError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class AuxiliaryCiphertext:
    ciphertext: bytes
    sender_public_key: bytes
    nonce: bytes


@runtime_checkable
class AuxiliaryEncryptor(Protocol):
    """MPC collaborator: encrypts scalar values for the cluster."""

    async def encrypt(self, values: Sequence[int], sender_key: bytes) -> AuxiliaryCiphertext:
        ...


def pack_values(values: Sequence[int]) -> bytes:
    """Each value as a 32-byte little-endian scalar."""
    return b''.join(Ed25519Point.scalar_from_int(v) for v in values)


def unpack_values(data: bytes) -> List[int]:
    if len(data) % SCALAR_SIZE != 0:
        raise ValidationError("Packed values must be a multiple of 32 bytes")
    return [
        int.from_bytes(data[i:i + SCALAR_SIZE], 'little')
        for i in range(0, len(data), SCALAR_SIZE)
    ]


class ClusterEncryptor:
    """
    Reference encryptor: NaCl Box from a sender-derived X25519 key to the
    cluster's X25519 public key.
    """

    def __init__(self, cluster_public_key: bytes):
        try:
            self.cluster_public_key = nacl.public.PublicKey(cluster_public_key)
        except (nacl.exceptions.CryptoError, TypeError) as e:
            raise AuxiliaryEncryptionError(f"invalid cluster key: {e}")

    @staticmethod
    def _sender_box_key(sender_key: bytes) -> nacl.public.PrivateKey:
        return nacl.public.PrivateKey(hashlib.sha256(DOMAIN_AUXILIARY + sender_key).digest())

    async def encrypt(self, values: Sequence[int], sender_key: bytes) -> AuxiliaryCiphertext:
        try:
            sender = self._sender_box_key(sender_key)
            box = nacl.public.Box(sender, self.cluster_public_key)
            nonce = nacl.utils.random(nacl.public.Box.NONCE_SIZE)
            encrypted = box.encrypt(pack_values(values), nonce)
        except (nacl.exceptions.CryptoError, TypeError) as e:
            raise AuxiliaryEncryptionError(str(e))
        return AuxiliaryCiphertext(
            ciphertext=encrypted.ciphertext,
            sender_public_key=bytes(sender.public_key),
            nonce=nonce,
        )

    @staticmethod
    def open(aux: AuxiliaryCiphertext, cluster_private_key: bytes) -> List[int]:
        """Cluster side: decrypt the packed values."""
        box = nacl.public.Box(
            nacl.public.PrivateKey(cluster_private_key),
            nacl.public.PublicKey(aux.sender_public_key),
        )
        try:
            return unpack_values(box.decrypt(aux.ciphertext, aux.nonce))
        except nacl.exceptions.CryptoError as e:
            raise AuxiliaryEncryptionError(f"decryption failed: {e}")


# ============================================================================
# BINDING
# ============================================================================

@dataclass
class AuxiliaryBinding:
    ciphertext: str
    sender_public_key: str
    nonce: str
    binding_hash: str
    challenge: str
    response_value: str
    response_blinding: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ciphertext": self.ciphertext,
            "sender_public_key": self.sender_public_key,
            "nonce": self.nonce,
            "binding_hash": self.binding_hash,
            "challenge": self.challenge,
            "response_value": self.response_value,
            "response_blinding": self.response_blinding,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuxiliaryBinding':
        return cls(
            ciphertext=str(data["ciphertext"]),
            sender_public_key=str(data["sender_public_key"]),
            nonce=str(data["nonce"]),
            binding_hash=str(data["binding_hash"]),
            challenge=str(data["challenge"]),
            response_value=str(data["response_value"]),
            response_blinding=str(data["response_blinding"]),
            timestamp=int(data["timestamp"]),
        )


def compute_binding_hash(ciphertext: bytes, commitment: bytes, timestamp: int) -> bytes:
    return hashlib.sha256(ciphertext + commitment + struct.pack('<Q', timestamp)).digest()


def create_binding(
    aux: AuxiliaryCiphertext,
    commitment: bytes,
    value: int,
    blinding: bytes,
    timestamp: int
) -> AuxiliaryBinding:
    """Bind an auxiliary ciphertext to the commitment it was produced for."""
    binding_hash = compute_binding_hash(aux.ciphertext, commitment, timestamp)
    proof = sigma.prove_opening(
        DOMAIN_OPENING,
        (binding_hash,),
        commitment,
        Pedersen.value_scalar(value),
        Pedersen.blinding_scalar(blinding),
    )
    return AuxiliaryBinding(
        ciphertext=aux.ciphertext.hex(),
        sender_public_key=aux.sender_public_key.hex(),
        nonce=aux.nonce.hex(),
        binding_hash=binding_hash.hex(),
        challenge=proof.challenge.hex(),
        response_value=proof.response_value.hex(),
        response_blinding=proof.response_blinding.hex(),
        timestamp=timestamp,
    )


def verify_binding(binding: AuxiliaryBinding, commitment: bytes) -> bool:
    """Check the binding digest and the opening proof. Never raises."""
    try:
        expected = compute_binding_hash(bytes.fromhex(binding.ciphertext), commitment, binding.timestamp)
        if not hmac.compare_digest(expected, bytes.fromhex(binding.binding_hash)):
            logger.debug("Auxiliary binding hash mismatch")
            return False
        return sigma.verify_opening(
            DOMAIN_OPENING,
            (expected,),
            commitment,
            sigma.OpeningProof(
                challenge=bytes.fromhex(binding.challenge),
                response_value=bytes.fromhex(binding.response_value),
                response_blinding=bytes.fromhex(binding.response_blinding),
            ),
        )
    except (ValueError, TypeError, struct.error) as e:
        logger.debug(f"Auxiliary binding malformed: {e}")
        return False
