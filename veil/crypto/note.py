"""
Veil - Recipient Notes

Authenticated encryption of {amount, memo} for the recipient of a
stealth output. The key is derived from the same DH seed as the
stealth address, so only the recipient can re-derive it.

Cipher: XSalsa20-Poly1305 (nacl.secret.SecretBox), random 24-byte nonce.
"""

from __future__ import annotations
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict

import nacl.exceptions
import nacl.secret

from veil.constants import DOMAIN_NOTE, MAX_MEMO_LENGTH
from veil.crypto import stealth
from veil.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class EncryptedNote:
    ciphertext: str  # hex: nonce || box
    ephemeral_public_key: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": self.ciphertext,
            "ephemeral_public_key": self.ephemeral_public_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EncryptedNote':
        return cls(
            ciphertext=str(data["ciphertext"]),
            ephemeral_public_key=str(data["ephemeral_public_key"]),
        )


@dataclass
class NotePlaintext:
    amount: int
    memo: str = ""


def note_key(shared_seed: bytes) -> bytes:
    """SecretBox key: SHA-256(domain || seed)."""
    return hashlib.sha256(DOMAIN_NOTE + shared_seed).digest()


def encrypt_note(shared_seed: bytes, ephemeral_public_key: str, amount: int, memo: str = "") -> EncryptedNote:
    """Encrypt {amount, memo} under the stealth shared seed."""
    if len(memo) > MAX_MEMO_LENGTH:
        raise ValidationError(f"Memo exceeds {MAX_MEMO_LENGTH} characters")
    payload = json.dumps({"amount": amount, "memo": memo}, separators=(',', ':')).encode('utf-8')
    box = nacl.secret.SecretBox(note_key(shared_seed))
    return EncryptedNote(
        ciphertext=bytes(box.encrypt(payload)).hex(),
        ephemeral_public_key=ephemeral_public_key,
    )


def decrypt_note_with_seed(note: EncryptedNote, shared_seed: bytes) -> NotePlaintext:
    """
    Decrypt a note given the shared seed.

    Raises:
        ValidationError: tampered ciphertext, wrong key or bad payload
    """
    box = nacl.secret.SecretBox(note_key(shared_seed))
    try:
        payload = box.decrypt(bytes.fromhex(note.ciphertext))
        data = json.loads(payload.decode('utf-8'))
        return NotePlaintext(amount=int(data["amount"]), memo=str(data.get("memo", "")))
    except nacl.exceptions.CryptoError:
        raise ValidationError("Note decryption failed: authentication error")
    except (ValueError, KeyError, TypeError) as e:
        raise ValidationError(f"Note decryption failed: {e}")


def decrypt_note(note: EncryptedNote, recipient_private_key: bytes) -> NotePlaintext:
    """Recipient side: re-derive the seed from the ephemeral key and decrypt."""
    seed = stealth.derive_shared_seed(recipient_private_key, note.ephemeral_public_key)
    return decrypt_note_with_seed(note, seed)
