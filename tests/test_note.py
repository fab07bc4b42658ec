"""
Veil Recipient Note Tests
"""

import pytest

from veil.constants import MAX_MEMO_LENGTH
from veil.crypto.keys import KeyPair
from veil.crypto import stealth
from veil.crypto.note import (
    EncryptedNote,
    decrypt_note,
    decrypt_note_with_seed,
    encrypt_note,
)
from veil.errors import ValidationError


@pytest.fixture
def output(recipient):
    return stealth.create(recipient.public_key)


class TestNote:
    """Tests for authenticated note encryption."""

    def test_recipient_decrypts(self, recipient, output):
        sa, seed = output
        note = encrypt_note(seed, sa.ephemeral_public_key, 1_000_000, "rent")
        plain = decrypt_note(note, recipient.private_key)
        assert plain.amount == 1_000_000
        assert plain.memo == "rent"

    def test_sender_decrypts_with_seed(self, output):
        sa, seed = output
        note = encrypt_note(seed, sa.ephemeral_public_key, 5)
        assert decrypt_note_with_seed(note, seed).amount == 5

    def test_wrong_recipient(self, output):
        sa, seed = output
        note = encrypt_note(seed, sa.ephemeral_public_key, 5)
        with pytest.raises(ValidationError):
            decrypt_note(note, KeyPair.generate().private_key)

    def test_tampered_ciphertext(self, recipient, output):
        """Poly1305 rejects any flipped byte."""
        sa, seed = output
        note = encrypt_note(seed, sa.ephemeral_public_key, 5)
        raw = bytearray(bytes.fromhex(note.ciphertext))
        raw[-1] ^= 0x01
        tampered = EncryptedNote(ciphertext=bytes(raw).hex(), ephemeral_public_key=note.ephemeral_public_key)
        with pytest.raises(ValidationError):
            decrypt_note(tampered, recipient.private_key)

    def test_memo_limit(self, output):
        sa, seed = output
        encrypt_note(seed, sa.ephemeral_public_key, 1, "m" * MAX_MEMO_LENGTH)
        with pytest.raises(ValidationError):
            encrypt_note(seed, sa.ephemeral_public_key, 1, "m" * (MAX_MEMO_LENGTH + 1))

    def test_ciphertext_randomized(self, output):
        sa, seed = output
        a = encrypt_note(seed, sa.ephemeral_public_key, 1)
        b = encrypt_note(seed, sa.ephemeral_public_key, 1)
        assert a.ciphertext != b.ciphertext

    def test_dict_roundtrip(self, output):
        sa, seed = output
        note = encrypt_note(seed, sa.ephemeral_public_key, 1)
        assert EncryptedNote.from_dict(note.to_dict()) == note
