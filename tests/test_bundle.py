"""
Veil Transfer Bundle Tests
Nullifiers, integrity hash and serialized form
"""

import json

import pytest

from veil.crypto.keys import KeyPair
from veil.errors import MalformedBundleError, ValidationError
from veil.protocol.bundle import (
    CHECK_NAMES,
    BundleState,
    TransferBundle,
    VerificationResult,
    compute_bundle_hash,
    derive_nullifier,
    ring_message,
)

ADDRESS = "ab" * 32


class TestNullifier:
    """Nullifiers are stable per spend."""

    def test_deterministic(self, sender):
        assert derive_nullifier(sender.public_key, ADDRESS, 100) == derive_nullifier(sender.public_key, ADDRESS, 100)

    def test_inputs_change_nullifier(self, sender):
        base = derive_nullifier(sender.public_key, ADDRESS, 100)
        assert derive_nullifier(sender.public_key, ADDRESS, 101) != base
        assert derive_nullifier(sender.public_key, "cd" * 32, 100) != base
        assert derive_nullifier(KeyPair.generate().public_key, ADDRESS, 100) != base
        assert derive_nullifier(sender.public_key, ADDRESS, 100, output_index=1) != base

    def test_bounds(self, sender):
        with pytest.raises(ValidationError):
            derive_nullifier(sender.public_key, ADDRESS, -1)
        with pytest.raises(ValidationError):
            derive_nullifier(sender.public_key, ADDRESS, 2**64)
        with pytest.raises(ValidationError):
            derive_nullifier(sender.public_key, ADDRESS, 1, output_index=2**32)
        with pytest.raises(ValidationError):
            derive_nullifier(sender.public_key, "not hex", 1)


class TestHashes:
    def test_bundle_hash_covers_fields(self):
        fields = {"stealth_address": ADDRESS, "commitment": "01" * 32, "nullifier": "02" * 32, "timestamp": 1000}
        base = compute_bundle_hash(fields)
        assert len(base) == 64
        assert compute_bundle_hash({**fields, "timestamp": 1001}) != base
        assert compute_bundle_hash({**fields, "range_proof": {"bit_length": 8}}) != base
        # The digest field itself is excluded
        assert compute_bundle_hash({**fields, "bundle_hash": "ff" * 32}) == base

    @pytest.mark.asyncio
    async def test_bundle_hash_binds_proofs(self, service, sender, recipient):
        bundle = await service.create_bundle(sender, recipient.public_key, 250)
        assert bundle.expected_hash() == bundle.bundle_hash
        bundle.range_proof.aggregation_proof.response = bytes(32)
        assert bundle.expected_hash() != bundle.bundle_hash

    @pytest.mark.asyncio
    async def test_fingerprint_includes_hash(self, service, sender, recipient):
        bundle = await service.create_bundle(sender, recipient.public_key, 250)
        restored = TransferBundle.from_json(bundle.to_json())
        assert restored.fingerprint() == bundle.fingerprint()
        restored.bundle_hash = "00" * 32
        assert restored.fingerprint() != bundle.fingerprint()

    def test_ring_message_binds_commitment(self):
        a = ring_message("01" * 32, ADDRESS, 1000)
        b = ring_message("03" * 32, ADDRESS, 1000)
        assert a != b
        assert b"1000" in a


class TestBundleSerialization:
    """Bundles survive to_json / from_json unchanged."""

    @pytest.mark.asyncio
    async def test_json_roundtrip(self, service, sender, recipient):
        bundle = await service.create_bundle(sender, recipient.public_key, 250)
        restored = TransferBundle.from_json(bundle.to_json())
        assert restored.to_dict() == bundle.to_dict()
        assert restored.key_image == bundle.key_image
        assert restored.ring_size == 4
        assert restored.expected_hash() == bundle.bundle_hash

    def test_invalid_json(self):
        with pytest.raises(MalformedBundleError):
            TransferBundle.from_json("{not json")
        with pytest.raises(MalformedBundleError):
            TransferBundle.from_json("[]")

    @pytest.mark.asyncio
    async def test_missing_field(self, service, sender, recipient):
        data = (await service.create_bundle(sender, recipient.public_key, 1)).to_dict()
        del data["range_proof"]
        with pytest.raises(MalformedBundleError):
            TransferBundle.from_dict(data)

    @pytest.mark.asyncio
    async def test_bad_hex(self, service, sender, recipient):
        data = (await service.create_bundle(sender, recipient.public_key, 1)).to_dict()
        data["ring_signature"]["key_image"] = "xyz"
        with pytest.raises(MalformedBundleError):
            TransferBundle.from_dict(data)

    @pytest.mark.asyncio
    async def test_oversized_bit_length(self, service, sender, recipient):
        data = (await service.create_bundle(sender, recipient.public_key, 1)).to_dict()
        data["range_proof"]["range"]["bit_length"] = 2**62
        with pytest.raises(MalformedBundleError):
            TransferBundle.from_dict(data)

    @pytest.mark.asyncio
    async def test_unsupported_version(self, service, sender, recipient):
        data = (await service.create_bundle(sender, recipient.public_key, 1)).to_dict()
        data["version"] = 99
        with pytest.raises(MalformedBundleError):
            TransferBundle.from_json(json.dumps(data))


class TestVerificationResult:
    def test_failed_checks(self):
        checks = {name: True for name in CHECK_NAMES}
        checks["range_proof"] = False
        result = VerificationResult(valid=False, checks=checks, errors=["x"])
        assert result.failed_checks == ["range_proof"]
        assert result.to_dict()["errors"] == ["x"]

    def test_state_order(self):
        assert BundleState.CREATED < BundleState.VERIFIED_VALID < BundleState.CONSUMED
