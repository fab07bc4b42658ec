"""
Veil - Private Transfer Service

Composes stealth addresses, Pedersen commitments with range proofs,
ring signatures, nullifiers and optional compliance / auxiliary layers
into a single bundle, and drives its lifecycle:

    CREATED -> VERIFIED_VALID   -> CONSUMED
            -> VERIFIED_INVALID

Verification reads the spent store; consumption is the only writer.
settle_bundle() runs verify, settlement and consume as one critical
section so two bundles sharing a key image or nullifier cannot both
pass.
"""

from __future__ import annotations
import hmac
import logging
import secrets
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Union

from veil.constants import ALLOWED_BIT_LENGTHS, MAX_RING_SIZE, MIN_RING_SIZE
from veil.config import VeilConfig
from veil.clients.compliance import ComplianceClient, ComplianceProof, HttpComplianceClient
from veil.clients.ledger import HttpLedgerClient, LedgerClient
from veil.crypto.curve import Ed25519Point
from veil.crypto.keys import KeyPair, validate_public_key
from veil.crypto.note import EncryptedNote, NotePlaintext, decrypt_note, encrypt_note
from veil.crypto.pedersen import Pedersen
from veil.crypto.range_proof import generate_range_proof, verify_range_proof
from veil.crypto.ring_signature import LSAG
from veil.crypto.stealth import DerivedKey
from veil.crypto import stealth
from veil.errors import (
    ComplianceRequiredError,
    ExternalCollaboratorUnavailable,
    InvalidBitLengthError,
    InvalidRingError,
    InvalidStateError,
    ValidationError,
)
from veil.protocol.auxiliary import (
    AuxiliaryEncryptor,
    ClusterEncryptor,
    create_binding,
    verify_binding,
)
from veil.protocol.bundle import (
    CHECK_AMOUNT_COMMITMENT,
    CHECK_COMPLIANCE_VALID,
    CHECK_INTEGRITY,
    CHECK_NAMES,
    CHECK_NOT_EXPIRED,
    CHECK_NULLIFIER_UNUSED,
    CHECK_RANGE_PROOF,
    CHECK_RING_SIGNATURE,
    CHECK_STEALTH_ADDRESS,
    BundleState,
    TransferBundle,
    VerificationResult,
    derive_nullifier,
    ring_message,
)
from veil.protocol.decoys import DecoySelector
from veil.state.spent import InMemorySpentStore, SpentStore, SqliteSpentStore

logger = logging.getLogger(__name__)

MAX_AMOUNT = 2**64 - 1


def now_ms() -> int:
    return int(time.time() * 1000)


class PrivateTransferService:
    """
    Private transfer orchestrator.

    Collaborators are injected; only the spent store is shared state.
    """

    def __init__(
        self,
        config: Optional[VeilConfig] = None,
        ledger_client: Optional[LedgerClient] = None,
        compliance_client: Optional[ComplianceClient] = None,
        auxiliary_encryptor: Optional[AuxiliaryEncryptor] = None,
        spent_store: Optional[SpentStore] = None,
        decoy_selector: Optional[DecoySelector] = None,
        clock: Callable[[], int] = now_ms
    ):
        self.config = config or VeilConfig()
        self.ledger_client = ledger_client
        self.compliance_client = compliance_client
        self.auxiliary_encryptor = auxiliary_encryptor
        self.spent_store = spent_store or InMemorySpentStore()

        t = self.config.transfer
        self.decoy_selector = decoy_selector or DecoySelector(
            ledger_client,
            timeout=t.decoy_timeout_sec,
            fetch_limit=t.decoy_fetch_limit,
            cache_size=t.decoy_cache_size,
        )
        self._clock = clock
        self._states: Dict[str, BundleState] = {}
        self._lock = threading.RLock()

    # ==========================================================================
    # Creation
    # ==========================================================================

    async def create_bundle(
        self,
        sender_keys: KeyPair,
        recipient_public_key: bytes,
        amount: int,
        ring_size: Optional[int] = None,
        range_bits: Optional[int] = None,
        memo: str = "",
        user_id: Optional[str] = None,
        output_index: int = 0
    ) -> TransferBundle:
        """
        Create a complete private transfer bundle.

        Raises:
            ValidationError: bad amount, ring size, range width or keys
            OutOfRangeError: amount does not fit range_bits
            ComplianceRequiredError: compliance mandatory but no proof obtained
            AuxiliaryEncryptionError: configured MPC layer failed
        """
        t = self.config.transfer
        ring_size = t.default_ring_size if ring_size is None else ring_size
        range_bits = t.default_range_bits if range_bits is None else range_bits

        if not isinstance(amount, int) or isinstance(amount, bool) or not 0 <= amount <= MAX_AMOUNT:
            raise ValidationError("Amount must be an integer in [0, 2^64)")
        if not MIN_RING_SIZE <= ring_size <= MAX_RING_SIZE:
            raise InvalidRingError(
                f"Ring size must be in [{MIN_RING_SIZE}, {MAX_RING_SIZE}]",
                {"ring_size": ring_size},
            )
        if range_bits not in ALLOWED_BIT_LENGTHS:
            raise InvalidBitLengthError(range_bits, ALLOWED_BIT_LENGTHS)
        recipient = validate_public_key(recipient_public_key, "recipient public key")

        # 1. Stealth address for the recipient
        stealth_address, shared_seed = stealth.create(recipient)

        # 2. Commitment and range proof
        blinding = Pedersen.generate_blinding_factor()
        commitment = Pedersen.commit(amount, blinding)
        range_proof = generate_range_proof(amount, blinding, bit_length=range_bits)
        commitment_hex = commitment.hex()

        # 3. Ring signature at a random position
        timestamp = self._clock()
        decoys = await self.decoy_selector.select(sender_keys.public_key, ring_size - 1)
        signer_index = secrets.randbelow(ring_size)
        ring = decoys[:signer_index] + [sender_keys.public_key] + decoys[signer_index:]
        ring_signature = LSAG.sign(
            ring_message(commitment_hex, stealth_address.address, timestamp),
            sender_keys.private_key,
            signer_index,
            ring,
        )

        # 4. Compliance token
        compliance_proof = await self._obtain_compliance_proof(user_id or t.user_id)
        if compliance_proof is None and t.require_compliance:
            raise ComplianceRequiredError()

        # 5. Recipient note
        encrypted_note = encrypt_note(shared_seed, stealth_address.ephemeral_public_key, amount, memo)

        # 6. Nullifier
        nullifier = derive_nullifier(
            sender_keys.public_key, stealth_address.address, amount, output_index
        ).hex()

        auxiliary = None
        if self.auxiliary_encryptor is not None:
            aux = await self.auxiliary_encryptor.encrypt(
                [amount, Ed25519Point.scalar_to_int(Pedersen.blinding_scalar(blinding))],
                sender_keys.private_key,
            )
            auxiliary = create_binding(aux, commitment, amount, blinding, timestamp)

        bundle = TransferBundle(
            stealth_address=stealth_address,
            amount_commitment=commitment_hex,
            range_proof=range_proof,
            ring_signature=ring_signature,
            nullifier=nullifier,
            timestamp=timestamp,
            bundle_hash="",
            encrypted_note=encrypted_note,
            compliance_proof=compliance_proof,
            auxiliary=auxiliary,
            output_index=output_index,
        )
        # 7. Integrity hash over every field
        bundle.bundle_hash = bundle.expected_hash()

        with self._lock:
            self._states[bundle.fingerprint()] = BundleState.CREATED

        logger.info(
            f"Transfer bundle created: address={stealth_address.address[:8]}... "
            f"ring_size={ring_size} compliance={compliance_proof is not None} "
            f"auxiliary={auxiliary is not None} hash={bundle.bundle_hash[:16]}..."
        )
        return bundle

    async def _obtain_compliance_proof(self, user_id: Optional[str]) -> Optional[ComplianceProof]:
        if self.compliance_client is None or not user_id:
            return None
        try:
            result = await self.compliance_client.check_private_transfer(user_id)
        except ExternalCollaboratorUnavailable as e:
            logger.warning(f"Compliance proof generation failed: {e.message}")
            return None
        if result.allowed and result.proof is not None:
            return result.proof
        logger.info("Compliance service did not issue a proof")
        return None

    # ==========================================================================
    # Verification
    # ==========================================================================

    def verify_bundle(
        self,
        bundle: TransferBundle,
        expected_amount: Optional[int] = None
    ) -> VerificationResult:
        """
        Run every check and report all failures. Never raises on bad input.

        The outcome is recorded against the exact bundle content, so a
        modified copy never changes the state of the bundle it was copied from.
        """
        with self._lock:
            result = self._run_checks(bundle, expected_amount)
            key = _state_key(bundle)
            if key is not None and self._states.get(key) != BundleState.CONSUMED:
                self._states[key] = (
                    BundleState.VERIFIED_VALID if result.valid else BundleState.VERIFIED_INVALID
                )

        if result.valid:
            logger.info(f"Bundle verified: hash={bundle.bundle_hash[:16]}...")
        else:
            logger.info(f"Bundle rejected: failed={result.failed_checks}")
        return result

    def _run_checks(self, bundle: TransferBundle, expected_amount: Optional[int]) -> VerificationResult:
        checks = {name: False for name in CHECK_NAMES}
        errors: List[str] = []
        now = self._clock()
        t = self.config.transfer

        # 1. Stealth address format
        try:
            checks[CHECK_STEALTH_ADDRESS] = bundle.stealth_address.is_well_formed()
        except AttributeError:
            pass
        if not checks[CHECK_STEALTH_ADDRESS]:
            errors.append("Invalid stealth address format")

        # 2. Commitment format
        commitment = _decode_hex(getattr(bundle, "amount_commitment", None), 32)
        if commitment is not None and Pedersen.is_valid_commitment(commitment):
            checks[CHECK_AMOUNT_COMMITMENT] = True
        else:
            commitment = None
            errors.append("Invalid amount commitment")

        # 3. Range proof
        if commitment is not None and verify_range_proof(bundle.range_proof, commitment):
            checks[CHECK_RANGE_PROOF] = True
            if expected_amount is not None:
                if not isinstance(expected_amount, int) or isinstance(expected_amount, bool):
                    checks[CHECK_RANGE_PROOF] = False
                    errors.append("Expected amount must be an integer")
                elif not bundle.range_proof.range.contains(expected_amount):
                    checks[CHECK_RANGE_PROOF] = False
                    errors.append("Expected amount is outside the proven range")
        else:
            errors.append("Range proof verification failed")

        # 4. Ring signature and key image
        try:
            message = ring_message(bundle.amount_commitment, bundle.stealth_address.address, bundle.timestamp)
            checks[CHECK_RING_SIGNATURE] = LSAG.verify(bundle.ring_signature, message)
            if not checks[CHECK_RING_SIGNATURE]:
                errors.append("Ring signature verification failed")
            if self.spent_store.is_key_image_spent(bundle.ring_signature.key_image):
                checks[CHECK_RING_SIGNATURE] = False
                errors.append("Key image already used (double-signing detected)")
        except (AttributeError, TypeError, ValueError) as e:
            checks[CHECK_RING_SIGNATURE] = False
            errors.append(f"Ring signature error: {e}")

        # 5. Nullifier
        nullifier = _decode_hex(getattr(bundle, "nullifier", None), 32)
        if nullifier is None:
            errors.append("Malformed nullifier")
        elif self.spent_store.is_nullifier_spent(nullifier):
            errors.append("Nullifier already used (double-spend attempt)")
        else:
            checks[CHECK_NULLIFIER_UNUSED] = True

        # 6. Compliance
        proof = getattr(bundle, "compliance_proof", None)
        if proof is not None:
            if isinstance(proof, ComplianceProof) and proof.is_valid(now):
                checks[CHECK_COMPLIANCE_VALID] = True
            else:
                errors.append("Compliance proof expired or malformed")
        elif not t.require_compliance:
            checks[CHECK_COMPLIANCE_VALID] = True
        else:
            errors.append("Compliance proof required but not provided")

        # 7. Freshness
        timestamp = getattr(bundle, "timestamp", None)
        if isinstance(timestamp, int) and now - t.freshness_window_ms <= timestamp <= now + t.max_clock_skew_ms:
            checks[CHECK_NOT_EXPIRED] = True
        else:
            errors.append("Transfer bundle expired")

        # 8. Integrity hash and auxiliary binding
        try:
            if hmac.compare_digest(bundle.expected_hash(), str(bundle.bundle_hash)):
                checks[CHECK_INTEGRITY] = True
            else:
                errors.append("Bundle hash mismatch")
        except (AttributeError, TypeError, ValueError) as e:
            errors.append(f"Bundle hash error: {e}")
        auxiliary = getattr(bundle, "auxiliary", None)
        if auxiliary is not None and checks[CHECK_INTEGRITY]:
            if commitment is None or auxiliary.timestamp != bundle.timestamp \
                    or not verify_binding(auxiliary, commitment):
                checks[CHECK_INTEGRITY] = False
                errors.append("Auxiliary ciphertext binding failed")

        valid = all(checks.values())
        if not valid:
            logger.debug(f"Verification checks: {checks}")
        return VerificationResult(valid=valid, checks=checks, errors=errors)

    # ==========================================================================
    # Consumption
    # ==========================================================================

    def consume_bundle(self, bundle: TransferBundle) -> None:
        """
        Mark the nullifier and key image as used.

        Call only after settlement succeeded. The bundle must be the exact
        content that verified valid; idempotent once consumed.

        Raises:
            InvalidStateError: bundle was not verified valid, or its key image
                or nullifier was consumed by another bundle since verification
        """
        key = bundle.fingerprint()
        with self._lock:
            state = self._states.get(key)
            if state == BundleState.CONSUMED:
                logger.debug(f"Bundle {bundle.bundle_hash[:16]}... already consumed")
                return
            if state != BundleState.VERIFIED_VALID:
                raise InvalidStateError(
                    bundle.bundle_hash,
                    state.name if state is not None else "UNKNOWN",
                    BundleState.VERIFIED_VALID.name,
                )

            nullifier = bytes.fromhex(bundle.nullifier)
            key_image = bundle.ring_signature.key_image
            if self.spent_store.is_key_image_spent(key_image) or self.spent_store.is_nullifier_spent(nullifier):
                self._states[key] = BundleState.VERIFIED_INVALID
                raise InvalidStateError(
                    bundle.bundle_hash,
                    BundleState.VERIFIED_INVALID.name,
                    "unspent key image and nullifier",
                )

            self.spent_store.mark_spent(key_image, nullifier, bundle.bundle_hash)
            self._states[key] = BundleState.CONSUMED

        logger.info(f"Transfer consumed, nullifier marked used: hash={bundle.bundle_hash[:16]}...")

    def settle_bundle(
        self,
        bundle: TransferBundle,
        settle: Callable[[TransferBundle], Any],
        expected_amount: Optional[int] = None
    ) -> VerificationResult:
        """
        Verify, settle and consume as one critical section.

        settle() runs only for a valid bundle; if it raises, the bundle is
        not consumed and the exception propagates.
        """
        with self._lock:
            result = self.verify_bundle(bundle, expected_amount)
            if not result.valid:
                return result
            settle(bundle)
            self.consume_bundle(bundle)
        return result

    # ==========================================================================
    # Recipient operations
    # ==========================================================================

    def derive_recipient_key(self, recipient_private_key: bytes, ephemeral_public_key: str) -> DerivedKey:
        """Derive the one-time key the recipient uses to claim funds."""
        return stealth.derive_for_recipient(recipient_private_key, ephemeral_public_key)

    def decrypt_note(self, recipient_private_key: bytes, encrypted_note: EncryptedNote) -> Optional[NotePlaintext]:
        """Decrypt the recipient note, or None if it is not ours or was tampered with."""
        try:
            return decrypt_note(encrypted_note, recipient_private_key)
        except ValidationError as e:
            logger.debug(f"Note decryption failed: {e.message}")
            return None

    # ==========================================================================
    # Service management
    # ==========================================================================

    def bundle_state(self, bundle: Union[TransferBundle, str]) -> Optional[BundleState]:
        """Lifecycle state of a bundle, or of a fingerprint() value."""
        key = bundle if isinstance(bundle, str) else bundle.fingerprint()
        with self._lock:
            return self._states.get(key)

    def get_status(self) -> Dict[str, Any]:
        spent = self.spent_store.stats()
        return {
            "available": True,
            "features": {
                "stealth_addresses": True,
                "ring_signatures": True,
                "range_proofs": True,
                "compliance": self.compliance_client is not None,
                "auxiliary_encryption": self.auxiliary_encryptor is not None,
                "ledger_decoys": self.ledger_client is not None,
            },
            "stats": {
                "used_key_images": spent["key_images"],
                "used_nullifiers": spent["nullifiers"],
                "cached_decoys": self.decoy_selector.cache_entries,
                "tracked_bundles": len(self._states),
            },
        }

    def clear_caches(self) -> None:
        self.decoy_selector.clear_cache()

    def reset(self) -> None:
        """Forget all spent values, bundle states and caches."""
        with self._lock:
            self.spent_store.clear()
            self._states.clear()
        self.clear_caches()

    async def close(self) -> None:
        for client in (self.ledger_client, self.compliance_client):
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()
        self.spent_store.close()


def _decode_hex(value: Any, size: int) -> Optional[bytes]:
    if not isinstance(value, str):
        return None
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        return None
    return raw if len(raw) == size else None


def _state_key(bundle: Any) -> Optional[str]:
    try:
        return bundle.fingerprint()
    except (AttributeError, TypeError, ValueError):
        return None


def build_service(config: Optional[VeilConfig] = None) -> PrivateTransferService:
    """
    Build a service and its collaborators from configuration.

    Raises:
        ValidationError: configuration does not validate
    """
    config = config or VeilConfig()
    problems = config.validate()
    if problems:
        raise ValidationError("Invalid configuration", problems)

    ledger_client = None
    if config.ledger.rpc_url:
        ledger_client = HttpLedgerClient(config.ledger.rpc_url, timeout=config.ledger.timeout_sec)

    compliance_client = None
    if config.compliance.base_url:
        compliance_client = HttpComplianceClient(
            config.compliance.base_url,
            api_key=config.compliance.api_key,
            timeout=config.compliance.timeout_sec,
        )

    encryptor = None
    if config.auxiliary.cluster_public_key:
        encryptor = ClusterEncryptor(bytes.fromhex(config.auxiliary.cluster_public_key))

    if config.store.backend == "sqlite":
        store: SpentStore = SqliteSpentStore(config.store.db_path)
    else:
        store = InMemorySpentStore()

    logger.info(
        f"Private transfer service ready: store={config.store.backend} "
        f"ledger={ledger_client is not None} compliance={compliance_client is not None}"
    )
    return PrivateTransferService(
        config=config,
        ledger_client=ledger_client,
        compliance_client=compliance_client,
        auxiliary_encryptor=encryptor,
        spent_store=store,
    )
