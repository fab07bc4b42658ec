"""
Veil Test Fixtures
"""

import asyncio
import pytest
from typing import Any, Dict, List, Optional

from veil.clients.compliance import ComplianceCheckResult, ComplianceProof
from veil.clients.ledger import encode_account_key
from veil.config import VeilConfig
from veil.crypto.keys import KeyPair
from veil.errors import ComplianceUnavailableError, LedgerUnavailableError
from veil.protocol.service import PrivateTransferService

# Fixed wall clock for deterministic freshness checks (ms)
NOW_MS = 1_700_000_000_000


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeLedgerClient:
    """In-memory ledger returning parsed transactions with given account keys."""

    def __init__(self, accounts: Optional[List[bytes]] = None, fail: bool = False, delay: float = 0.0):
        self.accounts = [encode_account_key(pk) for pk in (accounts or [])]
        self.fail = fail
        self.delay = delay
        self.calls = 0

    async def get_recent_transaction_signatures(self, account_key: str, limit: int) -> List[str]:
        self.calls += 1
        if self.fail:
            raise LedgerUnavailableError("connection refused")
        return [f"sig{i}" for i in range(min(limit, len(self.accounts)))]

    async def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        if self.delay:
            await asyncio.sleep(self.delay)
        index = int(signature[3:])
        return {
            "transaction": {
                "message": {
                    "accountKeys": [
                        {"pubkey": self.accounts[index], "signer": True},
                        "11111111111111111111111111111111",
                    ]
                }
            }
        }


class NullKeysLedgerClient(FakeLedgerClient):
    """Ledger whose even-numbered transactions carry accountKeys: null."""

    async def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        tx = await super().get_parsed_transaction(signature)
        if int(signature[3:]) % 2 == 0:
            tx["transaction"]["message"]["accountKeys"] = None
        return tx


class BrokenLedgerClient:
    """Ledger client failing with a plain exception instead of LedgerUnavailableError."""

    def __init__(self, fail_signatures: bool = True):
        self.fail_signatures = fail_signatures

    async def get_recent_transaction_signatures(self, account_key: str, limit: int) -> List[str]:
        if self.fail_signatures:
            raise ConnectionError("socket closed")
        return ["sig0", "sig1"]

    async def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        raise ConnectionError("socket closed")


class FakeComplianceClient:
    """Compliance collaborator with a scripted answer."""

    def __init__(self, allowed: bool = True, expires_at: int = NOW_MS + 3_600_000, fail: bool = False):
        self.allowed = allowed
        self.expires_at = expires_at
        self.fail = fail
        self.user_ids: List[str] = []

    async def check_private_transfer(self, user_id: str) -> ComplianceCheckResult:
        self.user_ids.append(user_id)
        if self.fail:
            raise ComplianceUnavailableError("HTTP 503")
        if not self.allowed:
            return ComplianceCheckResult(allowed=False, reason="sanctioned")
        return ComplianceCheckResult(
            allowed=True,
            proof=ComplianceProof(
                type="kyc-attestation",
                hash="ab" * 32,
                nullifier="cd" * 32,
                expires_at=self.expires_at,
            ),
        )


@pytest.fixture
def sender() -> KeyPair:
    """Deterministic sender key pair."""
    return KeyPair.from_seed(b"veil-test-sender")


@pytest.fixture
def recipient() -> KeyPair:
    """Deterministic recipient key pair."""
    return KeyPair.from_seed(b"veil-test-recipient")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> VeilConfig:
    """Small rings and 32-bit proofs keep the suite fast."""
    config = VeilConfig()
    config.transfer.default_ring_size = 4
    config.transfer.default_range_bits = 32
    return config


@pytest.fixture
def service(config, clock) -> PrivateTransferService:
    return PrivateTransferService(config=config, clock=clock)
