"""
Veil - Compliance Client

Optional collaborator that attests a user may make private transfers
and returns a short-lived proof token embedded in the bundle.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from veil.errors import ComplianceUnavailableError

logger = logging.getLogger(__name__)

COMPLIANCE_PATH = "/v1/compliance/private-transfer"


@dataclass
class ComplianceProof:
    """Compliance token: proof type, proof hash, nullifier, expiry (ms)."""
    type: str
    hash: str
    nullifier: str
    expires_at: int

    def is_valid(self, now_ms: int) -> bool:
        """Well-formed and not yet expired."""
        if not isinstance(self.expires_at, int) or isinstance(self.expires_at, bool):
            return False
        return bool(self.type) and bool(self.hash) and bool(self.nullifier) and self.expires_at > now_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "hash": self.hash,
            "nullifier": self.nullifier,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComplianceProof':
        return cls(
            type=str(data["type"]),
            hash=str(data["hash"]),
            nullifier=str(data["nullifier"]),
            expires_at=int(data.get("expires_at", data.get("expiresAt", 0))),
        )


@dataclass
class ComplianceCheckResult:
    allowed: bool
    proof: Optional[ComplianceProof] = None
    reason: str = ""


@runtime_checkable
class ComplianceClient(Protocol):
    async def check_private_transfer(self, user_id: str) -> ComplianceCheckResult:
        ...


class HttpComplianceClient:
    """
    POST {base_url}/v1/compliance/private-transfer {"userId": ...}

    Response: {"allowed": bool, "proof": {type, hash, nullifier, expiresAt}?}
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def check_private_transfer(self, user_id: str) -> ComplianceCheckResult:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            resp = await self._get_client().post(
                self.base_url + COMPLIANCE_PATH,
                json={"userId": user_id},
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ComplianceUnavailableError(str(e))

        if resp.status_code != 200:
            raise ComplianceUnavailableError(f"HTTP {resp.status_code}")

        try:
            data = resp.json()
            proof_data = data.get("proof")
            proof = ComplianceProof.from_dict(proof_data) if proof_data else None
            return ComplianceCheckResult(
                allowed=bool(data.get("allowed", False)),
                proof=proof,
                reason=str(data.get("reason", "")),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ComplianceUnavailableError(f"malformed response: {e}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
