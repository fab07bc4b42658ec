"""
Veil - Ledger Client

Read-only JSON-RPC client used by decoy selection to observe real
account keys. Speaks the Solana RPC dialect:

- getSignaturesForAddress(address, {limit})
- getTransaction(signature, {encoding: jsonParsed})

Account keys are base58-encoded 32-byte public keys.
"""

from __future__ import annotations
import itertools
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import base58
import httpx

from veil.errors import InvalidKeyError, LedgerUnavailableError

logger = logging.getLogger(__name__)


def encode_account_key(public_key: bytes) -> str:
    """32-byte public key -> base58 account key."""
    if len(public_key) != 32:
        raise InvalidKeyError("Account key must be 32 bytes")
    return base58.b58encode(public_key).decode('ascii')


def decode_account_key(account_key: str) -> bytes:
    """base58 account key -> 32-byte public key."""
    try:
        raw = base58.b58decode(account_key)
    except ValueError as e:
        raise InvalidKeyError(f"Invalid base58 account key: {e}")
    if len(raw) != 32:
        raise InvalidKeyError("Account key must decode to 32 bytes")
    return raw


@runtime_checkable
class LedgerClient(Protocol):
    """Interface consumed by decoy selection."""

    async def get_recent_transaction_signatures(self, account_key: str, limit: int) -> List[str]:
        ...

    async def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        ...


def extract_account_keys(transaction: Optional[Dict[str, Any]]) -> List[str]:
    """
    Pull account keys out of a parsed transaction.

    accountKeys entries are either plain strings or {"pubkey": ...} objects.
    """
    if not transaction:
        return []
    try:
        keys = transaction["transaction"]["message"]["accountKeys"]
    except (KeyError, TypeError):
        return []
    if not isinstance(keys, list):
        return []

    result = []
    for entry in keys:
        if isinstance(entry, str):
            result.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("pubkey"), str):
            result.append(entry["pubkey"])
    return result


class HttpLedgerClient:
    """
    JSON-RPC ledger client over httpx.

    Raises LedgerUnavailableError on transport errors, non-200
    responses and RPC error objects.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            resp = await self._get_client().post(self.rpc_url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise LedgerUnavailableError(f"{method}: {e}")

        if resp.status_code != 200:
            raise LedgerUnavailableError(f"{method}: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise LedgerUnavailableError(f"{method}: invalid JSON ({e})")

        if not isinstance(data, dict):
            raise LedgerUnavailableError(f"{method}: unexpected response")
        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise LedgerUnavailableError(f"{method}: {message}")
        return data.get("result")

    async def get_recent_transaction_signatures(self, account_key: str, limit: int) -> List[str]:
        """Signatures of recent transactions touching account_key."""
        result = await self._rpc("getSignaturesForAddress", [account_key, {"limit": limit}])
        if not isinstance(result, list):
            return []
        return [
            item["signature"] for item in result
            if isinstance(item, dict) and isinstance(item.get("signature"), str)
        ]

    async def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Parsed transaction, or None if the ledger does not know it."""
        result = await self._rpc(
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
        )
        return result if isinstance(result, dict) else None

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> 'HttpLedgerClient':
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
