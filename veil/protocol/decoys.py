"""
Veil - Decoy Selection

Chooses ring members other than the sender. Real account keys observed
on the ledger are preferred; whatever is missing is padded with freshly
generated keys. Ledger I/O is the only suspending step in bundle
creation: it runs under a timeout, and a timeout or ledger failure falls
back to random decoys instead of failing the transfer.
"""

from __future__ import annotations
import asyncio
import logging
import threading
from collections import OrderedDict
from typing import List, Optional, Tuple

from veil.constants import DECOY_CACHE_MAX_ENTRIES, DECOY_FETCH_LIMIT, DECOY_TIMEOUT_SEC
from veil.clients.ledger import (
    LedgerClient,
    decode_account_key,
    encode_account_key,
    extract_account_keys,
)
from veil.crypto.curve import Ed25519Point
from veil.crypto.keys import KeyPair
from veil.errors import ExternalCollaboratorUnavailable, InvalidKeyError, ValidationError

logger = logging.getLogger(__name__)


class DecoySelector:
    """
    Decoy public keys for ring signatures.

    Results are cached per (excluded key, count).
    """

    def __init__(
        self,
        ledger_client: Optional[LedgerClient] = None,
        timeout: float = DECOY_TIMEOUT_SEC,
        fetch_limit: int = DECOY_FETCH_LIMIT,
        cache_size: int = DECOY_CACHE_MAX_ENTRIES
    ):
        self.ledger_client = ledger_client
        self.timeout = timeout
        self.fetch_limit = fetch_limit
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[bytes, int], List[bytes]]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def cache_entries(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    async def select(self, exclude_key: bytes, count: int) -> List[bytes]:
        """
        Select count decoys, none equal to exclude_key and no duplicates.

        Args:
            exclude_key: Sender public key (32 bytes)
            count: Number of decoys (ring size - 1)

        Returns:
            List of 32-byte public keys
        """
        if count < 0:
            raise ValidationError("Decoy count must be non-negative")
        cache_key = (bytes(exclude_key), count)
        with self._lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._cache.move_to_end(cache_key)
                return list(cached)

        decoys: List[bytes] = []
        if self.ledger_client is not None and count > 0:
            try:
                await asyncio.wait_for(
                    self._collect_from_ledger(exclude_key, count, decoys),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Decoy fetch timed out after {self.timeout}s, padding with random keys")
            except ExternalCollaboratorUnavailable as e:
                logger.warning(f"Ledger unavailable for decoy selection: {e.message}")
            except Exception as e:
                logger.warning(f"Ledger error during decoy selection, padding with random keys: {e!r}")

        real = len(decoys)
        decoys = decoys[:count]
        while len(decoys) < count:
            candidate = KeyPair.generate().public_key
            if candidate != exclude_key and candidate not in decoys:
                decoys.append(candidate)

        logger.debug(f"Selected {count} decoys ({min(real, count)} from ledger)")

        with self._lock:
            self._cache[cache_key] = list(decoys)
            self._cache.move_to_end(cache_key)
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return decoys

    async def _collect_from_ledger(self, exclude_key: bytes, count: int, out: List[bytes]) -> None:
        """Append usable ledger keys to out (partial results survive a timeout)."""
        account = encode_account_key(exclude_key)
        signatures = await self.ledger_client.get_recent_transaction_signatures(account, self.fetch_limit)

        for signature in signatures:
            if len(out) >= count:
                return
            try:
                tx = await self.ledger_client.get_parsed_transaction(signature)
                account_keys = extract_account_keys(tx)
            except Exception as e:
                # Skip this transaction, keep scanning the rest
                logger.debug(f"Skipping transaction {str(signature)[:16]}: {e!r}")
                continue

            for account_key in account_keys:
                try:
                    pk = decode_account_key(account_key)
                except InvalidKeyError:
                    continue
                # Program ids and off-curve addresses cannot be ring members
                if pk == exclude_key or pk in out or not Ed25519Point.is_valid_point(pk):
                    continue
                out.append(pk)
                if len(out) >= count:
                    return
