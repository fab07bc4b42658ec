"""
Veil Spent Store Tests
"""

import threading

import pytest

from veil.state.spent import InMemorySpentStore, SqliteSpentStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        s = InMemorySpentStore()
    else:
        s = SqliteSpentStore(str(tmp_path / "spent" / "veil.db"))
    yield s
    s.close()


KI = b'\x11' * 32
NF = b'\x22' * 32


class TestSpentStore:
    """Behaviour shared by every backend."""

    def test_initially_empty(self, store):
        assert not store.is_key_image_spent(KI)
        assert not store.is_nullifier_spent(NF)
        assert store.stats() == {"key_images": 0, "nullifiers": 0}

    def test_mark_spent(self, store):
        assert store.mark_spent(KI, NF, "abc")
        assert store.is_key_image_spent(KI)
        assert store.is_nullifier_spent(NF)
        assert store.stats() == {"key_images": 1, "nullifiers": 1}

    def test_mark_spent_idempotent(self, store):
        store.mark_spent(KI, NF)
        assert not store.mark_spent(KI, NF)
        assert store.stats() == {"key_images": 1, "nullifiers": 1}

    def test_partial_overlap_reports_new(self, store):
        store.mark_spent(KI, NF)
        assert store.mark_spent(KI, b'\x33' * 32)
        assert store.stats() == {"key_images": 1, "nullifiers": 2}

    def test_clear(self, store):
        store.mark_spent(KI, NF)
        store.clear()
        assert not store.is_key_image_spent(KI)
        assert store.stats() == {"key_images": 0, "nullifiers": 0}

    def test_concurrent_marks(self, store):
        """Each distinct value is recorded exactly once."""
        def worker(offset):
            for i in range(20):
                value = bytes([offset, i]) * 16
                store.mark_spent(value, value)

        threads = [threading.Thread(target=worker, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.stats() == {"key_images": 80, "nullifiers": 80}


class TestSqlitePersistence:
    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "veil.db")
        first = SqliteSpentStore(path)
        first.mark_spent(KI, NF, "hash")
        first.close()

        second = SqliteSpentStore(path)
        assert second.is_key_image_spent(KI)
        assert second.is_nullifier_spent(NF)
        second.close()
