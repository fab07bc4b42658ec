"""
Veil State

Spent key images and nullifiers.
"""

from veil.state.spent import (
    InMemorySpentStore,
    SpentStore,
    SqliteSpentStore,
)

__all__ = [
    "SpentStore",
    "InMemorySpentStore",
    "SqliteSpentStore",
]
