# rewardscan/ports/storage.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import ChunkRec, TransactionRecord
from ..domain.value_types import Category, TxHash


class CategoryStore(Protocol):
    """Port for one persisted record category with a unique tx_hash."""

    category: Category

    async def find_by_tx_hash(self, tx_hash: TxHash) -> bool:
        """Return True if a record with this tx_hash exists in the category."""

    async def insert(self, record: TransactionRecord) -> None:
        """Persist the record; raise DuplicateKeyError when tx_hash is already present."""

    async def count(self) -> int:
        """Return the number of records in the category."""


class ManifestSink(Protocol):
    """Port for appending run/chunk status records (e.g., JSONL manifest)."""

    async def append(self, rec: ChunkRec) -> None:
        """Append a manifest record atomically (callers handle ordering/locking)."""
