# rewardscan/ports/coverage.py
from __future__ import annotations
from typing import Protocol

class Coverage(Protocol):
    async def covered_ranges(self) -> list[tuple[int, int]]:
        """Return merged, inclusive [from,to] ranges whose latest scan finished cleanly."""

    async def chunk_status(self, from_block: int, to_block: int) -> str | None:
        """Return the latest recorded status of exactly this chunk, or None if never scanned."""
