# rewardscan/ports/rpc.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import Block, EventLog, Receipt, Transaction
from ..domain.value_types import Address, TxHash


class LedgerRPC(Protocol):
    """Port defining the contract for an Ethereum JSON-RPC client.

    Every method may raise RetrievalError.
    """

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def get_logs(self, address: Address, from_block: int, to_block: int) -> list[EventLog]:
        """Return normalized, typed logs emitted by `address` in [from_block, to_block] inclusive."""

    async def get_transaction(self, tx_hash: TxHash) -> Transaction | None:
        """Return the transaction, or None when the node does not know it."""

    async def get_block(self, number: int) -> Block:
        """Return the block header."""

    async def get_receipt(self, tx_hash: TxHash) -> Receipt:
        """Return the receipt with its logs in logIndex order."""

    async def aclose(self) -> None:
        """Release the underlying connection pool."""
