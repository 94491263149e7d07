from __future__ import annotations

from typing import Sequence

from ..domain.value_types import Address, TxHash
from ..ports.rpc import LedgerRPC
from ..ports.storage import CategoryStore


class LogScanner:
    """One eth_getLogs per chunk, reduced to the distinct tx hashes that touched the contract."""

    def __init__(self, rpc: LedgerRPC) -> None:
        self.rpc = rpc
        self.last_log_count = 0

    async def scan(self, address: Address, from_block: int, to_block: int) -> set[TxHash]:
        # RetrievalError propagates; the orchestrator treats it as chunk-local
        logs = await self.rpc.get_logs(address, from_block, to_block)
        self.last_log_count = len(logs)
        return {TxHash(ev.tx_hash.lower()) for ev in logs if ev.tx_hash}


class DedupGate:
    """Fast-path check across every category; the unique key in storage is the real guard."""

    def __init__(self, stores: Sequence[CategoryStore]) -> None:
        self.stores = tuple(stores)

    async def exists(self, tx_hash: TxHash) -> bool:
        for store in self.stores:
            if await store.find_by_tx_hash(tx_hash):
                return True
        return False
