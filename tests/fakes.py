"""
In-memory stand-ins for the RPC and storage ports, plus calldata/log builders.
"""
from __future__ import annotations

from typing import Sequence

from eth_abi import encode as abi_encode
from eth_utils import function_signature_to_4byte_selector

from rewardscan.domain.decoding import POINTS_CLAIMED_T0, TRANSFER_T0
from rewardscan.domain.models import Block, EventLog, Receipt, Transaction, TransactionRecord
from rewardscan.domain.value_types import Address, Category, TxHash
from rewardscan.errors import DuplicateKeyError, RetrievalError

CONTRACT = "0xE3C3b0F2897122D30BdA2A04fF6b8C146131eF25"
TOKEN = "0x9999999999999999999999999999999999999999"
USER = "0x1111111111111111111111111111111111111111"
REFERRER = "0x2222222222222222222222222222222222222222"
RECIPIENT = "0x3333333333333333333333333333333333333333"
OTHER_CONTRACT = "0x4444444444444444444444444444444444444444"


def tx_hash(n: int) -> TxHash:
    return TxHash("0x" + f"{n:064x}")


def calldata(signature: str, types: Sequence[str] = (), args: Sequence = ()) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex() + abi_encode(list(types), list(args)).hex()


def _topic_addr(addr: str) -> str:
    return "0x" + "00" * 12 + addr[2:].lower()


def points_claimed_log(user: str, points: int, total: int, *, address: str = CONTRACT,
                       h: str = "0x0", block: int = 0, index: int = 0) -> EventLog:
    return EventLog(
        address=Address(address.lower()),
        topics=(POINTS_CLAIMED_T0, _topic_addr(user)),
        data_hex="0x" + abi_encode(["uint256", "uint256"], [points, total]).hex(),
        block_number=block, tx_hash=TxHash(h), log_index=index,
    )


def transfer_log(src: str, dst: str, value: int, *, address: str = TOKEN,
                 h: str = "0x0", block: int = 0, index: int = 0) -> EventLog:
    return EventLog(
        address=Address(address.lower()),
        topics=(TRANSFER_T0, _topic_addr(src), _topic_addr(dst)),
        data_hex="0x" + abi_encode(["uint256"], [value]).hex(),
        block_number=block, tx_hash=TxHash(h), log_index=index,
    )


class FakeRPC:
    """A tiny chain: transactions, their receipts and the contract logs that point at them."""

    def __init__(self, head: int = 1_000) -> None:
        self.head = head
        self.txs: dict[str, Transaction] = {}
        self.receipts: dict[str, Receipt] = {}
        self.logs: list[EventLog] = []
        self.failing_ranges: set[tuple[int, int]] = set()
        self.failing_txs: set[str] = set()
        self.get_logs_calls: list[tuple[int, int]] = []
        self.closed = False

    def add_tx(self, n: int, block: int, input_hex: str, *, to: str | None = CONTRACT,
               events: Sequence[EventLog] = (), contract_logs: int = 1, index: int = 0,
               value: int = 0, gas_price: int | None = 1_000_000_000, gas_used: int = 50_000,
               effective_gas_price: int | None = None) -> TxHash:
        h = tx_hash(n)
        self.txs[h] = Transaction(
            hash=h, block_number=block, transaction_index=index,
            from_address=Address(USER.lower()), to_address=to.lower() if to else None,
            value=value, gas_price=gas_price, input=input_hex,
        )
        receipt_logs = []
        for i in range(contract_logs):
            ev = EventLog(Address(CONTRACT.lower()), ("0x" + "ab" * 32,), "0x", block, h, i)
            self.logs.append(ev)
            receipt_logs.append(ev)
        for i, ev in enumerate(events, start=len(receipt_logs)):
            receipt_logs.append(EventLog(ev.address, ev.topics, ev.data_hex, block, h, i))
        self.receipts[h] = Receipt(tx_hash=h, gas_used=gas_used,
                                   effective_gas_price=effective_gas_price, logs=tuple(receipt_logs))
        return h

    async def latest_block(self) -> int:
        return self.head

    async def get_logs(self, address: Address, from_block: int, to_block: int) -> list[EventLog]:
        self.get_logs_calls.append((from_block, to_block))
        if (from_block, to_block) in self.failing_ranges:
            raise RetrievalError(f"query returned more than 10000 results for {from_block}-{to_block}")
        return [ev for ev in self.logs
                if ev.address == address.lower() and from_block <= ev.block_number <= to_block]

    async def get_transaction(self, h: TxHash) -> Transaction | None:
        if h in self.failing_txs:
            raise RetrievalError(f"timeout fetching {h}")
        return self.txs.get(h)

    async def get_block(self, number: int) -> Block:
        return Block(number=number, timestamp=1_700_000_000 + number)

    async def get_receipt(self, h: TxHash) -> Receipt:
        return self.receipts[h]

    async def aclose(self) -> None:
        self.closed = True


class MemoryCategoryStore:
    def __init__(self, category: Category) -> None:
        self.category = category
        self.records: dict[str, TransactionRecord] = {}

    async def find_by_tx_hash(self, h: TxHash) -> bool:
        return h.lower() in self.records

    async def insert(self, record: TransactionRecord) -> None:
        key = record.tx_hash.lower()
        if key in self.records:
            raise DuplicateKeyError(self.category.value, key)
        self.records[key] = record

    async def count(self) -> int:
        return len(self.records)

