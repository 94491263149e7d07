from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, ClassVar
from .value_types import Address, Category, MethodName, TxHash, Status

@dataclass(slots=True, frozen=True)
class ScanRange:
    start: int
    end: int
    chunk_size: int

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) must be <= end ({self.end})")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")

    def span(self) -> int: return self.end - self.start + 1

@dataclass(slots=True, frozen=True)
class EventLog:
    address: Address
    topics: tuple[str, ...]            # lowercased with 0x
    data_hex: str                      # hex with 0x (or "0x")
    block_number: int
    tx_hash: TxHash
    log_index: int

    @property
    def topic0(self) -> str | None:
        return self.topics[0] if self.topics else None

@dataclass(slots=True, frozen=True)
class Transaction:
    hash: TxHash
    block_number: int
    transaction_index: int
    from_address: Address
    to_address: Address | None         # None for contract creation
    value: int                         # wei
    gas_price: int | None              # wei; None on some typed txs
    input: str                         # calldata hex with 0x

@dataclass(slots=True, frozen=True)
class Block:
    number: int
    timestamp: int                     # unix seconds

@dataclass(slots=True, frozen=True)
class Receipt:
    tx_hash: TxHash
    gas_used: int
    effective_gas_price: int | None
    logs: tuple[EventLog, ...] = ()

@dataclass(slots=True, frozen=True)
class TxMeta:
    """Everything fetched for one transaction besides its decoded call."""
    tx: Transaction
    block: Block
    receipt: Receipt

@dataclass(slots=True, frozen=True)
class DecodedCall:
    method: MethodName
    args: tuple[Any, ...] = ()
    raw_name: str | None = None        # ABI name, kept for methods outside the known set

    @property
    def is_known(self) -> bool:
        return self.method is not MethodName.UNKNOWN

@dataclass(slots=True, frozen=True)
class PointsClaimed:
    user: Address
    usdt_amount: str                   # 6-decimal fixed point
    token_amount: str

@dataclass(slots=True, frozen=True)
class TokenTransfer:
    from_address: Address
    to_address: Address
    token_amount: str

@dataclass(slots=True, frozen=True)
class CorrelatedEvents:
    points_claimed_all: tuple[PointsClaimed, ...] = ()
    transfers_all: tuple[TokenTransfer, ...] = ()

    # single-value views: the last occurrence in receipt order wins
    @property
    def points_claimed(self) -> PointsClaimed | None:
        return self.points_claimed_all[-1] if self.points_claimed_all else None

    @property
    def transfer(self) -> TokenTransfer | None:
        return self.transfers_all[-1] if self.transfers_all else None


# ---------------------------- persisted records --------------------------------

@dataclass(slots=True, frozen=True)
class TransactionRecord:
    category: ClassVar[Category]

    tx_hash: TxHash
    block_number: int
    block_timestamp: datetime
    transaction_index: int
    from_address: Address
    eth_value: str
    gas_fee: str
    gas_price: str
    gas_used: int
    method_name: str

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["block_timestamp"] = self.block_timestamp.isoformat()
        return row

@dataclass(slots=True, frozen=True)
class RegisterRecord(TransactionRecord):
    category: ClassVar[Category] = Category.REGISTER
    referrer_address: Address

@dataclass(slots=True, frozen=True)
class CheckinRecord(TransactionRecord):
    category: ClassVar[Category] = Category.CHECKIN
    tokens_earned: str = "0"

@dataclass(slots=True, frozen=True)
class ClaimRewardsRecord(TransactionRecord):
    category: ClassVar[Category] = Category.CLAIM_REWARDS
    usdt_amount: str = "0"
    token_amount: str = "0"

@dataclass(slots=True, frozen=True)
class ClaimUplineRewardRecord(TransactionRecord):
    category: ClassVar[Category] = Category.CLAIM_UPLINE_REWARD
    token_amount: str = "0"
    recipient_address: Address = Address("")


RECORD_TYPES: dict[Category, type[TransactionRecord]] = {
    Category.REGISTER: RegisterRecord,
    Category.CHECKIN: CheckinRecord,
    Category.CLAIM_REWARDS: ClaimRewardsRecord,
    Category.CLAIM_UPLINE_REWARD: ClaimUplineRewardRecord,
}


# ---------------------------- scan bookkeeping ---------------------------------

@dataclass(slots=True, frozen=True)
class ChunkRec:
    from_block: int
    to_block: int
    status: Status = "pending"
    attempts: int = 0
    error: str | None = None
    logs: int = 0
    txs: int = 0
    persisted: int = 0
    failed_txs: tuple[str, ...] = ()
    updated_at: float = 0.0

@dataclass(slots=True)
class ScanReport:
    chunks_total: int = 0
    chunks_ok: int = 0
    chunks_failed: int = 0
    chunks_skipped: int = 0
    txs_seen: int = 0
    txs_existing: int = 0
    txs_foreign: int = 0
    txs_unknown: int = 0
    txs_persisted: int = 0
    txs_duplicate: int = 0
    txs_failed: int = 0
    interrupted: bool = False
    persisted_by_category: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
