from __future__ import annotations
from enum import Enum
from typing import NewType, Literal

Address = NewType("Address", str)   # 0x-prefixed; lowercase on the wire, checksummed in records
TxHash  = NewType("TxHash", str)    # 66-char 0x-hash, lowercase
Topic0  = NewType("Topic0", str)    # 66-char 0x-hash, lowercase
Status  = Literal["pending", "done", "failed"]


class MethodName(str, Enum):
    REGISTER = "register"
    CHECKIN = "checkIn"
    CLAIM_REWARDS = "claimRewards"
    CLAIM_UPLINE_REWARDS = "claimUplineRewards"
    UNKNOWN = "unknown"


KNOWN_METHODS: tuple[MethodName, ...] = tuple(m for m in MethodName if m is not MethodName.UNKNOWN)


class Category(str, Enum):
    """Persisted record categories; the value is the table name."""
    REGISTER = "register_transactions"
    CHECKIN = "checkin_transactions"
    CLAIM_REWARDS = "claim_rewards_transactions"
    CLAIM_UPLINE_REWARD = "claim_upline_reward_transactions"
