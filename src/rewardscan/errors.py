from __future__ import annotations


class RewardScanError(Exception):
    """Base class for every error raised by rewardscan."""


class ConfigError(RewardScanError):
    """Run parameters are missing or inconsistent."""


class FatalStartupError(RewardScanError):
    """RPC or database could not be reached before scanning began."""


class RetrievalError(RewardScanError):
    """Upstream RPC call failed (HTTP error, JSON-RPC error, throttling, timeout)."""


class DecodeError(RewardScanError):
    """Calldata or log body did not match the expected ABI shape."""


class ClassificationError(RewardScanError):
    """Transaction metadata did not have the shape a record needs."""


class PersistenceError(RewardScanError):
    """Storage backend rejected a read or write."""


class DuplicateKeyError(PersistenceError):
    def __init__(self, category: str, tx_hash: str) -> None:
        super().__init__(f"{tx_hash} already stored in {category}")
        self.category = category
        self.tx_hash = tx_hash
