"""
Run parameters for rewardscan.

Resolution order for every value: explicit argument (CLI option) → environment
variable (a `.env` file in the working directory is loaded first) → default.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Any

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

DEFAULT_CONTRACT = "0xE3C3b0F2897122D30BdA2A04fF6b8C146131eF25"
DEFAULT_START_BLOCK = 32894578
DEFAULT_CHUNK_SIZE = 500
DEFAULT_DB_PATH = "rewardscan.db"
DEFAULT_RPC_TIMEOUT = 20

ENV_PREFIX = "REWARDSCAN_"


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw, 0)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


@dataclass(slots=True, frozen=True)
class Settings:
    rpc_url: str
    contract_address: str = DEFAULT_CONTRACT
    start_block: int = DEFAULT_START_BLOCK
    end_block: int | None = None          # None → chain head at invocation
    chunk_size: int = DEFAULT_CHUNK_SIZE
    db_path: str = DEFAULT_DB_PATH
    abi_path: str | None = None
    manifest_path: str | None = None
    rerun_failed: bool = True
    rpc_timeout: int = DEFAULT_RPC_TIMEOUT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))
        return cls(
            rpc_url=os.getenv(ENV_PREFIX + "RPC_URL", ""),
            contract_address=os.getenv(ENV_PREFIX + "CONTRACT", DEFAULT_CONTRACT),
            start_block=_env_int("START_BLOCK", DEFAULT_START_BLOCK),
            end_block=_env_int("END_BLOCK", None),
            chunk_size=_env_int("CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            db_path=os.getenv(ENV_PREFIX + "DB", DEFAULT_DB_PATH),
            abi_path=os.getenv(ENV_PREFIX + "ABI") or None,
            manifest_path=os.getenv(ENV_PREFIX + "MANIFEST") or None,
            rpc_timeout=_env_int("RPC_TIMEOUT", DEFAULT_RPC_TIMEOUT),
            log_level=os.getenv(ENV_PREFIX + "LOG_LEVEL", "INFO").upper(),
        )

    def override(self, **values: Any) -> "Settings":
        """Return a copy with every non-None value applied."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})

    def validate(self) -> "Settings":
        if not self.rpc_url:
            raise ConfigError(f"RPC URL missing: pass --rpc or set {ENV_PREFIX}RPC_URL")
        addr = self.contract_address
        if not (addr.startswith("0x") and len(addr) == 42):
            raise ConfigError(f"contract address must be 0x + 40 hex chars, got {addr!r}")
        try:
            int(addr, 16)
        except ValueError as e:
            raise ConfigError(f"contract address is not hex: {addr!r}") from e
        if self.start_block < 0:
            raise ConfigError(f"start block must be >= 0, got {self.start_block}")
        if self.end_block is not None and self.start_block > self.end_block:
            raise ConfigError(f"start block ({self.start_block}) must be <= end block ({self.end_block})")
        if self.chunk_size < 1:
            raise ConfigError(f"chunk size must be >= 1, got {self.chunk_size}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"unknown log level {self.log_level!r}")
        return self
