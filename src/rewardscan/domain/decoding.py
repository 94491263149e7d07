from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from eth_abi import decode as abi_decode
from eth_utils import (
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_checksum_address,
)

from rewardscan.domain.models import (
    CorrelatedEvents, DecodedCall, EventLog, PointsClaimed, TokenTransfer, Transaction,
)
from rewardscan.domain.value_types import Address, MethodName, Topic0
from rewardscan.errors import DecodeError

log = logging.getLogger(__name__)


POINTS_CLAIMED_SIG = "PointsClaimed(address,uint256,uint256)"
TRANSFER_SIG       = "Transfer(address,address,uint256)"

# Topic0 constants (lowercase, with "0x")
POINTS_CLAIMED_T0 = Topic0("0x" + event_signature_to_log_topic(POINTS_CLAIMED_SIG).hex())
TRANSFER_T0       = Topic0("0x" + event_signature_to_log_topic(TRANSFER_SIG).hex())

TOKEN_DECIMALS = 6
ETH_DECIMALS = 18

DEFAULT_SIGNATURES: tuple[str, ...] = (
    "register(address)",
    "checkIn()",
    "claimRewards()",
    "claimUplineRewards()",
)


def format_units(value: int, decimals: int) -> str:
    """Exact fixed-point rendering of an integer amount; trailing zeros stripped."""
    value = int(value)
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    frac_s = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_s}" if frac_s else f"{sign}{whole}"


# --------- 32B word slicing ---------------------------------------------------

def _word(b: bytes, i: int) -> bytes:
    return b[i*32:(i+1)*32]

def _u256(w: bytes) -> int:
    return int.from_bytes(w, "big")

def _addr_from_topic(t: str) -> Address:
    h = t[2:] if t[:2].lower() == "0x" else t
    return Address(to_checksum_address("0x" + h[-40:]))

def _hexstr_to_bytes(s: str) -> bytes:
    h = s[2:] if s[:2].lower() == "0x" else s
    if len(h) % 2: h = "0" + h
    return bytes.fromhex(h) if h else b""


def _decode_points_claimed(ev: EventLog) -> PointsClaimed:
    # topics: [sig, user]; data: [points, totalClaimedPoints]
    data_b = _hexstr_to_bytes(ev.data_hex)
    if len(ev.topics) != 2 or len(data_b) != 64:
        raise DecodeError(f"PointsClaimed shape mismatch in {ev.tx_hash}#{ev.log_index}")
    return PointsClaimed(
        user=_addr_from_topic(ev.topics[1]),
        usdt_amount=format_units(_u256(_word(data_b, 0)), TOKEN_DECIMALS),
        token_amount=format_units(_u256(_word(data_b, 1)), TOKEN_DECIMALS),
    )

def _decode_transfer(ev: EventLog) -> TokenTransfer:
    # topics: [sig, from, to]; data: [value]. ERC-721 (4 topics) does not fit.
    data_b = _hexstr_to_bytes(ev.data_hex)
    if len(ev.topics) != 3 or len(data_b) != 32:
        raise DecodeError(f"Transfer shape mismatch in {ev.tx_hash}#{ev.log_index}")
    return TokenTransfer(
        from_address=_addr_from_topic(ev.topics[1]),
        to_address=_addr_from_topic(ev.topics[2]),
        token_amount=format_units(_u256(_word(data_b, 0)), TOKEN_DECIMALS),
    )


class EventCorrelator:
    """Pulls the PointsClaimed / Transfer payloads out of a receipt's logs."""

    def correlate(self, logs: Iterable[EventLog]) -> CorrelatedEvents:
        points: list[PointsClaimed] = []
        transfers: list[TokenTransfer] = []
        for ev in logs:
            t0 = (ev.topic0 or "").lower()
            try:
                if t0 == POINTS_CLAIMED_T0:
                    pc = _decode_points_claimed(ev)
                    points.append(pc)
                    log.debug("points_claimed %s usdt=%s token=%s", pc.user, pc.usdt_amount, pc.token_amount)
                elif t0 == TRANSFER_T0:
                    tr = _decode_transfer(ev)
                    transfers.append(tr)
                    log.debug("transfer %s -> %s token=%s", tr.from_address, tr.to_address, tr.token_amount)
            except (DecodeError, ValueError):
                # same topic hash, different body: unrelated contract
                continue
        return CorrelatedEvents(points_claimed_all=tuple(points), transfers_all=tuple(transfers))


# ---------------------------- call decoding ------------------------------------

def _canonical_type(param: dict[str, Any]) -> str:
    t = param["type"]
    if t.startswith("tuple"):
        inner = ",".join(_canonical_type(c) for c in param.get("components", []))
        return f"({inner}){t[len('tuple'):]}"
    return t

def _parse_signature(sig: str) -> tuple[str, list[str]]:
    name, _, rest = sig.partition("(")
    if not name or not rest.endswith(")"):
        raise ValueError(f"Invalid function signature: {sig!r}")
    body = rest[:-1]
    # split top-level commas only (tuple types nest parentheses)
    types: list[str] = []
    depth, cur = 0, ""
    for ch in body:
        if ch == "," and depth == 0:
            types.append(cur); cur = ""; continue
        depth += ch == "("
        depth -= ch == ")"
        cur += ch
    if cur:
        types.append(cur)
    return name.strip(), [t.strip() for t in types]


@dataclass(slots=True, frozen=True)
class FunctionSpec:
    name: str
    input_types: tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> str:
        return "0x" + function_signature_to_4byte_selector(self.signature).hex()


class ContractInterface:
    """Selector → function table built from an ABI or plain signatures."""

    def __init__(self, functions: Sequence[FunctionSpec]) -> None:
        self.functions = tuple(functions)
        self._by_selector = {f.selector: f for f in self.functions}

    @classmethod
    def from_signatures(cls, signatures: Iterable[str]) -> "ContractInterface":
        specs = []
        for sig in signatures:
            name, types = _parse_signature(sig)
            specs.append(FunctionSpec(name=name, input_types=tuple(types)))
        return cls(specs)

    @classmethod
    def from_abi(cls, abi: Sequence[dict[str, Any]]) -> "ContractInterface":
        specs = [
            FunctionSpec(
                name=item["name"],
                input_types=tuple(_canonical_type(p) for p in item.get("inputs", [])),
            )
            for item in abi
            if item.get("type", "function") == "function" and "name" in item
        ]
        return cls(specs)

    @classmethod
    def from_abi_file(cls, path: str) -> "ContractInterface":
        with open(path, "r") as f:
            doc = json.load(f)
        # accept a bare ABI list or a build artifact with an "abi" key
        abi = doc["abi"] if isinstance(doc, dict) else doc
        return cls.from_abi(abi)

    @classmethod
    def default(cls) -> "ContractInterface":
        return cls.from_signatures(DEFAULT_SIGNATURES)

    def lookup(self, selector: str) -> FunctionSpec | None:
        return self._by_selector.get(selector.lower())


def _normalize_arg(v: Any) -> Any:
    if isinstance(v, bytes):
        return "0x" + v.hex()
    if isinstance(v, (list, tuple)):
        return tuple(_normalize_arg(x) for x in v)
    return v


class CallDecoder:
    def __init__(self, interface: ContractInterface | None = None) -> None:
        self.interface = interface or ContractInterface.default()
        self._known = {m.value: m for m in MethodName if m is not MethodName.UNKNOWN}

    def decode(self, tx: Transaction) -> DecodedCall:
        """Never raises: anything that does not decode to a known method is UNKNOWN."""
        calldata = (tx.input or "0x").lower()
        if len(calldata) < 10:
            return DecodedCall(MethodName.UNKNOWN)
        fn = self.interface.lookup(calldata[:10])
        if fn is None:
            return DecodedCall(MethodName.UNKNOWN)
        try:
            raw_args = abi_decode(list(fn.input_types), _hexstr_to_bytes(calldata[10:]))
        except Exception as e:
            log.debug("calldata decode failed for %s (%s): %s", tx.hash, fn.signature, e)
            return DecodedCall(MethodName.UNKNOWN, raw_name=fn.name)
        method = self._known.get(fn.name, MethodName.UNKNOWN)
        return DecodedCall(method, tuple(_normalize_arg(a) for a in raw_args), raw_name=fn.name)
