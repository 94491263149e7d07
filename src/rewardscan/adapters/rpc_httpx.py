from __future__ import annotations
import asyncio, httpx
from typing import Any
from ..domain.models import Block, EventLog, Receipt, Transaction
from ..domain.value_types import Address, TxHash
from ..errors import RetrievalError
from ..ports.rpc import LedgerRPC

def _to_hex_block(n: int) -> str: return hex(int(n))
def _q(x: Any) -> int | None:
    """Hex quantity → int; passes ints through, None stays None."""
    if x is None: return None
    if isinstance(x, int): return x
    s = str(x)
    return int(s, 16) if s.lower().startswith("0x") else int(s)
def _lower(x: str | None) -> str | None: return x.lower() if isinstance(x, str) else None

def _parse_log(rl: dict[str, Any]) -> EventLog:
    return EventLog(
        address=Address(rl["address"].lower()),
        topics=tuple(t.lower() for t in rl.get("topics", [])),
        data_hex=str(rl.get("data") or "0x"),
        block_number=_q(rl["blockNumber"]),
        tx_hash=TxHash(rl["transactionHash"].lower()),
        log_index=_q(rl["logIndex"]),
    )

class HttpxRPC(LedgerRPC):
    def __init__(self, rpc_url: str, timeout_s: int = 20, max_conn: int = 64,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.rpc_url = rpc_url
        self.client = httpx.AsyncClient(
            http2=transport is None,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max_conn//2),
            transport=transport,
        )
        self._id = 0

    async def __aenter__(self) -> "HttpxRPC":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._id += 1
        payload = {"jsonrpc": "2.0", "id": self._id, "method": method, "params": params}
        # retry on 429 with simple backoff
        for attempt in range(3):
            try:
                r = await self.client.post(self.rpc_url, json=payload)
                if r.status_code == 429:
                    ra = r.headers.get("Retry-After")
                    delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                    await asyncio.sleep(delay); continue
                r.raise_for_status()
                data = r.json()
            except (httpx.HTTPError, ValueError) as e:
                raise RetrievalError(f"{method} failed: {type(e).__name__}: {e}") from e
            if "error" in data:
                err = data["error"]
                if isinstance(err, dict):
                    raise RetrievalError(f"{method} RPC error code={err.get('code')} message={err.get('message')}")
                raise RetrievalError(f"{method} RPC error: {err}")
            return data.get("result")
        raise RetrievalError(f"Retries exhausted for {method}")

    async def latest_block(self) -> int:
        return _q(await self._call("eth_blockNumber", []))

    async def get_logs(self, address: Address, from_block: int, to_block: int) -> list[EventLog]:
        res = await self._call("eth_getLogs", [{
            "address": str(address).lower(),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
        }])
        try:
            return [_parse_log(rl) for rl in res or []]
        except (KeyError, TypeError, ValueError) as e:
            raise RetrievalError(f"eth_getLogs returned malformed log: {e}") from e

    async def get_transaction(self, tx_hash: TxHash) -> Transaction | None:
        rt = await self._call("eth_getTransactionByHash", [tx_hash])
        if not rt or rt.get("blockNumber") is None:
            # unknown or still pending
            return None
        try:
            return Transaction(
                hash=TxHash(rt["hash"].lower()),
                block_number=_q(rt["blockNumber"]),
                transaction_index=_q(rt["transactionIndex"]),
                from_address=Address(rt["from"].lower()),
                to_address=_lower(rt.get("to")),
                value=_q(rt.get("value")) or 0,
                gas_price=_q(rt.get("gasPrice")),
                input=rt.get("input") or rt.get("data") or "0x",
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RetrievalError(f"eth_getTransactionByHash returned malformed tx {tx_hash}: {e}") from e

    async def get_block(self, number: int) -> Block:
        rb = await self._call("eth_getBlockByNumber", [_to_hex_block(number), False])
        if not rb:
            raise RetrievalError(f"eth_getBlockByNumber: block {number} not found")
        return Block(number=_q(rb["number"]), timestamp=_q(rb["timestamp"]))

    async def get_receipt(self, tx_hash: TxHash) -> Receipt:
        rr = await self._call("eth_getTransactionReceipt", [tx_hash])
        if not rr:
            raise RetrievalError(f"eth_getTransactionReceipt: no receipt for {tx_hash}")
        try:
            logs = sorted((_parse_log(rl) for rl in rr.get("logs", [])), key=lambda e: e.log_index)
            return Receipt(
                tx_hash=TxHash(rr["transactionHash"].lower()),
                gas_used=_q(rr["gasUsed"]),
                effective_gas_price=_q(rr.get("effectiveGasPrice")),
                logs=tuple(logs),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RetrievalError(f"eth_getTransactionReceipt returned malformed receipt {tx_hash}: {e}") from e
