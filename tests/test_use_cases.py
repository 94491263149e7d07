"""
Run wiring: settings → RPC client + database → orchestrator, and release of both on every exit.
"""
import asyncio
import json

import httpx
import pytest

from rewardscan.adapters.sqlite_store import SQLiteRecordStore
from rewardscan.application import use_cases
from rewardscan.application.use_cases import scan_contract_history
from rewardscan.config import Settings
from rewardscan.errors import ConfigError, FatalStartupError


class TrackedStore(SQLiteRecordStore):
    opened: list["TrackedStore"] = []

    def open(self):
        TrackedStore.opened.append(self)
        return super().open()


@pytest.fixture(autouse=True)
def tracked_db(monkeypatch):
    TrackedStore.opened = []
    monkeypatch.setattr(use_cases, "SQLiteRecordStore", TrackedStore)


def _node(head: int, calls: list):
    def handler(request):
        body = json.loads(request.content)
        calls.append((body["method"], body["params"]))
        result = hex(head) if body["method"] == "eth_blockNumber" else []
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})
    return httpx.MockTransport(handler)


def _settings(tmp_path, **kw):
    return Settings(rpc_url="http://node.test", db_path=str(tmp_path / "scan.db"), **kw)


def _all_closed():
    return TrackedStore.opened and all(db.conn is None for db in TrackedStore.opened)


class TestScanContractHistory:

    def test_end_block_defaults_to_chain_head(self, tmp_path):
        calls = []
        settings = _settings(tmp_path, start_block=0, chunk_size=50)
        report = asyncio.run(scan_contract_history(settings, transport=_node(100, calls)))

        ranges = [(p[0]["fromBlock"], p[0]["toBlock"]) for m, p in calls if m == "eth_getLogs"]
        assert ranges == [("0x0", "0x31"), ("0x32", "0x63"), ("0x64", "0x64")]
        assert report.chunks_ok == 3
        assert _all_closed()

    def test_explicit_end_block_wins_over_head(self, tmp_path):
        calls = []
        settings = _settings(tmp_path, start_block=10, end_block=19, chunk_size=50)
        asyncio.run(scan_contract_history(settings, transport=_node(100, calls)))
        assert [p for m, p in calls if m == "eth_getLogs"][0][0]["toBlock"] == "0x13"

    def test_start_past_head_is_config_error(self, tmp_path):
        settings = _settings(tmp_path, start_block=2_000)
        with pytest.raises(ConfigError, match="past end block"):
            asyncio.run(scan_contract_history(settings, transport=_node(100, [])))
        assert _all_closed()

    def test_unreachable_node_is_fatal(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FatalStartupError, match="cannot reach RPC"):
            asyncio.run(scan_contract_history(_settings(tmp_path), transport=httpx.MockTransport(handler)))
        assert _all_closed()

    def test_unreadable_abi_is_config_error(self, tmp_path):
        settings = _settings(tmp_path, abi_path=str(tmp_path / "missing.json"))
        with pytest.raises(ConfigError, match="cannot load ABI"):
            asyncio.run(scan_contract_history(settings, transport=_node(100, [])))
