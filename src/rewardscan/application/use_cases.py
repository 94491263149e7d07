from __future__ import annotations
import asyncio, logging, time
import httpx
from typing import Sequence

from rewardscan.adapters.coverage_local import LocalManifestCoverage
from rewardscan.adapters.manifest_jsonl import JSONLManifest
from rewardscan.adapters.parquet_export import ParquetRecordExporter
from rewardscan.adapters.rpc_httpx import HttpxRPC
from rewardscan.adapters.sqlite_store import SQLiteRecordStore
from rewardscan.config import Settings
from rewardscan.domain.classify import classify
from rewardscan.domain.decoding import CallDecoder, ContractInterface, EventCorrelator
from rewardscan.errors import (
    ClassificationError, ConfigError, DuplicateKeyError, FatalStartupError,
    RetrievalError,
)
from rewardscan.ports.coverage import Coverage
from ..domain.models import ChunkRec, ScanRange, ScanReport, TxMeta
from ..domain.value_types import Address, Category, Status, TxHash
from ..ports.rpc import LedgerRPC
from ..ports.storage import CategoryStore, ManifestSink
from .planning import iter_chunks, subtract_interval
from .scanning import DedupGate, LogScanner

log = logging.getLogger(__name__)

# per-transaction outcomes
PERSISTED, EXISTING, FOREIGN, UNKNOWN, DUPLICATE = "persisted", "existing", "foreign", "unknown", "duplicate"


class ScanOrchestrator:
    """
    Walks a block range chunk by chunk, strictly in order, and drives
    dedup → fetch → decode → correlate → classify → insert for every tx hash.
    Chunk failures and transaction failures are logged and skipped; nothing is retried.
    """

    def __init__(
        self,
        *,
        rpc: LedgerRPC,
        stores: Sequence[CategoryStore],
        contract_address: str,
        decoder: CallDecoder | None = None,
        correlator: EventCorrelator | None = None,
        manifest: ManifestSink | None = None,
        coverage: Coverage | None = None,
        rerun_failed: bool = True,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.rpc = rpc
        self.contract = Address(contract_address.lower())
        self.scanner = LogScanner(rpc)
        self.dedup = DedupGate(stores)
        self.decoder = decoder or CallDecoder()
        self.correlator = correlator or EventCorrelator()
        self.manifest = manifest
        self.coverage = coverage
        self.rerun_failed = rerun_failed
        self.stop_event = stop_event or asyncio.Event()
        self._covered: list[tuple[int, int]] = []
        self._by_category: dict[Category, CategoryStore] = {s.category: s for s in stores}
        missing = set(Category) - set(self._by_category)
        if missing:
            raise ValueError(f"no store for categories: {sorted(c.value for c in missing)}")

    async def run(self, scan_range: ScanRange) -> ScanReport:
        report = ScanReport()
        log.info("scan_start contract=%s blocks=%d-%d chunk_size=%d",
                 self.contract, scan_range.start, scan_range.end, scan_range.chunk_size)
        if self.coverage is not None:
            self._covered = await self.coverage.covered_ranges()
            todo = subtract_interval((scan_range.start, scan_range.end), self._covered)
            log.info("manifest coverage: %d block(s) left of %d",
                     sum(e - s + 1 for s, e in todo), scan_range.span())

        for fb, tb in iter_chunks(scan_range):
            if self.stop_event.is_set():
                report.interrupted = True
                break
            report.chunks_total += 1
            if await self._already_covered(fb, tb):
                report.chunks_skipped += 1
                continue
            await self._run_chunk(fb, tb, report)

        log.info("scan_done %s", report.as_dict())
        return report

    async def _already_covered(self, fb: int, tb: int) -> bool:
        if self.coverage is None:
            return False
        # done ranges are merged, so a chunk recorded with other boundaries still counts
        if any(cs <= fb and tb <= ce for cs, ce in self._covered):
            log.debug("chunk %d-%d done in manifest, skipped", fb, tb)
            return True
        if not self.rerun_failed and await self.coverage.chunk_status(fb, tb) == "failed":
            log.debug("chunk %d-%d failed previously, rerun disabled", fb, tb)
            return True
        return False

    async def _run_chunk(self, fb: int, tb: int, report: ScanReport) -> None:
        log.info("chunk %d-%d scanning", fb, tb)
        try:
            tx_hashes = await self.scanner.scan(self.contract, fb, tb)
        except RetrievalError as e:
            log.warning("chunk %d-%d failed, skipped: %s", fb, tb, e)
            report.chunks_failed += 1
            await self._record_chunk(fb, tb, "failed", error=str(e))
            return

        persisted = 0
        failed: list[str] = []
        interrupted = False
        for tx_hash in sorted(tx_hashes):
            if self.stop_event.is_set():
                interrupted = True
                break
            report.txs_seen += 1
            try:
                outcome, category = await self._process_tx(tx_hash)
            except ClassificationError as e:
                log.error("tx %s (blocks %d-%d) dropped: %s", tx_hash, fb, tb, e)
                failed.append(tx_hash)
                report.txs_failed += 1
                continue
            except Exception as e:
                log.error("tx %s (blocks %d-%d) failed: %s: %s", tx_hash, fb, tb, type(e).__name__, e,
                          exc_info=not isinstance(e, RetrievalError))
                failed.append(tx_hash)
                report.txs_failed += 1
                continue
            self._count(outcome, category, report)
            persisted += outcome == PERSISTED

        if interrupted:
            report.interrupted = True
            status, error = "failed", "interrupted"
        elif failed:
            status, error = "failed", f"{len(failed)} transaction(s) failed"
        else:
            status, error = "done", None
        if status == "done":
            report.chunks_ok += 1
        else:
            report.chunks_failed += 1
        log.info("chunk %d-%d %s: txs=%d persisted=%d failed=%d", fb, tb, status, len(tx_hashes), persisted, len(failed))
        await self._record_chunk(fb, tb, status, error=error, logs=self.scanner.last_log_count,
                                 txs=len(tx_hashes), persisted=persisted, failed_txs=tuple(failed))

    async def _process_tx(self, tx_hash: TxHash) -> tuple[str, Category | None]:
        if await self.dedup.exists(tx_hash):
            log.debug("tx %s already stored, skipped", tx_hash)
            return EXISTING, None

        tx = await self.rpc.get_transaction(tx_hash)
        if tx is None or (tx.to_address or "").lower() != self.contract:
            log.debug("tx %s not addressed to the contract, skipped", tx_hash)
            return FOREIGN, None

        call = self.decoder.decode(tx)
        if not call.is_known:
            log.info("tx %s unrecognized method %s, skipped", tx_hash, call.raw_name or tx.input[:10])
            return UNKNOWN, None

        block = await self.rpc.get_block(tx.block_number)
        receipt = await self.rpc.get_receipt(tx.hash)
        correlated = self.correlator.correlate(receipt.logs)
        record = classify(call, TxMeta(tx=tx, block=block, receipt=receipt), correlated)
        if record is None:
            return UNKNOWN, None

        try:
            await self._by_category[record.category].insert(record)
        except DuplicateKeyError:
            log.debug("tx %s inserted concurrently, duplicate ignored", tx_hash)
            return DUPLICATE, record.category
        log.info("tx %s saved to %s (block %d)", tx_hash, record.category.value, record.block_number)
        return PERSISTED, record.category

    def _count(self, outcome: str, category: Category | None, report: ScanReport) -> None:
        if outcome == PERSISTED:
            report.txs_persisted += 1
            if category is not None:
                cat = category.value
                report.persisted_by_category[cat] = report.persisted_by_category.get(cat, 0) + 1
        elif outcome == EXISTING:
            report.txs_existing += 1
        elif outcome == FOREIGN:
            report.txs_foreign += 1
        elif outcome == UNKNOWN:
            report.txs_unknown += 1
        elif outcome == DUPLICATE:
            report.txs_duplicate += 1

    async def _record_chunk(self, fb: int, tb: int, status: Status, *, error: str | None = None,
                            logs: int = 0, txs: int = 0, persisted: int = 0,
                            failed_txs: tuple[str, ...] = ()) -> None:
        if self.manifest is None:
            return
        await self.manifest.append(ChunkRec(
            from_block=fb, to_block=tb, status=status, attempts=1, error=error,
            logs=logs, txs=txs, persisted=persisted, failed_txs=failed_txs, updated_at=time.time(),
        ))


def load_interface(abi_path: str | None) -> ContractInterface:
    if not abi_path:
        return ContractInterface.default()
    try:
        return ContractInterface.from_abi_file(abi_path)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ConfigError(f"cannot load ABI from {abi_path}: {e}") from e


async def scan_contract_history(
    settings: Settings,
    *,
    stop_event: asyncio.Event | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ScanReport:
    """
    Wires the adapters for one run. The RPC client and the database connection are
    each opened once and released on every exit path.
    """
    settings.validate()
    decoder = CallDecoder(load_interface(settings.abi_path))

    async with HttpxRPC(settings.rpc_url, timeout_s=settings.rpc_timeout, transport=transport) as rpc, \
            SQLiteRecordStore(settings.db_path) as db:
        try:
            head = await rpc.latest_block()
        except RetrievalError as e:
            raise FatalStartupError(f"cannot reach RPC {settings.rpc_url}: {e}") from e
        log.info("latest block: %d", head)

        end = settings.end_block if settings.end_block is not None else head
        if settings.start_block > end:
            raise ConfigError(f"start block ({settings.start_block}) is past end block ({end})")
        scan_range = ScanRange(settings.start_block, end, settings.chunk_size)

        manifest = coverage = None
        if settings.manifest_path:
            coverage = LocalManifestCoverage(settings.manifest_path)
            manifest = JSONLManifest(settings.manifest_path)

        orchestrator = ScanOrchestrator(
            rpc=rpc,
            stores=db.categories(),
            contract_address=settings.contract_address,
            decoder=decoder,
            manifest=manifest,
            coverage=coverage,
            rerun_failed=settings.rerun_failed,
            stop_event=stop_event,
        )
        return await orchestrator.run(scan_range)


async def category_counts(db_path: str) -> dict[str, int]:
    async with SQLiteRecordStore(db_path) as db:
        return await db.counts()


def export_records(db_path: str, out_dir: str) -> dict[str, tuple[str, int]]:
    """Dump every category table to <out_dir>/<table>.parquet."""
    exporter = ParquetRecordExporter(out_dir)
    written: dict[str, tuple[str, int]] = {}
    db = SQLiteRecordStore(db_path).open()
    try:
        for store in db.categories():
            written[store.category.value] = exporter.write_category(store.category, store.rows())
    finally:
        db.close()
    return written
