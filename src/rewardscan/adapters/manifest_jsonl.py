from __future__ import annotations
import os, json, asyncio, logging
from dataclasses import asdict
from typing import Iterator
from ..ports.storage import ManifestSink
from ..domain.models import ChunkRec

log = logging.getLogger(__name__)


def _from_json(obj: dict) -> ChunkRec:
    return ChunkRec(
        from_block=int(obj["from_block"]),
        to_block=int(obj["to_block"]),
        status=obj["status"],
        attempts=int(obj.get("attempts", 0)),
        error=obj.get("error"),
        logs=int(obj.get("logs", 0)),
        txs=int(obj.get("txs", 0)),
        persisted=int(obj.get("persisted", 0)),
        failed_txs=tuple(obj.get("failed_txs") or ()),
        updated_at=float(obj.get("updated_at", 0.0)),
    )


class JSONLManifest(ManifestSink):
    """
    Append-only chunk log, one ChunkRec per line.
    The last line for a (from_block, to_block) pair is that chunk's current status.
    """
    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    async def append(self, rec: ChunkRec) -> None:
        line = json.dumps(asdict(rec), separators=(",", ":")) + "\n"
        async with self._lock:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a") as f:
                f.write(line); f.flush(); os.fsync(f.fileno())

    def records(self) -> Iterator[ChunkRec]:
        if not os.path.isfile(self.path):
            return
        with open(self.path, "r") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield _from_json(json.loads(line))
                except (ValueError, KeyError, TypeError):
                    # a torn last line after a crash is expected
                    log.warning("manifest %s line %d unreadable, ignored", self.path, lineno)
