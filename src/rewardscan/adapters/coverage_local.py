# rewardscan/adapters/coverage_local.py
from __future__ import annotations

from ..ports.coverage import Coverage
from .manifest_jsonl import JSONLManifest


def _merge(intervals: list[tuple[int, int]]) -> list[tuple[int, int]]:
    if not intervals:
        return []
    ivs = sorted(intervals)
    out: list[list[int]] = [[ivs[0][0], ivs[0][1]]]
    for s, e in ivs[1:]:
        ms, me = out[-1]
        if s <= me + 1:
            out[-1][1] = max(me, e)
        else:
            out.append([s, e])
    return [(s, e) for s, e in out]


class LocalManifestCoverage(Coverage):
    """
    Chunk status as recorded in the JSONL manifest at `manifest_path`.
    The snapshot is taken at construction, so records appended during the run are not self-counted.
    """
    def __init__(self, manifest_path: str) -> None:
        self.manifest_path = manifest_path
        self._status: dict[tuple[int, int], str] = {
            (rec.from_block, rec.to_block): rec.status
            for rec in JSONLManifest(manifest_path).records()
        }

    async def covered_ranges(self) -> list[tuple[int, int]]:
        return _merge([k for k, st in self._status.items() if st == "done"])

    async def chunk_status(self, from_block: int, to_block: int) -> str | None:
        return self._status.get((from_block, to_block))
