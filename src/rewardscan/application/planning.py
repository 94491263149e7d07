from __future__ import annotations
from typing import Iterator
from ..domain.models import ScanRange

def iter_chunks(scan_range: ScanRange) -> Iterator[tuple[int, int]]:
    """Contiguous, non-overlapping [from, to] pairs tiling [start, end] in ascending order."""
    b = scan_range.start
    while b <= scan_range.end:
        fb, tb = b, min(scan_range.end, b + scan_range.chunk_size - 1)
        yield fb, tb
        b = tb + 1

def plan_chunks(start_block: int, end_block: int, step: int) -> list[tuple[int, int]]:
    return list(iter_chunks(ScanRange(start_block, end_block, step)))

def subtract_interval(iv: tuple[int,int], covered: list[tuple[int,int]]) -> list[tuple[int,int]]:
    s, e = iv
    if s > e: return []
    if not covered: return [iv]
    res: list[tuple[int,int]] = []
    cur = s
    for cs, ce in covered:
        if ce < cur: continue
        if cs > e: break
        if cs > cur: res.append((cur, min(e, cs - 1)))
        cur = max(cur, ce + 1)
        if cur > e: break
    if cur <= e: res.append((cur, e))
    return res
