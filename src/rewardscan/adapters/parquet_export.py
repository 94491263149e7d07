from __future__ import annotations
import os, pyarrow as pa, pyarrow.parquet as pq
from dataclasses import fields
from datetime import datetime
from typing import Any, Iterable

from ..domain.models import RECORD_TYPES
from ..domain.value_types import Category

_INT_COLS = {"block_number", "transaction_index", "gas_used"}

def category_schema(category: Category) -> pa.Schema:
    out = []
    for f in fields(RECORD_TYPES[category]):
        if f.name in _INT_COLS:
            out.append(pa.field(f.name, pa.int64()))
        elif f.name == "block_timestamp":
            out.append(pa.field(f.name, pa.timestamp("s", tz="UTC")))
        else:
            # amounts stay strings: 18-decimal values do not fit a float
            out.append(pa.field(f.name, pa.large_string()))
    return pa.schema(out)

def _rows_to_table(category: Category, rows: Iterable[dict[str, Any]]) -> pa.Table:
    schema = category_schema(category)
    cols: dict[str, list] = {f.name: [] for f in schema}
    for r in rows:
        for name in cols:
            v = r[name]
            if name == "block_timestamp" and isinstance(v, str):
                v = datetime.fromisoformat(v)
            cols[name].append(v)
    arrays = {k: pa.array(v, type=schema.field(k).type) for k, v in cols.items()}
    return pa.Table.from_pydict(arrays, schema=schema).sort_by([
        ("block_number", "ascending"),
        ("transaction_index", "ascending"),
    ])


class ParquetRecordExporter:
    """Writes one Parquet file per record category."""
    def __init__(self, out_dir: str, codec: str = "zstd") -> None:
        self.out_dir = out_dir
        self.codec = codec
        os.makedirs(self.out_dir, exist_ok=True)

    def _path(self, category: Category) -> str:
        return os.path.join(self.out_dir, f"{category.value}.parquet")

    def write_category(self, category: Category, rows: Iterable[dict[str, Any]]) -> tuple[str, int]:
        path = self._path(category)
        tmp  = path + ".tmp"
        table = _rows_to_table(category, rows)
        pq.write_table(table, tmp, compression=self.codec)
        os.replace(tmp, path)
        return path, table.num_rows
