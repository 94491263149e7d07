from __future__ import annotations
import os, sqlite3
from dataclasses import fields
from typing import Any

from ..domain.models import RECORD_TYPES, TransactionRecord
from ..domain.value_types import Category, TxHash
from ..errors import DuplicateKeyError, FatalStartupError, PersistenceError
from ..ports.storage import CategoryStore

_SQL_TYPES: dict[str, str] = {
    "block_number": "INTEGER NOT NULL",
    "transaction_index": "INTEGER NOT NULL",
    "gas_used": "INTEGER NOT NULL",
    "tx_hash": "TEXT NOT NULL UNIQUE",
}

def _columns(category: Category) -> list[str]:
    return [f.name for f in fields(RECORD_TYPES[category])]

def _ddl(category: Category) -> str:
    cols = ",\n    ".join(f"{c} {_SQL_TYPES.get(c, 'TEXT NOT NULL')}" for c in _columns(category))
    return (
        f"CREATE TABLE IF NOT EXISTS {category.value} (\n"
        f"    id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
        f"    {cols},\n"
        f"    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP\n)"
    )


class SQLiteCategoryStore(CategoryStore):
    def __init__(self, conn: sqlite3.Connection, category: Category) -> None:
        self.conn = conn
        self.category = category
        self._cols = _columns(category)
        self._insert_sql = (
            f"INSERT INTO {category.value} ({', '.join(self._cols)}) "
            f"VALUES ({', '.join('?' for _ in self._cols)})"
        )

    async def find_by_tx_hash(self, tx_hash: TxHash) -> bool:
        try:
            cur = self.conn.execute(
                f"SELECT 1 FROM {self.category.value} WHERE tx_hash = ? LIMIT 1", (tx_hash.lower(),)
            )
            return cur.fetchone() is not None
        except sqlite3.Error as e:
            raise PersistenceError(f"lookup in {self.category.value} failed: {e}") from e

    async def insert(self, record: TransactionRecord) -> None:
        if record.category is not self.category:
            raise PersistenceError(f"{record.category.value} record routed to {self.category.value}")
        row = record.to_row()
        row["tx_hash"] = row["tx_hash"].lower()
        try:
            with self.conn:
                self.conn.execute(self._insert_sql, [row[c] for c in self._cols])
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise DuplicateKeyError(self.category.value, record.tx_hash) from e
            raise PersistenceError(f"insert into {self.category.value} failed: {e}") from e
        except sqlite3.Error as e:
            raise PersistenceError(f"insert into {self.category.value} failed: {e}") from e

    async def count(self) -> int:
        return self.conn.execute(f"SELECT COUNT(*) FROM {self.category.value}").fetchone()[0]

    def rows(self) -> list[dict[str, Any]]:
        cur = self.conn.execute(
            f"SELECT {', '.join(self._cols)} FROM {self.category.value} "
            f"ORDER BY block_number, transaction_index"
        )
        return [dict(r) for r in cur.fetchall()]


class SQLiteRecordStore:
    """One sqlite3 connection, four category tables. Use as an async context manager."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.conn: sqlite3.Connection | None = None
        self.stores: dict[Category, SQLiteCategoryStore] = {}

    def open(self) -> "SQLiteRecordStore":
        if self.conn is not None:
            return self
        try:
            if self.path != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            self.conn = sqlite3.connect(self.path)
            self.conn.row_factory = sqlite3.Row
            with self.conn:
                for cat in Category:
                    self.conn.execute(_ddl(cat))
                    self.conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{cat.value}_block ON {cat.value}(block_number)"
                    )
        except (sqlite3.Error, OSError) as e:
            self.close()
            raise FatalStartupError(f"cannot open database {self.path}: {e}") from e
        self.stores = {cat: SQLiteCategoryStore(self.conn, cat) for cat in Category}
        return self

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            self.stores = {}

    async def __aenter__(self) -> "SQLiteRecordStore":
        return self.open()

    async def __aexit__(self, *exc: object) -> None:
        self.close()

    def categories(self) -> list[SQLiteCategoryStore]:
        return [self.stores[cat] for cat in Category]

    async def counts(self) -> dict[str, int]:
        return {cat.value: await self.stores[cat].count() for cat in Category}
