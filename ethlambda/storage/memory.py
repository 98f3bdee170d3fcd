"""Thread-safe storage backend that keeps every table in memory."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator

from ethlambda.storage.api import (
    ALL_TABLES,
    StorageBackend,
    StorageError,
    StorageReadView,
    StorageWriteBatch,
    Table,
)

_DELETE = object()


class _Tables:
    """Table data shared by a backend and the views and batches it creates."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.data: dict[Table, dict[bytes, bytes]] = {table: {} for table in ALL_TABLES}

    def table(self, table: Table) -> dict[bytes, bytes]:
        try:
            return self.data[table]
        except KeyError:
            raise StorageError(f"unknown table: {table!r}") from None


class _InMemoryReadView(StorageReadView):
    def __init__(self, tables: _Tables) -> None:
        self._tables = tables

    def get(self, table: Table, key: bytes) -> bytes | None:
        with self._tables.lock:
            return self._tables.table(table).get(bytes(key))

    def prefix_iterator(self, table: Table, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        prefix = bytes(prefix)
        with self._tables.lock:
            entries = sorted(
                (key, value)
                for key, value in self._tables.table(table).items()
                if key.startswith(prefix)
            )
        return iter(entries)


class _InMemoryWriteBatch(StorageWriteBatch):
    def __init__(self, tables: _Tables) -> None:
        self._tables = tables
        self._ops: dict[Table, dict[bytes, object]] = {}
        self._committed = False

    def _table_ops(self, table: Table) -> dict[bytes, object]:
        if self._committed:
            raise StorageError("write batch has already been committed")
        self._tables.table(table)
        return self._ops.setdefault(table, {})

    def put_batch(self, table: Table, batch: Iterable[tuple[bytes, bytes]]) -> None:
        ops = self._table_ops(table)
        for key, value in batch:
            ops[bytes(key)] = bytes(value)

    def delete_batch(self, table: Table, keys: Iterable[bytes]) -> None:
        ops = self._table_ops(table)
        for key in keys:
            ops[bytes(key)] = _DELETE

    def commit(self) -> None:
        if self._committed:
            raise StorageError("write batch has already been committed")
        self._committed = True
        with self._tables.lock:
            for table, ops in self._ops.items():
                table_data = self._tables.data[table]
                for key, op in ops.items():
                    if op is _DELETE:
                        table_data.pop(key, None)
                    else:
                        table_data[key] = op
        self._ops = {}


class InMemoryBackend(StorageBackend):
    """In-memory storage with every table created empty.

    Suitable for tests and ephemeral nodes; data is lost when the process ends.
    Within a batch the last operation on a key wins.
    """

    def __init__(self) -> None:
        self._tables = _Tables()

    def begin_read(self) -> StorageReadView:
        return _InMemoryReadView(self._tables)

    def begin_write(self) -> StorageWriteBatch:
        return _InMemoryWriteBatch(self._tables)