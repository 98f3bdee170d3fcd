from collections.abc import Iterable, Iterator

import pytest

from ethlambda.storage.api import (
    ALL_TABLES,
    StorageBackend,
    StorageError,
    StorageReadView,
    StorageWriteBatch,
    Table,
)

TABLE_NAMES = [
    "blocks",
    "states",
    "latest_known_attestations",
    "latest_new_attestations",
    "gossip_signatures",
    "aggregated_payloads",
    "metadata",
]


class RecordingBatch(StorageWriteBatch):
    def __init__(self) -> None:
        self.puts: list[tuple[Table, list[tuple[bytes, bytes]]]] = []
        self.deletes: list[tuple[Table, list[bytes]]] = []
        self.commits = 0

    def put_batch(self, table: Table, batch: Iterable[tuple[bytes, bytes]]) -> None:
        self.puts.append((table, list(batch)))

    def delete_batch(self, table: Table, keys: Iterable[bytes]) -> None:
        self.deletes.append((table, list(keys)))

    def commit(self) -> None:
        self.commits += 1


class ClosingView(StorageReadView):
    def __init__(self) -> None:
        self.closed = False

    def get(self, table: Table, key: bytes) -> bytes | None:
        return key if table is Table.METADATA else None

    def prefix_iterator(self, table: Table, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        return iter([(prefix, prefix)])

    def close(self) -> None:
        self.closed = True


def test_all_tables_lists_every_table_in_order():
    looked_up = [Table(name) for name in TABLE_NAMES]
    assert list(ALL_TABLES) == looked_up
    assert [table.value for table in ALL_TABLES] == TABLE_NAMES


def test_tables_are_distinct():
    looked_up = {Table(name) for name in TABLE_NAMES}
    assert len(looked_up) == len(ALL_TABLES)
    assert Table("metadata") is Table.METADATA


def test_unknown_table_name_is_rejected():
    with pytest.raises(ValueError):
        Table("no_such_table")


@pytest.mark.parametrize("cls", [StorageBackend, StorageReadView, StorageWriteBatch])
def test_interfaces_are_abstract(cls):
    with pytest.raises(TypeError):
        cls()


def test_write_batch_context_commits_on_success():
    batch = RecordingBatch()
    entered = StorageWriteBatch.__enter__(batch)
    entered.put_batch(Table.BLOCKS, [(b"k", b"v")])
    StorageWriteBatch.__exit__(batch, None, None, None)
    assert entered is batch
    assert batch.commits == 1
    assert batch.puts == [(Table.BLOCKS, [(b"k", b"v")])]


def test_write_batch_context_discards_on_error():
    batch = RecordingBatch()
    StorageWriteBatch.__enter__(batch)
    batch.delete_batch(Table.STATES, [b"k"])
    error = RuntimeError("boom")
    suppressed = StorageWriteBatch.__exit__(batch, RuntimeError, error, None)
    assert not suppressed
    assert batch.commits == 0
    assert batch.deletes == [(Table.STATES, [b"k"])]


def test_read_view_context_closes():
    view = ClosingView()
    entered = StorageReadView.__enter__(view)
    assert entered is view
    assert entered.get(Table.METADATA, b"x") == b"x"
    assert list(entered.prefix_iterator(Table.BLOCKS, b"p")) == [(b"p", b"p")]
    assert view.closed is False
    StorageReadView.__exit__(view, None, None, None)
    assert view.closed is True


def test_storage_error_is_an_exception():
    error = StorageError("failed")
    assert isinstance(error, Exception)
    assert str(error) == "failed"