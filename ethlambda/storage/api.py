"""Storage backend interface: tables, read views and atomic write batches."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from types import TracebackType


class Table(enum.Enum):
    """Tables of the storage layer; each holds byte keys mapped to byte values."""

    BLOCKS = "blocks"
    """Block root -> Block."""
    STATES = "states"
    """Block root -> State."""
    LATEST_KNOWN_ATTESTATIONS = "latest_known_attestations"
    """Validator index -> AttestationData counted by fork choice."""
    LATEST_NEW_ATTESTATIONS = "latest_new_attestations"
    """Validator index -> pending AttestationData."""
    GOSSIP_SIGNATURES = "gossip_signatures"
    """Signature key -> ValidatorSignature."""
    AGGREGATED_PAYLOADS = "aggregated_payloads"
    """Signature key -> list of AggregatedSignatureProof."""
    METADATA = "metadata"
    """Field name -> scalar store value."""


ALL_TABLES: tuple[Table, ...] = tuple(Table)
"""Every table, in declaration order."""


class StorageError(Exception):
    """Raised when a storage operation cannot be carried out."""


class StorageReadView(ABC):
    """Read-only access to the storage."""

    @abstractmethod
    def get(self, table: Table, key: bytes) -> bytes | None:
        """The value stored under ``key`` in ``table``, or None when absent."""

    @abstractmethod
    def prefix_iterator(self, table: Table, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        """Iterate over the (key, value) pairs of ``table`` whose key starts with ``prefix``."""

    def close(self) -> None:
        """Release whatever the view holds."""

    def __enter__(self) -> StorageReadView:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()


class StorageWriteBatch(ABC):
    """Writes collected in a batch and applied atomically on commit.

    Used as a context manager, the batch is committed when the block exits
    normally and discarded when it raises.
    """

    @abstractmethod
    def put_batch(self, table: Table, batch: Iterable[tuple[bytes, bytes]]) -> None:
        """Queue (key, value) pairs to be written into ``table``."""

    @abstractmethod
    def delete_batch(self, table: Table, keys: Iterable[bytes]) -> None:
        """Queue ``keys`` to be removed from ``table``."""

    @abstractmethod
    def commit(self) -> None:
        """Apply every queued write; the batch cannot be used afterwards."""

    def __enter__(self) -> StorageWriteBatch:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.commit()


class StorageBackend(ABC):
    """A store of tables that hands out read views and write batches."""

    @abstractmethod
    def begin_read(self) -> StorageReadView:
        """Open a read-only view."""

    @abstractmethod
    def begin_write(self) -> StorageWriteBatch:
        """Open a write batch."""