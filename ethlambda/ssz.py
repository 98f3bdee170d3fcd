"""Simple Serialize (SSZ) encoding and hash-tree-root merkleization."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

BYTES_PER_CHUNK = 32
BYTES_PER_OFFSET = 4
ZERO_CHUNK = bytes(BYTES_PER_CHUNK)


def _hash(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _build_zero_hashes(depth: int) -> tuple[bytes, ...]:
    hashes = [ZERO_CHUNK]
    for _ in range(depth):
        hashes.append(_hash(hashes[-1] + hashes[-1]))
    return tuple(hashes)


ZERO_HASHES = _build_zero_hashes(64)


class DecodeError(ValueError):
    """Raised when bytes are not a valid SSZ encoding of the expected type."""


def merkleize(chunks: Iterable[bytes], limit: int | None = None) -> bytes:
    """Merkle root of 32-byte chunks, padded with zero chunks up to ``limit``."""
    layer = [bytes(chunk) for chunk in chunks]
    if any(len(chunk) != BYTES_PER_CHUNK for chunk in layer):
        raise ValueError("every chunk must be 32 bytes")
    if limit is None:
        limit = len(layer)
    if len(layer) > limit:
        raise ValueError(f"{len(layer)} chunks exceed limit {limit}")
    depth = max(limit - 1, 0).bit_length()
    for level in range(depth):
        if len(layer) % 2:
            layer.append(ZERO_HASHES[level])
        layer = [_hash(left + right) for left, right in zip(layer[::2], layer[1::2])]
    return layer[0] if layer else ZERO_HASHES[depth]


def mix_in_length(root: bytes, length: int) -> bytes:
    """Combine a list root with the list's length."""
    return _hash(bytes(root) + length.to_bytes(BYTES_PER_CHUNK, "little"))


def _pack(data: bytes) -> list[bytes]:
    return [
        data[start : start + BYTES_PER_CHUNK].ljust(BYTES_PER_CHUNK, b"\x00")
        for start in range(0, len(data), BYTES_PER_CHUNK)
    ]


def _chunk_count(byte_length: int) -> int:
    return (byte_length + BYTES_PER_CHUNK - 1) // BYTES_PER_CHUNK


def _serialize(items: Iterable[tuple[SszType, Any]]) -> bytes:
    encoded = [(ssz_type.fixed_size() is None, ssz_type.encode(value)) for ssz_type, value in items]
    fixed_len = sum(BYTES_PER_OFFSET if variable else len(body) for variable, body in encoded)
    head = bytearray()
    tail = bytearray()
    for variable, body in encoded:
        if variable:
            head += (fixed_len + len(tail)).to_bytes(BYTES_PER_OFFSET, "little")
            tail += body
        else:
            head += body
    return bytes(head + tail)


def _deserialize(types: Sequence[SszType], data: bytes) -> list[Any]:
    data = bytes(data)
    sizes = [ssz_type.fixed_size() for ssz_type in types]
    fixed_len = sum(BYTES_PER_OFFSET if size is None else size for size in sizes)
    if len(data) < fixed_len:
        raise DecodeError(f"input of {len(data)} bytes shorter than fixed part of {fixed_len}")

    position = 0
    fixed_parts: list[bytes | None] = []
    offsets: list[int] = []
    for size in sizes:
        width = BYTES_PER_OFFSET if size is None else size
        piece = data[position : position + width]
        position += width
        if size is None:
            offsets.append(int.from_bytes(piece, "little"))
            fixed_parts.append(None)
        else:
            fixed_parts.append(piece)

    if offsets:
        if offsets[0] != fixed_len:
            raise DecodeError(f"first offset {offsets[0]} does not match fixed length {fixed_len}")
        bounds = list(zip(offsets, offsets[1:] + [len(data)]))
        if any(start > end for start, end in bounds):
            raise DecodeError("offsets are out of order or out of bounds")
        variable_parts = iter([data[start:end] for start, end in bounds])
    else:
        if len(data) != fixed_len:
            raise DecodeError(f"expected {fixed_len} bytes, got {len(data)}")
        variable_parts = iter(())

    return [
        ssz_type.decode(part if part is not None else next(variable_parts))
        for ssz_type, part in zip(types, fixed_parts)
    ]


class SszType(ABC):
    """An SSZ type descriptor: encodes, decodes and merkleizes values."""

    @abstractmethod
    def encode(self, value: Any) -> bytes:
        """Serialize ``value``."""

    @abstractmethod
    def decode(self, data: bytes) -> Any:
        """Deserialize ``data``, raising DecodeError when it is malformed."""

    @abstractmethod
    def hash_tree_root(self, value: Any) -> bytes:
        """The 32-byte hash tree root of ``value``."""

    @abstractmethod
    def fixed_size(self) -> int | None:
        """Encoded size in bytes, or None for variable-size types."""


@dataclass(frozen=True)
class Uint(SszType):
    """Unsigned little-endian integer of the given bit width."""

    bits: int

    def __post_init__(self) -> None:
        if self.bits not in (8, 16, 32, 64, 128, 256):
            raise ValueError(f"unsupported integer width: {self.bits}")

    def encode(self, value: Any) -> bytes:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"uint{self.bits} expects an int, got {type(value).__name__}")
        if not 0 <= value < 1 << self.bits:
            raise ValueError(f"{value} out of range for uint{self.bits}")
        return value.to_bytes(self.bits // 8, "little")

    def decode(self, data: bytes) -> int:
        if len(data) != self.bits // 8:
            raise DecodeError(f"expected {self.bits // 8} bytes for uint{self.bits}, got {len(data)}")
        return int.from_bytes(data, "little")

    def hash_tree_root(self, value: Any) -> bytes:
        return self.encode(value).ljust(BYTES_PER_CHUNK, b"\x00")

    def fixed_size(self) -> int:
        return self.bits // 8


@dataclass(frozen=True)
class ByteVector(SszType):
    """Fixed-length byte string."""

    length: int

    def encode(self, value: Any) -> bytes:
        value = bytes(value)
        if len(value) != self.length:
            raise ValueError(f"expected {self.length} bytes, got {len(value)}")
        return value

    def decode(self, data: bytes) -> bytes:
        if len(data) != self.length:
            raise DecodeError(f"expected {self.length} bytes, got {len(data)}")
        return bytes(data)

    def hash_tree_root(self, value: Any) -> bytes:
        return merkleize(_pack(self.encode(value)), _chunk_count(self.length))

    def fixed_size(self) -> int:
        return self.length


@dataclass(frozen=True)
class ByteList(SszType):
    """Variable-length byte string with a maximum length."""

    limit: int

    def encode(self, value: Any) -> bytes:
        value = bytes(value)
        if len(value) > self.limit:
            raise ValueError(f"{len(value)} bytes exceed limit {self.limit}")
        return value

    def decode(self, data: bytes) -> bytes:
        if len(data) > self.limit:
            raise DecodeError(f"{len(data)} bytes exceed limit {self.limit}")
        return bytes(data)

    def hash_tree_root(self, value: Any) -> bytes:
        data = self.encode(value)
        return mix_in_length(merkleize(_pack(data), _chunk_count(self.limit)), len(data))

    def fixed_size(self) -> None:
        return None


@dataclass(frozen=True)
class List(SszType):
    """Variable-length homogeneous list with a maximum length."""

    element: SszType
    limit: int

    def encode(self, value: Any) -> bytes:
        items = list(value)
        if len(items) > self.limit:
            raise ValueError(f"{len(items)} elements exceed limit {self.limit}")
        return _serialize((self.element, item) for item in items)

    def decode(self, data: bytes) -> list[Any]:
        size = self.element.fixed_size()
        if size is not None:
            if size == 0 or len(data) % size:
                raise DecodeError(f"{len(data)} bytes is not a multiple of element size {size}")
            count = len(data) // size
        elif not data:
            return []
        else:
            if len(data) < BYTES_PER_OFFSET:
                raise DecodeError("input too short for an offset")
            first = int.from_bytes(data[:BYTES_PER_OFFSET], "little")
            if first == 0 or first % BYTES_PER_OFFSET:
                raise DecodeError(f"invalid first offset {first}")
            count = first // BYTES_PER_OFFSET
        if count > self.limit:
            raise DecodeError(f"{count} elements exceed limit {self.limit}")
        return _deserialize([self.element] * count, data)

    def hash_tree_root(self, value: Any) -> bytes:
        items = list(value)
        if len(items) > self.limit:
            raise ValueError(f"{len(items)} elements exceed limit {self.limit}")
        if isinstance(self.element, Uint):
            packed = b"".join(self.element.encode(item) for item in items)
            root = merkleize(_pack(packed), _chunk_count(self.limit * self.element.fixed_size()))
        else:
            root = merkleize((self.element.hash_tree_root(item) for item in items), self.limit)
        return mix_in_length(root, len(items))

    def fixed_size(self) -> None:
        return None


@dataclass(frozen=True)
class Vector(SszType):
    """Fixed-length homogeneous sequence."""

    element: SszType
    length: int

    def encode(self, value: Any) -> bytes:
        items = list(value)
        if len(items) != self.length:
            raise ValueError(f"expected {self.length} elements, got {len(items)}")
        return _serialize((self.element, item) for item in items)

    def decode(self, data: bytes) -> list[Any]:
        return _deserialize([self.element] * self.length, data)

    def hash_tree_root(self, value: Any) -> bytes:
        items = list(value)
        if len(items) != self.length:
            raise ValueError(f"expected {self.length} elements, got {len(items)}")
        if isinstance(self.element, Uint):
            packed = b"".join(self.element.encode(item) for item in items)
            return merkleize(_pack(packed), _chunk_count(self.length * self.element.fixed_size()))
        return merkleize((self.element.hash_tree_root(item) for item in items), self.length)

    def fixed_size(self) -> int | None:
        size = self.element.fixed_size()
        return None if size is None else size * self.length


@dataclass(frozen=True)
class Bitlist(SszType):
    """Variable-length bit sequence, encoded with a trailing delimiter bit."""

    limit: int

    def _as_int(self, value: Any) -> tuple[int, int]:
        bits = [bool(bit) for bit in value]
        if len(bits) > self.limit:
            raise ValueError(f"{len(bits)} bits exceed limit {self.limit}")
        return sum(1 << position for position, bit in enumerate(bits) if bit), len(bits)

    def encode(self, value: Any) -> bytes:
        number, length = self._as_int(value)
        return (number | 1 << length).to_bytes(length // 8 + 1, "little")

    def decode(self, data: bytes) -> tuple[bool, ...]:
        if not data:
            raise DecodeError("bitlist must contain at least one byte")
        if data[-1] == 0:
            raise DecodeError("bitlist is missing its delimiter bit")
        number = int.from_bytes(data, "little")
        length = number.bit_length() - 1
        if length > self.limit:
            raise DecodeError(f"{length} bits exceed limit {self.limit}")
        return tuple(bool(number >> position & 1) for position in range(length))

    def hash_tree_root(self, value: Any) -> bytes:
        number, length = self._as_int(value)
        packed = number.to_bytes((length + 7) // 8, "little")
        return mix_in_length(merkleize(_pack(packed), (self.limit + 255) // 256), length)

    def fixed_size(self) -> None:
        return None


@dataclass(frozen=True)
class Container(SszType):
    """Ordered set of named fields; decodes through ``factory`` when given."""

    fields: tuple[tuple[str, SszType], ...]
    factory: Callable[..., Any] | None = None

    def _values(self, value: Any) -> list[Any]:
        if isinstance(value, Mapping):
            return [value[name] for name, _ in self.fields]
        return [getattr(value, name) for name, _ in self.fields]

    def encode(self, value: Any) -> bytes:
        return _serialize(zip((ssz_type for _, ssz_type in self.fields), self._values(value)))

    def decode(self, data: bytes) -> Any:
        values = _deserialize([ssz_type for _, ssz_type in self.fields], data)
        kwargs = dict(zip((name for name, _ in self.fields), values))
        return self.factory(**kwargs) if self.factory is not None else kwargs

    def hash_tree_root(self, value: Any) -> bytes:
        return merkleize(
            ssz_type.hash_tree_root(field_value)
            for (_, ssz_type), field_value in zip(self.fields, self._values(value))
        )

    def fixed_size(self) -> int | None:
        sizes = [ssz_type.fixed_size() for _, ssz_type in self.fields]
        return None if None in sizes else sum(sizes)


class SszContainer:
    """Base for dataclasses with an SSZ layout given by ``ssz_fields``."""

    ssz_fields: ClassVar[tuple[tuple[str, SszType], ...]] = ()
    ssz_type: ClassVar[Container]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.ssz_type = Container(tuple(cls.ssz_fields), cls)

    def as_ssz_bytes(self) -> bytes:
        return type(self).ssz_type.encode(self)

    @classmethod
    def from_ssz_bytes(cls, data: bytes) -> Any:
        return cls.ssz_type.decode(data)

    def hash_tree_root(self) -> bytes:
        return type(self).ssz_type.hash_tree_root(self)


UINT8 = Uint(8)
UINT32 = Uint(32)
UINT64 = Uint(64)
BYTES32 = ByteVector(32)