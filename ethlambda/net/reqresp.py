"""Request/response protocol messages and their wire encoding.

Payloads are SSZ bytes compressed with the snappy framing format and
prefixed with the uncompressed length as an unsigned varint.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO, Union

from ethlambda.net.snappy import frame_compress, frame_decompress
from ethlambda.ssz import BYTES32, List, SszContainer
from ethlambda.storage.api import StorageError
from ethlambda.storage.store import Store
from ethlambda.types.block import SignedBlockWithAttestation
from ethlambda.types.checkpoint import Checkpoint

logger = logging.getLogger(__name__)

STATUS_PROTOCOL_V1 = "/leanconsensus/req/status/1/ssz_snappy"
BLOCKS_BY_ROOT_PROTOCOL_V1 = "/leanconsensus/req/blocks_by_root/1/ssz_snappy"

MAX_PAYLOAD_SIZE = 10 * 1024 * 1024
MAX_COMPRESSED_PAYLOAD_SIZE = 32 + MAX_PAYLOAD_SIZE + MAX_PAYLOAD_SIZE // 6 + 1024
MAX_REQUEST_BLOCKS = 1024

_U32_MAX = 2**32 - 1


def encode_varint(value: int) -> bytes:
    """Encode an unsigned 32-bit integer as a varint."""
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"{value} does not fit in 32 bits")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(buf: bytes) -> tuple[int, bytes]:
    """Decode a varint, returning the value and the bytes after it."""
    buf = bytes(buf)
    result = 0
    for index, byte in enumerate(buf[:5]):
        result |= (byte & 0x7F) << (7 * index)
        if not byte & 0x80:
            return result & _U32_MAX, buf[index + 1 :]
    raise ValueError("message size is bigger than 28 bits")


def encode_payload(encoded: bytes) -> bytes:
    """Length-prefix and frame-compress an SSZ payload."""
    encoded = bytes(encoded)
    return encode_varint(len(encoded)) + frame_compress(encoded)


def decode_payload(data: bytes) -> bytes:
    """Decode a varint-prefixed, snappy-framed payload."""
    data = bytes(data[:MAX_COMPRESSED_PAYLOAD_SIZE])
    if len(data) < 2:
        raise ValueError("message too short")
    size, rest = decode_varint(data)
    if size > MAX_PAYLOAD_SIZE:
        raise ValueError("message size exceeds maximum allowed")
    uncompressed = frame_decompress(rest)
    if len(uncompressed) != size:
        raise ValueError("uncompressed size does not match received size")
    return uncompressed


class ResponseResult(enum.IntEnum):
    """Result code sent ahead of every response payload."""

    SUCCESS = 0
    INVALID_REQUEST = 1


@dataclass(frozen=True)
class Status(SszContainer):
    """A peer's finalized checkpoint and head."""

    finalized: Checkpoint
    head: Checkpoint

    ssz_fields = (("finalized", Checkpoint.ssz_type), ("head", Checkpoint.ssz_type))


_ROOTS = List(BYTES32, MAX_REQUEST_BLOCKS)


@dataclass(frozen=True)
class BlocksByRootRequest:
    """Request for the blocks with the given roots."""

    roots: tuple[bytes, ...] = ()

    def __post_init__(self) -> None:
        roots = tuple(bytes(root) for root in self.roots)
        if len(roots) > MAX_REQUEST_BLOCKS:
            raise ValueError(f"{len(roots)} roots exceed limit {MAX_REQUEST_BLOCKS}")
        if any(len(root) != 32 for root in roots):
            raise ValueError("every root must be 32 bytes")
        object.__setattr__(self, "roots", roots)

    def __len__(self) -> int:
        return len(self.roots)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.roots)

    def as_ssz_bytes(self) -> bytes:
        return _ROOTS.encode(self.roots)

    @classmethod
    def from_ssz_bytes(cls, data: bytes) -> BlocksByRootRequest:
        return cls(tuple(_ROOTS.decode(data)))


Request = Union[Status, BlocksByRootRequest]
ResponsePayload = Union[Status, SignedBlockWithAttestation]


@dataclass(frozen=True)
class Response:
    """A result code with its payload."""

    result: ResponseResult
    payload: ResponsePayload


def _read_up_to(stream: BinaryIO, limit: int) -> bytes:
    data = bytearray()
    while len(data) < limit:
        piece = stream.read(limit - len(data))
        if not piece:
            break
        data += piece
    return bytes(data)


def _unknown_protocol(protocol: str) -> ValueError:
    return ValueError(f"unknown protocol: {protocol}")


class Codec:
    """Reads and writes requests and responses on binary streams."""

    def read_request(self, protocol: str, stream: BinaryIO) -> Request:
        payload = decode_payload(_read_up_to(stream, MAX_COMPRESSED_PAYLOAD_SIZE))
        if protocol == STATUS_PROTOCOL_V1:
            return Status.from_ssz_bytes(payload)
        if protocol == BLOCKS_BY_ROOT_PROTOCOL_V1:
            return BlocksByRootRequest.from_ssz_bytes(payload)
        raise _unknown_protocol(protocol)

    def read_response(self, protocol: str, stream: BinaryIO) -> Response:
        head = stream.read(1)
        if not head:
            raise EOFError("stream ended before the result code")
        try:
            result = ResponseResult(head[0])
        except ValueError:
            raise ValueError(f"invalid result code: {head[0]}") from None
        if result is not ResponseResult.SUCCESS:
            raise ValueError("non-success result in response")
        payload = decode_payload(_read_up_to(stream, MAX_COMPRESSED_PAYLOAD_SIZE))
        if protocol == STATUS_PROTOCOL_V1:
            return Response(result, Status.from_ssz_bytes(payload))
        if protocol == BLOCKS_BY_ROOT_PROTOCOL_V1:
            return Response(result, SignedBlockWithAttestation.from_ssz_bytes(payload))
        raise _unknown_protocol(protocol)

    def write_request(self, protocol: str, stream: BinaryIO, request: Request) -> None:
        logger.debug("Writing request %r", request)
        stream.write(encode_payload(request.as_ssz_bytes()))

    def write_response(self, protocol: str, stream: BinaryIO, response: Response) -> None:
        stream.write(bytes([int(response.result)]))
        stream.write(encode_payload(response.payload.as_ssz_bytes()))


def build_status(store: Store) -> Status:
    """Our status: the latest finalized checkpoint and the current head."""
    finalized = store.latest_finalized()
    head_root = store.head()
    head_block = store.get_block(head_root)
    if head_block is None:
        raise StorageError("head block is missing")
    return Status(finalized=finalized, head=Checkpoint(root=head_root, slot=head_block.slot))