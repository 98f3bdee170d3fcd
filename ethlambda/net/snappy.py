"""Snappy compression: the raw block format and the framing format."""

from __future__ import annotations

U32_MAX = 2**32 - 1
MAX_BLOCK_SIZE = 65536
"""Largest amount of uncompressed data carried by one frame chunk."""

STREAM_IDENTIFIER = b"\xff\x06\x00\x00sNaPpY"
_STREAM_BODY = b"sNaPpY"

_CHUNK_COMPRESSED = 0x00
_CHUNK_UNCOMPRESSED = 0x01
_CHUNK_STREAM_IDENTIFIER = 0xFF
_MAX_COPY2_OFFSET = 0xFFFF


class SnappyError(ValueError):
    """Raised when data is not valid snappy-compressed input."""


def _make_crc_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        crc = index
        for _ in range(8):
            crc = (crc >> 1) ^ 0x82F63B78 if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _make_crc_table()


def _crc32c(data: bytes) -> int:
    crc = 0xFFFFFFFF
    for byte in data:
        crc = _CRC_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def _masked_crc(data: bytes) -> int:
    crc = _crc32c(data)
    return (((crc >> 15) | (crc << 17)) + 0xA282EAD8) & 0xFFFFFFFF


def _varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift, index in enumerate(range(pos, min(pos + 5, len(data)))):
        byte = data[index]
        result |= (byte & 0x7F) << (7 * shift)
        if not byte & 0x80:
            if result > U32_MAX:
                raise SnappyError("uncompressed length does not fit in 32 bits")
            return result, index + 1
    raise SnappyError("invalid uncompressed length header")


def _emit_literal(out: bytearray, literal: bytes) -> None:
    if not literal:
        return
    n = len(literal) - 1
    if n < 60:
        out.append(n << 2)
    else:
        count = (n.bit_length() + 7) // 8
        out.append((59 + count) << 2)
        out += n.to_bytes(count, "little")
    out += literal


def _emit_copy(out: bytearray, offset: int, length: int) -> None:
    while length > 0:
        chunk = min(length, 64)
        if 4 <= chunk <= 11 and offset < 2048:
            out.append(1 | ((chunk - 4) << 2) | ((offset >> 8) << 5))
            out.append(offset & 0xFF)
        else:
            out.append(2 | ((chunk - 1) << 2))
            out += offset.to_bytes(2, "little")
        length -= chunk


def compress(data: bytes) -> bytes:
    """Compress ``data`` into the raw snappy block format."""
    data = bytes(data)
    size = len(data)
    if size > U32_MAX:
        raise SnappyError("input too large for snappy")
    out = bytearray(_varint(size))
    table: dict[bytes, int] = {}
    pos = 0
    literal_start = 0
    while pos + 4 <= size:
        key = data[pos : pos + 4]
        candidate = table.get(key)
        table[key] = pos
        if candidate is None or pos - candidate > _MAX_COPY2_OFFSET:
            pos += 1
            continue
        length = 4
        while pos + length < size and data[candidate + length] == data[pos + length]:
            length += 1
        _emit_literal(out, data[literal_start:pos])
        _emit_copy(out, pos - candidate, length)
        pos += length
        literal_start = pos
    _emit_literal(out, data[literal_start:])
    return bytes(out)


def decompress(data: bytes) -> bytes:
    """Decompress a raw snappy block."""
    data = bytes(data)
    expected, pos = _read_varint(data, 0)
    end = len(data)
    out = bytearray()
    while pos < end:
        tag = data[pos]
        pos += 1
        kind = tag & 3
        if kind == 0:
            length = tag >> 2
            if length >= 60:
                count = length - 59
                if pos + count > end:
                    raise SnappyError("truncated literal length")
                length = int.from_bytes(data[pos : pos + count], "little")
                pos += count
            length += 1
            if pos + length > end:
                raise SnappyError("truncated literal")
            out += data[pos : pos + length]
            pos += length
        else:
            if kind == 1:
                if pos + 1 > end:
                    raise SnappyError("truncated copy")
                length = 4 + ((tag >> 2) & 7)
                offset = ((tag >> 5) << 8) | data[pos]
                pos += 1
            else:
                width = 2 if kind == 2 else 4
                if pos + width > end:
                    raise SnappyError("truncated copy")
                length = 1 + (tag >> 2)
                offset = int.from_bytes(data[pos : pos + width], "little")
                pos += width
            if offset == 0 or offset > len(out):
                raise SnappyError(f"invalid copy offset {offset}")
            start = len(out) - offset
            if offset >= length:
                out += out[start : start + length]
            else:
                pattern = bytes(out[start:])
                out += (pattern * (length // offset + 1))[:length]
        if len(out) > expected:
            raise SnappyError("decompressed data exceeds declared length")
    if len(out) != expected:
        raise SnappyError(
            f"decompressed {len(out)} bytes but header declared {expected}"
        )
    return bytes(out)


def frame_compress(data: bytes) -> bytes:
    """Compress ``data`` into the snappy framing format."""
    data = bytes(data)
    out = bytearray(STREAM_IDENTIFIER)
    for start in range(0, len(data), MAX_BLOCK_SIZE):
        block = data[start : start + MAX_BLOCK_SIZE]
        checksum = _masked_crc(block).to_bytes(4, "little")
        compressed = compress(block)
        if len(compressed) >= len(block) - len(block) // 8:
            chunk_type, body = _CHUNK_UNCOMPRESSED, block
        else:
            chunk_type, body = _CHUNK_COMPRESSED, compressed
        payload = checksum + body
        out.append(chunk_type)
        out += len(payload).to_bytes(3, "little")
        out += payload
    return bytes(out)


def frame_decompress(data: bytes) -> bytes:
    """Decompress data in the snappy framing format."""
    data = bytes(data)
    end = len(data)
    pos = 0
    seen_identifier = False
    out = bytearray()
    while pos < end:
        if pos + 4 > end:
            raise SnappyError("truncated chunk header")
        chunk_type = data[pos]
        size = int.from_bytes(data[pos + 1 : pos + 4], "little")
        pos += 4
        if pos + size > end:
            raise SnappyError("truncated chunk")
        body = data[pos : pos + size]
        pos += size
        if chunk_type == _CHUNK_STREAM_IDENTIFIER:
            if body != _STREAM_BODY:
                raise SnappyError("invalid stream identifier")
            seen_identifier = True
            continue
        if not seen_identifier:
            raise SnappyError("missing stream identifier")
        if chunk_type in (_CHUNK_COMPRESSED, _CHUNK_UNCOMPRESSED):
            if size < 4:
                raise SnappyError("chunk too short for its checksum")
            checksum = int.from_bytes(body[:4], "little")
            block = decompress(body[4:]) if chunk_type == _CHUNK_COMPRESSED else body[4:]
            if len(block) > MAX_BLOCK_SIZE:
                raise SnappyError("chunk exceeds maximum block size")
            if _masked_crc(block) != checksum:
                raise SnappyError("checksum mismatch")
            out += block
        elif 0x80 <= chunk_type <= 0xFE:
            continue
        else:
            raise SnappyError(f"unskippable reserved chunk type {chunk_type:#04x}")
    return bytes(out)