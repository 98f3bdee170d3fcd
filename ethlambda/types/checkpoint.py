"""Checkpoints and chain configuration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ethlambda.ssz import BYTES32, UINT64, SszContainer

VALIDATOR_REGISTRY_LIMIT = 4096
"""Maximum number of validators in the registry."""

U64_MAX = 2**64 - 1
ZERO_ROOT = bytes(32)


def parse_decimal_u64(value: Any) -> int:
    """Parse a u64 from its decimal string form."""
    error = ValueError("Failed to deserialize u64 value")
    if not isinstance(value, str):
        raise error
    digits = value[1:] if value.startswith("+") else value
    if not digits or not digits.isascii() or not digits.isdigit():
        raise error
    number = int(digits)
    if number > U64_MAX:
        raise error
    return number


def root_to_hex(root: bytes) -> str:
    """Render a 32-byte root as a 0x-prefixed lowercase hex string."""
    return "0x" + bytes(root).hex()


def root_from_hex(text: Any) -> bytes:
    """Parse a 0x-prefixed hex string holding exactly 32 bytes."""
    if not isinstance(text, str) or not text.startswith("0x"):
        raise ValueError(f"root must be a 0x-prefixed hex string: {text!r}")
    try:
        root = bytes.fromhex(text[2:])
    except ValueError as exc:
        raise ValueError(f"invalid hex root: {text!r}") from exc
    if len(root) != 32:
        raise ValueError(f"root must be 32 bytes, got {len(root)}")
    return root


def _require_u64(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= U64_MAX:
        raise ValueError(f"{name} must be an unsigned 64-bit integer")
    return value


@dataclass(frozen=True)
class Checkpoint(SszContainer):
    """A block root together with its slot."""

    root: bytes
    slot: int

    ssz_fields = (("root", BYTES32), ("slot", UINT64))

    def to_json(self) -> dict[str, Any]:
        return {"root": root_to_hex(self.root), "slot": self.slot}

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> Checkpoint:
        try:
            root, slot = data["root"], data["slot"]
        except (KeyError, TypeError) as exc:
            raise ValueError("checkpoint needs 'root' and 'slot'") from exc
        return cls(root=root_from_hex(root), slot=parse_decimal_u64(slot))


@dataclass(frozen=True)
class ChainConfig(SszContainer):
    """Chain-wide configuration parameters."""

    genesis_time: int

    ssz_fields = (("genesis_time", UINT64),)

    def to_json(self) -> dict[str, Any]:
        return {"genesis_time": self.genesis_time}

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ChainConfig:
        try:
            genesis_time = data["genesis_time"]
        except (KeyError, TypeError) as exc:
            raise ValueError("chain config needs 'genesis_time'") from exc
        return cls(genesis_time=_require_u64(genesis_time, "genesis_time"))