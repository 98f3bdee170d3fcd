"""Validator signature and public key byte containers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from ethlambda.ssz import DecodeError

SIGNATURE_SIZE = 3600 - 488
"""Size in bytes of a serialized XMSS signature."""

PUBLIC_KEY_SIZE = 52
"""Size in bytes of a serialized XMSS public key."""


@dataclass(frozen=True)
class _FixedBytes:
    size: ClassVar[int]

    data: bytes = field(repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) != self.size:
            raise DecodeError(
                f"{type(self).__name__} needs {self.size} bytes, got {len(self.data)}"
            )

    def __bytes__(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class ValidatorSignature(_FixedBytes):
    """An XMSS signature produced by a validator."""

    size: ClassVar[int] = SIGNATURE_SIZE

    @classmethod
    def from_bytes(cls, data: bytes) -> ValidatorSignature:
        return cls(bytes(data))

    def to_bytes(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class ValidatorPublicKey(_FixedBytes):
    """An XMSS public key identifying a validator."""

    size: ClassVar[int] = PUBLIC_KEY_SIZE

    @classmethod
    def from_bytes(cls, data: bytes) -> ValidatorPublicKey:
        return cls(bytes(data))

    def to_bytes(self) -> bytes:
        return self.data