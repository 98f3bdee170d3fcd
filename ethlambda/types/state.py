"""Consensus state, validators and genesis description."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ethlambda.ssz import BYTES32, UINT64, Bitlist, ByteVector, List, SszContainer
from ethlambda.types.block import BlockBody, BlockHeader
from ethlambda.types.checkpoint import (
    VALIDATOR_REGISTRY_LIMIT,
    ZERO_ROOT,
    ChainConfig,
    Checkpoint,
    root_from_hex,
    root_to_hex,
)
from ethlambda.types.signature import PUBLIC_KEY_SIZE, ValidatorPublicKey

HISTORICAL_ROOTS_LIMIT = 2**18
"""Maximum number of historical block roots kept in the state."""

HISTORICAL_BLOCK_HASHES = List(BYTES32, HISTORICAL_ROOTS_LIMIT)
JUSTIFIED_SLOTS = Bitlist(HISTORICAL_ROOTS_LIMIT)
JUSTIFICATION_ROOTS = List(BYTES32, HISTORICAL_ROOTS_LIMIT)
JUSTIFICATION_VALIDATORS = Bitlist(HISTORICAL_ROOTS_LIMIT * VALIDATOR_REGISTRY_LIMIT)


@dataclass(frozen=True)
class Validator(SszContainer):
    """A validator's public key and registry index."""

    pubkey: bytes
    index: int

    ssz_fields = (("pubkey", ByteVector(PUBLIC_KEY_SIZE)), ("index", UINT64))

    def __post_init__(self) -> None:
        pubkey = bytes(self.pubkey)
        if len(pubkey) != PUBLIC_KEY_SIZE:
            raise ValueError(f"pubkey needs {PUBLIC_KEY_SIZE} bytes, got {len(pubkey)}")
        object.__setattr__(self, "pubkey", pubkey)

    def get_pubkey(self) -> ValidatorPublicKey:
        return ValidatorPublicKey.from_bytes(self.pubkey)

    def to_json(self) -> dict[str, Any]:
        return {"pubkey": self.pubkey.hex(), "index": self.index}


VALIDATORS = List(Validator.ssz_type, VALIDATOR_REGISTRY_LIMIT)


def _bits(values: Iterable[Any]) -> tuple[bool, ...]:
    return tuple(bool(bit) for bit in values)


@dataclass(frozen=True)
class Genesis:
    """Genesis description as read from a JSON configuration."""

    config: ChainConfig
    latest_justified: Checkpoint
    latest_finalized: Checkpoint
    historical_block_hashes: tuple[bytes, ...]
    justified_slots: tuple[bool, ...]
    justifications_roots: tuple[str, ...]
    justifications_validators: str

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> Genesis:
        try:
            config = data["config"]
            justified = data["latest_justified"]
            finalized = data["latest_finalized"]
            hashes = data["historical_block_hashes"]
            justified_slots = data["justified_slots"]
            roots = data["justifications_roots"]
            validators = data["justifications_validators"]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"genesis is missing field {exc}") from exc
        if not isinstance(justified_slots, list) or not all(
            isinstance(slot, bool) for slot in justified_slots
        ):
            raise ValueError("justified_slots must be a list of booleans")
        if not isinstance(roots, list) or not all(isinstance(root, str) for root in roots):
            raise ValueError("justifications_roots must be a list of strings")
        if not isinstance(validators, str):
            raise ValueError("justifications_validators must be a string")
        if not isinstance(hashes, list):
            raise ValueError("historical_block_hashes must be a list")
        return cls(
            config=ChainConfig.from_json(config),
            latest_justified=Checkpoint.from_json(justified),
            latest_finalized=Checkpoint.from_json(finalized),
            historical_block_hashes=tuple(root_from_hex(item) for item in hashes),
            justified_slots=tuple(justified_slots),
            justifications_roots=tuple(roots),
            justifications_validators=validators,
        )


@dataclass(frozen=True)
class State(SszContainer):
    """The main consensus state object."""

    config: ChainConfig
    slot: int
    latest_block_header: BlockHeader
    latest_justified: Checkpoint
    latest_finalized: Checkpoint
    historical_block_hashes: tuple[bytes, ...] = ()
    justified_slots: tuple[bool, ...] = ()
    validators: tuple[Validator, ...] = ()
    justifications_roots: tuple[bytes, ...] = ()
    justifications_validators: tuple[bool, ...] = ()

    ssz_fields = (
        ("config", ChainConfig.ssz_type),
        ("slot", UINT64),
        ("latest_block_header", BlockHeader.ssz_type),
        ("latest_justified", Checkpoint.ssz_type),
        ("latest_finalized", Checkpoint.ssz_type),
        ("historical_block_hashes", HISTORICAL_BLOCK_HASHES),
        ("justified_slots", JUSTIFIED_SLOTS),
        ("validators", VALIDATORS),
        ("justifications_roots", JUSTIFICATION_ROOTS),
        ("justifications_validators", JUSTIFICATION_VALIDATORS),
    )

    def __post_init__(self) -> None:
        validators = tuple(self.validators)
        if len(validators) > VALIDATOR_REGISTRY_LIMIT:
            raise ValueError(
                f"{len(validators)} validators exceed limit {VALIDATOR_REGISTRY_LIMIT}"
            )
        object.__setattr__(self, "validators", validators)
        object.__setattr__(
            self, "historical_block_hashes", tuple(bytes(h) for h in self.historical_block_hashes)
        )
        object.__setattr__(
            self, "justifications_roots", tuple(bytes(r) for r in self.justifications_roots)
        )
        object.__setattr__(self, "justified_slots", _bits(self.justified_slots))
        object.__setattr__(
            self, "justifications_validators", _bits(self.justifications_validators)
        )

    @classmethod
    def from_genesis(cls, genesis: Genesis, validators: Iterable[Validator]) -> State:
        """Build the genesis state from a genesis description and validator set."""
        header = BlockHeader(
            slot=0,
            proposer_index=0,
            parent_root=ZERO_ROOT,
            state_root=ZERO_ROOT,
            body_root=BlockBody().hash_tree_root(),
        )
        return cls(
            config=genesis.config,
            slot=0,
            latest_block_header=header,
            latest_justified=genesis.latest_justified,
            latest_finalized=genesis.latest_finalized,
            validators=tuple(validators),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "config": self.config.to_json(),
            "slot": self.slot,
            "latest_block_header": self.latest_block_header.to_json(),
            "latest_justified": self.latest_justified.to_json(),
            "latest_finalized": self.latest_finalized.to_json(),
            "historical_block_hashes": [root_to_hex(h) for h in self.historical_block_hashes],
            "justified_slots": "0x" + JUSTIFIED_SLOTS.encode(self.justified_slots).hex(),
            "validators": [validator.to_json() for validator in self.validators],
            "justifications_roots": [root_to_hex(r) for r in self.justifications_roots],
            "justifications_validators": "0x"
            + JUSTIFICATION_VALIDATORS.encode(self.justifications_validators).hex(),
        }