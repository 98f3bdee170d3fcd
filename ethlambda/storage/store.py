"""Fork-choice store kept in a pluggable storage backend."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from ethlambda.ssz import BYTES32, UINT64, DecodeError, List, SszType
from ethlambda.storage.api import StorageBackend, StorageError, Table
from ethlambda.types.attestation import AttestationData
from ethlambda.types.block import AggregatedSignatureProof, Block, BlockBody
from ethlambda.types.checkpoint import ZERO_ROOT, ChainConfig, Checkpoint
from ethlambda.types.signature import ValidatorSignature
from ethlambda.types.state import State

logger = logging.getLogger(__name__)

SignatureKey = Tuple[int, bytes]
"""(validator_index, attestation_data_root): indexes signatures by validator and message."""

KEY_TIME = b"time"
KEY_CONFIG = b"config"
KEY_HEAD = b"head"
KEY_SAFE_TARGET = b"safe_target"
KEY_LATEST_JUSTIFIED = b"latest_justified"
KEY_LATEST_FINALIZED = b"latest_finalized"

_PROOF_LIST = List(AggregatedSignatureProof.ssz_type, 2**32)


def _encode_signature_key(key: SignatureKey) -> bytes:
    validator_id, root = key
    return UINT64.encode(validator_id) + BYTES32.encode(root)


def _decode_signature_key(data: bytes) -> SignatureKey:
    return UINT64.decode(data[:8]), BYTES32.decode(data[8:])


@dataclass(frozen=True)
class ForkCheckpoints:
    """Head to set, plus justified and finalized checkpoints to set when given."""

    head: bytes
    justified: Optional[Checkpoint] = None
    finalized: Optional[Checkpoint] = None

    @classmethod
    def head_only(cls, head: bytes) -> ForkCheckpoints:
        """An update that changes only the head."""
        return cls(head=head)


class Store:
    """Node storage: metadata, blocks, states, attestations and signatures.

    Metadata fields live in the metadata table under their field name.
    Stores sharing a backend see the same data.
    """

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    # ---- construction ----

    @classmethod
    def from_genesis(cls, backend: StorageBackend, genesis_state: State) -> Store:
        """Initialize a store whose anchor is the genesis block built from ``genesis_state``."""
        header = dataclasses.replace(genesis_state.latest_block_header, state_root=ZERO_ROOT)
        genesis_state = dataclasses.replace(genesis_state, latest_block_header=header)
        genesis_block = Block(
            slot=0,
            proposer_index=0,
            parent_root=ZERO_ROOT,
            state_root=genesis_state.hash_tree_root(),
            body=BlockBody(),
        )
        return cls.get_forkchoice_store(backend, genesis_state, genesis_block)

    @classmethod
    def get_forkchoice_store(
        cls, backend: StorageBackend, anchor_state: State, anchor_block: Block
    ) -> Store:
        """Initialize a store from an anchor state and block."""
        anchor_state_root = anchor_state.hash_tree_root()
        anchor_block_root = anchor_block.hash_tree_root()
        anchor_checkpoint = Checkpoint(root=anchor_block_root, slot=anchor_block.slot)
        checkpoint_bytes = anchor_checkpoint.as_ssz_bytes()

        with backend.begin_write() as batch:
            batch.put_batch(
                Table.METADATA,
                [
                    (KEY_TIME, UINT64.encode(0)),
                    (KEY_CONFIG, anchor_state.config.as_ssz_bytes()),
                    (KEY_HEAD, BYTES32.encode(anchor_block_root)),
                    (KEY_SAFE_TARGET, BYTES32.encode(anchor_block_root)),
                    (KEY_LATEST_JUSTIFIED, checkpoint_bytes),
                    (KEY_LATEST_FINALIZED, checkpoint_bytes),
                ],
            )
            batch.put_batch(Table.BLOCKS, [(anchor_block_root, anchor_block.as_ssz_bytes())])
            batch.put_batch(Table.STATES, [(anchor_block_root, anchor_state.as_ssz_bytes())])

        logger.info(
            "Initialized store anchor_state_root=0x%s anchor_block_root=0x%s",
            anchor_state_root.hex(),
            anchor_block_root.hex(),
        )
        return cls(backend)

    # ---- low-level helpers ----

    def _get(self, table: Table, key: bytes) -> Optional[bytes]:
        with self._backend.begin_read() as view:
            return view.get(table, key)

    def _entries(self, table: Table) -> list[tuple[bytes, bytes]]:
        with self._backend.begin_read() as view:
            return list(view.prefix_iterator(table, b""))

    def _put(self, table: Table, key: bytes, value: bytes) -> None:
        with self._backend.begin_write() as batch:
            batch.put_batch(table, [(key, value)])

    def _get_metadata(self, key: bytes, ssz_type: SszType) -> Any:
        data = self._get(Table.METADATA, key)
        if data is None:
            raise StorageError(f"metadata key {key.decode()!r} is missing")
        return ssz_type.decode(data)

    def _set_metadata(self, key: bytes, data: bytes) -> None:
        self._put(Table.METADATA, key, data)

    # ---- metadata ----

    def time(self) -> int:
        return self._get_metadata(KEY_TIME, UINT64)

    def set_time(self, time: int) -> None:
        self._set_metadata(KEY_TIME, UINT64.encode(time))

    def config(self) -> ChainConfig:
        return self._get_metadata(KEY_CONFIG, ChainConfig.ssz_type)

    def head(self) -> bytes:
        return self._get_metadata(KEY_HEAD, BYTES32)

    def safe_target(self) -> bytes:
        return self._get_metadata(KEY_SAFE_TARGET, BYTES32)

    def set_safe_target(self, safe_target: bytes) -> None:
        self._set_metadata(KEY_SAFE_TARGET, BYTES32.encode(safe_target))

    def latest_justified(self) -> Checkpoint:
        return self._get_metadata(KEY_LATEST_JUSTIFIED, Checkpoint.ssz_type)

    def latest_finalized(self) -> Checkpoint:
        return self._get_metadata(KEY_LATEST_FINALIZED, Checkpoint.ssz_type)

    def update_checkpoints(self, checkpoints: ForkCheckpoints) -> None:
        """Set the head, and the justified and finalized checkpoints when given."""
        entries = [(KEY_HEAD, BYTES32.encode(checkpoints.head))]
        if checkpoints.justified is not None:
            entries.append((KEY_LATEST_JUSTIFIED, checkpoints.justified.as_ssz_bytes()))
        if checkpoints.finalized is not None:
            entries.append((KEY_LATEST_FINALIZED, checkpoints.finalized.as_ssz_bytes()))
        with self._backend.begin_write() as batch:
            batch.put_batch(Table.METADATA, entries)

    # ---- blocks ----

    def iter_blocks(self) -> Iterator[tuple[bytes, Block]]:
        """Iterate over all (root, block) pairs."""
        return iter(
            [(BYTES32.decode(k), Block.from_ssz_bytes(v)) for k, v in self._entries(Table.BLOCKS)]
        )

    def get_block(self, root: bytes) -> Optional[Block]:
        data = self._get(Table.BLOCKS, BYTES32.encode(root))
        return None if data is None else Block.from_ssz_bytes(data)

    def contains_block(self, root: bytes) -> bool:
        return self._get(Table.BLOCKS, BYTES32.encode(root)) is not None

    def insert_block(self, root: bytes, block: Block) -> None:
        self._put(Table.BLOCKS, BYTES32.encode(root), block.as_ssz_bytes())

    # ---- states ----

    def iter_states(self) -> Iterator[tuple[bytes, State]]:
        """Iterate over all (root, state) pairs."""
        return iter(
            [(BYTES32.decode(k), State.from_ssz_bytes(v)) for k, v in self._entries(Table.STATES)]
        )

    def get_state(self, root: bytes) -> Optional[State]:
        data = self._get(Table.STATES, BYTES32.encode(root))
        return None if data is None else State.from_ssz_bytes(data)

    def insert_state(self, root: bytes, state: State) -> None:
        self._put(Table.STATES, BYTES32.encode(root), state.as_ssz_bytes())

    # ---- attestations ----

    def _iter_attestations(self, table: Table) -> Iterator[tuple[int, AttestationData]]:
        return iter(
            [
                (UINT64.decode(k), AttestationData.from_ssz_bytes(v))
                for k, v in self._entries(table)
            ]
        )

    def _get_attestation(self, table: Table, validator_id: int) -> Optional[AttestationData]:
        data = self._get(table, UINT64.encode(validator_id))
        return None if data is None else AttestationData.from_ssz_bytes(data)

    def iter_known_attestations(self) -> Iterator[tuple[int, AttestationData]]:
        """Iterate over (validator_id, data) pairs of attestations counted by fork choice."""
        return self._iter_attestations(Table.LATEST_KNOWN_ATTESTATIONS)

    def get_known_attestation(self, validator_id: int) -> Optional[AttestationData]:
        return self._get_attestation(Table.LATEST_KNOWN_ATTESTATIONS, validator_id)

    def insert_known_attestation(self, validator_id: int, data: AttestationData) -> None:
        self._put(
            Table.LATEST_KNOWN_ATTESTATIONS, UINT64.encode(validator_id), data.as_ssz_bytes()
        )

    def iter_new_attestations(self) -> Iterator[tuple[int, AttestationData]]:
        """Iterate over (validator_id, data) pairs of pending attestations."""
        return self._iter_attestations(Table.LATEST_NEW_ATTESTATIONS)

    def get_new_attestation(self, validator_id: int) -> Optional[AttestationData]:
        return self._get_attestation(Table.LATEST_NEW_ATTESTATIONS, validator_id)

    def insert_new_attestation(self, validator_id: int, data: AttestationData) -> None:
        self._put(
            Table.LATEST_NEW_ATTESTATIONS, UINT64.encode(validator_id), data.as_ssz_bytes()
        )

    def remove_new_attestation(self, validator_id: int) -> None:
        with self._backend.begin_write() as batch:
            batch.delete_batch(Table.LATEST_NEW_ATTESTATIONS, [UINT64.encode(validator_id)])

    def promote_new_attestations(self) -> None:
        """Move every pending attestation to the known set in one atomic batch."""
        pending = self._entries(Table.LATEST_NEW_ATTESTATIONS)
        if not pending:
            return
        with self._backend.begin_write() as batch:
            batch.delete_batch(Table.LATEST_NEW_ATTESTATIONS, [key for key, _ in pending])
            batch.put_batch(Table.LATEST_KNOWN_ATTESTATIONS, pending)

    # ---- gossip signatures ----

    def iter_gossip_signatures(self) -> Iterator[tuple[SignatureKey, ValidatorSignature]]:
        """Iterate over (key, signature) pairs, skipping undecodable signatures."""
        entries = []
        for key, value in self._entries(Table.GOSSIP_SIGNATURES):
            try:
                signature = ValidatorSignature.from_bytes(value)
            except DecodeError:
                continue
            entries.append((_decode_signature_key(key), signature))
        return iter(entries)

    def get_gossip_signature(self, key: SignatureKey) -> Optional[ValidatorSignature]:
        data = self._get(Table.GOSSIP_SIGNATURES, _encode_signature_key(key))
        if data is None:
            return None
        try:
            return ValidatorSignature.from_bytes(data)
        except DecodeError:
            return None

    def contains_gossip_signature(self, key: SignatureKey) -> bool:
        return self._get(Table.GOSSIP_SIGNATURES, _encode_signature_key(key)) is not None

    def insert_gossip_signature(self, key: SignatureKey, signature: ValidatorSignature) -> None:
        self._put(Table.GOSSIP_SIGNATURES, _encode_signature_key(key), signature.to_bytes())

    # ---- aggregated payloads ----

    def iter_aggregated_payloads(
        self,
    ) -> Iterator[tuple[SignatureKey, list[AggregatedSignatureProof]]]:
        """Iterate over (key, proofs) pairs."""
        return iter(
            [
                (_decode_signature_key(k), _PROOF_LIST.decode(v))
                for k, v in self._entries(Table.AGGREGATED_PAYLOADS)
            ]
        )

    def get_aggregated_payloads(
        self, key: SignatureKey
    ) -> Optional[list[AggregatedSignatureProof]]:
        data = self._get(Table.AGGREGATED_PAYLOADS, _encode_signature_key(key))
        return None if data is None else _PROOF_LIST.decode(data)

    def push_aggregated_payload(self, key: SignatureKey, proof: AggregatedSignatureProof) -> None:
        """Append ``proof`` to the proofs stored under ``key``."""
        proofs = self.get_aggregated_payloads(key) or []
        proofs.append(proof)
        self._put(Table.AGGREGATED_PAYLOADS, _encode_signature_key(key), _PROOF_LIST.encode(proofs))

    # ---- derived accessors ----

    def safe_target_slot(self) -> int:
        """Slot of the current safe target block."""
        block = self.get_block(self.safe_target())
        if block is None:
            raise StorageError("safe target block is missing")
        return block.slot

    def head_state(self) -> State:
        """The state of the current head."""
        state = self.get_state(self.head())
        if state is None:
            raise StorageError("head state is missing")
        return state