"""Block, block header and block signature containers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ethlambda.ssz import BYTES32, UINT64, ByteList, List, SszContainer
from ethlambda.types.attestation import (
    AGGREGATION_BITS,
    XMSS_SIGNATURE,
    AggregatedAttestation,
    Attestation,
)
from ethlambda.types.checkpoint import VALIDATOR_REGISTRY_LIMIT, root_to_hex
from ethlambda.types.signature import SIGNATURE_SIZE

BYTE_LIST_MIB_LIMIT = 1048576
"""Maximum size in bytes of an aggregated signature proof."""

BYTE_LIST_MIB = ByteList(BYTE_LIST_MIB_LIMIT)


@dataclass(frozen=True)
class AggregatedSignatureProof(SszContainer):
    """Proof that the validators marked in ``participants`` signed one message."""

    participants: tuple[bool, ...]
    proof_data: bytes = b""

    ssz_fields = (("participants", AGGREGATION_BITS), ("proof_data", BYTE_LIST_MIB))

    def __post_init__(self) -> None:
        participants = tuple(bool(bit) for bit in self.participants)
        if len(participants) > VALIDATOR_REGISTRY_LIMIT:
            raise ValueError(
                f"{len(participants)} participants exceed limit {VALIDATOR_REGISTRY_LIMIT}"
            )
        proof_data = bytes(self.proof_data)
        if len(proof_data) > BYTE_LIST_MIB_LIMIT:
            raise ValueError(f"proof size too big: {len(proof_data)} bytes")
        object.__setattr__(self, "participants", participants)
        object.__setattr__(self, "proof_data", proof_data)

    @classmethod
    def empty(cls, participants: Any) -> AggregatedSignatureProof:
        """A proof with the given participants and no proof bytes."""
        return cls(participants=participants, proof_data=b"")


ATTESTATION_SIGNATURES = List(AggregatedSignatureProof.ssz_type, VALIDATOR_REGISTRY_LIMIT)


@dataclass(frozen=True)
class BlockSignatures(SszContainer):
    """Aggregated attestation proofs followed by the proposer's signature."""

    attestation_signatures: tuple[AggregatedSignatureProof, ...]
    proposer_signature: bytes

    ssz_fields = (
        ("attestation_signatures", ATTESTATION_SIGNATURES),
        ("proposer_signature", XMSS_SIGNATURE),
    )

    def __post_init__(self) -> None:
        signatures = tuple(self.attestation_signatures)
        if len(signatures) > VALIDATOR_REGISTRY_LIMIT:
            raise ValueError(
                f"{len(signatures)} attestation signatures exceed limit {VALIDATOR_REGISTRY_LIMIT}"
            )
        proposer_signature = bytes(self.proposer_signature)
        if len(proposer_signature) != SIGNATURE_SIZE:
            raise ValueError(
                f"proposer signature needs {SIGNATURE_SIZE} bytes, got {len(proposer_signature)}"
            )
        object.__setattr__(self, "attestation_signatures", signatures)
        object.__setattr__(self, "proposer_signature", proposer_signature)


AGGREGATED_ATTESTATIONS = List(AggregatedAttestation.ssz_type, VALIDATOR_REGISTRY_LIMIT)


@dataclass(frozen=True)
class BlockBody(SszContainer):
    """Block payload: the aggregated attestations it carries."""

    attestations: tuple[AggregatedAttestation, ...] = field(default=())

    ssz_fields = (("attestations", AGGREGATED_ATTESTATIONS),)

    def __post_init__(self) -> None:
        attestations = tuple(self.attestations)
        if len(attestations) > VALIDATOR_REGISTRY_LIMIT:
            raise ValueError(
                f"{len(attestations)} attestations exceed limit {VALIDATOR_REGISTRY_LIMIT}"
            )
        object.__setattr__(self, "attestations", attestations)


@dataclass(frozen=True)
class BlockHeader(SszContainer):
    """Block metadata with the body replaced by its root."""

    slot: int
    proposer_index: int
    parent_root: bytes
    state_root: bytes
    body_root: bytes

    ssz_fields = (
        ("slot", UINT64),
        ("proposer_index", UINT64),
        ("parent_root", BYTES32),
        ("state_root", BYTES32),
        ("body_root", BYTES32),
    )

    def to_json(self) -> dict[str, Any]:
        return {
            "slot": self.slot,
            "proposer_index": self.proposer_index,
            "parent_root": root_to_hex(self.parent_root),
            "state_root": root_to_hex(self.state_root),
            "body_root": root_to_hex(self.body_root),
        }


@dataclass(frozen=True)
class Block(SszContainer):
    """A complete block: header fields plus body."""

    slot: int
    proposer_index: int
    parent_root: bytes
    state_root: bytes
    body: BlockBody = field(default_factory=BlockBody)

    ssz_fields = (
        ("slot", UINT64),
        ("proposer_index", UINT64),
        ("parent_root", BYTES32),
        ("state_root", BYTES32),
        ("body", BlockBody.ssz_type),
    )

    def header(self) -> BlockHeader:
        """The header summarizing this block."""
        return BlockHeader(
            slot=self.slot,
            proposer_index=self.proposer_index,
            parent_root=self.parent_root,
            state_root=self.state_root,
            body_root=self.body.hash_tree_root(),
        )


@dataclass(frozen=True)
class BlockWithAttestation(SszContainer):
    """A block bundled with its proposer's attestation."""

    block: Block
    proposer_attestation: Attestation

    ssz_fields = (
        ("block", Block.ssz_type),
        ("proposer_attestation", Attestation.ssz_type),
    )


@dataclass(frozen=True, repr=False)
class SignedBlockWithAttestation(SszContainer):
    """A block with proposer attestation, together with its signatures."""

    message: BlockWithAttestation
    signature: BlockSignatures

    ssz_fields = (
        ("message", BlockWithAttestation.ssz_type),
        ("signature", BlockSignatures.ssz_type),
    )

    def __repr__(self) -> str:
        return f"SignedBlockWithAttestation(message={self.message!r}, signature='...')"