"""Attestation containers."""

from __future__ import annotations

from dataclasses import dataclass

from ethlambda.ssz import UINT64, Bitlist, ByteVector, SszContainer
from ethlambda.types.checkpoint import VALIDATOR_REGISTRY_LIMIT, Checkpoint
from ethlambda.types.signature import SIGNATURE_SIZE

XMSS_SIGNATURE = ByteVector(SIGNATURE_SIZE)
AGGREGATION_BITS = Bitlist(VALIDATOR_REGISTRY_LIMIT)


@dataclass(frozen=True)
class AttestationData(SszContainer):
    """A validator's view of the chain: slot plus head, target and source."""

    slot: int
    head: Checkpoint
    target: Checkpoint
    source: Checkpoint

    ssz_fields = (
        ("slot", UINT64),
        ("head", Checkpoint.ssz_type),
        ("target", Checkpoint.ssz_type),
        ("source", Checkpoint.ssz_type),
    )


@dataclass(frozen=True)
class Attestation(SszContainer):
    """Attestation data made by a specific validator."""

    validator_id: int
    data: AttestationData

    ssz_fields = (("validator_id", UINT64), ("data", AttestationData.ssz_type))


@dataclass(frozen=True)
class SignedAttestation(SszContainer):
    """Attestation data bundled with the validator's XMSS signature bytes."""

    validator_id: int
    message: AttestationData
    signature: bytes

    ssz_fields = (
        ("validator_id", UINT64),
        ("message", AttestationData.ssz_type),
        ("signature", XMSS_SIGNATURE),
    )


@dataclass(frozen=True)
class AggregatedAttestation(SszContainer):
    """Attestation data with a participation bitfield over validators."""

    aggregation_bits: tuple[bool, ...]
    data: AttestationData

    ssz_fields = (
        ("aggregation_bits", AGGREGATION_BITS),
        ("data", AttestationData.ssz_type),
    )