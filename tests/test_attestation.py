import pytest

from ethlambda.ssz import UINT64, DecodeError, merkleize
from ethlambda.types.attestation import (
    AggregatedAttestation,
    Attestation,
    AttestationData,
    SignedAttestation,
)
from ethlambda.types.checkpoint import Checkpoint
from ethlambda.types.signature import SIGNATURE_SIZE


def _data(slot=5):
    return AttestationData(
        slot=slot,
        head=Checkpoint(root=b"\x01" * 32, slot=slot),
        target=Checkpoint(root=b"\x02" * 32, slot=slot - 1),
        source=Checkpoint(root=b"\x03" * 32, slot=0),
    )


def test_attestation_data_round_trip():
    data = _data()
    encoded = data.as_ssz_bytes()
    assert len(encoded) == AttestationData.ssz_type.fixed_size()
    assert AttestationData.from_ssz_bytes(encoded) == data


def test_attestation_data_root_covers_fields():
    data = _data()
    assert data.hash_tree_root() == merkleize(
        [
            UINT64.hash_tree_root(data.slot),
            data.head.hash_tree_root(),
            data.target.hash_tree_root(),
            data.source.hash_tree_root(),
        ]
    )


def test_attestation_round_trip_and_root():
    attestation = Attestation(validator_id=3, data=_data())
    assert Attestation.from_ssz_bytes(attestation.as_ssz_bytes()) == attestation
    assert attestation.hash_tree_root() == merkleize(
        [UINT64.hash_tree_root(3), attestation.data.hash_tree_root()]
    )


def test_attestation_decode_truncated():
    encoded = Attestation(validator_id=3, data=_data()).as_ssz_bytes()
    with pytest.raises(DecodeError):
        Attestation.from_ssz_bytes(encoded[:-1])


def test_signed_attestation_round_trip():
    signature = bytes(position % 251 for position in range(SIGNATURE_SIZE))
    signed = SignedAttestation(validator_id=9, message=_data(), signature=signature)
    encoded = signed.as_ssz_bytes()
    assert len(encoded) == 8 + AttestationData.ssz_type.fixed_size() + SIGNATURE_SIZE
    decoded = SignedAttestation.from_ssz_bytes(encoded)
    assert decoded == signed
    assert decoded.signature == signature


def test_signed_attestation_rejects_wrong_signature_length():
    signed = SignedAttestation(validator_id=9, message=_data(), signature=bytes(10))
    with pytest.raises(ValueError):
        signed.as_ssz_bytes()


def test_aggregated_attestation_round_trip():
    bits = (True, False, True, True)
    aggregated = AggregatedAttestation(aggregation_bits=bits, data=_data())
    decoded = AggregatedAttestation.from_ssz_bytes(aggregated.as_ssz_bytes())
    assert decoded == aggregated
    assert decoded.aggregation_bits == bits


def test_aggregated_attestation_root_depends_on_bits():
    first = AggregatedAttestation(aggregation_bits=(True,), data=_data())
    second = AggregatedAttestation(aggregation_bits=(True, False), data=_data())
    assert first.hash_tree_root() != second.hash_tree_root()


def test_aggregated_attestation_bits_limit():
    aggregated = AggregatedAttestation(aggregation_bits=(True,) * 4097, data=_data())
    with pytest.raises(ValueError):
        aggregated.as_ssz_bytes()