import pytest

from ethlambda.types.block import BlockBody
from ethlambda.types.checkpoint import VALIDATOR_REGISTRY_LIMIT, ZERO_ROOT, ChainConfig, Checkpoint
from ethlambda.types.signature import PUBLIC_KEY_SIZE
from ethlambda.types.state import Genesis, State, Validator


def _genesis_json() -> dict:
    return {
        "config": {"genesis_time": 1000},
        "latest_justified": {"root": "0x" + "00" * 32, "slot": "0"},
        "latest_finalized": {"root": "0x" + "00" * 32, "slot": "0"},
        "historical_block_hashes": ["0x" + "aa" * 32],
        "justified_slots": [True, False],
        "justifications_roots": [],
        "justifications_validators": "0x",
    }


def _validators(count: int) -> list[Validator]:
    return [Validator(pubkey=bytes([i % 256]) * PUBLIC_KEY_SIZE, index=i) for i in range(count)]


def test_genesis_from_json():
    genesis = Genesis.from_json(_genesis_json())
    assert genesis.config == ChainConfig(genesis_time=1000)
    assert genesis.latest_justified == Checkpoint(root=ZERO_ROOT, slot=0)
    assert genesis.historical_block_hashes == (b"\xaa" * 32,)
    assert genesis.justified_slots == (True, False)
    assert genesis.justifications_validators == "0x"


def test_genesis_slot_must_be_decimal_string():
    data = _genesis_json()
    data["latest_finalized"] = {"root": "0x" + "00" * 32, "slot": 0}
    with pytest.raises(ValueError):
        Genesis.from_json(data)


def test_genesis_missing_field():
    data = _genesis_json()
    del data["config"]
    with pytest.raises(ValueError):
        Genesis.from_json(data)


def test_state_from_genesis():
    genesis = Genesis.from_json(_genesis_json())
    state = State.from_genesis(genesis, _validators(3))
    assert state.slot == 0
    assert state.config == genesis.config
    assert state.latest_block_header.body_root == BlockBody().hash_tree_root()
    assert state.latest_block_header.state_root == ZERO_ROOT
    assert state.historical_block_hashes == ()
    assert state.justified_slots == ()
    assert [v.index for v in state.validators] == [0, 1, 2]


def test_state_from_genesis_rejects_too_many_validators():
    genesis = Genesis.from_json(_genesis_json())
    with pytest.raises(ValueError):
        State.from_genesis(genesis, _validators(VALIDATOR_REGISTRY_LIMIT + 1))


def test_state_round_trip():
    genesis = Genesis.from_json(_genesis_json())
    base = State.from_genesis(genesis, _validators(2))
    state = State(
        config=base.config,
        slot=7,
        latest_block_header=base.latest_block_header,
        latest_justified=base.latest_justified,
        latest_finalized=base.latest_finalized,
        historical_block_hashes=[b"\x01" * 32, b"\x02" * 32],
        justified_slots=[True, False, True],
        validators=base.validators,
        justifications_roots=[b"\x03" * 32],
        justifications_validators=[False, True],
    )
    assert State.from_ssz_bytes(state.as_ssz_bytes()) == state


def test_state_hash_root_changes_with_slot():
    genesis = Genesis.from_json(_genesis_json())
    state = State.from_genesis(genesis, _validators(1))
    later = State(
        config=state.config,
        slot=1,
        latest_block_header=state.latest_block_header,
        latest_justified=state.latest_justified,
        latest_finalized=state.latest_finalized,
        validators=state.validators,
    )
    assert len(state.hash_tree_root()) == 32
    assert state.hash_tree_root() != later.hash_tree_root()
    assert state.hash_tree_root() == State.from_ssz_bytes(state.as_ssz_bytes()).hash_tree_root()


def test_validator_pubkey():
    validator = Validator(pubkey=b"\xab" * PUBLIC_KEY_SIZE, index=4)
    assert validator.get_pubkey().to_bytes() == b"\xab" * PUBLIC_KEY_SIZE
    assert validator.to_json() == {"pubkey": "ab" * PUBLIC_KEY_SIZE, "index": 4}


def test_validator_pubkey_length_checked():
    with pytest.raises(ValueError):
        Validator(pubkey=b"\x00" * 10, index=0)


def test_validator_round_trip():
    validator = Validator(pubkey=b"\x05" * PUBLIC_KEY_SIZE, index=9)
    assert Validator.from_ssz_bytes(validator.as_ssz_bytes()) == validator


def test_state_json_uses_hex_pubkeys():
    genesis = Genesis.from_json(_genesis_json())
    state = State.from_genesis(genesis, _validators(1))
    as_json = state.to_json()
    assert as_json["validators"][0]["pubkey"] == "00" * PUBLIC_KEY_SIZE
    assert as_json["config"] == {"genesis_time": 1000}
    assert as_json["latest_justified"]["slot"] == 0