# ethlambda

Building blocks for a lean consensus node:

- **SSZ** serialization and hash-tree-root merkleization (`ethlambda.ssz`):
  `Uint`, `ByteVector`, `ByteList`, `List`, `Vector`, `Bitlist` and `Container`
  type descriptors, plus the `SszContainer` base for dataclasses.
- **Consensus types** (`ethlambda.types`): `Checkpoint` and `ChainConfig`,
  attestations, blocks, `State`, `Validator` and `Genesis`. Bitfields are
  tuples of booleans; roots are 32-byte `bytes`.
- **Storage** (`ethlambda.storage`): a table-based key/value API with read
  views and atomic write batches, an in-memory backend, and the fork-choice
  `Store` built on top of it.
- **Network encodings** (`ethlambda.net`): raw and framed snappy, gossip
  message encoding, and the varint-prefixed request/response codec.
- **Metrics** (`ethlambda.metrics`): Prometheus-style counters, gauges and
  histograms with text exposition.
- **HTTP API** (`ethlambda.net.rpc`): health, metrics, latest finalized state
  and latest justified checkpoint, as a Starlette application.

Install with `pip install .`; the test extra (`pip install .[test]`) adds
pytest and httpx.

## Storing chain data

```python
from ethlambda.storage.memory import InMemoryBackend
from ethlambda.storage.store import ForkCheckpoints, Store
from ethlambda.types.state import Genesis, State

genesis = Genesis.from_json({
    "config": {"genesis_time": 1000},
    "latest_justified": {"root": "0x" + "00" * 32, "slot": "0"},
    "latest_finalized": {"root": "0x" + "00" * 32, "slot": "0"},
    "historical_block_hashes": [],
    "justified_slots": [],
    "justifications_roots": [],
    "justifications_validators": "0x",
})
state = State.from_genesis(genesis, [])

store = Store.from_genesis(InMemoryBackend(), state)
print(store.head().hex(), store.latest_finalized())

head_state = store.head_state()
store.update_checkpoints(ForkCheckpoints.head_only(store.head()))
```

Checkpoint slots in genesis JSON are decimal strings, as `parse_decimal_u64`
expects.

Attestations arrive as "new" and are promoted to "known" in one atomic batch:

```python
from ethlambda.types.attestation import AttestationData

checkpoint = store.latest_justified()
data = AttestationData(slot=1, head=checkpoint, target=checkpoint, source=checkpoint)

store.insert_new_attestation(7, data)
store.promote_new_attestations()
assert store.get_known_attestation(7) == data
assert store.get_new_attestation(7) is None
```

The store also keeps blocks and states by root, gossip signatures and
aggregated signature proofs keyed by `(validator_index, data_root)`. Missing
metadata or a missing head/safe-target block raises `StorageError`.

Write batches are context managers: they commit when the block exits normally
and are discarded when it raises.

```python
from ethlambda.storage.api import Table

backend = InMemoryBackend()
with backend.begin_write() as batch:
    batch.put_batch(Table.BLOCKS, [(b"key", b"value")])
with backend.begin_read() as view:
    assert view.get(Table.BLOCKS, b"key") == b"value"
```

## Wire encodings

```python
from ethlambda.net.reqresp import decode_payload, decode_varint, encode_payload

assert decode_varint(bytes([0b10010110, 0b00000001])) == (150, b"")
assert decode_payload(encode_payload(b"hello")) == b"hello"
```

`Codec` reads and writes `Status` and `BlocksByRootRequest` requests, and
`Response` objects (a `ResponseResult` byte followed by the payload), on
binary streams for the status and blocks-by-root protocols.
`build_status(store)` produces the node's own `Status`.

Gossip payloads are raw-snappy compressed SSZ:

```python
from ethlambda.net.gossip import compress_message, decompress_message

assert decompress_message(compress_message(b"payload")) == b"payload"
```

`decode_gossip_message(topic, data)` decodes a block or attestation according
to the topic's kind segment and returns `None` for other topics.

## HTTP API

`create_app(store)` returns a Starlette ASGI application serving:

| Path                              | Response                                  |
|-----------------------------------|-------------------------------------------|
| `/lean/v0/health`                 | JSON health status                        |
| `/metrics`                        | Prometheus text exposition                |
| `/lean/v0/states/finalized`       | SSZ bytes of the latest finalized state   |
| `/lean/v0/checkpoints/justified`  | JSON of the latest justified checkpoint   |

```python
from ethlambda.net.rpc import create_app

app = create_app(store)
```

`start_rpc_server(address, store)` is a coroutine that binds the same
application to an address (`("127.0.0.1", 5052)` or `"127.0.0.1:5052"`) and
serves it with uvicorn:

```python
import asyncio
from ethlambda.net.rpc import start_rpc_server

asyncio.run(start_rpc_server(("127.0.0.1", 5052), store))
```

## Metrics

```python
from ethlambda.metrics import Histogram, TimingGuard, gather_default_metrics, register_int_counter

blocks = register_int_counter("blocks_processed_total", "Blocks processed")
blocks.inc(1)

timing = Histogram("block_processing_seconds", "Time to process a block")
with TimingGuard(timing):
    ...

print(gather_default_metrics())
```

Registering a second metric under the same name raises `MetricError`.

## What this package does not do

- It has no peer-to-peer networking: no peer connections, gossip mesh or
  block fetching. It only encodes and decodes the messages.
- It does not create, verify or aggregate signatures; signatures and public
  keys are carried as fixed-size bytes.
- It has no fork-choice or state-transition logic, only the storage they use.
- The only storage backend is the in-memory one; nothing is persisted to disk.
- There is no command-line program to run a node.