import asyncio
import socket
import uuid

import pytest
from starlette.testclient import TestClient

from ethlambda.metrics import register_int_counter
from ethlambda.net.rpc import (
    JSON_CONTENT_TYPE,
    SSZ_CONTENT_TYPE,
    build_api_routes,
    build_metrics_routes,
    create_app,
    start_rpc_server,
)
from ethlambda.storage.memory import InMemoryBackend
from ethlambda.storage.store import Store
from ethlambda.types.block import BlockBody, BlockHeader
from ethlambda.types.checkpoint import ZERO_ROOT, ChainConfig, Checkpoint
from ethlambda.types.state import State
from starlette.applications import Starlette


def create_test_state():
    header = BlockHeader(
        slot=0,
        proposer_index=0,
        parent_root=ZERO_ROOT,
        state_root=ZERO_ROOT,
        body_root=BlockBody().hash_tree_root(),
    )
    checkpoint = Checkpoint(root=ZERO_ROOT, slot=0)
    return State(
        config=ChainConfig(genesis_time=1000),
        slot=0,
        latest_block_header=header,
        latest_justified=checkpoint,
        latest_finalized=checkpoint,
    )


@pytest.fixture
def store():
    return Store.from_genesis(InMemoryBackend(), create_test_state())


def test_get_latest_justified_checkpoint(store):
    client = TestClient(Starlette(routes=build_api_routes(store)))
    response = client.get("/lean/v0/checkpoints/justified")
    assert response.status_code == 200
    assert response.headers["content-type"] == JSON_CONTENT_TYPE
    expected = store.latest_justified()
    assert response.json() == {"slot": expected.slot, "root": "0x" + expected.root.hex()}


def test_get_latest_finalized_state(store):
    finalized = store.latest_finalized()
    expected_ssz = store.get_state(finalized.root).as_ssz_bytes()
    client = TestClient(Starlette(routes=build_api_routes(store)))
    response = client.get("/lean/v0/states/finalized")
    assert response.status_code == 200
    assert response.headers["content-type"] == SSZ_CONTENT_TYPE
    assert response.content == expected_ssz


def test_health_endpoint():
    client = TestClient(Starlette(routes=build_metrics_routes()))
    response = client.get("/lean/v0/health")
    assert response.status_code == 200
    assert response.headers["content-type"] == JSON_CONTENT_TYPE
    assert response.text == '{"status":"healthy","service":"lean-spec-api"}'


def test_metrics_endpoint(store):
    name = f"rpc_test_{uuid.uuid4().hex}"
    counter = register_int_counter(name, "Counter for the metrics endpoint.")
    counter.inc(2)
    client = TestClient(create_app(store))
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"] == "text/plain; version=0.0.4; charset=utf-8"
    assert f"{name} 2" in response.text.splitlines()


def test_app_combines_routes(store):
    client = TestClient(create_app(store))
    assert client.get("/lean/v0/health").status_code == 200
    assert client.get("/lean/v0/checkpoints/justified").status_code == 200
    assert client.get("/unknown").status_code == 404


def test_start_rpc_server_rejects_bad_address(store):
    with pytest.raises(ValueError):
        asyncio.run(start_rpc_server("localhost", store))


def test_start_rpc_server_fails_on_busy_port(store):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        port = busy.getsockname()[1]
        with pytest.raises(OSError):
            asyncio.run(start_rpc_server(("127.0.0.1", port), store))