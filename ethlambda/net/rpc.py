"""HTTP API exposing the store, health and Prometheus metrics."""

from __future__ import annotations

import json
import logging
import socket
from typing import Any, Union

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from ethlambda.metrics import gather_default_metrics
from ethlambda.storage.api import StorageError
from ethlambda.storage.store import Store

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
SSZ_CONTENT_TYPE = "application/octet-stream"
METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_HEALTH_BODY = '{"status":"healthy","service":"lean-spec-api"}'

Address = Union[tuple[str, int], str]


def _json_response(value: Any) -> Response:
    return Response(json.dumps(value, separators=(",", ":")), media_type=JSON_CONTENT_TYPE)


def _ssz_response(data: bytes) -> Response:
    return Response(data, media_type=SSZ_CONTENT_TYPE)


def build_api_routes(store: Store) -> list[Route]:
    """Routes serving data from ``store``."""

    async def latest_finalized_state(request: Request) -> Response:
        finalized = store.latest_finalized()
        state = store.get_state(finalized.root)
        if state is None:
            raise StorageError("finalized state is missing")
        return _ssz_response(state.as_ssz_bytes())

    async def latest_justified_checkpoint(request: Request) -> Response:
        return _json_response(store.latest_justified().to_json())

    return [
        Route("/lean/v0/states/finalized", latest_finalized_state, methods=["GET"]),
        Route("/lean/v0/checkpoints/justified", latest_justified_checkpoint, methods=["GET"]),
    ]


def build_metrics_routes() -> list[Route]:
    """Routes for the metrics and health endpoints."""

    async def health(request: Request) -> Response:
        return Response(_HEALTH_BODY, media_type=JSON_CONTENT_TYPE)

    async def metrics(request: Request) -> Response:
        try:
            body = gather_default_metrics()
        except Exception:
            logger.warning("Failed to gather Prometheus metrics", exc_info=True)
            body = ""
        return Response(body, media_type=METRICS_CONTENT_TYPE)

    return [
        Route("/metrics", metrics, methods=["GET"]),
        Route("/lean/v0/health", health, methods=["GET"]),
    ]


def create_app(store: Store) -> Starlette:
    """The full application: metrics, health and store API."""
    return Starlette(routes=build_metrics_routes() + build_api_routes(store))


def _split_address(address: Address) -> tuple[str, int]:
    if isinstance(address, str):
        host, sep, port_text = address.rpartition(":")
        if not sep or not host or not port_text.isdigit():
            raise ValueError(f"invalid socket address: {address!r}")
        host = host[1:-1] if host.startswith("[") and host.endswith("]") else host
        port = int(port_text)
    else:
        host, port = address
    if not 0 <= int(port) <= 65535:
        raise ValueError(f"invalid port: {port}")
    return host, int(port)


async def start_rpc_server(address: Address, store: Store) -> None:
    """Bind ``address`` and serve the API until the server stops.

    Raises OSError when the address cannot be bound.
    """
    host, port = _split_address(address)
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.create_server((host, port), family=family)
    config = uvicorn.Config(create_app(store), log_config=None)
    server = uvicorn.Server(config)
    try:
        await server.serve(sockets=[sock])
    finally:
        sock.close()