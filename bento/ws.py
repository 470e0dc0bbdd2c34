"""Minimal WebSocket client for node notifications."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from typing import Any

import websockets

BLOCK_NOTIFY = "block_notify"


class Stream:
    """A named notification stream."""

    def __init__(self, name: str) -> None:
        self.name = name

    def as_str(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Stream({self.name!r})"


def build_request(method: str, params: Iterable[str], request_id: int) -> str:
    """Render a JSON-RPC style request in the node's wire format."""
    params_str = ",".join(json.dumps(str(param)) for param in params)
    if params_str:
        params_str = f'"params": [{params_str}],'
    return f'{{"method":{json.dumps(method)},{params_str}"id":{request_id}}}'


class ConnectionState:
    """An open WebSocket connection that numbers outgoing requests."""

    def __init__(self, socket: Any) -> None:
        self.socket = socket
        self.next_id = 0

    async def send(self, method: str, params: Iterable[str] = ()) -> int:
        """Send a request and return the id it was given."""
        request_id = self.next_id
        self.next_id += 1
        await self.socket.send(build_request(method, params, request_id))
        return request_id

    async def subscribe_blocks(self) -> int:
        return await self.send(BLOCK_NOTIFY)

    async def close(self) -> None:
        await self.socket.close()

    async def __aiter__(self) -> AsyncIterator[Any]:
        async for message in self.socket:
            yield message

    async def __aenter__(self) -> ConnectionState:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def connect(url: str) -> ConnectionState:
    """Open a WebSocket connection to ``url``."""
    socket = await websockets.connect(url)
    return ConnectionState(socket)