"""Python client for the signaling relay.

A SignalingClient is an explicit connection object: the caller creates it with
its configuration, opens it, and closes it. There is no shared module-level
socket.

    async with SignalingClient("ws://localhost:8000/ws") as client:
        await client.join("abc")
        async for message in client:
            ...
"""
import asyncio
import json
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from errors import RelayConnectionError
from logging_config import get_logger
from schemas.signals import Answer, IceCandidate, JoinRoom, LeaveRoom, Offer, Welcome, parse_outbound

logger = get_logger(__name__)


class SignalingClient:
    def __init__(self, url: str, *, open_timeout: float = 10.0):
        self.url = url
        self.open_timeout = open_timeout
        self.peer_id: Optional[str] = None
        self._ws = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def connect(self) -> str:
        """Open the socket and wait for the relay to announce our identity."""
        if self._ws is not None:
            return self.peer_id
        self._ws = await websockets.connect(self.url, open_timeout=self.open_timeout)
        try:
            welcome = await self.receive(timeout=self.open_timeout)
        except BaseException:
            await self.close()
            raise
        if not isinstance(welcome, Welcome):
            await self.close()
            raise RelayConnectionError(self.url, f"expected welcome, got {welcome.type}")
        self.peer_id = welcome.peer_id
        logger.info(f"Connected to {self.url} as {self.peer_id}")
        return self.peer_id

    async def close(self):
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
            logger.debug(f"Closed connection to {self.url}")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def join(self, room_id: str):
        await self._send(JoinRoom(room_id=room_id))

    async def leave(self, room_id: str):
        await self._send(LeaveRoom(room_id=room_id))

    async def offer(self, sdp: Any, room_id: str):
        await self._send(Offer(sdp=sdp, room_id=room_id))

    async def answer(self, sdp: Any, room_id: str):
        await self._send(Answer(sdp=sdp, room_id=room_id))

    async def ice_candidate(self, candidate: Any, room_id: str):
        await self._send(IceCandidate(candidate=candidate, room_id=room_id))

    async def receive(self, timeout: Optional[float] = None):
        """Wait for the next relay message. Raises asyncio.TimeoutError after timeout seconds."""
        ws = self._require_open()
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=timeout)
        except ConnectionClosed as e:
            self._ws = None
            raise RelayConnectionError(self.url, f"relay closed the connection: {e}") from e
        return parse_outbound(raw)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._ws is None:
            raise StopAsyncIteration
        try:
            return await self.receive()
        except RelayConnectionError:
            raise StopAsyncIteration

    async def _send(self, message):
        ws = self._require_open()
        try:
            await ws.send(json.dumps(message.to_wire()))
        except ConnectionClosed as e:
            self._ws = None
            raise RelayConnectionError(self.url, f"relay closed the connection: {e}") from e

    def _require_open(self):
        if self._ws is None:
            raise RelayConnectionError(self.url, "client is not connected")
        return self._ws
