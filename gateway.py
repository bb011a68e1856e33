import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from starlette.websockets import WebSocketState

from errors import DeliveryError
from logging_config import get_logger
from registry import RoomRegistry

logger = get_logger(__name__)


@dataclass(eq=False)
class Connection:
    """One accepted transport session.

    transport is anything with an async ``send_json(data)``; in the app it is a
    Starlette WebSocket.
    """
    connection_id: str
    transport: Any
    connected_at: str = field(default_factory=lambda: datetime.now().isoformat())
    closed: bool = False
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_open(self) -> bool:
        if self.closed:
            return False
        state = getattr(self.transport, "application_state", None)
        return state is None or state == WebSocketState.CONNECTED


class ConnectionGateway:
    """Owns live connections and their identities.

    A connection is registered on accept and forgotten on close. Closing is
    terminal: once a connection is closed every send to it fails with
    DeliveryError and nothing is retried.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        # Format: {connection_id: Connection}
        self._connections: Dict[str, Connection] = {}

    def on_connect(self, transport) -> str:
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = Connection(connection_id, transport)
        logger.info(f"Connection {connection_id} opened (live connections: {len(self._connections)})")
        return connection_id

    async def on_disconnect(self, connection_id: str) -> Dict[str, List[str]]:
        """Forget a connection and remove it from every room.

        Returns {room_id: remaining members} for the rooms it was removed from.
        Safe to call more than once.
        """
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.closed = True
            logger.info(f"Connection {connection_id} closed (live connections: {len(self._connections)})")
        left = await self.registry.leave_all(connection_id)
        if left:
            logger.debug(f"Connection {connection_id} removed from rooms: {sorted(left)}")
        return left

    async def send(self, connection_id: str, message) -> None:
        """Push one message to a connection.

        Raises DeliveryError if the connection is unknown, closed, or its
        transport fails while sending. A transport failure closes the connection.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            raise DeliveryError(connection_id, "unknown connection")

        data = message.to_wire() if hasattr(message, "to_wire") else message
        async with connection.send_lock:
            if not connection.is_open:
                raise DeliveryError(connection_id)
            try:
                await connection.transport.send_json(data)
            except Exception as e:
                connection.closed = True
                raise DeliveryError(connection_id, f"transport error: {e}") from e

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
