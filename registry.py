import asyncio
from typing import Dict, List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


class RoomRegistry:
    """Process-wide mapping of room id -> insertion-ordered member connection ids.

    Rooms exist only while they have members: the first join creates a room and
    the last leave drops it. Every read and write goes through one asyncio lock,
    so a join racing a disconnect can never lose an update and broadcast
    snapshots are consistent with membership changes.

    Unknown rooms and connections are never an error; operations on them are
    no-ops.
    """

    def __init__(self):
        # {room_id: {connection_id: None}} - dict keys keep insertion order
        self._rooms: Dict[str, Dict[str, None]] = {}
        # {connection_id: {room_id: None}}
        self._memberships: Dict[str, Dict[str, None]] = {}
        self._lock = asyncio.Lock()

    async def join(self, connection_id: str, room_id: str) -> List[str]:
        """Add a connection to a room, creating the room if needed.

        Idempotent. Returns the room's members after the join, newcomer included.
        """
        async with self._lock:
            members = self._rooms.setdefault(room_id, {})
            if connection_id in members:
                logger.debug(f"Connection {connection_id} already in room {room_id}")
            else:
                members[connection_id] = None
                self._memberships.setdefault(connection_id, {})[room_id] = None
                logger.debug(f"Connection {connection_id} joined room {room_id} (members: {len(members)})")
            return list(members)

    async def leave(self, connection_id: str, room_id: str) -> Optional[List[str]]:
        """Remove a connection from one room.

        Returns the remaining members, or None if the connection was not in the room.
        """
        async with self._lock:
            return self._remove(connection_id, room_id)

    async def leave_all(self, connection_id: str) -> Dict[str, List[str]]:
        """Remove a connection from every room it belongs to.

        Returns {room_id: remaining members} for each room it was removed from.
        """
        async with self._lock:
            left = {}
            for room_id in list(self._memberships.get(connection_id, {})):
                remaining = self._remove(connection_id, room_id)
                if remaining is not None:
                    left[room_id] = remaining
            return left

    async def members_except(self, room_id: str, connection_id: str) -> List[str]:
        async with self._lock:
            return [member for member in self._rooms.get(room_id, {}) if member != connection_id]

    async def members(self, room_id: str) -> List[str]:
        async with self._lock:
            return list(self._rooms.get(room_id, {}))

    async def rooms_of(self, connection_id: str) -> List[str]:
        async with self._lock:
            return list(self._memberships.get(connection_id, {}))

    async def rooms(self) -> Dict[str, int]:
        """Snapshot of room id -> member count."""
        async with self._lock:
            return {room_id: len(members) for room_id, members in self._rooms.items()}

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def _remove(self, connection_id: str, room_id: str) -> Optional[List[str]]:
        # caller must hold self._lock
        members = self._rooms.get(room_id)
        if members is None or connection_id not in members:
            return None
        del members[connection_id]
        if not members:
            del self._rooms[room_id]
            logger.debug(f"Room {room_id} is empty, dropping it")

        rooms = self._memberships.get(connection_id)
        if rooms is not None:
            rooms.pop(room_id, None)
            if not rooms:
                del self._memberships[connection_id]

        logger.debug(f"Connection {connection_id} left room {room_id} (remaining: {len(members)})")
        return list(members)
