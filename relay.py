import asyncio
from typing import Iterable, Optional

from constants import PRESENCE_TIMEOUT
from errors import DeliveryError
from gateway import ConnectionGateway
from logging_config import get_logger
from registry import RoomRegistry
from schemas.signals import (
    Answer,
    IceCandidate,
    JoinRoom,
    LeaveRoom,
    Offer,
    PeerJoined,
    PeerLeft,
    RelayedAnswer,
    RelayedIceCandidate,
    RelayedOffer,
)

logger = get_logger(__name__)


class MessageRouter:
    """Fans signaling messages out to the other members of a room.

    The router never looks inside handshake payloads and keeps no handshake
    state: it will relay an offer to a peer that never asked for one.
    Delivery is best-effort per member; one failed member never stops the
    others or fails the route call.

    Presence mirror writes are queued and applied in order by a background
    worker, each bounded by ``mirror_timeout``, so routing never waits on Redis.
    """

    def __init__(self, gateway: ConnectionGateway, registry: RoomRegistry, presence=None, mirror_timeout: float = PRESENCE_TIMEOUT):
        self.gateway = gateway
        self.registry = registry
        self.presence = presence
        self.mirror_timeout = mirror_timeout
        self._mirror_queue: asyncio.Queue = asyncio.Queue()
        self._mirror_worker: Optional[asyncio.Task] = None

    async def route(self, sender_id: str, message) -> int:
        """Apply one inbound message from sender_id. Returns how many members it reached."""
        room_id = message.room_id

        if isinstance(message, JoinRoom):
            await self.registry.join(sender_id, room_id)
            logger.info(f"Connection {sender_id} joined room {room_id}")
            self._mirror("add_member", room_id, sender_id, "peer_joined")
            targets = await self.registry.members_except(room_id, sender_id)
            outbound = PeerJoined(peer_id=sender_id, room_id=room_id)
        elif isinstance(message, LeaveRoom):
            remaining = await self.registry.leave(sender_id, room_id)
            if remaining is None:
                logger.debug(f"Connection {sender_id} left room {room_id} it was not in, ignoring")
                return 0
            logger.info(f"Connection {sender_id} left room {room_id}")
            self._mirror("remove_member", room_id, sender_id, "peer_left")
            targets = remaining
            outbound = PeerLeft(peer_id=sender_id, room_id=room_id)
        elif isinstance(message, Offer):
            targets = await self.registry.members_except(room_id, sender_id)
            outbound = RelayedOffer(sdp=message.sdp, peer_id=sender_id, room_id=room_id)
        elif isinstance(message, Answer):
            targets = await self.registry.members_except(room_id, sender_id)
            outbound = RelayedAnswer(sdp=message.sdp, peer_id=sender_id, room_id=room_id)
        elif isinstance(message, IceCandidate):
            targets = await self.registry.members_except(room_id, sender_id)
            outbound = RelayedIceCandidate(candidate=message.candidate, peer_id=sender_id, room_id=room_id)
        else:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")

        return await self.broadcast(room_id, targets, outbound)

    async def disconnect(self, connection_id: str) -> int:
        """Clean up after a closed transport and tell every affected room."""
        left = await self.gateway.on_disconnect(connection_id)
        delivered = 0
        for room_id, remaining in left.items():
            logger.info(f"Connection {connection_id} removed from room {room_id} on disconnect")
            self._mirror("remove_member", room_id, connection_id, "peer_left")
            delivered += await self.broadcast(room_id, remaining, PeerLeft(peer_id=connection_id, room_id=room_id))
        return delivered

    async def broadcast(self, room_id: str, targets: Iterable[str], message) -> int:
        """Send message to every target concurrently. Returns the number of successful deliveries."""
        targets = list(targets)
        if not targets:
            logger.debug(f"No other members in room {room_id} for {message.type}")
            return 0

        results = await asyncio.gather(
            *(self.gateway.send(target, message) for target in targets),
            return_exceptions=True,
        )
        delivered = 0
        for target, result in zip(targets, results):
            if isinstance(result, DeliveryError):
                logger.warning(f"Dropped {message.type} to {target} in room {room_id}: {result.reason}")
            elif isinstance(result, BaseException):
                logger.error(f"Unexpected error sending {message.type} to {target} in room {room_id}: {result}", exc_info=result)
            else:
                delivered += 1
        logger.debug(f"Broadcast {message.type} in room {room_id} to {delivered}/{len(targets)} members")
        return delivered

    async def flush_mirror(self):
        """Wait until every queued presence write has been applied or given up on."""
        if self._mirror_worker is not None and not self._mirror_worker.done():
            await self._mirror_queue.join()

    async def aclose(self):
        """Stop the presence worker, dropping writes still queued."""
        worker, self._mirror_worker = self._mirror_worker, None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        logger.debug(f"Presence worker stopped ({self._mirror_queue.qsize()} writes dropped)")

    def _mirror(self, operation: str, room_id: str, connection_id: str, event: str):
        if self.presence is None:
            return
        if self._mirror_worker is None or self._mirror_worker.done():
            self._mirror_worker = asyncio.create_task(self._run_mirror())
        self._mirror_queue.put_nowait((operation, room_id, connection_id, event))

    async def _run_mirror(self):
        while True:
            operation, room_id, connection_id, event = await self._mirror_queue.get()
            try:
                await asyncio.wait_for(self._record(operation, room_id, connection_id, event), self.mirror_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Presence mirror timed out recording {event} for {connection_id} in room {room_id}")
            except Exception as e:
                logger.error(f"Presence mirror failed to record {event} for {connection_id} in room {room_id}: {e}", exc_info=True)
            finally:
                self._mirror_queue.task_done()

    async def _record(self, operation: str, room_id: str, connection_id: str, event: str):
        await getattr(self.presence, operation)(room_id, connection_id)
        await self.presence.publish_presence(room_id, event, connection_id)
