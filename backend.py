import json
from datetime import datetime
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from constants import PRESENCE_TTL, REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, REDIS_SOCKET_TIMEOUT
from logging_config import get_logger
from redis_keys import REDIS_ROOM_CHANNEL, REDIS_USERS_KEY

logger = get_logger(__name__)


class RedisBackend:
    """Mirrors room membership into Redis for out-of-process observers.

    The relay never reads routing decisions back from Redis; the in-process
    RoomRegistry stays authoritative. Room member sets live under
    ``room:users:{room_id}`` and presence events are published on
    ``room:channel:{room_id}``.
    """

    def __init__(self, redis_client=None, ttl: int = PRESENCE_TTL):
        if redis_client is None:
            logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
            redis_client = redis.Redis(
                host=REDIS_HOST,
                port=REDIS_PORT,
                password=REDIS_PASSWORD,
                decode_responses=True,
                socket_timeout=REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
            )
        self.redis_client = redis_client
        self.ttl = ttl

    async def ping(self) -> bool:
        try:
            await self.redis_client.ping()
            logger.info("Redis presence mirror connected successfully")
            return True
        except RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            return False

    async def add_member(self, room_id: str, connection_id: str):
        """Add a connection to the room's mirrored member set."""
        users_key = REDIS_USERS_KEY.format(slug=room_id)
        added = await self.redis_client.sadd(users_key, connection_id)
        if self.ttl:
            await self.redis_client.expire(users_key, self.ttl)
        logger.debug(f"Mirrored {connection_id} into {users_key} (new member: {bool(added)})")
        return True

    async def remove_member(self, room_id: str, connection_id: str):
        """Remove a connection from the room's mirrored member set.

        Redis drops the set itself once its last member is removed.
        """
        users_key = REDIS_USERS_KEY.format(slug=room_id)
        removed = await self.redis_client.srem(users_key, connection_id)
        logger.debug(f"Removed {connection_id} from {users_key}: removed={removed}")
        return True

    def get_room_channel_name(self, room_id: str) -> str:
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    async def publish_presence(self, room_id: str, event: str, connection_id: str):
        """Publish a presence event to the room's pub/sub channel."""
        channel = self.get_room_channel_name(room_id)
        message = {
            "type": "presence",
            "event": event,
            "connection_id": connection_id,
            "room_id": room_id,
            "timestamp": datetime.now().isoformat(),
        }
        subscribers = await self.redis_client.publish(channel, json.dumps(message))
        logger.debug(f"Published {event} for {connection_id} to {channel}, {subscribers} subscribers")
        return True

    async def close(self):
        await self.redis_client.aclose()


def create_backend(enabled: bool, redis_client=None) -> Optional[RedisBackend]:
    if not enabled:
        logger.info("Presence mirror disabled")
        return None
    return RedisBackend(redis_client=redis_client)
