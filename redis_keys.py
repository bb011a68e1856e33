REDIS_USERS_KEY = "room:users:{slug}" # room id - set of connection IDs
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel for presence events

# **Presence events published on `room:channel:{id}`**
# - `type` = "presence"
# - `event` = "peer_joined" | "peer_left"
# - `connection_id` = peer identity
# - `room_id` = room id
# - `timestamp` = ISO timestamp
