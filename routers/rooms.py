from fastapi import APIRouter, HTTPException, Request

from logging_config import get_logger
from schemas.rooms import RoomDetailsResponse, RoomSummary

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/", response_model=list[RoomSummary])
async def list_rooms(request: Request):
    """List every room that currently has members."""
    rooms = await request.app.state.registry.rooms()
    logger.debug(f"Room list requested: {len(rooms)} rooms")
    return [RoomSummary(room_id=room_id, member_count=count) for room_id, count in rooms.items()]


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get the current members of a room.

    Returns:
    - room_id: Room identifier
    - member_count: Number of connections in the room
    - members: Connection ids in join order

    Rooms with no members do not exist, so they answer 404.
    """
    members = await request.app.state.registry.members(room_id)
    if not members:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    logger.debug(f"Room details retrieved for {room_id}: {len(members)} members")
    return RoomDetailsResponse(room_id=room_id, member_count=len(members), members=members)
