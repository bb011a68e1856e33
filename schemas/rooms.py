from pydantic import BaseModel


class RoomSummary(BaseModel):
    room_id: str
    member_count: int


class RoomDetailsResponse(BaseModel):
    room_id: str
    member_count: int
    members: list[str]


class HealthResponse(BaseModel):
    status: str
    connections: int
    rooms: int
