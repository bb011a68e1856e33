"""Signaling frames exchanged over the relay WebSocket.

Every frame is a JSON object with a ``type`` discriminator. Field names are
camelCase on the wire and snake_case in Python. Handshake payloads (``sdp``,
``candidate``) are typed ``Any``: they are carried through untouched and never
validated beyond being present.
"""
import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from errors import MalformedMessage


class SignalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# Client -> relay

class JoinRoom(SignalModel):
    type: Literal["join-room"] = "join-room"
    room_id: str = Field(min_length=1)


class LeaveRoom(SignalModel):
    type: Literal["leave-room"] = "leave-room"
    room_id: str = Field(min_length=1)


class Offer(SignalModel):
    type: Literal["offer"] = "offer"
    sdp: Any
    room_id: str = Field(min_length=1)


class Answer(SignalModel):
    type: Literal["answer"] = "answer"
    sdp: Any
    room_id: str = Field(min_length=1)


class IceCandidate(SignalModel):
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Any
    room_id: str = Field(min_length=1)


InboundMessage = Annotated[
    Union[JoinRoom, LeaveRoom, Offer, Answer, IceCandidate],
    Field(discriminator="type"),
]


# Relay -> client

class Welcome(SignalModel):
    type: Literal["welcome"] = "welcome"
    peer_id: str


class PeerJoined(SignalModel):
    type: Literal["peer-joined"] = "peer-joined"
    peer_id: str
    room_id: str


class PeerLeft(SignalModel):
    type: Literal["peer-left"] = "peer-left"
    peer_id: str
    room_id: str


class RelayedOffer(SignalModel):
    type: Literal["offer"] = "offer"
    sdp: Any
    peer_id: str
    room_id: str


class RelayedAnswer(SignalModel):
    type: Literal["answer"] = "answer"
    sdp: Any
    peer_id: str
    room_id: str


class RelayedIceCandidate(SignalModel):
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Any
    peer_id: str
    room_id: str


class ErrorNotice(SignalModel):
    type: Literal["error"] = "error"
    reason: str


OutboundMessage = Annotated[
    Union[Welcome, PeerJoined, PeerLeft, RelayedOffer, RelayedAnswer, RelayedIceCandidate, ErrorNotice],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundMessage)
_outbound_adapter = TypeAdapter(OutboundMessage)


def _load_frame(raw) -> dict:
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedMessage(f"Frame is not valid JSON: {e}", raw) from e
    if not isinstance(raw, dict):
        raise MalformedMessage("Frame must be a JSON object", raw)
    return raw


def _describe(e: ValidationError) -> str:
    first = e.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "frame"
    return f"{location}: {first.get('msg', 'invalid')}"


def parse_inbound(raw):
    """Parse a client frame (text or already-decoded dict) into its message variant."""
    data = _load_frame(raw)
    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessage(_describe(e), raw) from e


def parse_outbound(raw):
    """Parse a relay frame into its message variant. Used by the client."""
    data = _load_frame(raw)
    try:
        return _outbound_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessage(_describe(e), raw) from e
