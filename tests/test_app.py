import time

import pytest
from fastapi.testclient import TestClient

from app import create_app

SDP_OFFER = {"type": "offer", "sdp": "v=0\r\no=- 46117317 2 IN IP4 127.0.0.1\r\n"}


@pytest.fixture
def client():
    app = create_app(signal_path="/ws", cors_origins=["*"], presence_enabled=False)
    with TestClient(app) as test_client:
        yield test_client


def open_peer(client):
    ws = client.websocket_connect("/ws").__enter__()
    welcome = ws.receive_json()
    assert welcome["type"] == "welcome"
    return ws, welcome["peerId"]


def wait_for_members(client, room_id, count, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        response = client.get(f"/rooms/{room_id}")
        if response.status_code == 200 and response.json()["member_count"] == count:
            return response.json()["members"]
        time.sleep(0.01)
    raise AssertionError(f"room {room_id} never reached {count} members")


def test_welcome_announces_identity(client):
    with client.websocket_connect("/ws") as ws:
        welcome = ws.receive_json()

    assert welcome["type"] == "welcome"
    assert len(welcome["peerId"]) == 32


def test_full_handshake_over_websocket(client):
    a, a_id = open_peer(client)
    b, b_id = open_peer(client)
    try:
        a.send_json({"type": "join-room", "roomId": "abc"})
        wait_for_members(client, "abc", 1)
        b.send_json({"type": "join-room", "roomId": "abc"})
        assert a.receive_json() == {"type": "peer-joined", "peerId": b_id, "roomId": "abc"}

        a.send_json({"type": "offer", "sdp": SDP_OFFER, "roomId": "abc"})
        assert b.receive_json() == {"type": "offer", "sdp": SDP_OFFER, "peerId": a_id, "roomId": "abc"}

        b.send_json({"type": "answer", "sdp": {"type": "answer", "sdp": "v=0"}, "roomId": "abc"})
        answer = a.receive_json()
        assert answer["type"] == "answer"
        assert answer["peerId"] == b_id

        for i in range(3):
            a.send_json({"type": "ice-candidate", "candidate": {"candidate": f"c{i}"}, "roomId": "abc"})
        received = [b.receive_json() for _ in range(3)]
        assert [message["candidate"]["candidate"] for message in received] == ["c0", "c1", "c2"]
    finally:
        a.__exit__(None, None, None)
        b.__exit__(None, None, None)


def test_third_peer_is_announced_to_both(client):
    a, _ = open_peer(client)
    b, b_id = open_peer(client)
    c, c_id = open_peer(client)
    try:
        a.send_json({"type": "join-room", "roomId": "abc"})
        wait_for_members(client, "abc", 1)
        b.send_json({"type": "join-room", "roomId": "abc"})
        assert a.receive_json()["peerId"] == b_id
        wait_for_members(client, "abc", 2)

        c.send_json({"type": "join-room", "roomId": "abc"})

        assert a.receive_json() == {"type": "peer-joined", "peerId": c_id, "roomId": "abc"}
        assert b.receive_json() == {"type": "peer-joined", "peerId": c_id, "roomId": "abc"}
        assert wait_for_members(client, "abc", 3)[-1] == c_id
    finally:
        for ws in (a, b, c):
            ws.__exit__(None, None, None)


def test_disconnect_removes_peer_and_notifies_room(client):
    a, a_id = open_peer(client)
    b, b_id = open_peer(client)
    try:
        a.send_json({"type": "join-room", "roomId": "abc"})
        wait_for_members(client, "abc", 1)
        b.send_json({"type": "join-room", "roomId": "abc"})
        a.receive_json()
        wait_for_members(client, "abc", 2)

        a.__exit__(None, None, None)

        assert b.receive_json() == {"type": "peer-left", "peerId": a_id, "roomId": "abc"}
        assert wait_for_members(client, "abc", 1) == [b_id]
    finally:
        b.__exit__(None, None, None)

    assert client.get("/rooms/abc").status_code == 404


def test_malformed_frame_is_dropped_and_connection_survives(client):
    a, _ = open_peer(client)
    b, b_id = open_peer(client)
    try:
        a.send_text("this is not json")
        error = a.receive_json()
        assert error["type"] == "error"
        assert "JSON" in error["reason"]

        a.send_json({"type": "offer", "roomId": "abc"})
        assert a.receive_json()["type"] == "error"

        a.send_json({"type": "join-room", "roomId": "abc"})
        wait_for_members(client, "abc", 1)
        b.send_json({"type": "join-room", "roomId": "abc"})
        assert a.receive_json() == {"type": "peer-joined", "peerId": b_id, "roomId": "abc"}
    finally:
        a.__exit__(None, None, None)
        b.__exit__(None, None, None)


def test_room_endpoints_reflect_membership(client):
    assert client.get("/rooms/").json() == []
    assert client.get("/rooms/lobby").status_code == 404

    a, a_id = open_peer(client)
    try:
        a.send_json({"type": "join-room", "roomId": "lobby"})
        a.send_json({"type": "join-room", "roomId": "side"})
        wait_for_members(client, "side", 1)

        assert client.get("/rooms/lobby").json() == {"room_id": "lobby", "member_count": 1, "members": [a_id]}
        rooms = {room["room_id"]: room["member_count"] for room in client.get("/rooms/").json()}
        assert rooms == {"lobby": 1, "side": 1}

        health = client.get("/health").json()
        assert health == {"status": "ok", "connections": 1, "rooms": 2}
    finally:
        a.__exit__(None, None, None)


def test_cors_allows_any_origin(client):
    response = client.get("/health", headers={"Origin": "http://example.com"})

    assert response.headers["access-control-allow-origin"] in ("*", "http://example.com")
