import pytest

from gateway import ConnectionGateway
from registry import RoomRegistry
from relay import MessageRouter


class FakeTransport:
    """Stands in for a WebSocket: records everything sent to it."""

    def __init__(self, fail_with: Exception = None):
        self.sent = []
        self.fail_with = fail_with

    async def send_json(self, data):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(data)

    def of_type(self, kind):
        return [message for message in self.sent if message["type"] == kind]


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def gateway(registry):
    return ConnectionGateway(registry)


@pytest.fixture
def router(gateway, registry):
    return MessageRouter(gateway, registry)


@pytest.fixture
def connect(gateway):
    """Open a fake connection and return (connection_id, transport)."""
    def _connect(fail_with: Exception = None):
        transport = FakeTransport(fail_with=fail_with)
        return gateway.on_connect(transport), transport
    return _connect
