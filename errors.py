class SignalingError(Exception):
    """Base class for every error raised by the relay."""


class DeliveryError(SignalingError):
    """A message could not be pushed to a connection because its transport is gone."""

    def __init__(self, connection_id: str, reason: str = "connection closed"):
        self.connection_id = connection_id
        self.reason = reason
        super().__init__(f"Cannot deliver to {connection_id}: {reason}")


class MalformedMessage(SignalingError):
    """An inbound frame could not be understood and was dropped."""

    def __init__(self, reason: str, raw=None):
        self.reason = reason
        self.raw = raw
        super().__init__(reason)


class RelayConnectionError(SignalingError):
    """The client side of a relay session failed or is not open."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Relay session with {url} failed: {reason}")
