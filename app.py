from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketState

import constants
from backend import create_backend
from errors import DeliveryError, MalformedMessage
from gateway import ConnectionGateway
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from relay import MessageRouter
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse
from schemas.signals import ErrorNotice, Welcome, parse_inbound

logger = get_logger(__name__)


async def signaling_endpoint(websocket: WebSocket):
    """One task per connection: accept, register, relay frames until the transport closes."""
    gateway: ConnectionGateway = websocket.app.state.gateway
    router: MessageRouter = websocket.app.state.router

    await websocket.accept()
    connection_id = gateway.on_connect(websocket)
    logger.info(f"WebSocket connection accepted: {connection_id}")

    try:
        await gateway.send(connection_id, Welcome(peer_id=connection_id))

        message_count = 0
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally for connection {connection_id} (code {frame.get('code')})")
                break

            data = frame.get("text")
            if data is None:
                data = frame.get("bytes")
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")

            try:
                message = parse_inbound(data)
            except MalformedMessage as e:
                logger.warning(f"Dropped malformed message from connection {connection_id}: {e.reason}")
                await gateway.send(connection_id, ErrorNotice(reason=e.reason))
                continue

            delivered = await router.route(connection_id, message)
            logger.debug(f"Routed {message.type} from {connection_id} in room {message.room_id} to {delivered} members")

    except DeliveryError as e:
        logger.info(f"Connection {connection_id} can no longer be reached: {e.reason}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        await router.disconnect(connection_id)
        if websocket.application_state == WebSocketState.CONNECTED and websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug(f"Error closing WebSocket: {e}")


def create_app(
    signal_path: str = constants.SIGNAL_PATH,
    cors_origins: Optional[List[str]] = None,
    presence_enabled: bool = constants.PRESENCE_ENABLED,
    presence=None,
) -> FastAPI:
    """Build the relay application.

    Each app owns its own registry, gateway and router; nothing is shared
    between apps. Pass ``presence`` to supply a ready presence mirror instead of
    building one from the environment.
    """
    if presence is None:
        presence = create_backend(presence_enabled)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if presence is not None:
            await presence.ping()
        yield
        await app.state.router.aclose()
        if presence is not None:
            await presence.close()
            logger.debug("Closed presence mirror")

    app = FastAPI(title="Signaling Relay", lifespan=lifespan)

    # The original signaling server allowed any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins is not None else constants.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    registry = RoomRegistry()
    gateway = ConnectionGateway(registry)
    app.state.registry = registry
    app.state.gateway = gateway
    app.state.router = MessageRouter(gateway, registry, presence=presence)

    app.include_router(rooms_router)
    app.add_api_websocket_route(signal_path, signaling_endpoint)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok", connections=len(gateway), rooms=len(registry))

    logger.info(f"Signaling relay initialized, WebSocket endpoint at {signal_path}")
    return app


setup_logging(log_level=constants.LOG_LEVEL, log_file=constants.LOG_FILE)
app = create_app()
