"""WebSocket endpoint for real-time chat events."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, Depends, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from murmur.realtime import Connection, PresenceRegistry, safe_send_json

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.core.errors import Unauthenticated
from app.database import get_db_session
from app.models import User
from app.services import get_presence_registry

router = APIRouter(tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            idle_long_enough = interval <= 0 or now - last_activity >= interval
            ping_due = last_ping_sent is None or interval <= 0 or now - last_ping_sent >= interval
            if idle_long_enough and ping_due:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


def _extract_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


async def _resolve_user(websocket: WebSocket) -> User | None:
    token = _extract_token(websocket)
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            user = get_user_from_token(token, db)
            db.expunge(user)
            return user
    except Unauthenticated:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await safe_send_json(websocket, {"type": "error", "detail": detail})


async def _handle_client_message(
    connection: Connection,
    payload: Any,
    presence: PresenceRegistry,
) -> None:
    if not isinstance(payload, dict):
        await _send_error(connection.websocket, "Invalid payload")
        return

    message_type = payload.get("type")
    if message_type == "ping":
        await safe_send_json(connection.websocket, {"type": "pong"})
    elif message_type == "pong":
        return
    elif message_type == "typing":
        conversation_id = payload.get("conversation_id")
        if isinstance(conversation_id, bool) or not isinstance(conversation_id, int):
            await _send_error(connection.websocket, "conversation_id must be an integer")
            return
        await presence.typing(connection, conversation_id, bool(payload.get("is_typing", False)))
    else:
        await _send_error(connection.websocket, f"Unsupported message type: {message_type!r}")


@router.websocket("/ws")
async def websocket_events(
    websocket: WebSocket,
    presence: PresenceRegistry = Depends(get_presence_registry),
) -> None:
    """Stream every event of the user's conversations and global presence."""

    user = await _resolve_user(websocket)
    if user is None:
        return

    await websocket.accept()
    connection = Connection(websocket=websocket, user_id=user.id, username=user.username)
    logger.debug("Socket %s opened for user %s", connection.connection_id, user.id)
    await presence.on_connect(connection)

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            if not raw_message:
                continue
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await _send_error(websocket, "Invalid payload")
                continue
            await _handle_client_message(connection, payload, presence)
    finally:
        await presence.on_disconnect(connection)
        logger.debug("Socket %s closed for user %s", connection.connection_id, user.id)
