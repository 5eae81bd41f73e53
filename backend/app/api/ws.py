"""WebSocket endpoints delivering room events to connected clients."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.core.errors import RoomServiceError
from app.database import get_db_session
from app.models import User
from app.monitoring.metrics import realtime_sessions
from app.services.notifier import session_registry
from app.services.room_state import get_active_room, require_membership
from studyrooms.realtime import safe_send_json

router = APIRouter(prefix="/ws", tags=["ws"])

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
            idle = now - last_activity
            if interval <= 0 or (
                idle >= interval and (last_ping_sent is None or now - last_ping_sent >= interval)
            ):
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


async def _resolve_user(websocket: WebSocket) -> User | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            return get_user_from_token(token, db)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


async def _pump(websocket: WebSocket) -> None:
    """Answer pings until the client goes away; clients never push events."""

    async for raw_message in iter_keepalive_messages(
        websocket,
        websocket.receive_text,
        timeout_seconds=settings.websocket_keepalive_timeout_seconds,
        ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
    ):
        if not raw_message:
            continue
        if raw_message.strip().lower() == "ping":
            await safe_send_json(websocket, {"type": "pong"})
            continue
        try:
            payload = json.loads(raw_message)
        except json.JSONDecodeError:
            await safe_send_json(websocket, {"type": "error", "detail": "Invalid JSON payload"})
            continue
        if isinstance(payload, dict) and payload.get("type") == "ping":
            await safe_send_json(websocket, {"type": "pong"})


@router.websocket("/notifications")
async def websocket_notifications(websocket: WebSocket) -> None:
    """Stream events addressed to the authenticated user."""

    user = await _resolve_user(websocket)
    if user is None:
        return
    user_id = user.id

    await websocket.accept()
    await session_registry.register_user(user_id, websocket)
    realtime_sessions.inc(scope="user")
    try:
        await safe_send_json(websocket, {"type": "ready", "user_id": user_id})
        await _pump(websocket)
    finally:
        await session_registry.deregister_user(user_id, websocket)
        realtime_sessions.dec(scope="user")


@router.websocket("/rooms/{room_id}")
async def websocket_room_events(websocket: WebSocket, room_id: int) -> None:
    """Stream events broadcast to the members of a room."""

    user = await _resolve_user(websocket)
    if user is None:
        return
    user_id = user.id

    with get_db_session() as db:
        try:
            room = get_active_room(db, room_id)
            require_membership(db, room.id, user_id)
        except RoomServiceError as exc:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
            return

    await websocket.accept()
    await session_registry.subscribe_room(room_id, user_id, websocket)
    realtime_sessions.inc(scope="room")
    try:
        await safe_send_json(websocket, {"type": "ready", "room_id": room_id})
        await _pump(websocket)
    finally:
        await session_registry.unsubscribe_room(room_id, user_id, websocket)
        realtime_sessions.dec(scope="room")
        if websocket.application_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError:  # pragma: no cover - already closed
                logger.debug("Room websocket for %s already closed", room_id)
