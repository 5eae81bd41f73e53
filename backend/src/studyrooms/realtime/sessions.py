"""Registry of live websocket sessions used for room event fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, Set

from fastapi import status
from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON through a websocket, returning False when the peer is gone."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as exc:
        logger.debug("Failed to send websocket message: %s", exc)
        return False


async def safe_close(
    websocket: WebSocket,
    *,
    code: int = status.WS_1008_POLICY_VIOLATION,
    reason: str | None = None,
) -> bool:
    """Close a websocket, returning False when it was already gone."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.close(code=code, reason=reason)
        return True
    except RuntimeError as exc:
        logger.debug("Failed to close websocket: %s", exc)
        return False


class SessionRegistry:
    """Tracks which websockets belong to which user and which room.

    Sessions are registered when a websocket is accepted and deregistered
    when it disconnects. Room sockets are indexed by room and then by user so
    that a member who loses access can be cut off without touching the others.
    The registry is injected into the event notifier rather than reached
    through module globals.
    """

    def __init__(self) -> None:
        self._users: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._rooms: Dict[int, Dict[int, Set[WebSocket]]] = defaultdict(lambda: defaultdict(set))
        self._lock = asyncio.Lock()

    async def register_user(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            self._users[user_id].add(websocket)

    async def deregister_user(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            self._discard(self._users, user_id, websocket)

    async def subscribe_room(self, room_id: int, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            self._rooms[room_id][user_id].add(websocket)

    async def unsubscribe_room(self, room_id: int, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            members = self._rooms.get(room_id)
            if members is None:
                return
            self._discard(members, user_id, websocket)
            if not members:
                self._rooms.pop(room_id, None)

    async def remove_user_from_room(self, room_id: int, user_id: int) -> int:
        """Close every room socket *user_id* holds for *room_id*."""

        async with self._lock:
            members = self._rooms.get(room_id)
            sockets = list(members.pop(user_id, ())) if members is not None else []
            if members is not None and not members:
                self._rooms.pop(room_id, None)
        return await self._close_all(sockets, reason="Removed from room")

    async def drop_room(self, room_id: int) -> int:
        """Close and forget every socket subscribed to *room_id*."""

        async with self._lock:
            members = self._rooms.pop(room_id, {})
            sockets = [socket for user_sockets in members.values() for socket in user_sockets]
        return await self._close_all(sockets, reason="Room deleted")

    async def send_to_user(self, user_id: int, payload: dict[str, Any]) -> int:
        async with self._lock:
            sockets = list(self._users.get(user_id, ()))
        return await self._send_all(sockets, payload)

    async def send_to_room(self, room_id: int, payload: dict[str, Any]) -> int:
        async with self._lock:
            members = self._rooms.get(room_id, {})
            sockets = [socket for user_sockets in members.values() for socket in user_sockets]
        return await self._send_all(sockets, payload)

    def user_session_count(self, user_id: int) -> int:
        return len(self._users.get(user_id, ()))

    def room_session_count(self, room_id: int, user_id: int | None = None) -> int:
        members = self._rooms.get(room_id, {})
        if user_id is not None:
            return len(members.get(user_id, ()))
        return sum(len(sockets) for sockets in members.values())

    @staticmethod
    def _discard(index: Dict[int, Set[WebSocket]], key: int, websocket: WebSocket) -> None:
        sockets = index.get(key)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            index.pop(key, None)

    @staticmethod
    async def _send_all(sockets: Iterable[WebSocket], payload: dict[str, Any]) -> int:
        delivered = 0
        for socket in sockets:
            if await safe_send_json(socket, payload):
                delivered += 1
        return delivered

    @staticmethod
    async def _close_all(sockets: Iterable[WebSocket], *, reason: str) -> int:
        closed = 0
        for socket in sockets:
            if await safe_close(socket, reason=reason):
                closed += 1
        return closed
