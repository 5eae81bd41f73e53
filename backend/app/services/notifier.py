"""Best-effort delivery of room events to users and room audiences."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine

import anyio

from app.config import get_settings
from app.monitoring.metrics import room_notification_failures_total, room_notifications_total
from studyrooms.realtime import PublisherConfig, RedisEventPublisher, SessionRegistry

logger = logging.getLogger(__name__)


class EventNotifier:
    """Fans events out to local websocket sessions and, when configured, Redis.

    Notifications are fire-and-forget: services call :meth:`notify_user` and
    :meth:`notify_room` only after their transaction committed. Delivery runs
    as a task on the event loop, so the caller never waits for a websocket or
    the broker, and no delivery failure is ever raised back to it.
    """

    def __init__(self, registry: SessionRegistry, publisher: RedisEventPublisher | None = None) -> None:
        self.registry = registry
        self.publisher = publisher
        self._tasks: set[asyncio.Task[None]] = set()

    def notify_user(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self._dispatch("user", user_id, event_type, payload)

    def notify_room(self, room_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self._dispatch("room", room_id, event_type, payload)

    def disconnect_from_room(self, room_id: int, user_id: int) -> None:
        """Close the room sockets of a user who is no longer a member."""

        self._run_detached(
            lambda: self.evict(room_id, user_id),
            target="room",
            description=f"eviction of user {user_id} from room {room_id}",
        )

    def close_room(self, room_id: int) -> None:
        """Close every socket subscribed to a deleted room."""

        self._run_detached(
            lambda: self.evict(room_id),
            target="room",
            description=f"shutdown of room {room_id}",
        )

    async def deliver(self, scope: str, target_id: int, envelope: dict[str, Any]) -> None:
        try:
            if scope == "user":
                await self.registry.send_to_user(target_id, envelope)
            else:
                await self.registry.send_to_room(target_id, envelope)
            if self.publisher is not None and self.publisher.connected:
                await self.publisher.publish(scope, target_id, envelope)
        except Exception:
            room_notification_failures_total.inc(target=scope)
            logger.warning(
                "Failed to deliver %s event to %s %s",
                envelope.get("type"),
                scope,
                target_id,
                exc_info=True,
            )

    async def evict(self, room_id: int, user_id: int | None = None) -> None:
        try:
            if user_id is None:
                await self.registry.drop_room(room_id)
            else:
                await self.registry.remove_user_from_room(room_id, user_id)
        except Exception:
            room_notification_failures_total.inc(target="room")
            logger.warning("Failed to close room %s sockets", room_id, exc_info=True)

    def _dispatch(self, scope: str, target_id: int, event_type: str, payload: dict[str, Any]) -> None:
        envelope = {"type": event_type, **payload, "timestamp": int(time.time() * 1000)}
        room_notifications_total.inc(target=scope)
        self._run_detached(
            lambda: self.deliver(scope, target_id, envelope),
            target=scope,
            description=f"{event_type} event for {scope} {target_id}",
        )

    def _run_detached(
        self,
        factory: Callable[[], Coroutine[Any, Any, None]],
        *,
        target: str,
        description: str,
    ) -> None:
        # Sync routes run in an anyio worker thread: hand the coroutine to the
        # loop and return without waiting for it.
        try:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                try:
                    anyio.from_thread.run_sync(self._spawn, factory)
                except RuntimeError:
                    asyncio.run(factory())
            else:
                self._spawn(factory)
        except Exception:
            room_notification_failures_total.inc(target=target)
            logger.warning("Could not schedule %s", description, exc_info=True)

    def _spawn(self, factory: Callable[[], Coroutine[Any, Any, None]]) -> None:
        task = asyncio.get_running_loop().create_task(factory())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


session_registry = SessionRegistry()
"""Websocket sessions connected to this process."""

event_notifier = EventNotifier(session_registry)
"""Notifier shared by the HTTP handlers of this process."""


def get_event_notifier() -> EventNotifier:
    return event_notifier


async def startup_notifier() -> None:
    """Attach the Redis publisher when a broker URL is configured."""

    settings = get_settings()
    if not settings.realtime_redis_url:
        return
    publisher = RedisEventPublisher(
        PublisherConfig(
            redis_url=settings.realtime_redis_url,
            prefix=settings.realtime_redis_prefix,
            socket_timeout=settings.realtime_redis_socket_timeout_seconds,
            socket_connect_timeout=settings.realtime_redis_connect_timeout_seconds,
        )
    )
    try:
        await publisher.start()
    except Exception:
        logger.warning("Redis event publisher unavailable, continuing with local delivery only")
        return
    event_notifier.publisher = publisher
    logger.info("Redis event publisher connected")


async def shutdown_notifier() -> None:
    publisher = event_notifier.publisher
    event_notifier.publisher = None
    if publisher is not None:
        await publisher.stop()
