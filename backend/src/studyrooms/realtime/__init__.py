"""Realtime helpers for delivering room events."""

from .sessions import SessionRegistry, safe_close, safe_send_json
from .transport import PublisherConfig, PublisherUnavailableError, RedisEventPublisher

__all__ = [
    "SessionRegistry",
    "safe_send_json",
    "safe_close",
    "PublisherConfig",
    "PublisherUnavailableError",
    "RedisEventPublisher",
]
