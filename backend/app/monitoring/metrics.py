"""Metric definitions for room lifecycle operations and event delivery."""

from __future__ import annotations

from .registry import registry


room_operations_total = registry.counter(
    "room_operations_total",
    "Room membership operations grouped by outcome (ok or the error name).",
    label_names=("operation", "outcome"),
)

room_notifications_total = registry.counter(
    "room_notifications_total",
    "Best-effort room events handed to the notifier.",
    label_names=("target",),
)

room_notification_failures_total = registry.counter(
    "room_notification_failures_total",
    "Room events that could not be delivered or published.",
    label_names=("target",),
)

code_generation_exhausted_total = registry.counter(
    "room_code_generation_exhausted_total",
    "Code generation runs that gave up after the retry bound.",
    label_names=("kind",),
)

realtime_sessions = registry.gauge(
    "realtime_active_sessions",
    "Websocket sessions registered with the local session registry.",
    label_names=("scope",),
)
