"""Metric definitions for the realtime layer and the HTTP API."""

from __future__ import annotations

from .registry import registry


realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of live websocket connections handled by this process.",
    label_names=("scope",),
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Events fanned out to websocket connections, by event name and delivery scope.",
    label_names=("event", "scope"),
)

realtime_delivery_failures_total = registry.counter(
    "realtime_delivery_failures_total",
    "Event deliveries dropped because the target connection was no longer live.",
    label_names=("event",),
)

api_errors_total = registry.counter(
    "api_errors_total",
    "Requests rejected with a typed error, by error kind.",
    label_names=("kind",),
)
