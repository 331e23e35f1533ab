"""In-process telemetry for editing activity.

The session emits one structured payload per command, failed command and
save. Hosts forward them to their own analytics by registering listeners;
tests attach an :class:`InMemoryTelemetrySink`.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Mapping, Protocol

__all__ = [
    "MUTATION_EVENT",
    "MUTATION_FAILED_EVENT",
    "REPORT_SAVED_EVENT",
    "KNOWN_EVENTS",
    "TelemetrySink",
    "InMemoryTelemetrySink",
    "register_event_listener",
    "unregister_event_listener",
    "attach_sink",
    "detach_sink",
    "emit",
]

LOGGER = logging.getLogger(__name__)

MUTATION_EVENT = "content.mutation"
MUTATION_FAILED_EVENT = "content.mutation_failed"
REPORT_SAVED_EVENT = "report.saved"
KNOWN_EVENTS: tuple[str, ...] = (MUTATION_EVENT, MUTATION_FAILED_EVENT, REPORT_SAVED_EVENT)

Listener = Callable[[dict[str, Any]], None]

_listeners: dict[str, list[Listener]] = {}


class TelemetrySink(Protocol):
    def record(self, payload: dict[str, Any]) -> None:  # pragma: no cover - protocol stub
        ...


class InMemoryTelemetrySink:
    """Keeps the most recent payloads plus a running total per event name."""

    def __init__(self, capacity: int = 200) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._recent: deque[dict[str, Any]] = deque(maxlen=capacity)
        self._totals: Counter[str] = Counter()
        self._guard = Lock()

    @property
    def capacity(self) -> int:
        return self._recent.maxlen or 0

    def record(self, payload: dict[str, Any]) -> None:
        with self._guard:
            self._recent.append(payload)
            self._totals[str(payload.get("event", ""))] += 1

    def tail(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Return retained payloads, oldest first, optionally only the last ``limit``."""

        with self._guard:
            recent = list(self._recent)
        return recent if limit is None else recent[-limit:] if limit > 0 else []

    def count(self, event_name: str) -> int:
        """Total payloads recorded for ``event_name``, including evicted ones."""

        with self._guard:
            return self._totals[event_name]

    def for_report(self, report_id: str) -> list[dict[str, Any]]:
        with self._guard:
            return [payload for payload in self._recent if payload.get("report_id") == report_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._recent)


def register_event_listener(event_name: str, callback: Listener) -> None:
    """Call ``callback`` with every payload emitted under ``event_name``; idempotent."""

    if not event_name:
        raise ValueError("event_name must not be empty")
    registered = _listeners.setdefault(event_name, [])
    if callback not in registered:
        registered.append(callback)


def unregister_event_listener(event_name: str, callback: Listener) -> None:
    registered = _listeners.get(event_name, [])
    if callback in registered:
        registered.remove(callback)
    if not registered:
        _listeners.pop(event_name, None)


def attach_sink(sink: TelemetrySink, *event_names: str) -> None:
    """Route ``event_names`` (every known event by default) into ``sink``."""

    for name in event_names or KNOWN_EVENTS:
        register_event_listener(name, sink.record)


def detach_sink(sink: TelemetrySink, *event_names: str) -> None:
    for name in event_names or KNOWN_EVENTS:
        unregister_event_listener(name, sink.record)


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Stamp ``payload`` with the event name and UTC time, then hand it to listeners.

    Each listener gets its own copy; a listener that raises is logged and skipped.
    """

    stamped: dict[str, Any] = {
        "event": event_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **(payload or {}),
    }
    listeners = list(_listeners.get(event_name, ()))
    for listener in listeners:
        try:
            listener(dict(stamped))
        except Exception:
            LOGGER.warning("Telemetry listener %r failed on %s", listener, event_name, exc_info=True)
    LOGGER.debug("Telemetry %s -> %d listener(s)", event_name, len(listeners))
