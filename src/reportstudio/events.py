"""Typed publish/subscribe bus connecting the editor session to its views.

Renderers, toolbars and the autosave indicator observe the session through
these events instead of holding a reference to its internals. Dispatch
follows the event's class hierarchy, so subscribing to :class:`Event`
observes everything a session publishes.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, ClassVar

__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "Subscription",
    "ReportOpened",
    "ReportClosed",
    "TreeChanged",
    "SelectionChanged",
    "DirtyStateChanged",
    "ReportSaved",
    "SaveFailed",
    "VersionRestored",
]

LOGGER = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass(frozen=True, slots=True)
class Event:
    """Base class for every session event."""

    # High-frequency event types set this to skip dispatch logging.
    quiet: ClassVar[bool] = False


# ---------------------------------------------------------------------------
# Report lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReportOpened(Event):
    """A report's content tree has been loaded into a session.

    Attributes:
        report_id: Identifier of the opened report.
        section_count: Number of sections in the loaded tree.
    """

    report_id: str
    section_count: int = 0


@dataclass(frozen=True, slots=True)
class ReportClosed(Event):
    report_id: str


@dataclass(frozen=True, slots=True)
class TreeChanged(Event):
    """Published after every successful command, undo, redo or restore.

    Attributes:
        report_id: Identifier of the edited report.
        reason: Name of the command that produced the new tree.
        can_undo: Whether an undo step is now available.
        can_redo: Whether a redo step is now available.
    """

    report_id: str
    reason: str
    can_undo: bool
    can_redo: bool


@dataclass(frozen=True, slots=True)
class SelectionChanged(Event):
    quiet: ClassVar[bool] = True

    report_id: str
    section_id: str | None
    block_id: str | None


@dataclass(frozen=True, slots=True)
class DirtyStateChanged(Event):
    report_id: str
    is_dirty: bool


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReportSaved(Event):
    """A save (manual or autosave) reached storage.

    Attributes:
        report_id: Identifier of the saved report.
        version_number: Number of the version appended by the save.
        saved_at: Timestamp recorded on that version.
        autosave: True when the autosave timer triggered the save.
    """

    report_id: str
    version_number: int
    saved_at: datetime
    autosave: bool = False


@dataclass(frozen=True, slots=True)
class SaveFailed(Event):
    report_id: str
    error: str
    autosave: bool = False


@dataclass(frozen=True, slots=True)
class VersionRestored(Event):
    report_id: str
    version_number: int


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`; ``cancel()`` detaches it."""

    __slots__ = ("event_type", "_target", "_weak", "_bus")

    def __init__(self, bus: "EventBus", event_type: type[Event], handler: Handler) -> None:
        self.event_type = event_type
        self._bus = weakref.ref(bus)
        self._weak = _is_bound_method(handler)
        self._target: Any = weakref.WeakMethod(handler) if self._weak else handler

    @property
    def handler(self) -> Handler | None:
        """The live handler, or ``None`` once a bound method's owner is gone."""

        return self._target() if self._weak else self._target

    @property
    def active(self) -> bool:
        bus = self._bus()
        return bus is not None and bus._contains(self) and self.handler is not None

    def cancel(self) -> None:
        bus = self._bus()
        if bus is not None:
            bus._remove(self)


class EventBus:
    """Synchronous dispatcher keyed by event class.

    Bound-method handlers are held weakly so a view that goes away stops
    receiving events; plain functions and lambdas are held strongly. A
    handler that raises is logged and the remaining handlers still run.
    Handlers registered for a base class receive its subclasses too, after
    the handlers registered for the exact type.

    Example::

        bus = EventBus()
        subscription = bus.subscribe(TreeChanged, lambda event: print(event.reason))
        ...
        subscription.cancel()
    """

    def __init__(self) -> None:
        self._subscriptions: dict[type[Event], list[Subscription]] = {}

    def subscribe(self, event_type: type[Event], handler: Handler) -> Subscription:
        subscription = Subscription(self, event_type, handler)
        self._subscriptions.setdefault(event_type, []).append(subscription)
        LOGGER.debug("%s subscribed to %s", _describe(handler), event_type.__name__)
        return subscription

    def unsubscribe(self, event_type: type[Event], handler: Handler) -> bool:
        """Detach the earliest registration of ``handler``; returns whether one existed."""

        for subscription in self._subscriptions.get(event_type, ()):
            if subscription.handler == handler:
                self._remove(subscription)
                return True
        return False

    def publish(self, event: Event) -> int:
        """Deliver ``event`` and return how many handlers received it."""

        event_type = type(event)
        delivered = 0
        for cls in event_type.__mro__:
            for subscription in list(self._subscriptions.get(cls, ())):
                handler = subscription.handler
                if handler is None:
                    self._remove(subscription)
                    continue
                delivered += 1
                try:
                    handler(event)
                except Exception:
                    LOGGER.exception("%s failed while handling %s", _describe(handler), event_type.__name__)
            if cls is Event:
                break
        if not event_type.quiet:
            LOGGER.debug("Published %s to %d handler(s)", event_type.__name__, delivered)
        return delivered

    def clear(self) -> None:
        self._subscriptions.clear()

    def handler_count(self, event_type: type[Event] | None = None) -> int:
        """Count live registrations for ``event_type``, or for every type."""

        if event_type is not None:
            groups = [self._subscriptions.get(event_type, [])]
        else:
            groups = list(self._subscriptions.values())
        return sum(1 for group in groups for subscription in group if subscription.handler is not None)

    def _contains(self, subscription: Subscription) -> bool:
        return subscription in self._subscriptions.get(subscription.event_type, ())

    def _remove(self, subscription: Subscription) -> None:
        group = self._subscriptions.get(subscription.event_type)
        if group and subscription in group:
            group.remove(subscription)
            if not group:
                del self._subscriptions[subscription.event_type]


def _is_bound_method(handler: Handler) -> bool:
    return getattr(handler, "__self__", None) is not None and hasattr(handler, "__func__")


def _describe(handler: Handler) -> str:
    if _is_bound_method(handler):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__qualname__", repr(handler))
