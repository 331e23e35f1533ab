"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Mapping

import pytest

from reportstudio.editor.session import ReportSession
from reportstudio.events import Event, EventBus
from reportstudio.services import telemetry
from reportstudio.services.autosave import ManualScheduler
from reportstudio.services.persistence import ReportPersistence
from reportstudio.services.settings import StudioSettings
from reportstudio.services.storage import InMemoryReportStorage, StorageError

AUTOSAVE_DELAY = 30.0


class FlakyStorage(InMemoryReportStorage):
    """In-memory storage that can be told to fail and counts its writes."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False
        self.write_calls: list[tuple[str, dict[str, Any]]] = []

    def read_live(self, report_id: str) -> Mapping[str, Any] | None:
        if self.fail_reads:
            raise StorageError("disk unavailable")
        return super().read_live(report_id)

    def write_live(self, report_id: str, payload: Mapping[str, Any]) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        self.write_calls.append((report_id, dict(payload)))
        super().write_live(report_id, payload)


class StepClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


class EventRecorder:
    """Collects every event of the given types published on a bus."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        for event_type in event_types:
            bus.subscribe(event_type, self.events.append)

    def of_type(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


@pytest.fixture
def storage() -> FlakyStorage:
    return FlakyStorage()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def persistence(storage: FlakyStorage, clock: StepClock) -> ReportPersistence:
    return ReportPersistence(storage, clock=clock)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def settings() -> StudioSettings:
    return StudioSettings(autosave_delay=AUTOSAVE_DELAY, history_depth=100)


@pytest.fixture
def session(
    persistence: ReportPersistence,
    settings: StudioSettings,
    scheduler: ManualScheduler,
    bus: EventBus,
) -> Iterator[ReportSession]:
    report_session = ReportSession(persistence, settings=settings, scheduler=scheduler, event_bus=bus)
    report_session.open("report-1")
    yield report_session


@pytest.fixture
def telemetry_sink() -> Iterator[telemetry.InMemoryTelemetrySink]:
    sink = telemetry.InMemoryTelemetrySink()
    telemetry.attach_sink(sink)
    yield sink
    telemetry.detach_sink(sink)


@pytest.fixture
def record_events(bus: EventBus):
    """Return a factory building an :class:`EventRecorder` on the session bus."""

    def _factory(*event_types: type[Event]) -> EventRecorder:
        return EventRecorder(bus, *event_types)

    return _factory
