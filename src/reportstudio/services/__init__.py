"""Service layer helpers (storage, persistence, autosave, settings, telemetry)."""

from .autosave import AutosaveTimer, ManualScheduler, Scheduler
from .persistence import PersistenceError, ReportPersistence, Version
from .settings import SettingsStore, StudioSettings
from .storage import InMemoryReportStorage, JsonFileReportStorage, ReportStorage, StorageError

__all__ = [
    "AutosaveTimer",
    "ManualScheduler",
    "Scheduler",
    "PersistenceError",
    "ReportPersistence",
    "Version",
    "SettingsStore",
    "StudioSettings",
    "InMemoryReportStorage",
    "JsonFileReportStorage",
    "ReportStorage",
    "StorageError",
]
