"""Storage backends behind the narrow load/save contract used by persistence.

Backends only move JSON-compatible mappings around; decoding, validation and
version numbering happen in :mod:`reportstudio.services.persistence`.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

__all__ = [
    "ReportStorage",
    "StorageError",
    "InMemoryReportStorage",
    "JsonFileReportStorage",
]

LOGGER = logging.getLogger(__name__)

_LIVE_FILENAME = "live.json"
_VERSIONS_FILENAME = "versions.json"
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class StorageError(RuntimeError):
    """Raised by backends when the underlying medium cannot be read or written."""


@runtime_checkable
class ReportStorage(Protocol):
    """Minimal storage contract for one live copy plus an append-only version log."""

    def read_live(self, report_id: str) -> Mapping[str, Any] | None:  # pragma: no cover - protocol stub
        ...

    def write_live(self, report_id: str, payload: Mapping[str, Any]) -> None:  # pragma: no cover - protocol stub
        ...

    def append_version(self, report_id: str, payload: Mapping[str, Any]) -> None:  # pragma: no cover - protocol stub
        ...

    def read_versions(self, report_id: str) -> list[Mapping[str, Any]]:  # pragma: no cover - protocol stub
        ...


class InMemoryReportStorage:
    """Dictionary-backed storage; payloads are deep-copied in and out."""

    def __init__(self) -> None:
        self._live: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, list[dict[str, Any]]] = {}

    def read_live(self, report_id: str) -> Mapping[str, Any] | None:
        payload = self._live.get(report_id)
        return copy.deepcopy(payload) if payload is not None else None

    def write_live(self, report_id: str, payload: Mapping[str, Any]) -> None:
        self._live[report_id] = copy.deepcopy(dict(payload))

    def append_version(self, report_id: str, payload: Mapping[str, Any]) -> None:
        self._versions.setdefault(report_id, []).append(copy.deepcopy(dict(payload)))

    def read_versions(self, report_id: str) -> list[Mapping[str, Any]]:
        return copy.deepcopy(self._versions.get(report_id, []))

    def report_ids(self) -> list[str]:
        return sorted(set(self._live) | set(self._versions))


class JsonFileReportStorage:
    """One directory per report holding ``live.json`` and ``versions.json``.

    Writes go to a temporary sibling first and are moved into place, so a
    crash mid-write leaves the previous file intact.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def report_dir(self, report_id: str) -> Path:
        safe = _UNSAFE_ID_CHARS.sub("_", report_id)
        if not safe or safe in {".", ".."}:
            raise StorageError(f"Invalid report id {report_id!r}")
        return self._root / safe

    def read_live(self, report_id: str) -> Mapping[str, Any] | None:
        payload = self._read_json(self.report_dir(report_id) / _LIVE_FILENAME)
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise StorageError(f"Live copy for {report_id!r} is not a JSON object")
        return payload

    def write_live(self, report_id: str, payload: Mapping[str, Any]) -> None:
        self._write_json(self.report_dir(report_id) / _LIVE_FILENAME, dict(payload))

    def append_version(self, report_id: str, payload: Mapping[str, Any]) -> None:
        versions = self.read_versions(report_id)
        versions.append(dict(payload))
        self._write_json(self.report_dir(report_id) / _VERSIONS_FILENAME, {"versions": versions})

    def read_versions(self, report_id: str) -> list[Mapping[str, Any]]:
        payload = self._read_json(self.report_dir(report_id) / _VERSIONS_FILENAME)
        if payload is None:
            return []
        versions = payload.get("versions") if isinstance(payload, dict) else None
        if not isinstance(versions, list):
            raise StorageError(f"Version log for {report_id!r} is malformed")
        return versions

    def report_ids(self) -> list[str]:
        if not self._root.exists():
            return []
        return sorted(path.name for path in self._root.iterdir() if path.is_dir())

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------
    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as exc:
            LOGGER.warning("Report file %s is not valid JSON: %s", path, exc)
            raise StorageError(f"{path.name} is not valid JSON") from exc
        except OSError as exc:
            raise StorageError(f"Unable to read {path}: {exc}") from exc

    def _write_json(self, path: Path, payload: Any) -> None:
        body = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(body, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageError(f"Unable to write {path}: {exc}") from exc
