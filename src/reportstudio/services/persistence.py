"""Load/save adapter and append-only version log for report content."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from ..content.blocks import parse_timestamp
from ..content.errors import ContentError, ErrorCode
from ..content.model import ContentTree, check_integrity, tree_from_dict, tree_to_dict
from ..content.schema import describe_issues, validate_tree_payload, validate_version_payload
from .storage import ReportStorage

__all__ = ["PersistenceError", "ReportPersistence", "Version", "SAVE_KIND", "SNAPSHOT_KIND"]

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]

SAVE_KIND = "save"
SNAPSHOT_KIND = "snapshot"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PersistenceError(ContentError):
    """Storage could not be read or written, or held an invalid payload."""

    error_code: str = field(default=ErrorCode.STORAGE_FAILED)
    message: str = field(default="Report storage failed")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Version:
    """Read-only snapshot of a report's content taken at save time.

    ``kind`` is ``"save"`` when the version was written together with the live
    copy and ``"snapshot"`` for named snapshots from :meth:`ReportPersistence.save_version`.
    """

    report_id: str
    version_number: int
    timestamp: datetime
    tree: ContentTree
    label: str | None = None
    kind: str = SAVE_KIND

    def to_dict(self) -> dict[str, Any]:
        return {
            "reportId": self.report_id,
            "versionNumber": self.version_number,
            "timestamp": self.timestamp.isoformat(),
            "label": self.label,
            "kind": self.kind,
            "content": tree_to_dict(self.tree),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Version":
        return cls(
            report_id=str(payload["reportId"]),
            version_number=int(payload["versionNumber"]),
            timestamp=parse_timestamp(payload.get("timestamp")),
            tree=tree_from_dict(payload.get("content")),
            label=payload.get("label"),
            kind=payload.get("kind") or SAVE_KIND,
        )


class ReportPersistence:
    """Bridge between :class:`ContentTree` values and a :class:`ReportStorage`.

    Every storage failure surfaces as :class:`PersistenceError`; nothing is
    retried here. Retry policy belongs to the caller, which for the editor is
    simply the next autosave.
    """

    def __init__(self, storage: ReportStorage, *, clock: Clock | None = None) -> None:
        self._storage = storage
        self._clock = clock or _utcnow

    @property
    def storage(self) -> ReportStorage:
        return self._storage

    # ------------------------------------------------------------------
    # Live copy
    # ------------------------------------------------------------------
    def load(self, report_id: str) -> ContentTree:
        """Return the stored tree for ``report_id`` or an empty tree when none exists."""

        try:
            payload = self._storage.read_live(report_id)
        except Exception as exc:
            raise _storage_failure("read", report_id, exc) from exc
        if payload is None:
            LOGGER.debug("No stored content for report %s; starting empty", report_id)
            return ContentTree()

        issues = validate_tree_payload(payload)
        if issues:
            summary = describe_issues(issues)
            LOGGER.warning("Stored content for report %s is invalid: %s", report_id, summary)
            raise PersistenceError(
                error_code=ErrorCode.INVALID_PAYLOAD,
                message=f"Stored content for report '{report_id}' is invalid: {summary}",
                details={"report_id": report_id, "issues": [str(issue) for issue in issues]},
            )
        try:
            tree = check_integrity(tree_from_dict(payload))
        except ContentError as exc:
            LOGGER.warning("Stored content for report %s could not be decoded: %s", report_id, exc)
            raise PersistenceError(
                error_code=ErrorCode.INVALID_PAYLOAD,
                message=f"Stored content for report '{report_id}' could not be decoded: {exc.message}",
                details={"report_id": report_id, "cause": exc.to_dict()},
            ) from exc
        LOGGER.debug("Loaded report %s (%d sections)", report_id, tree.section_count())
        return tree

    def save(self, report_id: str, tree: ContentTree, label: str | None = None) -> Version:
        """Overwrite the live copy with ``tree`` and append it to the version log."""

        payload = tree_to_dict(tree)
        try:
            self._storage.write_live(report_id, payload)
        except Exception as exc:
            raise _storage_failure("write", report_id, exc) from exc
        return self._append(report_id, tree, label, SAVE_KIND)

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------
    def save_version(self, report_id: str, tree: ContentTree, label: str | None = None) -> Version:
        """Append a named snapshot without touching the live copy."""

        return self._append(report_id, tree, label, SNAPSHOT_KIND)

    def list_versions(self, report_id: str) -> list[Version]:
        """Return every readable version of ``report_id`` ordered by version number."""

        versions: list[Version] = []
        for record in self._read_version_records(report_id):
            issues = validate_version_payload(record)
            if issues:
                LOGGER.warning(
                    "Skipping invalid version record for report %s: %s",
                    report_id,
                    describe_issues(issues),
                )
                continue
            try:
                versions.append(Version.from_dict(record))
            except ContentError as exc:
                LOGGER.warning("Skipping undecodable version of report %s: %s", report_id, exc)
        versions.sort(key=lambda version: version.version_number)
        return versions

    def get_version(self, report_id: str, version_number: int) -> Version | None:
        for version in self.list_versions(report_id):
            if version.version_number == version_number:
                return version
        return None

    def restore_version(self, version: Version) -> ContentTree:
        """Return the snapshot held by ``version``; the log is left untouched."""

        return version.tree

    def _append(self, report_id: str, tree: ContentTree, label: str | None, kind: str) -> Version:
        numbers = [
            record.get("versionNumber")
            for record in self._read_version_records(report_id)
            if isinstance(record.get("versionNumber"), int)
        ]
        version = Version(
            report_id=report_id,
            version_number=max(numbers, default=0) + 1,
            timestamp=self._clock(),
            tree=tree,
            label=label,
            kind=kind,
        )
        try:
            self._storage.append_version(report_id, version.to_dict())
        except Exception as exc:
            raise _storage_failure("append a version to", report_id, exc) from exc
        LOGGER.debug("Saved report %s as version %d", report_id, version.version_number)
        return version

    def _read_version_records(self, report_id: str) -> list[Mapping[str, Any]]:
        try:
            return list(self._storage.read_versions(report_id))
        except Exception as exc:
            raise _storage_failure("read versions of", report_id, exc) from exc


def _storage_failure(action: str, report_id: str, exc: Exception) -> PersistenceError:
    return PersistenceError(
        message=f"Unable to {action} report '{report_id}': {exc}",
        details={"report_id": report_id, "exception": type(exc).__name__},
    )
