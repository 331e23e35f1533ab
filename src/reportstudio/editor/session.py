"""Editor session: the single writer of one open report.

The session owns the current :class:`ContentTree`, its history, the editor
state and the autosave timer. Views read through its properties and
selectors, call its commands, and observe it through the event bus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Mapping

from ..content import mutations
from ..content.blocks import Block
from ..content.errors import ContentError, ErrorCode, NotFoundError
from ..content.export import ExportOptions, ExportRequest, build_export_request
from ..content.model import ContentTree, Section, check_integrity
from ..events import (
    DirtyStateChanged,
    EventBus,
    ReportClosed,
    ReportOpened,
    ReportSaved,
    SaveFailed,
    SelectionChanged,
    TreeChanged,
    VersionRestored,
)
from ..services import telemetry
from ..services.autosave import AutosaveTimer, Scheduler
from ..services.persistence import SAVE_KIND, PersistenceError, ReportPersistence, Version
from ..services.settings import StudioSettings
from ..services.storage import JsonFileReportStorage
from .editor_state import EditorState, prune_selection
from .history import HistoryManager

__all__ = ["ReportSession", "SaveResult", "SessionClosedError"]

LOGGER = logging.getLogger(__name__)


class SessionClosedError(RuntimeError):
    """Raised when a command is issued while no report is open."""


@dataclass(frozen=True, slots=True)
class SaveResult:
    """Outcome of a save; failures carry the error instead of raising."""

    ok: bool
    version: Version | None = None
    error: PersistenceError | None = None


class ReportSession:
    """Command and read contract for one report at a time."""

    def __init__(
        self,
        persistence: ReportPersistence,
        *,
        settings: StudioSettings | None = None,
        scheduler: Scheduler | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Create an idle session.

        Args:
            persistence: Adapter used for load, save and versions.
            settings: Behaviour knobs; defaults to :class:`StudioSettings`.
            scheduler: Drives autosave. Without one, autosave is off and
                saving is explicit only.
            event_bus: Bus to publish on; a private bus is created when omitted.
        """
        self._persistence = persistence
        self._settings = settings or StudioSettings()
        self._bus = event_bus or EventBus()
        self._history = HistoryManager(self._settings.history_depth)
        self._autosave: AutosaveTimer | None = None
        if scheduler is not None:
            self._autosave = AutosaveTimer(
                self._on_autosave,
                self._settings.autosave_delay,
                scheduler,
                enabled=self._settings.autosave_enabled,
            )
        self._report_id: str | None = None
        self._tree = ContentTree()
        self._editor = EditorState(zoom_level=self._settings.default_zoom)
        self._dirty = False
        self._last_saved_at: datetime | None = None

    @classmethod
    def from_settings(
        cls,
        settings: StudioSettings,
        *,
        scheduler: Scheduler | None = None,
        event_bus: EventBus | None = None,
    ) -> "ReportSession":
        """Build a session persisting to JSON files under ``settings.storage_dir``."""

        persistence = ReportPersistence(JsonFileReportStorage(settings.storage_path))
        return cls(persistence, settings=settings, scheduler=scheduler, event_bus=event_bus)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self, report_id: str) -> ContentTree:
        """Load ``report_id`` (or start empty) and reset history and selection."""

        if self._report_id is not None:
            self.close()
        tree = self._persistence.load(report_id)
        versions = self._persistence.list_versions(report_id)
        self._report_id = report_id
        self._tree = tree
        self._history.clear()
        self._editor = EditorState(zoom_level=self._settings.default_zoom)
        self._dirty = False
        saves = [version for version in versions if version.kind == SAVE_KIND]
        self._last_saved_at = saves[-1].timestamp if saves else None
        LOGGER.debug("Opened report %s with %d sections", report_id, tree.section_count())
        self._bus.publish(ReportOpened(report_id=report_id, section_count=tree.section_count()))
        return tree

    def close(self) -> None:
        """Flush a pending autosave, then release the tree and history."""

        if self._report_id is None:
            return
        report_id = self._report_id
        if self._autosave is not None:
            self._autosave.flush()
        self._report_id = None
        self._tree = ContentTree()
        self._history.clear()
        self._editor = EditorState(zoom_level=self._settings.default_zoom)
        self._dirty = False
        self._last_saved_at = None
        LOGGER.debug("Closed report %s", report_id)
        self._bus.publish(ReportClosed(report_id=report_id))

    # ------------------------------------------------------------------
    # Read contract
    # ------------------------------------------------------------------
    @property
    def report_id(self) -> str | None:
        return self._report_id

    @property
    def is_open(self) -> bool:
        return self._report_id is not None

    @property
    def tree(self) -> ContentTree:
        return self._tree

    @property
    def editor(self) -> EditorState:
        return self._editor

    @property
    def history(self) -> HistoryManager:
        return self._history

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def autosave(self) -> AutosaveTimer | None:
        return self._autosave

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def last_saved_at(self) -> datetime | None:
        return self._last_saved_at

    def current_section(self) -> Section | None:
        section_id = self._editor.selected_section_id
        return self._tree.find_section(section_id) if section_id else None

    def current_block(self) -> Block | None:
        block_id = self._editor.selected_block_id
        if not block_id:
            return None
        located = self._tree.find_block(block_id)
        return located[1] if located else None

    # ------------------------------------------------------------------
    # Section commands
    # ------------------------------------------------------------------
    def add_section(
        self, spec: Mapping[str, Any] | Section | None = None, parent_id: str | None = None
    ) -> str:
        return self._apply_creating("add_section", mutations.add_section, spec, parent_id)

    def update_section(self, section_id: str, fields: Mapping[str, Any]) -> ContentTree:
        return self._apply("update_section", mutations.update_section, section_id, fields)

    def delete_section(self, section_id: str) -> ContentTree:
        return self._apply("delete_section", mutations.delete_section, section_id)

    def duplicate_section(self, section_id: str) -> str:
        return self._apply_creating("duplicate_section", mutations.duplicate_section, section_id)

    def reorder_sections(self, moved_id: str, target_id: str) -> ContentTree:
        return self._apply("reorder_sections", mutations.reorder_sections, moved_id, target_id)

    def move_section(
        self, section_id: str, new_index: int, new_parent_id: str | None = None
    ) -> ContentTree:
        return self._apply("move_section", mutations.move_section, section_id, new_index, new_parent_id)

    def toggle_lock(self, section_id: str) -> ContentTree:
        return self._apply("toggle_lock", mutations.toggle_lock, section_id)

    def toggle_collapse(self, section_id: str) -> ContentTree:
        return self._apply("toggle_collapse", mutations.toggle_collapse, section_id)

    # ------------------------------------------------------------------
    # Block commands
    # ------------------------------------------------------------------
    def add_block(
        self,
        section_id: str,
        block_type: str,
        index: int | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> str:
        return self._apply_creating(
            "add_block", mutations.add_block, section_id, block_type, index, options
        )

    def insert_block(self, section_id: str, block: Block, index: int | None = None) -> str:
        return self._apply_creating("insert_block", mutations.insert_block, section_id, block, index)

    def update_block(self, section_id: str, block_id: str, fields: Mapping[str, Any]) -> ContentTree:
        return self._apply("update_block", mutations.update_block, section_id, block_id, fields)

    def delete_block(self, section_id: str, block_id: str) -> ContentTree:
        return self._apply("delete_block", mutations.delete_block, section_id, block_id)

    def duplicate_block(self, section_id: str, block_id: str) -> str:
        return self._apply_creating("duplicate_block", mutations.duplicate_block, section_id, block_id)

    def move_block(
        self, from_section_id: str, block_id: str, to_section_id: str, to_index: int
    ) -> ContentTree:
        return self._apply(
            "move_block", mutations.move_block, from_section_id, block_id, to_section_id, to_index
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def undo(self) -> ContentTree:
        self._require_open()
        if not self._history.can_undo:
            return self._tree
        self._commit(self._history.undo(self._tree), "undo")
        return self._tree

    def redo(self) -> ContentTree:
        self._require_open()
        if not self._history.can_redo:
            return self._tree
        self._commit(self._history.redo(self._tree), "redo")
        return self._tree

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, label: str | None = None, *, autosave: bool = False) -> SaveResult:
        """Persist the current tree and append a version.

        Failures are reported through the returned :class:`SaveResult` and a
        :class:`SaveFailed` event; the tree and dirty flag are left as they were.
        """
        report_id = self._require_open()
        try:
            version = self._persistence.save(report_id, self._tree, label)
        except PersistenceError as exc:
            LOGGER.warning("Saving report %s failed: %s", report_id, exc)
            self._bus.publish(SaveFailed(report_id=report_id, error=exc.message, autosave=autosave))
            return SaveResult(ok=False, error=exc)

        if self._autosave is not None:
            self._autosave.cancel()
        self._last_saved_at = version.timestamp
        self._set_dirty(False)
        telemetry.emit(
            telemetry.REPORT_SAVED_EVENT,
            {"report_id": report_id, "version": version.version_number, "autosave": autosave},
        )
        self._bus.publish(
            ReportSaved(
                report_id=report_id,
                version_number=version.version_number,
                saved_at=version.timestamp,
                autosave=autosave,
            )
        )
        return SaveResult(ok=True, version=version)

    def save_version(self, label: str | None = None) -> Version:
        """Append a named snapshot without touching the live copy or dirty flag."""

        report_id = self._require_open()
        return self._persistence.save_version(report_id, self._tree, label)

    def list_versions(self) -> list[Version]:
        return self._persistence.list_versions(self._require_open())

    def restore_version(self, version: Version | int) -> ContentTree:
        """Replace the tree with a stored snapshot; the restore itself can be undone."""

        report_id = self._require_open()
        if isinstance(version, int):
            found = self._persistence.get_version(report_id, version)
            if found is None:
                raise NotFoundError(
                    message=f"Version {version} of report '{report_id}' not found",
                    details={"report_id": report_id, "version_number": version},
                )
            version = found
        restored = check_integrity(self._persistence.restore_version(version))
        self._history.record(self._tree)
        self._commit(restored, "restore_version")
        self._bus.publish(VersionRestored(report_id=report_id, version_number=version.version_number))
        return self._tree

    def export(self, options: ExportOptions | None = None) -> ExportRequest:
        return build_export_request(self._tree, options, report_id=self._require_open())

    # ------------------------------------------------------------------
    # Editor state
    # ------------------------------------------------------------------
    def select_section(self, section_id: str | None) -> EditorState:
        if section_id is not None:
            self._tree.require_section(section_id)
        return self._set_editor(self._editor.with_section(section_id))

    def select_block(self, block_id: str | None) -> EditorState:
        if block_id is None:
            return self._set_editor(self._editor.with_block(None))
        located = self._tree.find_block(block_id)
        if located is None:
            raise NotFoundError(
                error_code=ErrorCode.BLOCK_NOT_FOUND,
                message=f"Block '{block_id}' not found",
                details={"block_id": block_id},
            )
        return self._set_editor(self._editor.with_block(block_id, located[0].id))

    def clear_selection(self) -> EditorState:
        return self._set_editor(self._editor.cleared())

    def set_mode(self, mode: str) -> EditorState:
        return self._set_editor(self._editor.with_mode(mode))

    def set_zoom(self, level: float) -> EditorState:
        return self._set_editor(self._editor.with_zoom(level))

    def toggle_grid(self) -> EditorState:
        return self._set_editor(replace(self._editor, show_grid=not self._editor.show_grid))

    def toggle_comments(self) -> EditorState:
        return self._set_editor(replace(self._editor, show_comments=not self._editor.show_comments))

    def set_dragging(self, is_dragging: bool) -> EditorState:
        return self._set_editor(replace(self._editor, is_dragging=is_dragging))

    def set_editing(self, is_editing: bool) -> EditorState:
        return self._set_editor(replace(self._editor, is_editing=is_editing))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require_open(self) -> str:
        if self._report_id is None:
            raise SessionClosedError("No report is open")
        return self._report_id

    def _run(self, reason: str, operation: Callable[..., Any], *args: Any) -> Any:
        self._require_open()
        try:
            return operation(self._tree, *args)
        except ContentError as exc:
            LOGGER.debug("%s rejected: %s", reason, exc)
            telemetry.emit(
                telemetry.MUTATION_FAILED_EVENT,
                {"report_id": self._report_id, "operation": reason, "error": exc.error_code},
            )
            raise

    def _apply(self, reason: str, operation: Callable[..., ContentTree], *args: Any) -> ContentTree:
        updated = self._run(reason, operation, *args)
        if updated is not self._tree:
            self._history.record(self._tree)
            self._commit(updated, reason)
        return self._tree

    def _apply_creating(
        self, reason: str, operation: Callable[..., tuple[ContentTree, str]], *args: Any
    ) -> str:
        updated, new_id = self._run(reason, operation, *args)
        self._history.record(self._tree)
        self._commit(updated, reason)
        return new_id

    def _commit(self, tree: ContentTree, reason: str) -> None:
        report_id = self._require_open()
        self._tree = tree
        self._set_editor(prune_selection(self._editor, tree))
        self._set_dirty(True)
        if self._autosave is not None:
            self._autosave.touch()
        LOGGER.debug("%s applied to report %s", reason, report_id)
        telemetry.emit(telemetry.MUTATION_EVENT, {"report_id": report_id, "operation": reason})
        self._bus.publish(
            TreeChanged(
                report_id=report_id,
                reason=reason,
                can_undo=self._history.can_undo,
                can_redo=self._history.can_redo,
            )
        )

    def _set_editor(self, state: EditorState) -> EditorState:
        previous = self._editor
        self._editor = state
        if self._report_id is not None and (
            previous.selected_section_id != state.selected_section_id
            or previous.selected_block_id != state.selected_block_id
        ):
            self._bus.publish(
                SelectionChanged(
                    report_id=self._report_id,
                    section_id=state.selected_section_id,
                    block_id=state.selected_block_id,
                )
            )
        return state

    def _set_dirty(self, dirty: bool) -> None:
        if self._dirty == dirty:
            return
        self._dirty = dirty
        if self._report_id is not None:
            self._bus.publish(DirtyStateChanged(report_id=self._report_id, is_dirty=dirty))

    def _on_autosave(self) -> None:
        if self._report_id is None or not self._dirty:
            return
        LOGGER.debug("Autosaving report %s", self._report_id)
        self.save(autosave=True)
