"""Tests for :class:`reportstudio.editor.session.ReportSession`."""

from __future__ import annotations

from pathlib import Path

import pytest

from reportstudio.content.errors import LockedError, NotFoundError, TypeMismatchError
from reportstudio.content.export import ExportOptions
from reportstudio.content.model import ContentTree
from reportstudio.editor.session import ReportSession, SessionClosedError
from reportstudio.events import (
    DirtyStateChanged,
    ReportClosed,
    ReportOpened,
    ReportSaved,
    SaveFailed,
    SelectionChanged,
    TreeChanged,
    VersionRestored,
)
from reportstudio.services import telemetry
from reportstudio.services.autosave import ManualScheduler
from reportstudio.services.persistence import ReportPersistence
from reportstudio.services.settings import StudioSettings


def test_open_starts_clean(session: ReportSession) -> None:
    assert session.is_open
    assert session.report_id == "report-1"
    assert session.tree == ContentTree()
    assert not session.is_dirty
    assert not session.can_undo
    assert session.last_saved_at is None


def test_commands_require_an_open_report(persistence: ReportPersistence) -> None:
    idle = ReportSession(persistence)
    with pytest.raises(SessionClosedError):
        idle.add_section({"title": "A"})
    with pytest.raises(SessionClosedError):
        idle.save()


def test_open_and_close_publish_events(persistence: ReportPersistence, bus, record_events) -> None:
    recorder = record_events(ReportOpened, ReportClosed)
    report_session = ReportSession(persistence, event_bus=bus)
    report_session.open("r9")
    report_session.close()
    assert [type(event) for event in recorder.events] == [ReportOpened, ReportClosed]
    assert not report_session.is_open


def test_close_flushes_pending_autosave(session: ReportSession, storage) -> None:
    session.add_section({"title": "Unsaved"})
    session.close()
    assert len(storage.write_calls) == 1
    assert storage.write_calls[0][1]["sections"][0]["title"] == "Unsaved"


def test_reopen_restores_saved_content(session: ReportSession, persistence: ReportPersistence) -> None:
    section_id = session.add_section({"title": "Kept"})
    session.add_block(section_id, "paragraph", options={"content": "body"})
    saved_tree = session.tree
    assert session.save().ok

    other = ReportSession(persistence)
    assert other.open("report-1") == saved_tree
    assert other.last_saved_at is not None


def test_reopen_ignores_snapshots_for_last_saved(session: ReportSession, persistence: ReportPersistence) -> None:
    session.add_section({"title": "A"})
    session.save_version("Snapshot only")
    assert ReportSession(persistence).open("report-1") == ContentTree()

    other = ReportSession(persistence)
    other.open("report-1")
    assert other.last_saved_at is None

    saved = session.save().version
    session.save_version("Later snapshot")
    other.open("report-1")
    assert other.last_saved_at == saved.timestamp


def test_open_uses_default_zoom(persistence: ReportPersistence) -> None:
    report_session = ReportSession(persistence, settings=StudioSettings(default_zoom=150))
    report_session.open("r1")
    assert report_session.editor.zoom_level == 150


def test_from_settings_uses_file_storage(tmp_path: Path) -> None:
    settings = StudioSettings(storage_dir=str(tmp_path))
    report_session = ReportSession.from_settings(settings)
    report_session.open("r1")
    report_session.add_section({"title": "On disk"})
    assert report_session.save().ok
    assert (tmp_path / "r1" / "live.json").exists()


def test_mutation_records_history_and_marks_dirty(session: ReportSession, record_events) -> None:
    recorder = record_events(TreeChanged, DirtyStateChanged)
    section_id = session.add_section({"title": "Intro"})
    assert session.tree.require_section(section_id).title == "Intro"
    assert session.is_dirty
    assert session.can_undo
    changed = recorder.of_type(TreeChanged)
    assert [(event.reason, event.can_undo) for event in changed] == [("add_section", True)]
    assert [event.is_dirty for event in recorder.of_type(DirtyStateChanged)] == [True]


def test_failed_command_changes_nothing(session: ReportSession, telemetry_sink) -> None:
    section_id = session.add_section({"title": "Intro"})
    block_id = session.add_block(section_id, "kpi_card")
    before = session.tree
    depth = session.history.past_depth

    with pytest.raises(TypeMismatchError):
        session.update_block(section_id, block_id, {"rows": []})

    assert session.tree is before
    assert session.history.past_depth == depth
    assert telemetry_sink.count(telemetry.MUTATION_FAILED_EVENT) == 1


def test_locked_section_is_protected(session: ReportSession) -> None:
    section_id = session.add_section({"title": "Final"})
    session.toggle_lock(section_id)
    session.save()
    before = session.tree
    depth = session.history.past_depth
    with pytest.raises(LockedError):
        session.add_block(section_id, "paragraph")
    with pytest.raises(LockedError):
        session.delete_section(section_id)
    with pytest.raises(LockedError):
        session.toggle_collapse(section_id)
    assert session.tree is before
    assert session.history.past_depth == depth
    assert not session.is_dirty


def test_no_op_reorder_is_not_recorded(session: ReportSession) -> None:
    section_id = session.add_section({"title": "A"})
    depth = session.history.past_depth
    session.reorder_sections(section_id, section_id)
    assert session.history.past_depth == depth


def test_every_command_is_undoable(session: ReportSession) -> None:
    a = session.add_section({"title": "A"})
    b = session.add_section({"title": "B"})
    block = session.add_block(a, "paragraph")
    session.update_block(a, block, {"content": "text"})
    session.duplicate_block(a, block)
    session.move_block(a, block, b, 0)
    session.update_section(b, {"title": "B2"})
    session.duplicate_section(a)
    session.reorder_sections(b, a)
    session.move_section(a, 0, b)
    session.toggle_collapse(b)
    session.delete_section(b)

    while session.can_undo:
        session.undo()
    assert session.tree == ContentTree()


def test_telemetry_counts_mutations(session: ReportSession, telemetry_sink) -> None:
    session.add_section({"title": "A"})
    session.undo()
    assert telemetry_sink.count(telemetry.MUTATION_EVENT) == 2
    assert len(telemetry_sink.for_report("report-1")) == 2


def test_undo_then_redo(session: ReportSession) -> None:
    section_id = session.add_section({"title": "A"})
    after_add = session.tree
    session.undo()
    assert session.tree == ContentTree()
    assert session.can_redo
    session.redo()
    assert session.tree == after_add
    assert session.tree.require_section(section_id)


def test_new_command_clears_redo(session: ReportSession) -> None:
    session.add_section({"title": "A"})
    session.undo()
    session.add_section({"title": "B"})
    assert not session.can_redo


def test_undo_with_empty_history_is_inert(session: ReportSession, record_events) -> None:
    recorder = record_events(TreeChanged)
    assert session.undo() == ContentTree()
    assert session.redo() == ContentTree()
    assert recorder.events == []
    assert not session.is_dirty


def test_history_depth_comes_from_settings(persistence: ReportPersistence) -> None:
    report_session = ReportSession(persistence, settings=StudioSettings(history_depth=3))
    report_session.open("r1")
    for index in range(5):
        report_session.add_section({"title": str(index)})
    assert report_session.history.past_depth == 3


def test_select_section_and_block(session: ReportSession, record_events) -> None:
    recorder = record_events(SelectionChanged)
    a = session.add_section({"title": "A"})
    block = session.add_block(a, "heading")
    session.select_block(block)
    assert session.current_block().id == block
    assert session.current_section().id == a
    session.select_section(a)
    assert session.current_block() is None
    assert len(recorder.events) == 2


def test_selecting_unknown_ids(session: ReportSession) -> None:
    with pytest.raises(NotFoundError):
        session.select_section("nope")
    with pytest.raises(NotFoundError):
        session.select_block("nope")


def test_selection_is_pruned_after_delete(session: ReportSession) -> None:
    a = session.add_section({"title": "A"})
    block = session.add_block(a, "paragraph")
    session.select_block(block)
    session.set_editing(True)
    session.delete_section(a)
    assert session.editor.selected_section_id is None
    assert session.editor.selected_block_id is None
    assert not session.editor.is_editing


def test_selection_is_pruned_after_undo(session: ReportSession) -> None:
    a = session.add_section({"title": "A"})
    session.select_section(a)
    session.undo()
    assert session.current_section() is None


def test_view_toggles_are_not_history(session: ReportSession) -> None:
    session.set_zoom(500)
    session.toggle_grid()
    session.toggle_comments()
    session.set_mode("preview")
    session.set_dragging(True)
    editor = session.editor
    assert (editor.zoom_level, editor.show_grid, editor.show_comments, editor.mode) == (200, True, False, "preview")
    assert editor.is_dragging
    assert not session.can_undo
    assert not session.is_dirty
    session.clear_selection()


def test_save_clears_dirty_and_publishes(session: ReportSession, record_events, telemetry_sink) -> None:
    recorder = record_events(ReportSaved, DirtyStateChanged)
    session.add_section({"title": "A"})
    result = session.save(label="First")
    assert result.ok
    assert result.version.version_number == 1
    assert result.version.label == "First"
    assert not session.is_dirty
    assert session.last_saved_at == result.version.timestamp
    assert not session.autosave.pending
    saved = recorder.of_type(ReportSaved)
    assert [(event.version_number, event.autosave) for event in saved] == [(1, False)]
    assert telemetry_sink.count(telemetry.REPORT_SAVED_EVENT) == 1


def test_failed_save_keeps_state(session: ReportSession, storage, record_events, caplog) -> None:
    recorder = record_events(SaveFailed)
    session.add_section({"title": "A"})
    tree = session.tree
    storage.fail_writes = True

    with caplog.at_level("WARNING"):
        result = session.save()

    assert not result.ok
    assert result.error is not None
    assert session.is_dirty
    assert session.tree is tree
    assert "disk full" in recorder.events[0].error
    assert "Saving report report-1 failed" in caplog.text


def test_save_version_keeps_dirty_flag(session: ReportSession) -> None:
    session.add_section({"title": "A"})
    version = session.save_version("Snapshot")
    assert version.label == "Snapshot"
    assert version.kind == "snapshot"
    assert session.is_dirty
    assert session.last_saved_at is None
    assert [item.label for item in session.list_versions()] == ["Snapshot"]


def test_restore_version_is_undoable(session: ReportSession, record_events) -> None:
    recorder = record_events(VersionRestored)
    session.add_section({"title": "Old"})
    saved = session.save().version
    session.add_section({"title": "New"})
    current = session.tree

    session.restore_version(saved.version_number)
    assert session.tree == saved.tree
    assert session.is_dirty
    assert recorder.events[0].version_number == 1

    session.undo()
    assert session.tree == current


def test_restore_unknown_version(session: ReportSession) -> None:
    with pytest.raises(NotFoundError):
        session.restore_version(42)


def test_export_uses_current_tree(session: ReportSession) -> None:
    a = session.add_section({"title": "A"})
    session.add_section({"title": "B"})
    request = session.export(ExportOptions(sections_to_export=(a,)))
    assert request.report_id == "report-1"
    assert request.section_ids == [a]


def test_no_scheduler_means_no_autosave(persistence: ReportPersistence, storage) -> None:
    report_session = ReportSession(persistence)
    report_session.open("r1")
    report_session.add_section({"title": "A"})
    assert report_session.autosave is None
    report_session.close()
    assert storage.write_calls == []


def test_autosave_failure_is_retried_on_next_change(
    session: ReportSession, scheduler: ManualScheduler, storage
) -> None:
    session.add_section({"title": "A"})
    storage.fail_writes = True
    scheduler.advance(31)
    assert session.is_dirty
    storage.fail_writes = False
    session.add_section({"title": "B"})
    scheduler.advance(31)
    assert not session.is_dirty
    assert len(storage.write_calls) == 1


def test_disabled_autosave(persistence: ReportPersistence, scheduler: ManualScheduler, storage) -> None:
    settings = StudioSettings(autosave_enabled=False)
    report_session = ReportSession(persistence, settings=settings, scheduler=scheduler)
    report_session.open("r1")
    report_session.add_section({"title": "A"})
    scheduler.advance(3600)
    assert storage.write_calls == []
