"""Tests for :mod:`reportstudio.services.persistence`."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from reportstudio.content import mutations
from reportstudio.content.errors import ErrorCode
from reportstudio.content.model import ContentTree, tree_to_dict
from reportstudio.services.persistence import (
    SAVE_KIND,
    SNAPSHOT_KIND,
    PersistenceError,
    ReportPersistence,
    Version,
)
from reportstudio.services.storage import JsonFileReportStorage


def _tree_with_content() -> ContentTree:
    tree, section_id = mutations.add_section(ContentTree(), {"title": "Intro"})
    tree, _ = mutations.add_block(tree, section_id, "paragraph", options={"content": "Hello"})
    tree, _ = mutations.add_block(tree, section_id, "kpi_card", options={"label": "Budget", "value": 10})
    return tree


def test_missing_report_loads_empty_tree(persistence: ReportPersistence) -> None:
    assert persistence.load("new") == ContentTree()


def test_saved_tree_loads_back_in_order(persistence: ReportPersistence) -> None:
    tree = _tree_with_content()
    persistence.save("r1", tree)
    assert persistence.load("r1") == tree


def test_invalid_payload_is_rejected(persistence: ReportPersistence, storage) -> None:
    storage.write_live("r1", {"sections": [{"id": "s1", "title": "T", "level": 12}]})
    with pytest.raises(PersistenceError) as excinfo:
        persistence.load("r1")
    assert excinfo.value.error_code == ErrorCode.INVALID_PAYLOAD


def test_unknown_block_field_is_rejected(persistence: ReportPersistence, storage) -> None:
    payload = {
        "sections": [
            {"id": "s1", "title": "T", "blocks": [{"id": "b1", "type": "paragraph", "rows": []}]}
        ]
    }
    storage.write_live("r1", payload)
    with pytest.raises(PersistenceError):
        persistence.load("r1")


def test_duplicate_ids_are_rejected(persistence: ReportPersistence, storage) -> None:
    storage.write_live("r1", {"sections": [{"id": "s", "title": "A"}, {"id": "s", "title": "B"}]})
    with pytest.raises(PersistenceError):
        persistence.load("r1")


def test_read_failure_is_wrapped(persistence: ReportPersistence, storage) -> None:
    storage.fail_reads = True
    with pytest.raises(PersistenceError) as excinfo:
        persistence.load("r1")
    assert excinfo.value.error_code == ErrorCode.STORAGE_FAILED


def test_save_appends_numbered_versions(persistence: ReportPersistence) -> None:
    first = persistence.save("r1", ContentTree())
    second = persistence.save("r1", _tree_with_content(), label="Draft")
    assert (first.version_number, second.version_number) == (1, 2)
    assert second.label == "Draft"
    assert second.timestamp > first.timestamp


def test_version_snapshots_the_saved_tree(persistence: ReportPersistence) -> None:
    tree = _tree_with_content()
    version = persistence.save("r1", tree)
    assert version.tree == tree
    assert persistence.list_versions("r1")[0].tree == tree


def test_save_version_leaves_live_copy(persistence: ReportPersistence, storage) -> None:
    persistence.save("r1", ContentTree())
    persistence.save_version("r1", _tree_with_content(), "Milestone")
    assert persistence.load("r1") == ContentTree()
    assert [version.label for version in persistence.list_versions("r1")] == [None, "Milestone"]
    assert [version.kind for version in persistence.list_versions("r1")] == [SAVE_KIND, SNAPSHOT_KIND]


def test_write_failure_is_wrapped(persistence: ReportPersistence, storage) -> None:
    storage.fail_writes = True
    with pytest.raises(PersistenceError):
        persistence.save("r1", ContentTree())
    assert persistence.list_versions("r1") == []


def test_invalid_version_records_are_skipped(persistence: ReportPersistence, storage) -> None:
    persistence.save("r1", ContentTree())
    storage.append_version("r1", {"reportId": "r1", "versionNumber": "two"})
    assert [version.version_number for version in persistence.list_versions("r1")] == [1]


def test_restore_returns_snapshot_without_touching_log(persistence: ReportPersistence) -> None:
    tree = _tree_with_content()
    version = persistence.save("r1", tree)
    persistence.save("r1", ContentTree())
    assert persistence.restore_version(version) == tree
    assert len(persistence.list_versions("r1")) == 2


def test_get_version(persistence: ReportPersistence) -> None:
    persistence.save("r1", ContentTree())
    assert persistence.get_version("r1", 1) is not None
    assert persistence.get_version("r1", 7) is None


def test_version_wire_form() -> None:
    tree = _tree_with_content()
    version = Version(report_id="r1", version_number=3, timestamp=datetime.now(timezone.utc), tree=tree)
    payload = version.to_dict()
    assert payload["content"] == tree_to_dict(tree)
    assert Version.from_dict(payload) == version


def test_file_backed_round_trip(tmp_path: Path) -> None:
    persistence = ReportPersistence(JsonFileReportStorage(tmp_path))
    tree = _tree_with_content()
    persistence.save("quarterly", tree, label="Q1")
    reopened = ReportPersistence(JsonFileReportStorage(tmp_path))
    assert reopened.load("quarterly") == tree
    assert reopened.list_versions("quarterly")[0].label == "Q1"


def test_records_without_kind_read_as_saves() -> None:
    payload = Version(
        report_id="r1", version_number=1, timestamp=datetime.now(timezone.utc), tree=ContentTree()
    ).to_dict()
    del payload["kind"]
    assert Version.from_dict(payload).kind == SAVE_KIND
