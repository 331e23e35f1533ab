"""Tests for section operations in :mod:`reportstudio.content.mutations`."""

from __future__ import annotations

import pytest

from reportstudio.content import mutations
from reportstudio.content.blocks import create_default_block
from reportstudio.content.errors import BoundsError, LockedError, NotFoundError, TypeMismatchError
from reportstudio.content.model import ContentTree, Section, SectionMetadata, check_integrity


def _tree(*sections: Section) -> ContentTree:
    return ContentTree(sections=sections)


def _titles(sections) -> list[str]:
    return [section.title for section in sections]


def test_add_to_empty_tree() -> None:
    tree, section_id = mutations.add_section(ContentTree(), {"title": "Intro"})
    assert len(tree.sections) == 1
    section = tree.sections[0]
    assert (section.id, section.title, section.blocks) == (section_id, "Intro", ())
    assert section.level == 1
    assert section.status == "manual"


def test_add_appends_after_existing_roots() -> None:
    tree, _ = mutations.add_section(ContentTree(), {"title": "A"})
    tree, _ = mutations.add_section(tree, {"title": "B"})
    assert _titles(tree.sections) == ["A", "B"]


def test_add_under_parent() -> None:
    tree, parent_id = mutations.add_section(ContentTree(), {"title": "Parent"})
    tree, child_id = mutations.add_section(tree, {"title": "Child", "level": 2}, parent_id)
    parent = tree.require_section(parent_id)
    assert [child.id for child in parent.children] == [child_id]


def test_add_under_missing_parent() -> None:
    with pytest.raises(NotFoundError):
        mutations.add_section(ContentTree(), {"title": "X"}, "nope")


def test_add_under_locked_parent() -> None:
    tree = _tree(Section(id="p", title="P", is_locked=True))
    with pytest.raises(LockedError):
        mutations.add_section(tree, {"title": "X"}, "p")


def test_add_replaces_supplied_ids() -> None:
    block = create_default_block("paragraph")
    tree, _ = mutations.add_section(ContentTree(), {"title": "A", "blocks": [block]})
    tree, section_id = mutations.add_section(tree, {"id": "forced", "title": "B", "blocks": [block]})
    assert section_id != "forced"
    check_integrity(tree)


def test_add_reissues_section_value() -> None:
    template = Section(id="tpl", title="Template", children=(Section(id="tpl-child"),))
    tree, section_id = mutations.add_section(ContentTree(), template)
    added = tree.require_section(section_id)
    assert added.id != "tpl"
    assert added.title == "Template"
    assert added.children[0].id != "tpl-child"


def test_add_unknown_field_is_rejected() -> None:
    with pytest.raises(TypeMismatchError):
        mutations.add_section(ContentTree(), {"title": "A", "colour": "red"})


def test_add_level_out_of_range() -> None:
    with pytest.raises(BoundsError):
        mutations.add_section(ContentTree(), {"title": "A", "level": 9})


def test_update_merges_fields() -> None:
    tree = _tree(Section(id="s", title="Old"))
    updated = mutations.update_section(tree, "s", {"title": "New", "icon": "chart", "isCollapsed": True})
    section = updated.require_section("s")
    assert (section.title, section.icon, section.is_collapsed) == ("New", "chart", True)
    assert tree.require_section("s").title == "Old"


def test_update_coerces_metadata() -> None:
    tree = _tree(Section(id="s"))
    updated = mutations.update_section(tree, "s", {"metadata": {"completionStatus": "needs_review"}})
    assert updated.require_section("s").metadata == SectionMetadata(completion_status="needs_review")


def test_update_status_must_be_known() -> None:
    tree = _tree(Section(id="s"))
    with pytest.raises(TypeMismatchError):
        mutations.update_section(tree, "s", {"status": "archived"})


def test_update_cannot_touch_structural_fields() -> None:
    tree = _tree(Section(id="s"))
    with pytest.raises(TypeMismatchError):
        mutations.update_section(tree, "s", {"blocks": []})


def test_locked_section_rejects_edits() -> None:
    tree = _tree(Section(id="s", title="T", is_locked=True))
    with pytest.raises(LockedError):
        mutations.update_section(tree, "s", {"title": "Changed"})


def test_locked_section_accepts_unlock() -> None:
    tree = _tree(Section(id="s", is_locked=True))
    updated = mutations.update_section(tree, "s", {"is_locked": False})
    assert updated.require_section("s").is_locked is False


def test_delete_removes_subtree() -> None:
    tree = _tree(Section(id="a", children=(Section(id="a1"),)), Section(id="b"))
    updated = mutations.delete_section(tree, "a")
    assert updated.section_ids() == ["b"]


def test_delete_nested() -> None:
    tree = _tree(Section(id="a", children=(Section(id="a1"), Section(id="a2"))))
    updated = mutations.delete_section(tree, "a1")
    assert updated.section_ids() == ["a", "a2"]


def test_delete_missing() -> None:
    with pytest.raises(NotFoundError):
        mutations.delete_section(ContentTree(), "a")


def test_locked_descendant_blocks_delete() -> None:
    tree = _tree(Section(id="a", children=(Section(id="a1", is_locked=True),)))
    with pytest.raises(LockedError):
        mutations.delete_section(tree, "a")


def test_duplicate_is_inserted_after_source() -> None:
    tree = _tree(Section(id="a", title="A"), Section(id="b", title="B"))
    updated, copy_id = mutations.duplicate_section(tree, "a")
    assert [section.id for section in updated.sections][0::2] == ["a", "b"]
    assert updated.sections[1].id == copy_id
    assert updated.sections[1].title == "A (copy)"


def test_nested_duplicate_stays_at_same_depth() -> None:
    tree = _tree(Section(id="p", children=(Section(id="c", title="C"),)))
    updated, copy_id = mutations.duplicate_section(tree, "c")
    location = updated.locate_section(copy_id)
    assert location is not None
    assert location.parent_id == "p"
    assert location.index == 1


def test_duplicate_missing_source() -> None:
    with pytest.raises(NotFoundError):
        mutations.duplicate_section(ContentTree(), "x")


def test_reorder_moves_to_target_index() -> None:
    tree = _tree(Section(id="a"), Section(id="b"), Section(id="c"))
    updated = mutations.reorder_sections(tree, "c", "a")
    assert [section.id for section in updated.sections] == ["c", "a", "b"]


def test_reorder_moving_down() -> None:
    tree = _tree(Section(id="a"), Section(id="b"), Section(id="c"))
    updated = mutations.reorder_sections(tree, "a", "c")
    assert [section.id for section in updated.sections] == ["b", "c", "a"]


def test_reorder_same_id_is_a_no_op() -> None:
    tree = _tree(Section(id="a"), Section(id="b"))
    assert mutations.reorder_sections(tree, "a", "a") is tree


def test_reorder_rejects_non_siblings() -> None:
    tree = _tree(Section(id="a", children=(Section(id="a1"),)), Section(id="b"))
    with pytest.raises(BoundsError):
        mutations.reorder_sections(tree, "a1", "b")


def test_reorder_missing_target() -> None:
    tree = _tree(Section(id="a"))
    with pytest.raises(NotFoundError):
        mutations.reorder_sections(tree, "a", "zzz")


def test_move_reparents_under_other_section() -> None:
    tree = _tree(Section(id="a"), Section(id="b", children=(Section(id="b1"),)))
    updated = mutations.move_section(tree, "a", 0, "b")
    assert [section.id for section in updated.sections] == ["b"]
    assert [child.id for child in updated.sections[0].children] == ["a", "b1"]


def test_move_to_root_with_clamped_index() -> None:
    tree = _tree(Section(id="a", children=(Section(id="a1"),)), Section(id="b"))
    updated = mutations.move_section(tree, "a1", 99)
    assert [section.id for section in updated.sections] == ["a", "b", "a1"]


def test_move_into_own_subtree_is_rejected() -> None:
    tree = _tree(Section(id="a", children=(Section(id="a1"),)))
    with pytest.raises(BoundsError):
        mutations.move_section(tree, "a", 0, "a1")
    with pytest.raises(BoundsError):
        mutations.move_section(tree, "a", 0, "a")


def test_move_under_locked_parent() -> None:
    tree = _tree(Section(id="a"), Section(id="b", is_locked=True))
    with pytest.raises(LockedError):
        mutations.move_section(tree, "a", 0, "b")


def test_move_replay_is_idempotent() -> None:
    tree = _tree(Section(id="a"), Section(id="b"), Section(id="c"))
    once = mutations.move_section(tree, "a", 2)
    twice = mutations.move_section(once, "a", 2)
    assert once == twice


def test_toggle_lock_round_trip() -> None:
    tree = _tree(Section(id="a"))
    locked = mutations.toggle_lock(tree, "a")
    assert locked.require_section("a").is_locked
    assert mutations.toggle_lock(locked, "a") == tree


def test_toggle_collapse_round_trip() -> None:
    tree = _tree(Section(id="a"))
    collapsed = mutations.toggle_collapse(tree, "a")
    assert collapsed.require_section("a").is_collapsed
    assert mutations.toggle_collapse(collapsed, "a") == tree


def test_collapse_rejected_on_locked_section() -> None:
    tree = _tree(Section(id="a", is_locked=True))
    with pytest.raises(LockedError):
        mutations.toggle_collapse(tree, "a")
    assert tree.require_section("a").is_collapsed is False


def test_toggle_missing() -> None:
    with pytest.raises(NotFoundError):
        mutations.toggle_lock(ContentTree(), "a")
    with pytest.raises(NotFoundError):
        mutations.toggle_collapse(ContentTree(), "a")
