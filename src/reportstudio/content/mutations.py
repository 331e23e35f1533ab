"""Pure operations over a :class:`ContentTree`.

Every function takes a tree and returns a new tree (plus the id of any
created node). Inputs are never modified, so a failing call leaves the
caller's tree untouched. Positions are always final positions, which keeps
replayed moves idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping

from .blocks import (
    Block,
    _snake_case,
    apply_block_update,
    block_from_dict,
    clone_block,
    create_default_block,
    new_id,
)
from .errors import BoundsError, LockedError, NotFoundError, TypeMismatchError
from .model import (
    MAX_LEVEL,
    MIN_LEVEL,
    SECTION_STATUSES,
    ContentTree,
    Section,
    metadata_from_value,
)

__all__ = [
    "add_section",
    "update_section",
    "delete_section",
    "duplicate_section",
    "reorder_sections",
    "move_section",
    "toggle_lock",
    "toggle_collapse",
    "add_block",
    "insert_block",
    "update_block",
    "delete_block",
    "duplicate_block",
    "move_block",
]

LOGGER = logging.getLogger(__name__)

SectionSpec = Mapping[str, Any] | Section
_SECTION_FIELDS = frozenset(
    {"title", "level", "status", "icon", "is_locked", "is_collapsed", "metadata"}
)
_STRUCTURAL_FIELDS = frozenset({"id", "blocks", "children", "type"})
_DUPLICATE_SUFFIX = " (copy)"


# ---------------------------------------------------------------------------
# Structural helpers
# ---------------------------------------------------------------------------


def _clamp(index: int | None, length: int) -> int:
    if index is None:
        return length
    if isinstance(index, bool) or not isinstance(index, int):
        raise BoundsError(
            message=f"Position must be an integer, got {index!r}",
            details={"index": repr(index)},
        )
    return max(0, min(index, length))


def _replace_at(
    sections: tuple[Section, ...],
    path: tuple[int, ...],
    updater: Callable[[Section], Section],
) -> tuple[Section, ...]:
    index = path[0]
    target = sections[index]
    if len(path) == 1:
        updated = updater(target)
    else:
        updated = replace(target, children=_replace_at(target.children, path[1:], updater))
    return sections[:index] + (updated,) + sections[index + 1 :]


def _update_section(
    tree: ContentTree, section_id: str, updater: Callable[[Section], Section]
) -> ContentTree:
    location = tree.locate_section(section_id)
    if location is None:
        raise NotFoundError.section(section_id)
    return replace(tree, sections=_replace_at(tree.sections, location.path, updater))


def _siblings(tree: ContentTree, parent_id: str | None) -> tuple[Section, ...]:
    if parent_id is None:
        return tree.sections
    return tree.require_section(parent_id).children


def _with_siblings(
    tree: ContentTree, parent_id: str | None, siblings: tuple[Section, ...]
) -> ContentTree:
    if parent_id is None:
        return replace(tree, sections=siblings)
    return _update_section(tree, parent_id, lambda parent: replace(parent, children=siblings))


def _ensure_unlocked(section: Section) -> None:
    if section.is_locked:
        raise LockedError.for_section(section.id, section.title)


def _ensure_subtree_unlocked(section: Section) -> None:
    _ensure_unlocked(section)
    for child in section.children:
        _ensure_subtree_unlocked(child)


def _descendant_ids(section: Section) -> set[str]:
    found: set[str] = set()
    stack = list(section.children)
    while stack:
        current = stack.pop()
        found.add(current.id)
        stack.extend(current.children)
    return found


def _normalize_section_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Map incoming keys onto :class:`Section` fields and validate values."""

    normalized: dict[str, Any] = {}
    for raw_key, value in fields.items():
        key = _snake_case(str(raw_key))
        if key not in _SECTION_FIELDS:
            raise TypeMismatchError(
                message=f"Field '{raw_key}' cannot be set on a section",
                details={"field": raw_key, "valid_fields": sorted(_SECTION_FIELDS)},
            )
        if key == "title":
            if not isinstance(value, str):
                raise TypeMismatchError(message="Section title must be text", details={"field": key})
        elif key == "level":
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeMismatchError(message="Section level must be an integer", details={"field": key})
            if not MIN_LEVEL <= value <= MAX_LEVEL:
                raise BoundsError(
                    message=f"Section level must be between {MIN_LEVEL} and {MAX_LEVEL}",
                    details={"field": key, "value": value},
                )
        elif key == "status":
            if value not in SECTION_STATUSES:
                raise TypeMismatchError(
                    message=f"Unknown section status '{value}'",
                    details={"field": key, "valid_values": list(SECTION_STATUSES)},
                )
        elif key == "icon":
            if value is not None and not isinstance(value, str):
                raise TypeMismatchError(message="Section icon must be text", details={"field": key})
        elif key in ("is_locked", "is_collapsed"):
            if not isinstance(value, bool):
                raise TypeMismatchError(message=f"Section {key} must be a boolean", details={"field": key})
        elif key == "metadata":
            value = metadata_from_value(value)
        normalized[key] = value
    return normalized


def _coerce_block(value: Block | Mapping[str, Any]) -> Block:
    if isinstance(value, Block):
        return clone_block(value)
    return clone_block(block_from_dict(value))


def _reissue_section(section: Section, *, title_suffix: str = "") -> Section:
    """Deep-copy ``section`` giving it, its blocks and descendants fresh ids."""

    return replace(
        section,
        id=new_id(),
        title=f"{section.title}{title_suffix}",
        blocks=tuple(clone_block(block) for block in section.blocks),
        children=tuple(_reissue_section(child) for child in section.children),
    )


def _section_from_spec(spec: SectionSpec | None) -> Section:
    if isinstance(spec, Section):
        return _reissue_section(spec)
    data = dict(spec or {})
    blocks: Iterable[Any] = data.pop("blocks", None) or ()
    children: Iterable[Any] = data.pop("children", None) or ()
    data.pop("id", None)
    data.pop("type", None)
    fields = _normalize_section_fields(data)
    return Section(
        id=new_id(),
        blocks=tuple(_coerce_block(block) for block in blocks),
        children=tuple(_section_from_spec(child) for child in children),
        **fields,
    )


# ---------------------------------------------------------------------------
# Section operations
# ---------------------------------------------------------------------------


def add_section(
    tree: ContentTree,
    spec: SectionSpec | None = None,
    parent_id: str | None = None,
) -> tuple[ContentTree, str]:
    """Append a new section at the root or under ``parent_id``."""

    if parent_id is not None:
        _ensure_unlocked(tree.require_section(parent_id))
    section = _section_from_spec(spec)
    siblings = _siblings(tree, parent_id) + (section,)
    LOGGER.debug("add_section %s under %s", section.id, parent_id or "<root>")
    return _with_siblings(tree, parent_id, siblings), section.id


def update_section(tree: ContentTree, section_id: str, fields: Mapping[str, Any]) -> ContentTree:
    """Merge ``fields`` into a section; locked sections only accept an unlock."""

    section = tree.require_section(section_id)
    changes = _normalize_section_fields(fields)
    if section.is_locked and changes.get("is_locked") is not False:
        raise LockedError.for_section(section.id, section.title)
    return _update_section(tree, section_id, lambda current: replace(current, **changes))


def delete_section(tree: ContentTree, section_id: str) -> ContentTree:
    """Remove a section together with its whole subtree."""

    location = tree.locate_section(section_id)
    if location is None:
        raise NotFoundError.section(section_id)
    _ensure_subtree_unlocked(tree.require_section(section_id))
    if location.parent_id is not None:
        _ensure_unlocked(tree.require_section(location.parent_id))
    siblings = _siblings(tree, location.parent_id)
    remaining = siblings[: location.index] + siblings[location.index + 1 :]
    return _with_siblings(tree, location.parent_id, remaining)


def duplicate_section(tree: ContentTree, section_id: str) -> tuple[ContentTree, str]:
    """Clone a section (blocks and descendants included) right after the original."""

    location = tree.locate_section(section_id)
    if location is None:
        raise NotFoundError.section(section_id)
    if location.parent_id is not None:
        _ensure_unlocked(tree.require_section(location.parent_id))
    source = tree.require_section(section_id)
    copy = _reissue_section(source, title_suffix=_DUPLICATE_SUFFIX)
    siblings = _siblings(tree, location.parent_id)
    insert_at = location.index + 1
    updated = siblings[:insert_at] + (copy,) + siblings[insert_at:]
    return _with_siblings(tree, location.parent_id, updated), copy.id


def reorder_sections(tree: ContentTree, moved_id: str, target_id: str) -> ContentTree:
    """Move ``moved_id`` into ``target_id``'s position within their sibling list."""

    moved = tree.locate_section(moved_id)
    if moved is None:
        raise NotFoundError.section(moved_id)
    target = tree.locate_section(target_id)
    if target is None:
        raise NotFoundError.section(target_id)
    if moved_id == target_id:
        return tree
    if moved.parent_id != target.parent_id:
        raise BoundsError(
            message="Sections can only be reordered among siblings",
            details={"moved_id": moved_id, "target_id": target_id},
        )
    if moved.parent_id is not None:
        _ensure_unlocked(tree.require_section(moved.parent_id))
    siblings = list(_siblings(tree, moved.parent_id))
    section = siblings.pop(moved.index)
    siblings.insert(target.index, section)
    return _with_siblings(tree, moved.parent_id, tuple(siblings))


def move_section(
    tree: ContentTree,
    section_id: str,
    new_index: int,
    new_parent_id: str | None = None,
) -> ContentTree:
    """Re-parent a section (``None`` means root level) at a clamped index."""

    location = tree.locate_section(section_id)
    if location is None:
        raise NotFoundError.section(section_id)
    section = tree.require_section(section_id)
    if new_parent_id is not None:
        parent = tree.require_section(new_parent_id)
        if new_parent_id == section_id or new_parent_id in _descendant_ids(section):
            raise BoundsError(
                message="A section cannot be moved inside itself",
                details={"section_id": section_id, "new_parent_id": new_parent_id},
            )
        _ensure_unlocked(parent)
    if location.parent_id is not None:
        _ensure_unlocked(tree.require_section(location.parent_id))

    source_siblings = _siblings(tree, location.parent_id)
    without = _with_siblings(
        tree,
        location.parent_id,
        source_siblings[: location.index] + source_siblings[location.index + 1 :],
    )
    target_siblings = list(_siblings(without, new_parent_id))
    target_siblings.insert(_clamp(new_index, len(target_siblings)), section)
    return _with_siblings(without, new_parent_id, tuple(target_siblings))


def toggle_lock(tree: ContentTree, section_id: str) -> ContentTree:
    return _update_section(
        tree, section_id, lambda section: replace(section, is_locked=not section.is_locked)
    )


def toggle_collapse(tree: ContentTree, section_id: str) -> ContentTree:
    _ensure_unlocked(tree.require_section(section_id))
    return _update_section(
        tree, section_id, lambda section: replace(section, is_collapsed=not section.is_collapsed)
    )


# ---------------------------------------------------------------------------
# Block operations
# ---------------------------------------------------------------------------


def _editable_section(tree: ContentTree, section_id: str) -> Section:
    section = tree.require_section(section_id)
    _ensure_unlocked(section)
    return section


def _insert(section: Section, block: Block, index: int | None) -> Section:
    blocks = list(section.blocks)
    blocks.insert(_clamp(index, len(blocks)), block)
    return replace(section, blocks=tuple(blocks))


def add_block(
    tree: ContentTree,
    section_id: str,
    block_type: str,
    index: int | None = None,
    options: Mapping[str, Any] | None = None,
) -> tuple[ContentTree, str]:
    """Insert a default block of ``block_type`` at ``index`` (end by default)."""

    _editable_section(tree, section_id)
    _clamp(index, 0)  # reject non-integer positions before building the block
    block = create_default_block(block_type, options)
    updated = _update_section(tree, section_id, lambda section: _insert(section, block, index))
    return updated, block.id


def insert_block(
    tree: ContentTree,
    section_id: str,
    block: Block,
    index: int | None = None,
) -> tuple[ContentTree, str]:
    """Insert a prebuilt block, re-identifying it when its id is already in use."""

    _editable_section(tree, section_id)
    _clamp(index, 0)
    if tree.find_block(block.id) is not None:
        block = clone_block(block)
    updated = _update_section(tree, section_id, lambda section: _insert(section, block, index))
    return updated, block.id


def update_block(
    tree: ContentTree,
    section_id: str,
    block_id: str,
    fields: Mapping[str, Any],
) -> ContentTree:
    """Merge ``fields`` into a block; fields foreign to its type are rejected."""

    section = _editable_section(tree, section_id)
    index = section.block_index(block_id)
    if index < 0:
        raise NotFoundError.block(section_id, block_id)
    updated_block = apply_block_update(section.blocks[index], fields)

    def _apply(current: Section) -> Section:
        blocks = current.blocks[:index] + (updated_block,) + current.blocks[index + 1 :]
        return replace(current, blocks=blocks)

    return _update_section(tree, section_id, _apply)


def delete_block(tree: ContentTree, section_id: str, block_id: str) -> ContentTree:
    section = _editable_section(tree, section_id)
    index = section.block_index(block_id)
    if index < 0:
        raise NotFoundError.block(section_id, block_id)
    return _update_section(
        tree,
        section_id,
        lambda current: replace(current, blocks=current.blocks[:index] + current.blocks[index + 1 :]),
    )


def duplicate_block(tree: ContentTree, section_id: str, block_id: str) -> tuple[ContentTree, str]:
    """Copy a block and insert the copy right after the source."""

    section = _editable_section(tree, section_id)
    index = section.block_index(block_id)
    if index < 0:
        raise NotFoundError.block(section_id, block_id)
    copy = clone_block(section.blocks[index])
    updated = _update_section(tree, section_id, lambda current: _insert(current, copy, index + 1))
    return updated, copy.id


def move_block(
    tree: ContentTree,
    from_section_id: str,
    block_id: str,
    to_section_id: str,
    to_index: int,
) -> ContentTree:
    """Move a block to ``to_index`` of ``to_section_id``.

    ``to_index`` is clamped to the target list measured after the block has
    been removed. When the block already sits in the target section the call
    is a reindex, so replaying a move yields the same tree.
    """

    source = _editable_section(tree, from_section_id)
    target = _editable_section(tree, to_section_id)
    _clamp(to_index, 0)
    index = source.block_index(block_id)
    if index < 0:
        if target.block_index(block_id) < 0:
            raise NotFoundError.block(from_section_id, block_id)
        source, index = target, target.block_index(block_id)
    block = source.blocks[index]

    without = _update_section(
        tree,
        source.id,
        lambda current: replace(current, blocks=current.blocks[:index] + current.blocks[index + 1 :]),
    )
    LOGGER.debug("move_block %s: %s -> %s[%s]", block_id, source.id, to_section_id, to_index)
    return _update_section(without, to_section_id, lambda current: _insert(current, block, to_index))
