"""Dataclasses representing the report content tree."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from .blocks import Block, block_from_dict, block_to_dict, new_id
from .errors import IntegrityError, NotFoundError, TypeMismatchError

__all__ = [
    "SECTION_STATUSES",
    "COMPLETION_STATUSES",
    "ContentTree",
    "Section",
    "SectionLocation",
    "SectionMetadata",
    "check_integrity",
    "metadata_from_value",
    "section_from_dict",
    "section_to_dict",
    "tree_from_dict",
    "tree_to_dict",
]

SECTION_STATUSES: tuple[str, ...] = ("generated", "edited", "manual")
COMPLETION_STATUSES: tuple[str, ...] = ("complete", "draft", "needs_review")
MIN_LEVEL = 1
MAX_LEVEL = 6


@dataclass(frozen=True, slots=True)
class SectionMetadata:
    """Optional annotations surfaced by the navigation panel."""

    completion_status: str | None = None
    has_comments: bool | None = None
    ai_confidence: float | None = None


@dataclass(frozen=True, slots=True)
class Section:
    """A titled node of the document tree owning blocks and child sections."""

    id: str = field(default_factory=new_id)
    title: str = ""
    level: int = 1
    status: str = "manual"
    is_locked: bool = False
    is_collapsed: bool = False
    icon: str | None = None
    blocks: tuple[Block, ...] = ()
    children: tuple["Section", ...] = ()
    metadata: SectionMetadata | None = None

    def block_index(self, block_id: str) -> int:
        """Return the position of ``block_id`` or ``-1`` when absent."""

        for index, block in enumerate(self.blocks):
            if block.id == block_id:
                return index
        return -1

    def find_block(self, block_id: str) -> Block | None:
        index = self.block_index(block_id)
        return self.blocks[index] if index >= 0 else None


@dataclass(frozen=True, slots=True)
class SectionLocation:
    """Where a section lives: index path from the roots plus its parent id."""

    path: tuple[int, ...]
    parent_id: str | None

    @property
    def index(self) -> int:
        return self.path[-1]

    @property
    def depth(self) -> int:
        return len(self.path) - 1


@dataclass(frozen=True, slots=True)
class ContentTree:
    """The whole document: an ordered forest of root sections.

    Trees are persistent values. Undo history keeps earlier trees that share
    unchanged sections and blocks with the current one, so readers must treat
    every payload reachable from a tree as read-only and change content only
    through :mod:`reportstudio.content.mutations`.
    """

    sections: tuple[Section, ...] = ()

    # ------------------------------------------------------------------
    # Traversal helpers
    # ------------------------------------------------------------------
    def iter_sections(self) -> Iterator[Section]:
        """Yield every section depth-first, parents before children."""

        for section, _location in self.walk():
            yield section

    def walk(self) -> Iterator[tuple[Section, SectionLocation]]:
        """Yield ``(section, location)`` pairs depth-first."""

        stack: list[tuple[Section, tuple[int, ...], str | None]] = [
            (section, (index,), None) for index, section in enumerate(self.sections)
        ]
        stack.reverse()
        while stack:
            section, path, parent_id = stack.pop()
            yield section, SectionLocation(path=path, parent_id=parent_id)
            for index in range(len(section.children) - 1, -1, -1):
                stack.append((section.children[index], path + (index,), section.id))

    def find_section(self, section_id: str) -> Section | None:
        for section in self.iter_sections():
            if section.id == section_id:
                return section
        return None

    def require_section(self, section_id: str) -> Section:
        section = self.find_section(section_id)
        if section is None:
            raise NotFoundError.section(section_id)
        return section

    def locate_section(self, section_id: str) -> SectionLocation | None:
        for section, location in self.walk():
            if section.id == section_id:
                return location
        return None

    def find_block(self, block_id: str) -> tuple[Section, Block] | None:
        """Return the owning section and the block for ``block_id``."""

        for section in self.iter_sections():
            block = section.find_block(block_id)
            if block is not None:
                return section, block
        return None

    def section_ids(self) -> list[str]:
        return [section.id for section in self.iter_sections()]

    def block_ids(self) -> list[str]:
        return [block.id for section in self.iter_sections() for block in section.blocks]

    @property
    def is_empty(self) -> bool:
        return not self.sections

    def section_count(self) -> int:
        return sum(1 for _ in self.iter_sections())


def check_integrity(tree: ContentTree) -> ContentTree:
    """Raise :class:`IntegrityError` when ids are duplicated anywhere in ``tree``."""

    section_counts = Counter(tree.section_ids())
    block_counts = Counter(tree.block_ids())
    duplicate_sections = sorted(key for key, count in section_counts.items() if count > 1)
    duplicate_blocks = sorted(key for key, count in block_counts.items() if count > 1)
    if duplicate_sections or duplicate_blocks:
        raise IntegrityError(
            message="Content tree contains duplicate identifiers",
            details={
                "duplicate_sections": duplicate_sections,
                "duplicate_blocks": duplicate_blocks,
            },
        )
    return tree


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def section_to_dict(section: Section) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": section.id,
        "type": "section",
        "title": section.title,
        "level": section.level,
        "status": section.status,
        "isLocked": section.is_locked,
        "isCollapsed": section.is_collapsed,
        "blocks": [block_to_dict(block) for block in section.blocks],
        "children": [section_to_dict(child) for child in section.children],
    }
    if section.icon is not None:
        payload["icon"] = section.icon
    if section.metadata is not None:
        metadata: dict[str, Any] = {}
        if section.metadata.completion_status is not None:
            metadata["completionStatus"] = section.metadata.completion_status
        if section.metadata.has_comments is not None:
            metadata["hasComments"] = section.metadata.has_comments
        if section.metadata.ai_confidence is not None:
            metadata["aiConfidence"] = section.metadata.ai_confidence
        payload["metadata"] = metadata
    return payload


def metadata_from_value(value: Any) -> SectionMetadata | None:
    """Coerce a metadata mapping (camelCase or snake_case) into :class:`SectionMetadata`."""

    if value is None or isinstance(value, SectionMetadata):
        return value
    if not isinstance(value, Mapping):
        raise TypeMismatchError(message="Section metadata must be a mapping")
    completion = value.get("completionStatus", value.get("completion_status"))
    if completion is not None and completion not in COMPLETION_STATUSES:
        raise TypeMismatchError(
            message=f"Unknown completion status '{completion}'",
            details={"field": "completion_status"},
        )
    confidence = value.get("aiConfidence", value.get("ai_confidence"))
    has_comments = value.get("hasComments", value.get("has_comments"))
    return SectionMetadata(
        completion_status=completion,
        has_comments=None if has_comments is None else bool(has_comments),
        ai_confidence=None if confidence is None else float(confidence),
    )


def section_from_dict(payload: Mapping[str, Any]) -> Section:
    return Section(
        id=str(payload.get("id") or new_id()),
        title=str(payload.get("title", "")),
        level=int(payload.get("level", MIN_LEVEL)),
        status=str(payload.get("status", "manual")),
        is_locked=bool(payload.get("isLocked", False)),
        is_collapsed=bool(payload.get("isCollapsed", False)),
        icon=payload.get("icon"),
        blocks=tuple(block_from_dict(item) for item in payload.get("blocks") or ()),
        children=tuple(section_from_dict(item) for item in payload.get("children") or ()),
        metadata=metadata_from_value(payload.get("metadata")),
    )


def tree_to_dict(tree: ContentTree) -> dict[str, Any]:
    """Serialize ``tree`` to the persisted wire form."""

    return {"sections": [section_to_dict(section) for section in tree.sections]}


def tree_from_dict(payload: Mapping[str, Any] | None) -> ContentTree:
    """Rebuild a :class:`ContentTree`; ``None`` yields the empty default tree."""

    if not payload:
        return ContentTree()
    sections = tuple(section_from_dict(item) for item in payload.get("sections") or ())
    return ContentTree(sections=sections)
