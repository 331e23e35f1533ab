"""Transient editor state: selection, zoom and view toggles.

None of this is part of the document, so it is never recorded in history.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from ..content.model import ContentTree

__all__ = [
    "EditorState",
    "EDITOR_MODES",
    "MIN_ZOOM",
    "MAX_ZOOM",
    "DEFAULT_ZOOM",
    "clamp_zoom",
    "prune_selection",
]

EDITOR_MODES: tuple[str, ...] = ("edit", "preview")
MIN_ZOOM = 50
MAX_ZOOM = 200
DEFAULT_ZOOM = 100


def clamp_zoom(level: float) -> int:
    return int(min(MAX_ZOOM, max(MIN_ZOOM, round(level))))


@dataclass(frozen=True, slots=True)
class EditorState:
    selected_section_id: str | None = None
    selected_block_id: str | None = None
    is_editing: bool = False
    is_dragging: bool = False
    zoom_level: int = DEFAULT_ZOOM
    show_grid: bool = False
    show_comments: bool = True
    mode: str = "edit"

    def __post_init__(self) -> None:
        if self.mode not in EDITOR_MODES:
            raise ValueError(f"Unknown editor mode '{self.mode}'")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def with_section(self, section_id: str | None) -> "EditorState":
        """Select a section; the block selection is dropped."""

        return replace(self, selected_section_id=section_id, selected_block_id=None)

    def with_block(self, block_id: str | None, section_id: str | None = None) -> "EditorState":
        """Select a block, following it to its owning section when known."""

        if block_id is None:
            return replace(self, selected_block_id=None, is_editing=False)
        return replace(
            self,
            selected_block_id=block_id,
            selected_section_id=section_id if section_id is not None else self.selected_section_id,
        )

    def cleared(self) -> "EditorState":
        return replace(self, selected_section_id=None, selected_block_id=None, is_editing=False)

    def with_zoom(self, level: float) -> "EditorState":
        return replace(self, zoom_level=clamp_zoom(level))

    def with_mode(self, mode: str) -> "EditorState":
        if mode not in EDITOR_MODES:
            raise ValueError(f"Unknown editor mode '{mode}'")
        if mode == "preview":
            return replace(self, mode=mode, is_editing=False, is_dragging=False)
        return replace(self, mode=mode)

    @property
    def has_selection(self) -> bool:
        return self.selected_section_id is not None or self.selected_block_id is not None


def prune_selection(state: EditorState, tree: ContentTree) -> EditorState:
    """Drop selected ids that no longer exist in ``tree``."""

    section_id = state.selected_section_id
    block_id = state.selected_block_id
    if section_id is not None and tree.find_section(section_id) is None:
        section_id = None
    if block_id is not None and tree.find_block(block_id) is None:
        block_id = None
    if section_id == state.selected_section_id and block_id == state.selected_block_id:
        return state
    changes: dict[str, object] = {"selected_section_id": section_id, "selected_block_id": block_id}
    if block_id is None:
        changes["is_editing"] = False
    return replace(state, **changes)
