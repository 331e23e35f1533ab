"""Bounded undo/redo stacks of content tree snapshots."""

from __future__ import annotations

import logging

from ..content.model import ContentTree

__all__ = ["HistoryManager", "DEFAULT_HISTORY_DEPTH"]

LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY_DEPTH = 100


class HistoryManager:
    """Undo/redo over immutable :class:`ContentTree` snapshots.

    ``record`` stores the tree as it was *before* a command. The oldest
    snapshot is dropped once ``max_depth`` is exceeded and recording always
    discards the redo branch. Undoing or redoing with an empty stack returns
    the current tree unchanged.
    """

    MAX_HISTORY = DEFAULT_HISTORY_DEPTH

    def __init__(self, max_depth: int | None = None) -> None:
        depth = self.MAX_HISTORY if max_depth is None else max_depth
        if depth < 1:
            raise ValueError("max_depth must be at least 1")
        self._max_depth = depth
        self._past: list[ContentTree] = []
        self._future: list[ContentTree] = []

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    @property
    def max_depth(self) -> int:
        return self._max_depth

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def past_depth(self) -> int:
        return len(self._past)

    @property
    def future_depth(self) -> int:
        return len(self._future)

    @property
    def past(self) -> tuple[ContentTree, ...]:
        """Snapshots available to undo, oldest first."""

        return tuple(self._past)

    @property
    def future(self) -> tuple[ContentTree, ...]:
        """Snapshots available to redo, the next redo last."""

        return tuple(self._future)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def record(self, tree_before: ContentTree) -> None:
        self._push_past(tree_before)
        self._future.clear()

    def undo(self, current: ContentTree) -> ContentTree:
        if not self._past:
            LOGGER.debug("Undo requested with empty history")
            return current
        previous = self._past.pop()
        self._future.append(current)
        return previous

    def redo(self, current: ContentTree) -> ContentTree:
        if not self._future:
            LOGGER.debug("Redo requested with empty future")
            return current
        following = self._future.pop()
        self._push_past(current)
        return following

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    def _push_past(self, tree: ContentTree) -> None:
        self._past.append(tree)
        if len(self._past) > self._max_depth:
            self._past.pop(0)
