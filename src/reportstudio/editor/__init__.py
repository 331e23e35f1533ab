"""Editing session, undo/redo history and transient editor state."""

from .editor_state import EditorState
from .history import HistoryManager
from .session import ReportSession, SaveResult, SessionClosedError

__all__ = ["EditorState", "HistoryManager", "ReportSession", "SaveResult", "SessionClosedError"]
