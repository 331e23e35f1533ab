"""Report studio content core: content tree, mutations, history and persistence."""

__version__ = "0.1.0"

__all__ = ["__version__"]
