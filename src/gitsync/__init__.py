"""Replay the history of a repository subdirectory into another repository."""

__version__ = "1.0.0"
