"""Git process layer shared by the sync engine and the CLI."""

from .git import Git, GitCommandError, GitRepo

__all__ = ["Git", "GitCommandError", "GitRepo"]
