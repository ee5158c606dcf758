"""Git operations."""

from .repository import DiffSummary, GitError, Repository

__all__ = [
    "DiffSummary",
    "GitError",
    "Repository",
]
