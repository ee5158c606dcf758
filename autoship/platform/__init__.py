"""Platform abstraction layer (subprocesses, filesystem)."""

from .files import atomic_write_text, remove_tree
from .process import ProcessError, run

__all__ = [
    "ProcessError",
    "atomic_write_text",
    "remove_tree",
    "run",
]
