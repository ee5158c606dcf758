"""Disposable checkout directories, one per release run."""

from __future__ import annotations

import re
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path

from autoship.core.result import Err, Ok, Result
from autoship.platform.files import remove_tree
from autoship.release.errors import ReleaseError

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def default_root() -> Path:
    return Path(tempfile.gettempdir()) / "autoship"


@dataclass(frozen=True, slots=True)
class WorkArea:
    """A uniquely named directory under ``root``; not created until clone."""

    path: Path

    @classmethod
    def allocate(cls, root: Path, repo_name: str) -> WorkArea:
        safe = _UNSAFE_CHARS.sub("-", repo_name).strip("-") or "repo"
        return cls(path=root / f"{safe}-{uuid.uuid4().hex[:8]}")

    def prepare(self) -> Result[None, ReleaseError]:
        """Create the parent directory the checkout is cloned into."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="workspace_failed",
                    message=f"failed to create work area: {e}",
                    hint=str(self.path.parent),
                )
            )
        return Ok(None)

    def remove(self) -> Result[None, ReleaseError]:
        """Delete the directory; removing twice is a no-op."""
        try:
            remove_tree(self.path)
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="workspace_failed",
                    message=f"failed to remove work area: {e}",
                    hint=str(self.path),
                )
            )
        return Ok(None)
