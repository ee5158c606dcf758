"""Error types for the release pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "workspace_failed",
    "clone_failed",
    "package_invalid",
    "git_failed",
    "gh_missing",
    "gh_failed",
    "invalid_response",
    "note_failed",
    "checks_failed",
    "timeout",
    "merge_failed",
    "cancelled",
    "invalid_input",
    "config_invalid",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical release error payload.

    ``details`` carries diagnostic lines (failing check names, last observed
    state of a poll) that views render below the message.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None
    details: tuple[str, ...] = ()

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
