from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from typing import Literal

UNKNOWN_VERSION = "unknown"

CheckStatus = Literal["queued", "in_progress", "completed"]
CheckConclusion = Literal[
    "success",
    "failure",
    "neutral",
    "cancelled",
    "skipped",
    "timed_out",
    "action_required",
]

CHECK_STATUSES: frozenset[str] = frozenset({"queued", "in_progress", "completed"})
CHECK_CONCLUSIONS: frozenset[str] = frozenset(
    {"success", "failure", "neutral", "cancelled", "skipped", "timed_out", "action_required"}
)

# Pull request states reported by gh; MERGED and CLOSED are terminal.
TERMINAL_PR_STATES: frozenset[str] = frozenset({"MERGED", "CLOSED"})


@total_ordering
class ReleaseType(Enum):
    """Semantic version bump, ordered patch < minor < major."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _RANKS[self.value]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ReleaseType):
            return NotImplemented
        return self.rank < other.rank

    def __str__(self) -> str:
        return self.value


_RANKS = {"patch": 0, "minor": 1, "major": 2}
_DESCRIPTIONS = {
    "patch": "Bug fixes, small changes",
    "minor": "New features, backwards compatible",
    "major": "Breaking changes",
}


def parse_release_type(text: str | None) -> ReleaseType | None:
    if text is None:
        return None
    try:
        return ReleaseType(text.strip().lower())
    except ValueError:
        return None


def combine_release_types(types: list[ReleaseType]) -> ReleaseType:
    """Highest bump among per-package decisions (patch if there are none)."""
    return max(types, default=ReleaseType.PATCH)


@dataclass(frozen=True, slots=True)
class PackageInfo:
    name: str
    version: str


@dataclass(frozen=True, slots=True)
class DiffContext:
    """What changed since the previous release; built once per run."""

    commits: tuple[str, ...]
    diff: str
    files_changed: tuple[str, ...]
    insertions: int
    deletions: int
    previous_version: str

    def __post_init__(self) -> None:
        if self.insertions < 0 or self.deletions < 0:
            raise ValueError("insertions/deletions must be non-negative")

    @property
    def has_baseline(self) -> bool:
        return self.previous_version != UNKNOWN_VERSION


@dataclass(frozen=True, slots=True)
class ReleaseDecision:
    type: ReleaseType
    message: str


@dataclass(frozen=True, slots=True)
class PullRequest:
    number: int
    url: str
    head_ref: str
    head_sha: str
    state: str
    mergeable: bool | None = None
    merged: bool | None = None

    def __post_init__(self) -> None:
        if self.merged and self.state not in TERMINAL_PR_STATES:
            raise ValueError(f"PR #{self.number} is merged but state is {self.state}")


@dataclass(frozen=True, slots=True)
class CheckRun:
    """One CI job as seen at one point in time.

    ``conclusion`` is None unless ``status`` is ``completed``.
    """

    name: str
    status: CheckStatus
    conclusion: CheckConclusion | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"
