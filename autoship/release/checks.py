"""Check-run status normalization.

gh reports CI state in two shapes: structured JSON (``statusCheckRollup``
entries, either check runs with status/conclusion tokens or commit status
contexts with a single ``state``) and the tab-separated text printed by
``gh pr checks``. Both are mapped here onto :class:`CheckRun`.

Everything in this module is pure and total: unknown input degrades to
``queued``/None, and a ``completed`` run always carries a conclusion.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from autoship.core.structured import as_str_dict, get_str
from autoship.release.model import (
    CHECK_CONCLUSIONS,
    CHECK_STATUSES,
    CheckConclusion,
    CheckRun,
    CheckStatus,
)

__all__ = [
    "CheckSource",
    "ChecksSummary",
    "StructuredChecks",
    "TabularChecks",
    "canonical",
    "normalize_checks",
    "normalize_conclusion",
    "normalize_status",
    "parse_check_line",
    "summarize",
]

PASSING_CONCLUSIONS: frozenset[str] = frozenset({"success", "skipped"})

# Conclusion given to a completed run whose outcome was not reported.
UNKNOWN_CONCLUSION: CheckConclusion = "neutral"

_STATUS_TOKENS: dict[str, CheckStatus] = {
    "COMPLETED": "completed",
    "IN_PROGRESS": "in_progress",
    "PENDING": "in_progress",
}

_CONCLUSION_TOKENS: dict[str, CheckConclusion] = {
    "SUCCESS": "success",
    "FAILURE": "failure",
    "NEUTRAL": "neutral",
    "CANCELLED": "cancelled",
    "SKIPPED": "skipped",
    "TIMED_OUT": "timed_out",
}

# Commit status contexts carry one state instead of status + conclusion.
_CONTEXT_STATES: dict[str, tuple[CheckStatus, CheckConclusion | None]] = {
    "SUCCESS": ("completed", "success"),
    "FAILURE": ("completed", "failure"),
    "ERROR": ("completed", "failure"),
    "PENDING": ("in_progress", None),
    "EXPECTED": ("queued", None),
}

_TABULAR_WORDS: dict[str, tuple[CheckStatus, CheckConclusion | None]] = {
    "pass": ("completed", "success"),
    "success": ("completed", "success"),
    "fail": ("completed", "failure"),
    "failure": ("completed", "failure"),
    "pending": ("in_progress", None),
    "in_progress": ("in_progress", None),
    "skipping": ("completed", "skipped"),
    "skipped": ("completed", "skipped"),
}


def normalize_status(token: object) -> CheckStatus:
    if not isinstance(token, str):
        return "queued"
    return _STATUS_TOKENS.get(token.strip().upper(), "queued")


def normalize_conclusion(token: object) -> CheckConclusion | None:
    if not isinstance(token, str):
        return None
    return _CONCLUSION_TOKENS.get(token.strip().upper())


def _settle(name: str, status: CheckStatus, conclusion: CheckConclusion | None) -> CheckRun:
    if status != "completed":
        return CheckRun(name=name, status=status, conclusion=None)
    return CheckRun(name=name, status=status, conclusion=conclusion or UNKNOWN_CONCLUSION)


def canonical(run: CheckRun) -> CheckRun:
    """Re-normalize a run; canonical input comes back unchanged."""
    status: CheckStatus = (
        run.status if run.status in CHECK_STATUSES else normalize_status(run.status)
    )
    conclusion: CheckConclusion | None = (
        run.conclusion
        if run.conclusion in CHECK_CONCLUSIONS
        else normalize_conclusion(run.conclusion)
    )
    return _settle(run.name.strip(), status, conclusion)


@dataclass(frozen=True, slots=True)
class StructuredChecks:
    """JSON entries, e.g. ``gh pr view --json statusCheckRollup``."""

    entries: tuple[object, ...]


@dataclass(frozen=True, slots=True)
class TabularChecks:
    """Text printed by ``gh pr checks`` (one tab-separated line per check)."""

    text: str


CheckSource = StructuredChecks | TabularChecks


def _parse_structured_entry(entry: Mapping[str, object]) -> CheckRun | None:
    name = get_str(entry, "workflowName") or get_str(entry, "name") or get_str(entry, "context")
    if name is None:
        return None

    if "status" not in entry and "state" in entry:
        state = get_str(entry, "state")
        status, conclusion = _CONTEXT_STATES.get((state or "").upper(), ("queued", None))
        return _settle(name, status, conclusion)

    return _settle(
        name,
        normalize_status(entry.get("status")),
        normalize_conclusion(entry.get("conclusion")),
    )


def parse_check_line(line: str) -> CheckRun | None:
    """Parse one ``NAME<TAB>STATUS[<TAB>...]`` line.

    Lines without a name + status pair (banners, summaries, blanks) yield None.
    """
    parts = line.split("\t")
    if len(parts) < 2:
        return None
    name = parts[0].strip()
    word = parts[1].strip().lower()
    if not name or not word:
        return None
    status, conclusion = _TABULAR_WORDS.get(word, ("queued", None))
    return _settle(name, status, conclusion)


def normalize_checks(source: CheckSource) -> tuple[CheckRun, ...]:
    out: list[CheckRun] = []
    match source:
        case StructuredChecks(entries=entries):
            for item in entries:
                entry = as_str_dict(item)
                if entry is None:
                    continue
                run = _parse_structured_entry(entry)
                if run is not None:
                    out.append(run)
        case TabularChecks(text=text):
            for line in text.splitlines():
                run = parse_check_line(line)
                if run is not None:
                    out.append(run)
    return tuple(out)


def _empty_checks() -> tuple[CheckRun, ...]:
    return ()


@dataclass(frozen=True, slots=True)
class ChecksSummary:
    """Aggregate view over one snapshot of check runs."""

    checks: tuple[CheckRun, ...] = field(default_factory=_empty_checks)

    @property
    def all_completed(self) -> bool:
        return all(c.is_completed for c in self.checks)

    @property
    def success(self) -> bool:
        """True if every conclusion is success or skipped."""
        return all(c.conclusion in PASSING_CONCLUSIONS for c in self.checks)

    @property
    def failed(self) -> tuple[CheckRun, ...]:
        return tuple(
            c for c in self.checks if c.is_completed and c.conclusion not in PASSING_CONCLUSIONS
        )

    @property
    def failed_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.failed)

    def count(self, status: CheckStatus) -> int:
        return sum(1 for c in self.checks if c.status == status)

    def progress_line(self) -> str:
        total = len(self.checks)
        return (
            f"Progress: {self.count('completed')}/{total} complete, "
            f"{self.count('in_progress')} in progress, {self.count('queued')} queued"
        )


def summarize(checks: Iterable[CheckRun]) -> ChecksSummary:
    return ChecksSummary(checks=tuple(checks))
