"""Poll a remote observation until it satisfies a predicate or time runs out.

:func:`poll_until` is the one waiting primitive; clock and sleep are
injectable so tests run without real delays. The two release waits
(checks on a pull request, discovery of the version PR) are thin wrappers.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from autoship.core.config import (
    DEFAULT_CHECKS_INTERVAL_SECONDS,
    DEFAULT_CHECKS_TIMEOUT_SECONDS,
    DEFAULT_DISCOVERY_INTERVAL_SECONDS,
    DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
)
from autoship.core.result import Err, Ok, Result
from autoship.output.console import OutputSink, Style
from autoship.release.checks import ChecksSummary, summarize
from autoship.release.errors import ReleaseError
from autoship.release.model import CheckRun, PullRequest

Clock = Callable[[], float]
Sleep = Callable[[float], None]


@dataclass(frozen=True, slots=True)
class PollTimeout[T]:
    """The deadline passed without a satisfying observation."""

    elapsed: float
    attempts: int
    last_value: T | None = None


def _observe[T](probe: Callable[[], Result[T | None, object] | T | None]) -> T | None:
    try:
        observed = probe()
    except Exception:
        return None
    match observed:
        case Ok(value):
            return value
        case Err(_):
            return None
        case _:
            return observed


def poll_until[T](
    probe: Callable[[], Result[T | None, object] | T | None],
    is_satisfied: Callable[[T], bool],
    *,
    timeout: float,
    interval: float,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
    on_attempt: Callable[[int, T | None], None] | None = None,
) -> Result[T, PollTimeout[T]]:
    """Invoke ``probe`` until ``is_satisfied`` holds for its value.

    The probe may return a plain value, None (not yet observable) or a
    Result; an Err or a raised exception also counts as "not yet". Attempts
    never overlap, there is no sleep after the satisfying attempt, and no
    attempt starts once ``timeout`` seconds have elapsed.
    """
    start = clock()
    deadline = start + timeout
    attempts = 0
    last: T | None = None

    while True:
        attempts += 1
        value = _observe(probe)
        if value is not None:
            last = value
        if on_attempt is not None:
            on_attempt(attempts, value)
        if value is not None and is_satisfied(value):
            return Ok(value)

        remaining = deadline - clock()
        if remaining <= 0:
            return Err(PollTimeout(elapsed=clock() - start, attempts=attempts, last_value=last))
        sleep(min(interval, remaining))
        if clock() > deadline:
            return Err(PollTimeout(elapsed=clock() - start, attempts=attempts, last_value=last))


class ChecksReader(Protocol):
    def list_check_runs(self, number: int) -> Result[tuple[CheckRun, ...], ReleaseError]: ...


class PullRequestFinder(Protocol):
    def find_open_pr_by_head(self, branch: str) -> Result[PullRequest | None, ReleaseError]: ...


def _checks_settled(summary: ChecksSummary) -> bool:
    # An empty snapshot means CI has not registered yet.
    return bool(summary.checks) and summary.all_completed


def _format_check(run: CheckRun) -> str:
    if run.conclusion is not None:
        return f"{run.name}: {run.conclusion}"
    return f"{run.name}: {run.status}"


def wait_for_checks(
    review: ChecksReader,
    number: int,
    *,
    sink: OutputSink,
    timeout: float = DEFAULT_CHECKS_TIMEOUT_SECONDS,
    interval: float = DEFAULT_CHECKS_INTERVAL_SECONDS,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> Result[ChecksSummary, ReleaseError]:
    """Wait until every check on PR ``number`` has completed.

    The returned summary may still contain failures; judging them is the
    caller's job.
    """

    def probe() -> Result[ChecksSummary | None, ReleaseError]:
        runs = review.list_check_runs(number)
        if isinstance(runs, Err):
            return runs
        return Ok(summarize(runs.value))

    def report(attempt: int, summary: ChecksSummary | None) -> None:
        if summary is None:
            sink.detail(f"Attempt {attempt}: checks not readable yet")
            return
        if not summary.checks:
            sink.detail(f"Attempt {attempt}: no checks registered yet")
            return
        sink.info(f"Attempt {attempt}: {summary.progress_line()}")
        for run in summary.checks:
            sink.print(f"  {_format_check(run)}", Style.DIM)

    result = poll_until(
        probe,
        _checks_settled,
        timeout=timeout,
        interval=interval,
        clock=clock,
        sleep=sleep,
        on_attempt=report,
    )
    if isinstance(result, Ok):
        return result

    expired = result.error
    details: tuple[str, ...] = ()
    if expired.last_value is not None:
        details = (
            expired.last_value.progress_line(),
            *(_format_check(run) for run in expired.last_value.checks),
        )
    return Err(
        ReleaseError(
            kind="timeout",
            message=f"timed out after {expired.elapsed:.0f}s waiting for checks on PR #{number}",
            hint="Checks may still be running; inspect the PR and merge manually",
            details=details,
        )
    )


def wait_for_pull_request(
    review: PullRequestFinder,
    head_branch: str,
    *,
    sink: OutputSink,
    timeout: float = DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    interval: float = DEFAULT_DISCOVERY_INTERVAL_SECONDS,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> Result[PullRequest, ReleaseError]:
    """Wait for an open PR whose head branch is ``head_branch``."""

    def probe() -> Result[PullRequest | None, ReleaseError]:
        return review.find_open_pr_by_head(head_branch)

    def report(attempt: int, pr: PullRequest | None) -> None:
        if pr is None:
            sink.detail(f"Attempt {attempt}: no open PR from {head_branch} yet")

    result = poll_until(
        probe,
        lambda _pr: True,
        timeout=timeout,
        interval=interval,
        clock=clock,
        sleep=sleep,
        on_attempt=report,
    )
    if isinstance(result, Ok):
        return result
    return Err(
        ReleaseError(
            kind="timeout",
            message=(
                f"timed out after {result.error.elapsed:.0f}s waiting for a PR from {head_branch}"
            ),
            hint="The release automation may not have run; check the repository's Actions tab",
        )
    )
