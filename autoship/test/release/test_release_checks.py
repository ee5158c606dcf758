from __future__ import annotations

import pytest

from autoship.release.checks import (
    StructuredChecks,
    TabularChecks,
    canonical,
    normalize_checks,
    normalize_conclusion,
    normalize_status,
    parse_check_line,
    summarize,
)
from autoship.release.model import CheckRun


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("COMPLETED", "completed"),
        ("completed", "completed"),
        ("IN_PROGRESS", "in_progress"),
        ("PENDING", "in_progress"),
        ("QUEUED", "queued"),
        ("WAITING", "queued"),
        ("", "queued"),
        (None, "queued"),
    ],
)
def test_normalize_status(token: object, expected: str) -> None:
    assert normalize_status(token) == expected


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("SUCCESS", "success"),
        ("failure", "failure"),
        ("TIMED_OUT", "timed_out"),
        ("SKIPPED", "skipped"),
        ("STALE", None),
        (None, None),
    ],
)
def test_normalize_conclusion(token: object, expected: str | None) -> None:
    assert normalize_conclusion(token) == expected


def test_tabular_output_with_banner() -> None:
    text = (
        "Some checks are still pending\n"
        "\n"
        "build\tpass\t1m2s\thttps://github.com/acme/widgets/actions/runs/1\n"
        "test\tpending\t0\thttps://github.com/acme/widgets/actions/runs/2\n"
    )

    runs = normalize_checks(TabularChecks(text=text))

    assert runs == (
        CheckRun(name="build", status="completed", conclusion="success"),
        CheckRun(name="test", status="in_progress", conclusion=None),
    )
    summary = summarize(runs)
    assert not summary.all_completed


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("lint\tfail\t12s\turl", CheckRun("lint", "completed", "failure")),
        ("docs\tskipping\t0\turl", CheckRun("docs", "completed", "skipped")),
        ("e2e\tqueued\t0\turl", CheckRun("e2e", "queued", None)),
        ("All checks were successful", None),
        ("0 failing, 2 successful, and 0 pending checks", None),
        ("\tpass", None),
        ("", None),
    ],
)
def test_parse_check_line(line: str, expected: CheckRun | None) -> None:
    assert parse_check_line(line) == expected


def test_structured_prefers_workflow_name() -> None:
    entries = (
        {"__typename": "CheckRun", "name": "build (ubuntu)", "workflowName": "CI",
         "status": "COMPLETED", "conclusion": "SUCCESS"},
        {"__typename": "CheckRun", "name": "lint", "status": "IN_PROGRESS", "conclusion": ""},
    )

    runs = normalize_checks(StructuredChecks(entries=entries))

    assert runs == (
        CheckRun("CI", "completed", "success"),
        CheckRun("lint", "in_progress", None),
    )


def test_structured_status_context_entries() -> None:
    entries = (
        {"__typename": "StatusContext", "context": "ci/circleci", "state": "SUCCESS"},
        {"__typename": "StatusContext", "context": "deploy/preview", "state": "PENDING"},
        {"__typename": "StatusContext", "context": "codecov", "state": "ERROR"},
    )

    runs = normalize_checks(StructuredChecks(entries=entries))

    assert runs == (
        CheckRun("ci/circleci", "completed", "success"),
        CheckRun("deploy/preview", "in_progress", None),
        CheckRun("codecov", "completed", "failure"),
    )


def test_structured_skips_malformed_entries() -> None:
    entries = ("not a dict", {"status": "COMPLETED"}, {"name": "  ", "status": "COMPLETED"})
    assert normalize_checks(StructuredChecks(entries=entries)) == ()


def test_completed_run_always_has_conclusion() -> None:
    entries = ({"name": "build", "status": "COMPLETED", "conclusion": None},)
    (run,) = normalize_checks(StructuredChecks(entries=entries))
    assert run.conclusion == "neutral"


def test_pending_run_drops_conclusion() -> None:
    entries = ({"name": "build", "status": "QUEUED", "conclusion": "SUCCESS"},)
    (run,) = normalize_checks(StructuredChecks(entries=entries))
    assert run.conclusion is None


@pytest.mark.parametrize(
    "run",
    [
        CheckRun("build", "completed", "success"),
        CheckRun("build", "completed", "action_required"),
        CheckRun("build", "in_progress", None),
        CheckRun("build", "queued", None),
    ],
)
def test_canonical_is_idempotent(run: CheckRun) -> None:
    assert canonical(run) == run
    assert canonical(canonical(run)) == canonical(run)


def test_canonical_fills_missing_conclusion() -> None:
    assert canonical(CheckRun("build", "completed", None)).conclusion == "neutral"


class TestSummary:
    def test_success_allows_skipped(self) -> None:
        summary = summarize(
            [CheckRun("build", "completed", "success"), CheckRun("docs", "completed", "skipped")]
        )
        assert summary.all_completed
        assert summary.success
        assert summary.failed_names == ()

    def test_failed_names_cover_every_non_passing_conclusion(self) -> None:
        summary = summarize(
            [
                CheckRun("build", "completed", "success"),
                CheckRun("lint", "completed", "failure"),
                CheckRun("e2e", "completed", "timed_out"),
                CheckRun("deploy", "completed", "cancelled"),
            ]
        )
        assert not summary.success
        assert summary.failed_names == ("lint", "e2e", "deploy")

    def test_progress_line(self) -> None:
        summary = summarize(
            [
                CheckRun("a", "completed", "success"),
                CheckRun("b", "in_progress"),
                CheckRun("c", "queued"),
            ]
        )
        assert summary.progress_line() == "Progress: 1/3 complete, 1 in progress, 1 queued"

    def test_empty_snapshot(self) -> None:
        summary = summarize([])
        assert summary.all_completed
        assert summary.checks == ()
