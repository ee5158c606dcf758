"""Review platform gateway over the GitHub CLI (``gh``).

Reads retry transient failures (timeouts, HTTP 5xx/429); mutations
(create, merge) run exactly once.
"""

from __future__ import annotations

import json
import re
import shutil
from collections.abc import Collection
from pathlib import Path
from time import sleep

from autoship.core.config import MergeMethod
from autoship.core.result import Err, Ok, Result
from autoship.core.structured import StrDict, as_obj_list, as_str_dict, get_int, get_list, get_str
from autoship.platform.process import ProcessError
from autoship.platform.process import run as run_process
from autoship.release.checks import StructuredChecks, TabularChecks, normalize_checks
from autoship.release.errors import ReleaseError, ReleaseErrorKind
from autoship.release.model import CheckRun, PullRequest
from autoship.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
)

_PR_NUMBER_RE = re.compile(r"/pull/(\d+)")
_PR_FIELDS = "number,url,headRefName,headRefOid,state,mergeable,mergedAt"

# `gh pr checks` exits 1 when a check failed and 8 while checks are pending;
# both still print the table on stdout.
_CHECKS_OK_CODES = (0, 1, 8)


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "tls handshake timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    if error.timed_out:
        return True
    return any(marker in text for marker in markers)


def run_gh_read(
    *,
    cwd: Path,
    cmd: list[str],
    kind: ReleaseErrorKind,
    message: str,
    hint: str | None = None,
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
    ok_codes: Collection[int] = (0,),
) -> Result[str, ReleaseError]:
    attempts = max(1, retry_attempts)
    for attempt in range(attempts):
        result = run_process(cmd, cwd=cwd, timeout=timeout, ok_codes=ok_codes)
        if isinstance(result, Ok):
            return result

        error = result.error
        if attempt < attempts - 1 and _is_transient_gh_error(error):
            sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))
            continue

        return Err(
            ReleaseError(
                kind=kind,
                message=message,
                hint=error.stderr.strip() or hint,
            )
        )

    return Err(ReleaseError(kind=kind, message=message, hint=hint))


def ensure_gh_available() -> Result[None, ReleaseError]:
    if shutil.which("gh") is None:
        return Err(
            ReleaseError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/ and run: gh auth login",
            )
        )
    return Ok(None)


def parse_pr_number(output: str) -> int | None:
    """PR number from the URL printed by ``gh pr create``."""
    m = _PR_NUMBER_RE.search(output)
    if m is None:
        return None
    return int(m.group(1))


def _loads(payload: str, *, what: str) -> Result[object, ReleaseError]:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="invalid_response",
                message=f"invalid JSON from {what}: {e}",
            )
        )
    return Ok(obj)


def _mergeable(token: str | None) -> bool | None:
    match token:
        case "MERGEABLE":
            return True
        case "CONFLICTING":
            return False
        case _:
            return None


def pull_request_from_payload(data: StrDict) -> PullRequest | None:
    number = get_int(data, "number")
    url = get_str(data, "url")
    if number is None or url is None:
        return None

    state = (get_str(data, "state") or "OPEN").upper()
    merged: bool | None = None
    if "mergedAt" in data or state == "MERGED":
        merged = state == "MERGED" or get_str(data, "mergedAt") is not None
        if merged and state == "OPEN":
            state = "MERGED"

    return PullRequest(
        number=number,
        url=url,
        head_ref=get_str(data, "headRefName") or "",
        head_sha=get_str(data, "headRefOid") or "",
        state=state,
        mergeable=_mergeable(get_str(data, "mergeable")),
        merged=merged,
    )


class GhReviewPlatform:
    """Pull request operations for one repository.

    Attributes:
        cwd: Directory gh runs in (any directory; ``--repo`` selects the repo)
        repo_slug: ``owner/repo``
        base_branch: Target branch for created pull requests
    """

    def __init__(self, *, cwd: Path, repo_slug: str, base_branch: str) -> None:
        self.cwd = cwd
        self.repo_slug = repo_slug
        self.base_branch = base_branch

    def create_pull_request(
        self, *, branch: str, title: str, body: str
    ) -> Result[PullRequest, ReleaseError]:
        cmd = [
            "gh",
            "pr",
            "create",
            "--repo",
            self.repo_slug,
            "--head",
            branch,
            "--base",
            self.base_branch,
            "--title",
            title,
            "--body",
            body,
        ]
        created = run_process(cmd, cwd=self.cwd, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(created, Err):
            e = created.error
            return Err(
                ReleaseError(
                    kind="gh_failed",
                    message=f"failed to create PR from {branch}",
                    hint=e.stderr.strip() or None,
                )
            )

        number = parse_pr_number(created.value)
        if number is None:
            return Err(
                ReleaseError(
                    kind="invalid_response",
                    message="could not parse PR number from gh pr create output",
                    hint=created.value.strip() or None,
                )
            )

        details = self.get_pull_request(number)
        if isinstance(details, Ok):
            return details

        # The PR exists; details are a convenience.
        url = created.value.strip().splitlines()[-1].strip()
        return Ok(PullRequest(number=number, url=url, head_ref=branch, head_sha="", state="OPEN"))

    def get_pull_request(self, number: int) -> Result[PullRequest, ReleaseError]:
        out = run_gh_read(
            cwd=self.cwd,
            cmd=["gh", "pr", "view", str(number), "--repo", self.repo_slug, "--json", _PR_FIELDS],
            kind="gh_failed",
            message=f"failed to read PR #{number}",
        )
        if isinstance(out, Err):
            return out

        obj = _loads(out.value, what="gh pr view")
        if isinstance(obj, Err):
            return obj
        data = as_str_dict(obj.value)
        pr = pull_request_from_payload(data) if data is not None else None
        if pr is None:
            return Err(
                ReleaseError(
                    kind="invalid_response",
                    message=f"unexpected gh pr view payload for PR #{number}",
                )
            )
        return Ok(pr)

    def list_check_runs(self, number: int) -> Result[tuple[CheckRun, ...], ReleaseError]:
        """Current check runs on PR ``number``.

        The structured rollup is tried first; the ``gh pr checks`` table is
        the fallback when that read fails or is unparseable.
        """
        structured = self._structured_checks(number)
        if isinstance(structured, Ok):
            return structured

        out = run_gh_read(
            cwd=self.cwd,
            cmd=["gh", "pr", "checks", str(number), "--repo", self.repo_slug],
            kind="gh_failed",
            message=f"failed to read checks for PR #{number}",
            ok_codes=_CHECKS_OK_CODES,
        )
        if isinstance(out, Err):
            return out
        return Ok(normalize_checks(TabularChecks(text=out.value)))

    def _structured_checks(self, number: int) -> Result[tuple[CheckRun, ...], ReleaseError]:
        out = run_gh_read(
            cwd=self.cwd,
            cmd=[
                "gh",
                "pr",
                "view",
                str(number),
                "--repo",
                self.repo_slug,
                "--json",
                "statusCheckRollup",
            ],
            kind="gh_failed",
            message=f"failed to read status rollup for PR #{number}",
            retry_attempts=1,
        )
        if isinstance(out, Err):
            return out

        obj = _loads(out.value, what="gh pr view")
        if isinstance(obj, Err):
            return obj
        data = as_str_dict(obj.value)
        entries = get_list(data, "statusCheckRollup") if data is not None else None
        if entries is None:
            return Err(
                ReleaseError(
                    kind="invalid_response",
                    message=f"missing statusCheckRollup for PR #{number}",
                )
            )
        return Ok(normalize_checks(StructuredChecks(entries=tuple(entries))))

    def merge_pull_request(self, number: int, method: MergeMethod) -> Result[None, ReleaseError]:
        cmd = [
            "gh",
            "pr",
            "merge",
            str(number),
            "--repo",
            self.repo_slug,
            f"--{method}",
            "--admin",
            "--delete-branch",
        ]
        merged = run_process(cmd, cwd=self.cwd, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(merged, Err):
            e = merged.error
            return Err(
                ReleaseError(
                    kind="merge_failed",
                    message=f"failed to merge PR #{number}",
                    hint=e.stderr.strip() or "Check branch protection and your admin rights",
                )
            )
        return Ok(None)

    def find_open_pr_by_head(self, branch: str) -> Result[PullRequest | None, ReleaseError]:
        out = run_gh_read(
            cwd=self.cwd,
            cmd=[
                "gh",
                "pr",
                "list",
                "--repo",
                self.repo_slug,
                "--state",
                "open",
                "--head",
                branch,
                "--json",
                "number,url,headRefName,headRefOid,state",
            ],
            kind="gh_failed",
            message=f"failed to list PRs from {branch}",
        )
        if isinstance(out, Err):
            return out

        obj = _loads(out.value, what="gh pr list")
        if isinstance(obj, Err):
            return obj
        items = as_obj_list(obj.value)
        if items is None:
            return Err(
                ReleaseError(kind="invalid_response", message="unexpected gh pr list payload")
            )

        for item in items:
            data = as_str_dict(item)
            if data is None:
                continue
            pr = pull_request_from_payload(data)
            if pr is not None:
                return Ok(pr)
        return Ok(None)
