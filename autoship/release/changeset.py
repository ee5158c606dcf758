from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from autoship.core.result import Err, Ok, Result
from autoship.release.errors import ReleaseError
from autoship.release.model import ReleaseDecision, ReleaseType, parse_release_type

_FENCE = "---"
_ENTRY_RE = re.compile(r"""^\s*["']?(?P<name>[^"':]+)["']?\s*:\s*(?P<type>\w+)\s*$""")


@dataclass(frozen=True, slots=True)
class WrittenChangeset:
    id: str
    rel_path: str
    abs_path: Path


@dataclass(frozen=True, slots=True)
class PendingChangeset:
    """A changeset already queued on the base branch."""

    id: str
    bumps: tuple[tuple[str, ReleaseType], ...]


def new_changeset_id() -> str:
    return f"release-{uuid.uuid4().hex[:8]}"


def render_changeset(packages: tuple[str, ...], release_type: ReleaseType, message: str) -> str:
    lines = [_FENCE]
    lines.extend(f'"{name}": {release_type}' for name in packages)
    lines.append(_FENCE)
    lines.append("")
    lines.append(message.strip())
    return "\n".join(lines) + "\n"


def parse_changeset(text: str) -> tuple[tuple[str, ReleaseType], ...]:
    """Package bumps declared in a changeset's front matter."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FENCE:
        return ()

    bumps: list[tuple[str, ReleaseType]] = []
    for line in lines[1:]:
        if line.strip() == _FENCE:
            break
        m = _ENTRY_RE.match(line)
        if m is None:
            continue
        release_type = parse_release_type(m.group("type"))
        if release_type is not None:
            bumps.append((m.group("name").strip(), release_type))
    return tuple(bumps)


def pending_changesets(root: Path, changeset_dir: str) -> tuple[PendingChangeset, ...]:
    """Changesets present in ``root/changeset_dir``, sorted by id.

    Unreadable files and files without front matter are ignored.
    """
    directory = root / changeset_dir
    if not directory.is_dir():
        return ()

    out: list[PendingChangeset] = []
    for path in sorted(directory.glob("*.md")):
        if path.name.lower() == "readme.md":
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        bumps = parse_changeset(text)
        if bumps:
            out.append(PendingChangeset(id=path.stem, bumps=bumps))
    return tuple(out)


def write_changeset(
    *,
    root: Path,
    changeset_dir: str,
    decision: ReleaseDecision,
    packages: tuple[str, ...],
    changeset_id: str | None = None,
) -> Result[WrittenChangeset, ReleaseError]:
    if not packages:
        return Err(
            ReleaseError(
                kind="package_invalid",
                message="no package names for the changeset",
                hint="Set 'packages' for this repo in the config",
            )
        )

    cid = changeset_id or new_changeset_id()
    rel = f"{changeset_dir}/{cid}.md"
    path = root / rel
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            render_changeset(packages, decision.type, decision.message), encoding="utf-8"
        )
    except OSError as e:
        return Err(
            ReleaseError(
                kind="git_failed",
                message=f"failed to write changeset: {e}",
                hint=str(path),
            )
        )

    return Ok(WrittenChangeset(id=cid, rel_path=rel, abs_path=path))
