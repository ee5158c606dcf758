from __future__ import annotations

import json
from pathlib import Path

from autoship.core.result import Err, Ok, Result
from autoship.core.structured import as_str_dict, get_str
from autoship.release.errors import ReleaseError
from autoship.release.model import UNKNOWN_VERSION, PackageInfo

MANIFEST_NAME = "package.json"


def read_package_manifest(root: Path) -> Result[PackageInfo, ReleaseError]:
    """Read name and version from ``root/package.json``.

    A missing ``version`` is tolerated (reported as unknown); a missing
    ``name`` is not, since the changeset record is keyed by it.
    """
    path = root / MANIFEST_NAME
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(
            ReleaseError(
                kind="package_invalid",
                message=f"{MANIFEST_NAME} not found",
                hint="Set 'packages' for this repo in the config",
            )
        )
    except (OSError, UnicodeDecodeError) as e:
        return Err(
            ReleaseError(
                kind="package_invalid",
                message=f"failed to read {MANIFEST_NAME}: {e}",
                hint=str(path),
            )
        )

    try:
        obj: object = json.loads(raw)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="package_invalid",
                message=f"invalid JSON in {MANIFEST_NAME}: {e}",
                hint=str(path),
            )
        )

    data = as_str_dict(obj)
    name = get_str(data, "name") if data is not None else None
    if data is None or name is None:
        return Err(
            ReleaseError(
                kind="package_invalid",
                message=f"{MANIFEST_NAME} has no package name",
                hint=str(path),
            )
        )

    return Ok(PackageInfo(name=name, version=get_str(data, "version") or UNKNOWN_VERSION))
