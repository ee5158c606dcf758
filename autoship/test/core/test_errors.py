from __future__ import annotations

from autoship.core.errors import ErrorCode


def test_exit_codes_are_stable() -> None:
    assert int(ErrorCode.OK) == 0
    assert int(ErrorCode.FAILURE) == 1


def test_is_success() -> None:
    assert ErrorCode.OK.is_success
    assert not ErrorCode.FAILURE.is_success


def test_str_is_lowercase_name() -> None:
    assert str(ErrorCode.FAILURE) == "failure"
