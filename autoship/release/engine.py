"""Linear state machine driver.

States run in order; each handler returns a transition. ``Continue``
carries the updated session to the next state, ``Paused`` stops early at
the operator's request and ``Fatal`` stops with an error. The finalizer
runs on every exit path, exceptions included.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from autoship.core.errors import ErrorCode
from autoship.core.result import Err, Result
from autoship.release.errors import ReleaseError


@dataclass(frozen=True, slots=True)
class Continue[S]:
    session: S


@dataclass(frozen=True, slots=True)
class Paused:
    reason: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class Fatal:
    error: ReleaseError


type Transition[S] = Continue[S] | Paused | Fatal
type StateHandler[S] = Callable[[S], Transition[S]]
Finalizer = Callable[[], Result[None, ReleaseError]]


@dataclass(frozen=True, slots=True)
class State[S]:
    name: str
    handler: StateHandler[S]


OutcomeStatus = Literal["completed", "paused", "failed"]


@dataclass(frozen=True, slots=True)
class RunOutcome[S]:
    """How a run ended.

    Attributes:
        status: completed, paused or failed
        visited: Names of the states entered, in order
        session: Last session value a state handed on
        error: Set when status is failed
        reason: Set when status is paused
        hint: Follow-up for the operator (paused or failed)
    """

    status: OutcomeStatus
    visited: tuple[str, ...]
    session: S
    error: ReleaseError | None = None
    reason: str | None = None
    hint: str | None = None

    @property
    def exit_code(self) -> ErrorCode:
        return ErrorCode.FAILURE if self.status == "failed" else ErrorCode.OK

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {
            "status": self.status,
            "states": list(self.visited),
            "exit_code": int(self.exit_code),
        }
        if self.reason is not None:
            out["reason"] = self.reason
        if self.hint is not None:
            out["hint"] = self.hint
        if self.error is not None:
            out["error"] = {
                "kind": self.error.kind,
                "message": self.error.message,
                "hint": self.error.hint,
                "details": list(self.error.details),
            }
        return out


def _check_names[S](states: Sequence[State[S]]) -> None:
    seen: set[str] = set()
    for state in states:
        if state.name in seen:
            raise ValueError(f"duplicate state name: {state.name}")
        seen.add(state.name)


def run_states[S](
    initial: S,
    states: Sequence[State[S]],
    *,
    finalizer: Finalizer | None = None,
    on_enter: Callable[[int, int, str], None] | None = None,
    on_cleanup_error: Callable[[ReleaseError], None] | None = None,
) -> RunOutcome[S]:
    """Run ``states`` in order starting from ``initial``.

    ``on_enter(index, total, name)`` is called before each handler (index
    is 1-based). A finalizer failure goes to ``on_cleanup_error`` and never
    changes the outcome.
    """
    _check_names(states)
    session = initial
    visited: list[str] = []

    try:
        for index, state in enumerate(states, start=1):
            visited.append(state.name)
            if on_enter is not None:
                on_enter(index, len(states), state.name)

            match state.handler(session):
                case Continue(session=next_session):
                    session = next_session
                case Paused(reason=reason, hint=hint):
                    return RunOutcome(
                        status="paused",
                        visited=tuple(visited),
                        session=session,
                        reason=reason,
                        hint=hint,
                    )
                case Fatal(error=error):
                    return RunOutcome(
                        status="failed",
                        visited=tuple(visited),
                        session=session,
                        error=error,
                        hint=error.hint,
                    )

        return RunOutcome(status="completed", visited=tuple(visited), session=session)
    finally:
        if finalizer is not None:
            cleaned = finalizer()
            if isinstance(cleaned, Err) and on_cleanup_error is not None:
                on_cleanup_error(cleaned.error)
