"""
Validation session states
-------------------------
Tagged union of the machine's states. Each top-level phase is a frozen
dataclass; the answer branch of a phase is an enum step. The dotted legacy
paths ("shortSession.solve.answer.submitShortSession.fail") exist only for
persistence and logs, matching is always done on these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

SHORT_SESSION = "shortSession"
LONG_SESSION = "longSession"
VALIDATION_SUCCEEDED = "validationSucceeded"
VALIDATION_FAILED = "validationFailed"


class ShortStep(str, Enum):
    # Answering flips; SUBMIT opens the confirmation when the guard holds
    ANSWER = "normal"
    # Review dialog before the irreversible submission
    CONFIRM = "submitShortSession.confirm"
    # Submission in flight, UI interaction suspended
    SUBMIT_HASH = "submitShortSession.submitHash"
    # Submission failed, waiting for RETRY_SUBMIT
    FAIL = "submitShortSession.fail"


class LongStep(str, Enum):
    # Shown once before long-session answering begins
    WELCOME_QUALIFICATION = "welcomeQualification"
    FLIPS = "flips"
    # Transitional qualification-intro dialog
    FINISH_FLIPS = "finishFlips"
    KEYWORDS_QUALIFICATION = "keywordsQualification"
    REVIEW = "submitAnswers.review"
    SUBMIT_HASH = "submitAnswers.submitHash"
    FAIL = "submitAnswers.fail"


class NavPosition(str, Enum):
    FIRST_FLIP = "firstFlip"
    MIDDLE = "middle"
    LAST_FLIP = "lastFlip"


@dataclass(frozen=True)
class ShortSession:
    step: ShortStep = ShortStep.ANSWER


@dataclass(frozen=True)
class LongSession:
    step: LongStep = LongStep.WELCOME_QUALIFICATION


@dataclass(frozen=True)
class ValidationSucceeded:
    pass


@dataclass(frozen=True)
class ValidationFailed:
    pass


State = Union[ShortSession, LongSession, ValidationSucceeded, ValidationFailed]


def is_terminal(state: State) -> bool:
    return isinstance(state, (ValidationSucceeded, ValidationFailed))


def nav_position(current_index: int, length: int) -> NavPosition:
    # A single flip is both first and last; report it as last so submission guards can pass
    if length > 0 and current_index >= length - 1:
        return NavPosition.LAST_FLIP
    if current_index <= 0:
        return NavPosition.FIRST_FLIP
    return NavPosition.MIDDLE


def state_path(state: State) -> str:
    match state:
        case ShortSession(step=step):
            return f"{SHORT_SESSION}.solve.answer.{step.value}"
        case LongSession(step=step):
            return f"{LONG_SESSION}.solve.answer.{step.value}"
        case ValidationSucceeded():
            return VALIDATION_SUCCEEDED
        case ValidationFailed():
            return VALIDATION_FAILED
    raise TypeError(f"not a validation state: {state!r}")


def nav_path(state: State, current_index: int, length: int) -> str:
    """Path of the navigation region, e.g. 'longSession.solve.nav.lastFlip'; empty when not solving."""
    match state:
        case ShortSession():
            phase = SHORT_SESSION
        case LongSession():
            phase = LONG_SESSION
        case _:
            return ""
    return f"{phase}.solve.nav.{nav_position(current_index, length).value}"


def state_from_path(path: str) -> State:
    """Inverse of state_path. Raises ValueError for paths this machine never produces."""
    path = (path or "").strip()
    if path == VALIDATION_SUCCEEDED:
        return ValidationSucceeded()
    if path == VALIDATION_FAILED:
        return ValidationFailed()

    short_prefix = f"{SHORT_SESSION}.solve.answer."
    long_prefix = f"{LONG_SESSION}.solve.answer."
    if path.startswith(short_prefix):
        return ShortSession(ShortStep(path[len(short_prefix):]))
    if path.startswith(long_prefix):
        return LongSession(LongStep(path[len(long_prefix):]))
    raise ValueError(f"unknown state path: {path!r}")
