"""
Query predicates consumed by the UI.
Free functions over (state, context); nothing here is persisted.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from flipvalidation.core.flips import (
    all_answered,
    all_relevance_marked,
    filter_solvable_flips,
    is_failed_flip,
    long_session_flips,
    short_session_flips,
)
from flipvalidation.core.reports import available_reports_number
from flipvalidation.core.state_machine import (
    LongSession,
    LongStep,
    ShortSession,
    ShortStep,
    State,
    ValidationSucceeded,
    nav_path,
    state_path,
)
from flipvalidation.store.models import Flip, SessionContext


def is_short_session(state: State) -> bool:
    return isinstance(state, ShortSession)


def is_long_session(state: State) -> bool:
    return isinstance(state, LongSession)


def is_long_session_flips(state: State) -> bool:
    return isinstance(state, LongSession) and state.step in (LongStep.FLIPS, LongStep.FINISH_FLIPS)


def is_long_session_keywords(state: State) -> bool:
    return isinstance(state, LongSession) and state.step in (
        LongStep.KEYWORDS_QUALIFICATION,
        LongStep.REVIEW,
        LongStep.SUBMIT_HASH,
        LongStep.FAIL,
    )


def is_solving(state: State) -> bool:
    return isinstance(state, (ShortSession, LongSession))


def session_flips(state: State, ctx: SessionContext) -> List[Flip]:
    """Active sequence of the current tier (empty once the session is over, except for the read-only review)."""
    if is_short_session(state):
        return short_session_flips(ctx.shortFlips)
    if is_long_session(state) or isinstance(state, ValidationSucceeded):
        return long_session_flips(ctx.longFlips)
    return []


def current_flip(state: State, ctx: SessionContext) -> Optional[Flip]:
    flips = session_flips(state, ctx)
    if 0 <= ctx.currentIndex < len(flips):
        return flips[ctx.currentIndex]
    return None


def is_first_flip(state: State, ctx: SessionContext) -> bool:
    return is_solving(state) and ctx.currentIndex == 0


def is_last_flip(state: State, ctx: SessionContext) -> bool:
    if not is_solving(state):
        return False
    length = len(session_flips(state, ctx))
    return length > 0 and ctx.currentIndex == length - 1


def has_many_flips(state: State, ctx: SessionContext) -> bool:
    return len(session_flips(state, ctx)) > 1


def is_submitting(state: State) -> bool:
    match state:
        case ShortSession(step=ShortStep.SUBMIT_HASH) | LongSession(step=LongStep.SUBMIT_HASH):
            return True
    return False


def is_submit_failed(state: State) -> bool:
    match state:
        case ShortSession(step=ShortStep.FAIL) | LongSession(step=LongStep.FAIL):
            return True
    return False


def has_all_answers(state: State, ctx: SessionContext) -> bool:
    if is_short_session(state):
        return all_answered(ctx.shortFlips, short_session=True)
    return all_answered(ctx.longFlips, short_session=False)


def has_all_relevance_marks(state: State, ctx: SessionContext) -> bool:
    return all_relevance_marked(ctx.longFlips)


def can_submit(state: State, ctx: SessionContext) -> bool:
    if is_submitting(state):
        return False
    if is_short_session(state) or is_long_session_flips(state):
        return has_all_answers(state, ctx) or is_last_flip(state, ctx)
    if is_long_session_keywords(state):
        return has_all_relevance_marks(state, ctx) or is_last_flip(state, ctx)
    return False


def reports_left(ctx: SessionContext) -> int:
    return max(0, available_reports_number(ctx.longFlips) - ctx.reportedFlipsCount)


def review_flips(state: State, ctx: SessionContext) -> List[Flip]:
    """Flips listed by the review dialogs."""
    return filter_solvable_flips(session_flips(state, ctx))


def predicates_view(state: State, ctx: SessionContext) -> Dict[str, Any]:
    """Everything the UI derives from a snapshot, bundled for the HTTP surface."""
    flips = session_flips(state, ctx)
    flip = current_flip(state, ctx)
    return {
        "statePath": state_path(state),
        "navPath": nav_path(state, ctx.currentIndex, len(flips)),
        "isShortSession": is_short_session(state),
        "isLongSessionFlips": is_long_session_flips(state),
        "isLongSessionKeywords": is_long_session_keywords(state),
        "isSolving": is_solving(state),
        "isFirstFlip": is_first_flip(state, ctx),
        "isLastFlip": is_last_flip(state, ctx),
        "hasManyFlips": has_many_flips(state, ctx),
        "isSubmitting": is_submitting(state),
        "isSubmitFailed": is_submit_failed(state),
        "canSubmit": can_submit(state, ctx),
        "hasAllAnswers": has_all_answers(state, ctx),
        "hasAllRelevanceMarks": has_all_relevance_marks(state, ctx),
        "currentIndex": ctx.currentIndex,
        "currentFlipHash": flip.hash if flip else None,
        "currentFlipFailed": bool(flip and is_failed_flip(flip)),
        "flips": [f.hash for f in flips],
        "reviewFlips": [f.hash for f in review_flips(state, ctx)],
        "reportedFlipsCount": ctx.reportedFlipsCount,
        "availableReportsCount": available_reports_number(ctx.longFlips),
        "reportsLeft": reports_left(ctx),
    }
