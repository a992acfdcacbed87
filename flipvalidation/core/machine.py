"""
Session State Machine
---------------------
`transition(state, ctx, event)` is the whole machine: a total, pure function
returning the next state, the next context and the side effects to run.

- Unknown or out-of-place events are no-ops, never errors.
- Guards read the context only (no I/O, no clock).
- Mutations are applied to a deep copy, so a rejected event (and CANCEL)
  leaves the caller's context untouched.
- Deadline expiry that arrives while a submission is in flight is parked in
  `pendingExpiry` and applied only if that submission fails.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import List, Tuple, Union

from flipvalidation.core.events import (
    Answer,
    Cancel,
    CheckFlips,
    CheckReports,
    Event,
    FinishFlips,
    FlipsLoaded,
    FlipUpdated,
    LongSessionExpired,
    Next,
    Pick,
    Prev,
    RefetchFlips,
    RetrySubmit,
    ShortSessionExpired,
    StartKeywordsQualification,
    StartLongSession,
    Submit,
    SubmitFailed,
    SubmitSucceeded,
    ToggleWords,
    TranslationsLoaded,
    flips_from_event,
)
from flipvalidation.core.flips import (
    find_flip,
    first_unanswered_index,
    first_unmarked_index,
    is_failed_flip,
    merge_flips,
)
from flipvalidation.core.predicates import (
    current_flip,
    has_all_answers,
    has_all_relevance_marks,
    is_last_flip,
    session_flips,
)
from flipvalidation.core.reports import available_reports_number, reported_flips_count
from flipvalidation.core.state_machine import (
    LongSession,
    LongStep,
    ShortSession,
    ShortStep,
    State,
    ValidationFailed,
    ValidationSucceeded,
    is_terminal,
)
from flipvalidation.store.models import AnswerType, RelevanceType, SessionContext

SHORT = "short"
LONG = "long"


# --- Side effects (run by the session interpreter, never here) ---

@dataclass(frozen=True)
class SubmitAnswers:
    tier: str


@dataclass(frozen=True)
class ExceededReports:
    pass


@dataclass(frozen=True)
class RefetchFlipsEffect:
    hashes: Tuple[str, ...]


@dataclass(frozen=True)
class ValidationSucceededEffect:
    pass


@dataclass(frozen=True)
class ValidationFailedEffect:
    reason: str


Effect = Union[SubmitAnswers, ExceededReports, RefetchFlipsEffect, ValidationSucceededEffect, ValidationFailedEffect]


@dataclass
class Transition:
    state: State
    context: SessionContext
    effects: List[Effect] = field(default_factory=list)
    changed: bool = False


def initial_state(clock_phase: str) -> State:
    """State a brand-new session starts in, given the clock phase at creation."""
    if clock_phase == "short":
        return ShortSession()
    if clock_phase == "long":
        return LongSession()
    return ValidationFailed()


def transition(state: State, ctx: SessionContext, event: Event) -> Transition:
    if is_terminal(state):
        return Transition(state, ctx)

    next_ctx = copy.deepcopy(ctx)
    effects: List[Effect] = []
    next_state = _dispatch(state, next_ctx, event, effects)

    changed = next_state != state or next_ctx != ctx
    if not changed:
        # Keep the caller's object: rejected events are invisible
        return Transition(state, ctx, effects, False)
    return Transition(next_state, next_ctx, effects, True)


def _dispatch(state: State, ctx: SessionContext, event: Event, effects: List[Effect]) -> State:
    # Collaborator and navigation events behave the same in every solving state
    match event:
        case FlipsLoaded():
            _load_flips(ctx, event)
            _clamp_index(state, ctx)
            return state
        case FlipUpdated():
            _update_flip(ctx, event)
            _clamp_index(state, ctx)
            return state
        case TranslationsLoaded(translations=items):
            ctx.translations = {**ctx.translations, **dict(items)}
            return state
        case Prev() | Next() | Pick():
            if state != LongSession(LongStep.WELCOME_QUALIFICATION):
                _navigate(state, ctx, event)
            return state

    match state:
        case ShortSession(step=step):
            return _short_session(step, state, ctx, event, effects)
        case LongSession(step=step):
            return _long_session(step, state, ctx, event, effects)
    return state


def _short_session(step: ShortStep, state: State, ctx: SessionContext, event: Event, effects: List[Effect]) -> State:
    match (step, event):
        case (_, Answer()):
            _answer(state, ctx, event)
            return state
        case (ShortStep.ANSWER, Submit()):
            if has_all_answers(state, ctx) or is_last_flip(state, ctx):
                return ShortSession(ShortStep.CONFIRM)
            return state
        case (ShortStep.CONFIRM, Submit()):
            return _begin_submission(ctx, SHORT, effects)
        case (ShortStep.CONFIRM, Cancel()):
            return ShortSession(ShortStep.ANSWER)
        case (ShortStep.SUBMIT_HASH, SubmitSucceeded()):
            return _succeed(ctx, effects)
        case (ShortStep.SUBMIT_HASH, SubmitFailed()):
            return _submission_failed(ctx, event, SHORT, effects)
        case (ShortStep.FAIL, RetrySubmit()):
            return _begin_submission(ctx, SHORT, effects)
        case (ShortStep.SUBMIT_HASH, ShortSessionExpired() | LongSessionExpired()):
            _defer_expiry(ctx, event)
            return state
        case (_, ShortSessionExpired()):
            return _enter_long_session(ctx)
        case (_, LongSessionExpired()):
            return _fail_validation(ctx, "deadline", effects)
    return state


def _long_session(step: LongStep, state: State, ctx: SessionContext, event: Event, effects: List[Effect]) -> State:
    match (step, event):
        case (LongStep.WELCOME_QUALIFICATION, StartLongSession()):
            return LongSession(LongStep.FLIPS)
        case (LongStep.FLIPS, Answer()):
            _answer(state, ctx, event)
            return state
        case (LongStep.FLIPS, RefetchFlips()):
            _refetch(state, ctx, effects)
            return state
        case (LongStep.FLIPS, FinishFlips()):
            if has_all_answers(state, ctx) or is_last_flip(state, ctx):
                return LongSession(LongStep.FINISH_FLIPS)
            return state
        case (LongStep.FINISH_FLIPS, StartKeywordsQualification()):
            ctx.currentIndex = 0
            return LongSession(LongStep.KEYWORDS_QUALIFICATION)
        case (LongStep.KEYWORDS_QUALIFICATION | LongStep.SUBMIT_HASH | LongStep.FAIL, ToggleWords()):
            _toggle_words(ctx, event, effects)
            return state
        case (LongStep.KEYWORDS_QUALIFICATION | LongStep.REVIEW, CheckFlips()):
            _check_flips(state, ctx, event)
            return LongSession(LongStep.KEYWORDS_QUALIFICATION)
        case (LongStep.KEYWORDS_QUALIFICATION | LongStep.REVIEW, CheckReports()):
            _check_reports(state, ctx)
            return LongSession(LongStep.KEYWORDS_QUALIFICATION)
        case (LongStep.KEYWORDS_QUALIFICATION, Submit()):
            if has_all_relevance_marks(state, ctx) or is_last_flip(state, ctx):
                return LongSession(LongStep.REVIEW)
            return state
        case (LongStep.REVIEW, Submit()):
            return _begin_submission(ctx, LONG, effects)
        case (LongStep.REVIEW, Cancel()):
            return LongSession(LongStep.KEYWORDS_QUALIFICATION)
        case (LongStep.SUBMIT_HASH, SubmitSucceeded()):
            return _succeed(ctx, effects)
        case (LongStep.SUBMIT_HASH, SubmitFailed()):
            return _submission_failed(ctx, event, LONG, effects)
        case (LongStep.FAIL, RetrySubmit()):
            return _begin_submission(ctx, LONG, effects)
        case (LongStep.SUBMIT_HASH, LongSessionExpired()):
            _defer_expiry(ctx, event)
            return state
        case (_, LongSessionExpired()):
            return _fail_validation(ctx, "deadline", effects)
    return state


# --- Context updates ---

def _answer(state: State, ctx: SessionContext, event: Answer) -> None:
    if event.option not in (AnswerType.LEFT, AnswerType.RIGHT):
        return
    flip = find_flip(session_flips(state, ctx), event.hash)
    if flip is not None:
        flip.option = AnswerType(event.option)


def _toggle_words(ctx: SessionContext, event: ToggleWords, effects: List[Effect]) -> None:
    try:
        relevance = RelevanceType(event.relevance)
    except ValueError:
        return
    flip = find_flip(ctx.longFlips, event.hash)
    if flip is None:
        return
    if (
        relevance == RelevanceType.IRRELEVANT
        and flip.relevance != RelevanceType.IRRELEVANT
        and reported_flips_count(ctx.longFlips) >= available_reports_number(ctx.longFlips)
    ):
        effects.append(ExceededReports())
        return
    flip.relevance = relevance
    ctx.reportedFlipsCount = reported_flips_count(ctx.longFlips)


def _navigate(state: State, ctx: SessionContext, event: Event) -> None:
    length = len(session_flips(state, ctx))
    if length == 0:
        return
    match event:
        case Prev():
            ctx.currentIndex = max(0, ctx.currentIndex - 1)
        case Next():
            ctx.currentIndex = min(length - 1, ctx.currentIndex + 1)
        case Pick(index=index):
            if 0 <= index < length:
                ctx.currentIndex = index


def _clamp_index(state: State, ctx: SessionContext) -> None:
    length = len(session_flips(state, ctx))
    if length == 0:
        ctx.currentIndex = 0
    elif ctx.currentIndex > length - 1:
        ctx.currentIndex = length - 1


def _check_flips(state: State, ctx: SessionContext, event: CheckFlips) -> None:
    flips = session_flips(state, ctx)
    index = event.index if 0 <= event.index < len(flips) else first_unanswered_index(flips)
    if index >= 0:
        ctx.currentIndex = index


def _check_reports(state: State, ctx: SessionContext) -> None:
    index = first_unmarked_index(session_flips(state, ctx))
    if index >= 0:
        ctx.currentIndex = index


def _load_flips(ctx: SessionContext, event: FlipsLoaded) -> None:
    incoming = flips_from_event(event)
    if event.kind == SHORT:
        other = {f.hash for f in ctx.longFlips}
        ctx.shortFlips = merge_flips(ctx.shortFlips, [f for f in incoming if f.hash not in other])
    else:
        other = {f.hash for f in ctx.shortFlips}
        ctx.longFlips = merge_flips(ctx.longFlips, [f for f in incoming if f.hash not in other])
        ctx.reportedFlipsCount = reported_flips_count(ctx.longFlips)


def _update_flip(ctx: SessionContext, event: FlipUpdated) -> None:
    flip = find_flip(ctx.shortFlips, event.hash) or find_flip(ctx.longFlips, event.hash)
    if flip is None:
        return
    for name in ("fetched", "decoded", "failed", "missing"):
        value = getattr(event, name)
        if value is not None:
            setattr(flip, name, value)
    if event.words is not None:
        flip.words = list(event.words)


def _refetch(state: State, ctx: SessionContext, effects: List[Effect]) -> None:
    hashes = []
    for flip in ctx.longFlips:
        if is_failed_flip(flip):
            flip.fetched = False
            flip.decoded = False
            flip.failed = False
            hashes.append(flip.hash)
    # The image that failed to render is usually the one on screen, even when it decoded
    flip = current_flip(state, ctx)
    if flip is not None and flip.hash not in hashes:
        hashes.append(flip.hash)
    if hashes:
        effects.append(RefetchFlipsEffect(tuple(hashes)))


# --- Submission and terminal transitions ---

def _begin_submission(ctx: SessionContext, tier: str, effects: List[Effect]) -> State:
    ctx.submitAttempts += 1
    ctx.lastSubmitError = None
    effects.append(SubmitAnswers(tier))
    if tier == SHORT:
        return ShortSession(ShortStep.SUBMIT_HASH)
    return LongSession(LongStep.SUBMIT_HASH)


def _submission_failed(ctx: SessionContext, event: SubmitFailed, tier: str, effects: List[Effect]) -> State:
    ctx.lastSubmitError = event.kind
    pending = ctx.pendingExpiry
    ctx.pendingExpiry = ""
    if pending == LONG:
        return _fail_validation(ctx, "deadline", effects)
    if pending == SHORT and tier == SHORT:
        return _enter_long_session(ctx)
    if tier == SHORT:
        return ShortSession(ShortStep.FAIL)
    return LongSession(LongStep.FAIL)


def _defer_expiry(ctx: SessionContext, event: Event) -> None:
    if isinstance(event, LongSessionExpired):
        ctx.pendingExpiry = LONG
    elif ctx.pendingExpiry != LONG:
        ctx.pendingExpiry = SHORT


def _enter_long_session(ctx: SessionContext) -> State:
    ctx.currentIndex = 0
    ctx.pendingExpiry = ""
    return LongSession(LongStep.WELCOME_QUALIFICATION)


def _succeed(ctx: SessionContext, effects: List[Effect]) -> State:
    ctx.pendingExpiry = ""
    effects.append(ValidationSucceededEffect())
    return ValidationSucceeded()


def _fail_validation(ctx: SessionContext, reason: str, effects: List[Effect]) -> State:
    ctx.pendingExpiry = ""
    ctx.failureReason = reason
    effects.append(ValidationFailedEffect(reason))
    return ValidationFailed()
