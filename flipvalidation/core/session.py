"""
Validation session interpreter
------------------------------
Holds the current (state, context) and feeds events through one serialized
channel: UI events, collaborator results and clock ticks are all appended to
the same queue and processed one at a time, to completion. Races such as
"user submits" vs "deadline expires" are therefore decided by arrival order.

After every transition that changed something, the snapshot is handed to the
store (fire-and-forget) and the transition's side effects are run. Nothing
raised by a hook, the store or the submitter escapes `send()`.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Callable, Deque, List, Optional

from flipvalidation.core.deadline import DeadlineClock
from flipvalidation.core.events import Event, SubmitFailed, SubmitSucceeded
from flipvalidation.core.predicates import is_short_session
from flipvalidation.core.machine import (
    Effect,
    ExceededReports,
    RefetchFlipsEffect,
    SubmitAnswers,
    ValidationFailedEffect,
    ValidationSucceededEffect,
    initial_state,
    transition,
)
from flipvalidation.core.state_machine import State, is_terminal, state_from_path, state_path
from flipvalidation.observability.logging import log
from flipvalidation.store.models import SessionContext, SessionSnapshot
from flipvalidation.submission.controller import SubmissionController, build_submission_request
from flipvalidation.utils.time import now_ms, parse_timestamp_ms

Hook = Callable[..., None]

# Events whose silent rejection is worth a log line (the UI shows canSubmit instead)
GUARDED_EVENTS = frozenset({"SUBMIT", "FINISH_FLIPS", "RETRY_SUBMIT"})


class ValidationSession:
    def __init__(
        self,
        context: SessionContext,
        state: Optional[State] = None,
        *,
        controller: Optional[SubmissionController] = None,
        store=None,
        on_exceeded_reports: Optional[Hook] = None,
        on_validation_succeeded: Optional[Hook] = None,
        on_validation_failed: Optional[Hook] = None,
        on_refetch_flips: Optional[Hook] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.context = context
        self.deadline = DeadlineClock.from_context(context)
        self.clock = clock
        self.state: State = state if state is not None else initial_state(self.deadline.phase_at(clock()))
        self.controller = controller
        self.store = store
        self.on_exceeded_reports = on_exceeded_reports
        self.on_validation_succeeded = on_validation_succeeded
        self.on_validation_failed = on_validation_failed
        self.on_refetch_flips = on_refetch_flips

        # Names of the effects fired since the last drain_fired_effects() call
        self.fired_effects: List[str] = []

        self._queue: Deque[Event] = deque()
        self._lock = threading.RLock()
        self._draining = False

    @classmethod
    def create(
        cls,
        *,
        private_key: str,
        coinbase: str,
        epoch: int,
        validation_start,
        short_session_duration: int,
        long_session_duration: int,
        locale: str = "en",
        store=None,
        **kwargs,
    ) -> "ValidationSession":
        """
        Build the session for an epoch: resume the persisted snapshot when the
        store has one for this epoch, otherwise start in the phase the clock
        reports. Construction parameters always come from the caller.
        """
        ctx = SessionContext(
            epoch=int(epoch),
            validationStart=parse_timestamp_ms(validation_start),
            shortSessionDuration=int(short_session_duration),
            longSessionDuration=int(long_session_duration),
            coinbase=coinbase,
            privateKey=private_key,
            locale=locale or "en",
        )
        state = None
        snapshot = store.load() if store is not None else None
        if snapshot is not None:
            restored = snapshot.context
            for name in ("validationStart", "shortSessionDuration", "longSessionDuration", "coinbase", "privateKey", "locale"):
                setattr(restored, name, getattr(ctx, name))
            ctx = restored
            state = state_from_path(snapshot.statePath)
            log(event="validation_state_restored", epoch=ctx.epoch, coinbase=ctx.coinbase, statePath=snapshot.statePath)

        session = cls(ctx, state, store=store, **kwargs)
        if snapshot is None:
            log(event="validation_session_started", epoch=ctx.epoch, coinbase=ctx.coinbase, statePath=session.path)
            if is_terminal(session.state):
                # Opened after the deadline: nothing to answer
                session.context.failureReason = "deadline"
            session._persist()
            if is_terminal(session.state):
                session._run_effects([ValidationFailedEffect("deadline")])
        return session

    # --- Read side ---

    @property
    def path(self) -> str:
        return state_path(self.state)

    @property
    def is_done(self) -> bool:
        return is_terminal(self.state)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(statePath=self.path, context=self.context)

    def time_left_ms(self, now: Optional[int] = None) -> int:
        return self.deadline.time_left_ms(self.clock() if now is None else now, short_session=is_short_session(self.state))

    def drain_fired_effects(self) -> List[str]:
        fired, self.fired_effects = self.fired_effects, []
        return fired

    # --- Write side ---

    def send(self, event: Event) -> State:
        """Enqueue an event and, unless a drain is already running, process the queue."""
        with self._lock:
            self._queue.append(event)
            if self._draining:
                return self.state
            self._draining = True
            try:
                while self._queue:
                    self._process(self._queue.popleft())
            finally:
                self._draining = False
            return self.state

    def tick(self, now: Optional[int] = None) -> State:
        """Deliver the clock's due expiry events through the same channel."""
        now = self.clock() if now is None else now
        for event in self.deadline.expiry_events(now):
            self.send(event)
        return self.state

    def _process(self, event: Event) -> None:
        before = self.path
        result = transition(self.state, self.context, event)
        if result.changed:
            self.state = result.state
            self.context = result.context
            if any(isinstance(e, SubmitAnswers) for e in result.effects):
                self.context.submitStartedAt = self.clock()
            self._record(before, event)
            self._persist()
        elif not result.effects and event.type in GUARDED_EVENTS:
            log(event="validation_event_ignored", epoch=self.context.epoch, eventType=event.type, statePath=before)
        if result.effects:
            self._run_effects(result.effects)

    def _record(self, before: str, event: Event) -> None:
        after = self.path
        entry = {"eventType": event.type, "from": before, "to": after, "currentIndex": self.context.currentIndex}
        if before != after:
            log(event="validation_transition", epoch=self.context.epoch, coinbase=self.context.coinbase, **entry)
        if self.store is not None:
            try:
                self.store.record_transition({**entry, "ts": self.clock()})
            except Exception as e:
                log(event="transition_log_failed", epoch=self.context.epoch, error=str(e)[:300])

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.persist(self.snapshot())
        except Exception as e:
            log(event="validation_state_persist_failed", epoch=self.context.epoch, errorType=type(e).__name__, error=str(e)[:300])

    # --- Side effects ---

    def _run_effects(self, effects: List[Effect]) -> None:
        for effect in effects:
            match effect:
                case SubmitAnswers(tier=tier):
                    self.fired_effects.append("submitAnswers")
                    self._submit(tier)
                case ExceededReports():
                    self.fired_effects.append("exceededReports")
                    self._call_hook(self.on_exceeded_reports)
                case RefetchFlipsEffect(hashes=hashes):
                    self.fired_effects.append("refetchFlips")
                    self._call_hook(self.on_refetch_flips, list(hashes))
                case ValidationSucceededEffect():
                    self.fired_effects.append("validationSucceeded")
                    self._teardown()
                    self._call_hook(self.on_validation_succeeded)
                case ValidationFailedEffect(reason=reason):
                    self.fired_effects.append("validationFailed")
                    log(event="validation_failed", epoch=self.context.epoch, coinbase=self.context.coinbase, reason=reason)
                    self._teardown()
                    self._call_hook(self.on_validation_failed)

    def _submit(self, tier: str) -> None:
        if self.controller is None:
            log(event="submission_no_controller", epoch=self.context.epoch, tier=tier)
            return
        result = self.controller.submit(build_submission_request(self.context, tier))
        if result is None:
            return
        if result.ok:
            self.send(SubmitSucceeded())
        else:
            failure = result.failure
            self.send(SubmitFailed(kind=failure.kind if failure else "exception", message=failure.message if failure else ""))

    def _teardown(self) -> None:
        if self.store is None:
            return
        try:
            self.store.teardown()
        except Exception as e:
            log(event="validation_state_teardown_failed", epoch=self.context.epoch, error=str(e)[:300])

    def _call_hook(self, hook: Optional[Hook], *args) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception as e:
            log(event="validation_hook_exception", epoch=self.context.epoch, errorType=type(e).__name__, error=str(e)[:300])
