import time
from typing import Any, Dict, Optional

from flipvalidation.api.schemas import StartSessionRequest
from flipvalidation.core.events import FlipsLoaded, SubmitFailed, SubmitSucceeded, parse_ui_event
from flipvalidation.core.predicates import is_submitting, predicates_view
from flipvalidation.core.session import ValidationSession
from flipvalidation.core.state_machine import state_from_path
from flipvalidation.observability.logging import log
from flipvalidation.queue.rq_conn import SUBMIT_JOB, enqueue_submission, submission_job_timeout_sec
from flipvalidation.settings import settings
from flipvalidation.store.session_repo import RedisValidationStore
from flipvalidation.submission.client import submit_answers_http
from flipvalidation.submission.controller import SubmissionController, SubmissionRequest, SubmissionResult
from flipvalidation.utils.lock import session_lock
from flipvalidation.utils.time import now_ms


class SessionNotFound(LookupError):
    pass


def _enqueue_submission(request: SubmissionRequest) -> None:
    """Submitter for SUBMIT_MODE=rq: the job reports back through deliver_submission_result."""
    job = enqueue_submission(request.epoch, request.coinbase, request.tier)
    log(event="submission_enqueued", epoch=request.epoch, coinbase=request.coinbase, tier=request.tier, jobId=job.id)
    return None


def _new_controller() -> SubmissionController:
    if settings.SUBMIT_MODE == "rq":
        return SubmissionController(_enqueue_submission)
    return SubmissionController(submit_answers_http)


def _submission_lost(ctx) -> bool:
    """
    A persisted submitHash with no result coming. In sync mode the submission
    never outlives the request that started it (the session lock is held
    throughout), so that request died mid-call. In rq mode the job has had
    its whole timeout and never reported back.
    """
    if settings.SUBMIT_MODE != "rq":
        return True
    return now_ms() - int(ctx.submitStartedAt or 0) > submission_job_timeout_sec() * 1000


def _recover_lost_submission(session: ValidationSession) -> None:
    # Retrying is the user's call; a parked expiry applies now
    if is_submitting(session.state) and _submission_lost(session.context):
        ctx = session.context
        log(event="submission_interrupted", epoch=ctx.epoch, coinbase=ctx.coinbase, mode=settings.SUBMIT_MODE)
        session.send(SubmitFailed(kind="interrupted", message="submission did not complete"))


def _restore(epoch: int, coinbase: str) -> Optional[ValidationSession]:
    store = RedisValidationStore(epoch, coinbase)
    snapshot = store.load()
    if snapshot is None:
        return None
    session = ValidationSession(
        snapshot.context,
        state_from_path(snapshot.statePath),
        store=store,
        controller=_new_controller(),
    )
    _recover_lost_submission(session)
    return session


def session_view(session: ValidationSession) -> Dict[str, Any]:
    ctx = session.context
    return {
        "epoch": ctx.epoch,
        "coinbase": ctx.coinbase,
        "statePath": session.path,
        "predicates": predicates_view(session.state, ctx),
        "timeLeftMs": session.time_left_ms(),
        "effects": session.drain_fired_effects(),
        "noticeDurationMs": int(settings.EXCEEDED_REPORTS_NOTICE_MS),
        "failureReason": ctx.failureReason,
        "lastSubmitError": ctx.lastSubmitError,
        "translations": ctx.translations,
    }


def start_session(req: StartSessionRequest) -> Dict[str, Any]:
    """Create the session for an epoch, or resume the persisted one."""
    with session_lock(req.epoch, req.coinbase):
        session = ValidationSession.create(
            private_key=req.privateKey,
            coinbase=req.coinbase,
            epoch=req.epoch,
            validation_start=req.validationStart,
            short_session_duration=req.shortSessionDuration,
            long_session_duration=req.longSessionDuration,
            locale=req.locale,
            store=RedisValidationStore(req.epoch, req.coinbase),
            controller=_new_controller(),
        )
        _recover_lost_submission(session)
        if req.shortFlips:
            session.send(FlipsLoaded(kind="short", flips=tuple(f.model_dump() for f in req.shortFlips)))
        if req.longFlips:
            session.send(FlipsLoaded(kind="long", flips=tuple(f.model_dump() for f in req.longFlips)))
        session.tick()
        return session_view(session)


def get_session_view(epoch: int, coinbase: str) -> Dict[str, Any]:
    with session_lock(epoch, coinbase):
        session = _restore(epoch, coinbase)
        if session is None:
            raise SessionNotFound(f"no validation session for {epoch}:{coinbase}")
        session.tick()
        return session_view(session)


def handle_event(epoch: int, coinbase: str, payload: Any) -> Dict[str, Any]:
    start_time = time.time()
    # Parse before taking the lock: malformed or internal events never touch the session
    event = parse_ui_event(payload)

    with session_lock(epoch, coinbase):
        session = _restore(epoch, coinbase)
        if session is None:
            raise SessionNotFound(f"no validation session for {epoch}:{coinbase}")
        before = session.path
        # Deadline first: an event arriving after expiry sees the expired phase
        session.tick()
        session.send(event)
        view = session_view(session)

    log(
        "event_processed",
        epoch=epoch,
        coinbase=coinbase,
        eventType=event.type,
        fromPath=before,
        toPath=view["statePath"],
        effects=view["effects"],
        total_latency_ms=int((time.time() - start_time) * 1000),
    )
    return view


def deliver_submission_result(epoch: int, coinbase: str, result: Optional[SubmissionResult]) -> None:
    """Feed a background submission's outcome into the session (no-op if the session moved on)."""
    if result is None:
        return
    with session_lock(epoch, coinbase):
        session = _restore(epoch, coinbase)
        if session is None:
            log(event="submission_result_orphaned", epoch=epoch, coinbase=coinbase, ok=bool(result.ok))
            return
        if result.ok:
            session.send(SubmitSucceeded())
        else:
            failure = result.failure
            session.send(SubmitFailed(kind=failure.kind if failure else "exception", message=failure.message if failure else ""))
