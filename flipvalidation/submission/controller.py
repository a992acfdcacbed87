"""
Submission Controller
---------------------
Runs one submission of the answered/qualified sequence through the
submitter (the HTTP client, or an RQ enqueue in background mode) and turns
the outcome into a typed result. No automatic retries: an ambiguous network
failure must not produce a second submission, the user retries explicitly.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from flipvalidation.core.predicates import session_flips
from flipvalidation.core.state_machine import LongSession, ShortSession
from flipvalidation.observability.logging import log
from flipvalidation.store.models import SessionContext
import flipvalidation.observability.metrics as metrics


@dataclass
class SubmissionRequest:
    epoch: int
    coinbase: str
    tier: str  # "short" | "long"
    answers: List[Dict[str, Any]] = field(default_factory=list)
    # Opaque credential handle, forwarded untouched to the submitter
    privateKey: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "coinbase": self.coinbase,
            "tier": self.tier,
            "answers": self.answers,
        }


@dataclass
class SubmissionFailure:
    # rejected | rpc_error | network | exception
    kind: str
    message: str = ""
    statusCode: int = 0


@dataclass
class SubmissionResult:
    ok: bool
    failure: Optional[SubmissionFailure] = None

    @classmethod
    def success(cls) -> "SubmissionResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, kind: str, message: str = "", status_code: int = 0) -> "SubmissionResult":
        return cls(ok=False, failure=SubmissionFailure(kind=kind, message=message, statusCode=status_code))


# A submitter either returns the result, or None when the result will be fed back later
Submitter = Callable[[SubmissionRequest], Optional[SubmissionResult]]


def build_submission_request(ctx: SessionContext, tier: str) -> SubmissionRequest:
    """Answers of the active sequence of `tier`; relevance marks only go out with the long session."""
    state = ShortSession() if tier == "short" else LongSession()
    answers = []
    for flip in session_flips(state, ctx):
        item = {"hash": flip.hash, "option": int(flip.option)}
        if tier == "long":
            item["relevance"] = int(flip.relevance)
        answers.append(item)
    return SubmissionRequest(
        epoch=ctx.epoch,
        coinbase=ctx.coinbase,
        tier=tier,
        answers=answers,
        privateKey=ctx.privateKey,
    )


class SubmissionController:
    """
    Single-flight per controller, i.e. per session object. Across requests the
    session is rebuilt each time; there the submitHash step, which accepts no
    SUBMIT or RETRY_SUBMIT, keeps a second submission out.
    """

    def __init__(self, submitter: Submitter):
        self.submitter = submitter
        self._lock = threading.Lock()
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def submit(self, request: SubmissionRequest) -> Optional[SubmissionResult]:
        """
        Returns the result, or None when nothing was started (another attempt
        is in flight) or when the submitter deferred the result.
        """
        with self._lock:
            if self._in_flight:
                log(event="submission_skipped_in_flight", epoch=request.epoch, tier=request.tier)
                return None
            self._in_flight = True

        start = time.time()
        try:
            metrics.increment_submit_attempt()
        except Exception:
            pass
        log(
            event="submission_attempt",
            epoch=request.epoch,
            coinbase=request.coinbase,
            tier=request.tier,
            answers=len(request.answers),
        )

        deferred = False
        try:
            result = self.submitter(request)
            if result is None:
                deferred = True
                log(event="submission_deferred", epoch=request.epoch, tier=request.tier)
                return None
        except Exception as e:
            result = SubmissionResult.failed("exception", f"{type(e).__name__}: {str(e)[:300]}")
        finally:
            if not deferred:
                self._in_flight = False

        self.record(request, result, elapsed_ms=int((time.time() - start) * 1000))
        return result

    def record(self, request: SubmissionRequest, result: SubmissionResult, *, elapsed_ms: int = 0) -> None:
        try:
            if result.ok:
                metrics.increment_submit_succeeded()
                metrics.record_submit_latency(elapsed_ms)
            else:
                metrics.record_failed_submission(f"{request.epoch}:{request.coinbase}")
        except Exception:
            pass

        if result.ok:
            log(event="submission_success", epoch=request.epoch, tier=request.tier, elapsedMs=elapsed_ms)
        else:
            failure = result.failure or SubmissionFailure(kind="exception")
            log(
                event="submission_failed",
                epoch=request.epoch,
                tier=request.tier,
                kind=failure.kind,
                statusCode=failure.statusCode,
                error=failure.message[:300],
                elapsedMs=elapsed_ms,
            )
