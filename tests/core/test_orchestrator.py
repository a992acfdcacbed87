import contextlib
import copy
import time
from unittest.mock import MagicMock, patch

import pytest
from flipvalidation.api.schemas import StartSessionRequest
from flipvalidation.core.events import InvalidEventError, UnknownEventError
from flipvalidation.core.orchestrator import (
    SUBMIT_JOB,
    SessionNotFound,
    deliver_submission_result,
    get_session_view,
    handle_event,
    start_session,
)
from flipvalidation.queue.rq_conn import submission_job_timeout_sec
from flipvalidation.settings import settings
from flipvalidation.store.models import AnswerType, Flip, SessionContext, SessionSnapshot
from flipvalidation.submission.controller import SubmissionResult

EPOCH = 21
COINBASE = "0xabc"


class MemoryStore:
    """In-memory stand-in for RedisValidationStore, shared per (epoch, coinbase)."""

    records = {}
    logs = {}

    def __init__(self, epoch, coinbase):
        self.key = (int(epoch), coinbase)

    def load(self):
        return copy.deepcopy(self.records.get(self.key))

    def persist(self, snapshot):
        self.records[self.key] = copy.deepcopy(snapshot)
        return True

    def record_transition(self, entry):
        self.logs.setdefault(self.key, []).append(entry)

    def teardown(self):
        pass


@pytest.fixture(autouse=True)
def memory_backend():
    MemoryStore.records.clear()
    MemoryStore.logs.clear()
    with patch("flipvalidation.core.orchestrator.RedisValidationStore", MemoryStore), patch(
        "flipvalidation.core.orchestrator.session_lock", lambda *a, **k: contextlib.nullcontext()
    ), patch("flipvalidation.submission.controller.metrics"):
        yield


def start_request(**kw):
    data = dict(
        privateKey="handle",
        coinbase=COINBASE,
        epoch=EPOCH,
        validationStart=int(time.time() * 1000),
        shortSessionDuration=120,
        longSessionDuration=600,
        shortFlips=[{"hash": "a", "fetched": True, "decoded": True}, {"hash": "b", "fetched": True, "decoded": True}],
        longFlips=[{"hash": "l1", "fetched": True, "decoded": True, "words": [1]}],
    )
    data.update(kw)
    return StartSessionRequest(**data)


def answer_all_and_confirm():
    handle_event(EPOCH, COINBASE, {"type": "ANSWER", "hash": "a", "option": 1})
    handle_event(EPOCH, COINBASE, {"type": "ANSWER", "hash": "b", "option": 2})
    view = handle_event(EPOCH, COINBASE, "SUBMIT")
    assert view["statePath"] == "shortSession.solve.answer.submitShortSession.confirm"


def test_start_session_loads_flips():
    view = start_session(start_request())
    assert view["statePath"] == "shortSession.solve.answer.normal"
    assert view["predicates"]["flips"] == ["a", "b"]
    assert view["timeLeftMs"] > 0
    assert [f.hash for f in MemoryStore.records[(EPOCH, COINBASE)].context.longFlips] == ["l1"]


def test_start_session_resumes_existing_session():
    start_session(start_request())
    handle_event(EPOCH, COINBASE, {"type": "ANSWER", "hash": "a", "option": 1})
    view = start_session(start_request())
    assert view["predicates"]["hasAllAnswers"] is False
    snapshot = MemoryStore.records[(EPOCH, COINBASE)]
    assert snapshot.context.shortFlips[0].option == AnswerType.LEFT


def test_start_session_after_deadline_is_failed():
    view = start_session(start_request(validationStart=int(time.time() * 1000) - 3_600_000))
    assert view["statePath"] == "validationFailed"
    assert view["failureReason"] == "deadline"
    assert view["effects"] == ["validationFailed"]


def test_sync_submission_succeeds():
    start_session(start_request())
    answer_all_and_confirm()
    with patch.object(settings, "SUBMIT_MODE", "sync"), patch(
        "flipvalidation.core.orchestrator.submit_answers_http", return_value=SubmissionResult.success()
    ) as mock_http:
        view = handle_event(EPOCH, COINBASE, "SUBMIT")
    assert view["statePath"] == "validationSucceeded"
    assert view["effects"] == ["submitAnswers", "validationSucceeded"]
    assert mock_http.call_args.args[0].answers == [{"hash": "a", "option": 1}, {"hash": "b", "option": 2}]


def test_sync_submission_failure_then_retry():
    start_session(start_request())
    answer_all_and_confirm()
    with patch.object(settings, "SUBMIT_MODE", "sync"), patch(
        "flipvalidation.core.orchestrator.submit_answers_http",
        side_effect=[SubmissionResult.failed("network", "timeout"), SubmissionResult.success()],
    ):
        view = handle_event(EPOCH, COINBASE, "SUBMIT")
        assert view["statePath"] == "shortSession.solve.answer.submitShortSession.fail"
        assert view["lastSubmitError"] == "network"
        view = handle_event(EPOCH, COINBASE, "RETRY_SUBMIT")
    assert view["statePath"] == "validationSucceeded"


def test_rq_submission_is_enqueued_and_result_delivered():
    start_session(start_request())
    answer_all_and_confirm()
    queue = MagicMock()
    with patch.object(settings, "SUBMIT_MODE", "rq"), patch(
        "flipvalidation.queue.rq_conn.get_queue", return_value=queue
    ):
        view = handle_event(EPOCH, COINBASE, "SUBMIT")
        assert view["statePath"] == "shortSession.solve.answer.submitShortSession.submitHash"
        queue.enqueue.assert_called_once()
        assert queue.enqueue.call_args.args == (SUBMIT_JOB, EPOCH, COINBASE, "short")
        assert queue.enqueue.call_args.kwargs["job_timeout"] > settings.SUBMIT_TIMEOUT_SEC

        deliver_submission_result(EPOCH, COINBASE, SubmissionResult.success())
    assert MemoryStore.records[(EPOCH, COINBASE)].statePath == "validationSucceeded"


def test_interrupted_sync_submission_surfaces_as_failure():
    ctx = SessionContext(
        epoch=EPOCH,
        coinbase=COINBASE,
        validationStart=int(time.time() * 1000),
        shortSessionDuration=120,
        longSessionDuration=600,
        shortFlips=[Flip(hash="a", option=1, fetched=True, decoded=True)],
    )
    MemoryStore.records[(EPOCH, COINBASE)] = SessionSnapshot(
        "shortSession.solve.answer.submitShortSession.submitHash", ctx
    )
    with patch.object(settings, "SUBMIT_MODE", "sync"):
        view = get_session_view(EPOCH, COINBASE)
    assert view["statePath"] == "shortSession.solve.answer.submitShortSession.fail"
    assert view["lastSubmitError"] == "interrupted"


def submitting_record(started_ms, **ctx_fields):
    ctx = SessionContext(
        epoch=EPOCH,
        coinbase=COINBASE,
        validationStart=int(time.time() * 1000),
        shortSessionDuration=120,
        longSessionDuration=600,
        shortFlips=[Flip(hash="a", option=1, fetched=True, decoded=True)],
        submitStartedAt=started_ms,
        **ctx_fields,
    )
    MemoryStore.records[(EPOCH, COINBASE)] = SessionSnapshot(
        "shortSession.solve.answer.submitShortSession.submitHash", ctx
    )


def test_timed_out_rq_submission_surfaces_as_failure():
    submitting_record(int(time.time() * 1000) - (submission_job_timeout_sec() + 1) * 1000)
    with patch.object(settings, "SUBMIT_MODE", "rq"):
        view = get_session_view(EPOCH, COINBASE)
    assert view["statePath"] == "shortSession.solve.answer.submitShortSession.fail"
    assert view["lastSubmitError"] == "interrupted"


def test_timed_out_rq_submission_applies_parked_deadline():
    submitting_record(int(time.time() * 1000) - (submission_job_timeout_sec() + 1) * 1000, pendingExpiry="long")
    with patch.object(settings, "SUBMIT_MODE", "rq"):
        view = get_session_view(EPOCH, COINBASE)
    assert view["statePath"] == "validationFailed"
    assert view["failureReason"] == "deadline"


def test_running_rq_submission_keeps_waiting():
    submitting_record(int(time.time() * 1000))
    with patch.object(settings, "SUBMIT_MODE", "rq"):
        view = get_session_view(EPOCH, COINBASE)
    assert view["statePath"] == "shortSession.solve.answer.submitShortSession.submitHash"


def submit_in_rq_mode(queue):
    start_session(start_request())
    answer_all_and_confirm()
    with patch.object(settings, "SUBMIT_MODE", "rq"), patch("flipvalidation.queue.rq_conn.get_queue", return_value=queue):
        handle_event(EPOCH, COINBASE, "SUBMIT")


@pytest.mark.parametrize(
    "payload",
    ["SUBMIT_SUCCEEDED", {"type": "SUBMIT_FAILED", "kind": "network"}, "LONG_SESSION_EXPIRED", "SHORT_SESSION_EXPIRED"],
)
def test_client_cannot_post_internal_events(payload):
    submit_in_rq_mode(MagicMock())
    before = copy.deepcopy(MemoryStore.records[(EPOCH, COINBASE)])
    with pytest.raises(InvalidEventError):
        handle_event(EPOCH, COINBASE, payload)
    assert MemoryStore.records[(EPOCH, COINBASE)] == before
    assert before.statePath == "shortSession.solve.answer.submitShortSession.submitHash"


def test_rq_submission_is_never_enqueued_twice():
    queue = MagicMock()
    submit_in_rq_mode(queue)
    with patch.object(settings, "SUBMIT_MODE", "rq"), patch("flipvalidation.queue.rq_conn.get_queue", return_value=queue):
        handle_event(EPOCH, COINBASE, "SUBMIT")
        view = handle_event(EPOCH, COINBASE, "RETRY_SUBMIT")
    assert view["statePath"] == "shortSession.solve.answer.submitShortSession.submitHash"
    queue.enqueue.assert_called_once()


def test_unknown_session():
    with pytest.raises(SessionNotFound):
        get_session_view(EPOCH, COINBASE)
    with pytest.raises(SessionNotFound):
        handle_event(EPOCH, COINBASE, "NEXT")


def test_malformed_event_never_touches_the_session():
    start_session(start_request())
    before = copy.deepcopy(MemoryStore.records[(EPOCH, COINBASE)])
    with pytest.raises(UnknownEventError):
        handle_event(EPOCH, COINBASE, {"type": "TELEPORT"})
    assert MemoryStore.records[(EPOCH, COINBASE)] == before


def test_deliver_after_session_moved_on_is_noop():
    deliver_submission_result(EPOCH, COINBASE, SubmissionResult.success())
    assert (EPOCH, COINBASE) not in MemoryStore.records
