from unittest.mock import MagicMock, patch

import pytest
from flipvalidation.store.models import AnswerType, Flip, RelevanceType, SessionContext
from flipvalidation.submission.controller import (
    SubmissionController,
    SubmissionRequest,
    SubmissionResult,
    build_submission_request,
)


@pytest.fixture(autouse=True)
def mock_metrics():
    with patch("flipvalidation.submission.controller.metrics") as m:
        yield m


@pytest.fixture
def ctx():
    return SessionContext(
        epoch=8,
        coinbase="0xabc",
        privateKey="handle",
        shortFlips=[
            Flip(hash="s1", option=AnswerType.LEFT, fetched=True, decoded=True),
            Flip(hash="sx", extra=True, fetched=True, decoded=True),
        ],
        longFlips=[
            Flip(hash="l1", option=AnswerType.RIGHT, relevance=RelevanceType.IRRELEVANT, fetched=True, decoded=True),
            Flip(hash="l2", missing=True),
        ],
    )


def test_short_request_carries_answers_only(ctx):
    req = build_submission_request(ctx, "short")
    assert req.tier == "short"
    assert req.answers == [{"hash": "s1", "option": 1}]
    assert req.privateKey == "handle"
    assert "privateKey" not in req.to_payload()


def test_long_request_carries_relevance(ctx):
    req = build_submission_request(ctx, "long")
    assert req.answers == [{"hash": "l1", "option": 2, "relevance": 2}]


def test_submit_success_records_metrics(mock_metrics):
    controller = SubmissionController(lambda request: SubmissionResult.success())
    result = controller.submit(SubmissionRequest(epoch=8, coinbase="0xabc", tier="short"))
    assert result.ok is True
    assert controller.in_flight is False
    mock_metrics.increment_submit_attempt.assert_called_once()
    mock_metrics.increment_submit_succeeded.assert_called_once()


def test_submitter_exception_becomes_failure(mock_metrics):
    def boom(request):
        raise RuntimeError("socket closed")

    controller = SubmissionController(boom)
    result = controller.submit(SubmissionRequest(epoch=8, coinbase="0xabc", tier="long"))
    assert result.ok is False
    assert result.failure.kind == "exception"
    assert "socket closed" in result.failure.message
    assert controller.in_flight is False
    mock_metrics.record_failed_submission.assert_called_once_with("8:0xabc")


def test_no_second_submission_while_in_flight():
    submitter = MagicMock(return_value=None)
    controller = SubmissionController(submitter)
    request = SubmissionRequest(epoch=8, coinbase="0xabc", tier="short")

    assert controller.submit(request) is None
    assert controller.in_flight is True
    assert controller.submit(request) is None
    submitter.assert_called_once()



def test_metrics_outage_does_not_block_submission(mock_metrics):
    mock_metrics.increment_submit_attempt.side_effect = ConnectionError("redis down")
    mock_metrics.increment_submit_succeeded.side_effect = ConnectionError("redis down")
    controller = SubmissionController(lambda request: SubmissionResult.success())
    assert controller.submit(SubmissionRequest(epoch=8, coinbase="0xabc", tier="short")).ok is True
