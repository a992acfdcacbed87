from unittest.mock import patch

from flipvalidation.core.flips import (
    all_answered,
    all_relevance_marked,
    is_failed_flip,
    is_ready_flip,
    long_session_flips,
    merge_flips,
    rearrange_flips,
    short_session_flips,
)
from flipvalidation.core.reports import available_reports_number, can_report_more, reported_flips_count
from flipvalidation.settings import settings
from flipvalidation.store.models import AnswerType, Flip, RelevanceType


def test_flip_status_helpers():
    assert is_ready_flip(Flip(hash="a", fetched=True, decoded=True))
    assert not is_ready_flip(Flip(hash="a", fetched=True))
    assert is_failed_flip(Flip(hash="a", fetched=True, decoded=False))
    assert is_failed_flip(Flip(hash="a", failed=True))
    assert not is_failed_flip(Flip(hash="a"))


def test_rearrange_orders_ready_loading_failed_and_is_stable():
    flips = [
        Flip(hash="f1", failed=True),
        Flip(hash="l1"),
        Flip(hash="r1", fetched=True, decoded=True),
        Flip(hash="f2", fetched=True),
        Flip(hash="r2", fetched=True, decoded=True),
        Flip(hash="l2"),
    ]
    assert [f.hash for f in rearrange_flips(flips)] == ["r1", "r2", "l1", "l2", "f1", "f2"]
    # Same input, same order
    assert [f.hash for f in rearrange_flips(flips)] == [f.hash for f in rearrange_flips(list(flips))]


def test_short_sequence_skips_extra_flips():
    flips = [Flip(hash="a"), Flip(hash="x", extra=True)]
    assert [f.hash for f in short_session_flips(flips)] == ["a"]


def test_long_sequence_drops_missing_undecoded_flips():
    flips = [
        Flip(hash="gone", missing=True),
        Flip(hash="late", missing=True, decoded=True, fetched=True),
        Flip(hash="ok"),
    ]
    assert [f.hash for f in long_session_flips(flips)] == ["late", "ok"]


def test_all_answered():
    assert all_answered([], short_session=True) is False
    flips = [Flip(hash="a", decoded=True, option=AnswerType.LEFT), Flip(hash="b", decoded=False)]
    # Undecoded flips cannot be answered and are not required
    assert all_answered(flips, short_session=False) is True
    flips.append(Flip(hash="c", decoded=True))
    assert all_answered(flips, short_session=False) is False
    flips[2].extra = True
    assert all_answered(flips, short_session=True) is True


def test_all_relevance_marked_only_counts_flips_with_keywords():
    assert all_relevance_marked([]) is True
    flips = [Flip(hash="a", decoded=True), Flip(hash="b", decoded=True, words=[3])]
    assert all_relevance_marked(flips) is False
    flips[1].relevance = RelevanceType.RELEVANT
    assert all_relevance_marked(flips) is True


def test_merge_keeps_existing_marks_and_dedupes():
    existing = [Flip(hash="a", option=AnswerType.LEFT, relevance=RelevanceType.IRRELEVANT)]
    incoming = [Flip(hash="a", fetched=True), Flip(hash="b"), Flip(hash="b", option=AnswerType.RIGHT)]
    merged = merge_flips(existing, incoming)
    assert [f.hash for f in merged] == ["a", "b"]
    assert merged[0].option == AnswerType.LEFT
    assert merged[0].relevance == RelevanceType.IRRELEVANT
    assert merged[0].fetched is True


def test_available_reports_number():
    assert available_reports_number([]) == 0
    assert available_reports_number([Flip(hash=str(i)) for i in range(2)]) == 0
    assert available_reports_number([Flip(hash=str(i)) for i in range(3)]) == 1
    assert available_reports_number([Flip(hash=str(i)) for i in range(7)]) == 2


def test_available_reports_number_uses_configured_divisor():
    with patch.object(settings, "REPORT_QUOTA_DIVISOR", 2):
        assert available_reports_number([Flip(hash=str(i)) for i in range(7)]) == 3


def test_reported_count_and_can_report_more():
    flips = [Flip(hash=str(i)) for i in range(6)]
    assert can_report_more(flips)
    flips[0].relevance = RelevanceType.IRRELEVANT
    flips[1].relevance = RelevanceType.IRRELEVANT
    assert reported_flips_count(flips) == 2
    assert not can_report_more(flips)
