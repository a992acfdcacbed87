"""
Flip sequence helpers
---------------------
Pure functions over flip lists. The active sequence of a tier is always
re-derived from the stored lists, never stored itself, so the same lists give
the same order on every render and after a reload.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from flipvalidation.store.models import AnswerType, Flip, RelevanceType


def is_ready_flip(flip: Flip) -> bool:
    return bool(flip.fetched and flip.decoded)


def is_failed_flip(flip: Flip) -> bool:
    """Fetched but undecodable, or failed outright ("No data available. Please skip the flip.")."""
    return bool(flip.failed or (flip.fetched and not flip.decoded))


def filter_regular_flips(flips: Iterable[Flip]) -> List[Flip]:
    return [f for f in flips if not f.extra]


def filter_solvable_flips(flips: Iterable[Flip]) -> List[Flip]:
    return [f for f in flips if f.decoded]


def decoded_with_keywords(flip: Flip) -> bool:
    return bool(flip.decoded and flip.words)


def rearrange_flips(flips: Iterable[Flip]) -> List[Flip]:
    """
    Display order: ready flips first, then flips still loading, then failed ones.
    Inside a bucket the original list order is kept (stable), which pins the
    tie-break and keeps the order identical across reloads.
    """
    ready: List[Flip] = []
    loading: List[Flip] = []
    failed: List[Flip] = []
    for flip in flips:
        if is_failed_flip(flip):
            failed.append(flip)
        elif is_ready_flip(flip):
            ready.append(flip)
        else:
            loading.append(flip)
    return ready + loading + failed


def short_session_flips(short_flips: Iterable[Flip]) -> List[Flip]:
    return rearrange_flips(filter_regular_flips(short_flips))


def long_session_flips(long_flips: Iterable[Flip]) -> List[Flip]:
    return rearrange_flips([f for f in long_flips if f.decoded or not f.missing])


def flips_to_answer(flips: Iterable[Flip], *, short_session: bool) -> List[Flip]:
    """Flips the completeness check looks at."""
    if short_session:
        return [f for f in flips if f.decoded and not f.extra]
    return [f for f in flips if f.decoded]


def all_answered(flips: Iterable[Flip], *, short_session: bool) -> bool:
    required = flips_to_answer(flips, short_session=short_session)
    return len(required) > 0 and all(f.option != AnswerType.NONE for f in required)


def all_relevance_marked(long_flips: Iterable[Flip]) -> bool:
    return all(f.relevance != RelevanceType.ABSTAINED for f in long_flips if decoded_with_keywords(f))


def find_flip(flips: Iterable[Flip], flip_hash: str) -> Optional[Flip]:
    for flip in flips:
        if flip.hash == flip_hash:
            return flip
    return None


def first_unanswered_index(sequence: List[Flip]) -> int:
    for idx, flip in enumerate(sequence):
        if flip.option == AnswerType.NONE:
            return idx
    return -1


def first_unmarked_index(sequence: List[Flip]) -> int:
    for idx, flip in enumerate(sequence):
        if decoded_with_keywords(flip) and flip.relevance == RelevanceType.ABSTAINED:
            return idx
    return -1


def merge_flips(existing: List[Flip], incoming: Iterable[Flip]) -> List[Flip]:
    """
    Replace a tier's flip list with freshly loaded records.
    Answers and relevance marks already given for a hash are kept: the
    machine never resets them on its own.
    """
    previous = {f.hash: f for f in existing}
    merged: List[Flip] = []
    seen = set()
    for flip in incoming:
        if flip.hash in seen:
            continue
        seen.add(flip.hash)
        old = previous.get(flip.hash)
        if old is not None:
            if flip.option == AnswerType.NONE:
                flip.option = old.option
            if flip.relevance == RelevanceType.ABSTAINED:
                flip.relevance = old.relevance
        merged.append(flip)
    return merged
