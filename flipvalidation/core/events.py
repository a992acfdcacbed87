"""
Validation events
-----------------
UI events (the public event surface), collaborator events (flip loading,
submission results) and deadline events. All of them travel through the
same session channel. `parse_event` turns the wire shape
`{"type": "ANSWER", "hash": ..., "option": 1}` into these objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from flipvalidation.store.models import AnswerType, Flip, RelevanceType


class UnknownEventError(ValueError):
    pass


class InvalidEventError(ValueError):
    pass


# --- UI events ---

@dataclass(frozen=True)
class Answer:
    hash: str
    option: int
    type: str = field(default="ANSWER", init=False)


@dataclass(frozen=True)
class ToggleWords:
    hash: str
    relevance: int
    type: str = field(default="TOGGLE_WORDS", init=False)


@dataclass(frozen=True)
class Pick:
    index: int
    type: str = field(default="PICK", init=False)


@dataclass(frozen=True)
class Prev:
    type: str = field(default="PREV", init=False)


@dataclass(frozen=True)
class Next:
    type: str = field(default="NEXT", init=False)


@dataclass(frozen=True)
class Submit:
    type: str = field(default="SUBMIT", init=False)


@dataclass(frozen=True)
class RetrySubmit:
    type: str = field(default="RETRY_SUBMIT", init=False)


@dataclass(frozen=True)
class CheckFlips:
    # -1 lets the machine pick the first unanswered flip
    index: int = -1
    type: str = field(default="CHECK_FLIPS", init=False)


@dataclass(frozen=True)
class CheckReports:
    type: str = field(default="CHECK_REPORTS", init=False)


@dataclass(frozen=True)
class Cancel:
    type: str = field(default="CANCEL", init=False)


@dataclass(frozen=True)
class RefetchFlips:
    type: str = field(default="REFETCH_FLIPS", init=False)


@dataclass(frozen=True)
class StartLongSession:
    type: str = field(default="START_LONG_SESSION", init=False)


@dataclass(frozen=True)
class StartKeywordsQualification:
    type: str = field(default="START_KEYWORDS_QUALIFICATION", init=False)


@dataclass(frozen=True)
class FinishFlips:
    type: str = field(default="FINISH_FLIPS", init=False)


# --- Collaborator events ---

@dataclass(frozen=True)
class FlipsLoaded:
    kind: str  # "short" | "long"
    flips: Tuple[Dict[str, Any], ...]
    type: str = field(default="FLIPS_LOADED", init=False)


@dataclass(frozen=True)
class FlipUpdated:
    hash: str
    fetched: Optional[bool] = None
    decoded: Optional[bool] = None
    failed: Optional[bool] = None
    missing: Optional[bool] = None
    words: Optional[Tuple[int, ...]] = None
    type: str = field(default="FLIP_UPDATED", init=False)


@dataclass(frozen=True)
class TranslationsLoaded:
    translations: Tuple[Tuple[str, Any], ...]
    type: str = field(default="TRANSLATIONS_LOADED", init=False)


@dataclass(frozen=True)
class SubmitSucceeded:
    type: str = field(default="SUBMIT_SUCCEEDED", init=False)


@dataclass(frozen=True)
class SubmitFailed:
    kind: str = "exception"
    message: str = ""
    type: str = field(default="SUBMIT_FAILED", init=False)


# --- Deadline events ---

@dataclass(frozen=True)
class ShortSessionExpired:
    type: str = field(default="SHORT_SESSION_EXPIRED", init=False)


@dataclass(frozen=True)
class LongSessionExpired:
    type: str = field(default="LONG_SESSION_EXPIRED", init=False)


Event = Union[
    Answer, ToggleWords, Pick, Prev, Next, Submit, RetrySubmit, CheckFlips, CheckReports,
    Cancel, RefetchFlips, StartLongSession, StartKeywordsQualification, FinishFlips,
    FlipsLoaded, FlipUpdated, TranslationsLoaded, SubmitSucceeded, SubmitFailed,
    ShortSessionExpired, LongSessionExpired,
]

_NO_FIELDS = {
    "PREV": Prev,
    "NEXT": Next,
    "SUBMIT": Submit,
    "RETRY_SUBMIT": RetrySubmit,
    "CHECK_REPORTS": CheckReports,
    "CANCEL": Cancel,
    "REFETCH_FLIPS": RefetchFlips,
    "START_LONG_SESSION": StartLongSession,
    "START_KEYWORDS_QUALIFICATION": StartKeywordsQualification,
    "FINISH_FLIPS": FinishFlips,
    "SUBMIT_SUCCEEDED": SubmitSucceeded,
    "SHORT_SESSION_EXPIRED": ShortSessionExpired,
    "LONG_SESSION_EXPIRED": LongSessionExpired,
}

EVENT_TYPES = frozenset(
    list(_NO_FIELDS)
    + ["ANSWER", "TOGGLE_WORDS", "PICK", "CHECK_FLIPS", "FLIPS_LOADED", "FLIP_UPDATED",
       "TRANSLATIONS_LOADED", "SUBMIT_FAILED"]
)

# What a client may post; collaborator and deadline events only come from
# flip loading, submission results and the clock
UI_EVENT_TYPES = frozenset({
    "ANSWER", "TOGGLE_WORDS", "PICK", "PREV", "NEXT", "SUBMIT", "RETRY_SUBMIT", "CHECK_FLIPS",
    "CHECK_REPORTS", "CANCEL", "REFETCH_FLIPS", "START_LONG_SESSION", "START_KEYWORDS_QUALIFICATION",
    "FINISH_FLIPS",
})


def _require(payload: Dict[str, Any], name: str) -> Any:
    if payload.get(name) is None:
        raise InvalidEventError(f"{payload.get('type')} requires '{name}'")
    return payload[name]


def _as_int(payload: Dict[str, Any], name: str) -> int:
    v = _require(payload, name)
    if isinstance(v, bool):
        raise InvalidEventError(f"'{name}' must be an integer")
    try:
        return int(v)
    except (TypeError, ValueError):
        raise InvalidEventError(f"'{name}' must be an integer") from None


def _opt_bool(payload: Dict[str, Any], name: str) -> Optional[bool]:
    v = payload.get(name)
    return None if v is None else bool(v)


def _mark(value: Any, enum) -> Optional[int]:
    """Numeric value of an answer/relevance mark, or None when it is not one."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return None
    try:
        return int(enum(int(value)))
    except (TypeError, ValueError):
        return None


def _check_flip_marks(raw: Dict[str, Any]) -> None:
    for name, enum in (("option", AnswerType), ("relevance", RelevanceType)):
        if _mark(raw.get(name), enum) is None:
            raise InvalidEventError(f"flip {raw.get('hash')}: invalid '{name}' {raw.get(name)!r}")


def parse_event(payload: Union[str, Dict[str, Any]]) -> Event:
    """
    Map a wire event to its event object.
    A bare string is shorthand for an event without fields ("SUBMIT").
    """
    if isinstance(payload, str):
        payload = {"type": payload}
    if not isinstance(payload, dict):
        raise InvalidEventError("event must be an object with a 'type'")

    kind = str(payload.get("type") or "").strip().upper()
    if kind in _NO_FIELDS:
        return _NO_FIELDS[kind]()
    if kind == "ANSWER":
        return Answer(hash=str(_require(payload, "hash")), option=_as_int(payload, "option"))
    if kind == "TOGGLE_WORDS":
        return ToggleWords(hash=str(_require(payload, "hash")), relevance=_as_int(payload, "relevance"))
    if kind == "PICK":
        return Pick(index=_as_int(payload, "index"))
    if kind == "CHECK_FLIPS":
        return CheckFlips(index=_as_int(payload, "index") if payload.get("index") is not None else -1)
    if kind == "FLIPS_LOADED":
        tier = str(_require(payload, "kind")).lower()
        if tier not in ("short", "long"):
            raise InvalidEventError("FLIPS_LOADED 'kind' must be 'short' or 'long'")
        raw = _require(payload, "flips")
        if not isinstance(raw, (list, tuple)) or not all(isinstance(f, dict) and f.get("hash") for f in raw):
            raise InvalidEventError("FLIPS_LOADED 'flips' must be a list of objects with a 'hash'")
        for f in raw:
            _check_flip_marks(f)
        return FlipsLoaded(kind=tier, flips=tuple(dict(f) for f in raw))
    if kind == "FLIP_UPDATED":
        words = payload.get("words")
        return FlipUpdated(
            hash=str(_require(payload, "hash")),
            fetched=_opt_bool(payload, "fetched"),
            decoded=_opt_bool(payload, "decoded"),
            failed=_opt_bool(payload, "failed"),
            missing=_opt_bool(payload, "missing"),
            words=tuple(words) if words is not None else None,
        )
    if kind == "TRANSLATIONS_LOADED":
        translations = _require(payload, "translations")
        if not isinstance(translations, dict):
            raise InvalidEventError("'translations' must be an object")
        return TranslationsLoaded(translations=tuple(translations.items()))
    if kind == "SUBMIT_FAILED":
        return SubmitFailed(kind=str(payload.get("kind") or "exception"), message=str(payload.get("message") or ""))
    raise UnknownEventError(f"unknown event type: {kind or '<empty>'}")


def parse_ui_event(payload: Union[str, Dict[str, Any]]) -> Event:
    """Like parse_event, restricted to the events a client may send."""
    event = parse_event(payload)
    if event.type not in UI_EVENT_TYPES:
        raise InvalidEventError(f"{event.type} cannot be sent by a client")
    return event


def flips_from_event(event: FlipsLoaded) -> list:
    # Events built in-process skip parse_event; unreadable marks load as unset
    flips = []
    for raw in event.flips:
        data = dict(raw)
        data["option"] = _mark(data.get("option"), AnswerType) or 0
        data["relevance"] = _mark(data.get("relevance"), RelevanceType) or 0
        flips.append(Flip.from_dict(data))
    return flips
