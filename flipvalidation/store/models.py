from dataclasses import dataclass, field, fields as dc_fields
from enum import IntEnum
from typing import Any, Dict, List, Optional


class AnswerType(IntEnum):
    NONE = 0
    LEFT = 1
    RIGHT = 2


class RelevanceType(IntEnum):
    ABSTAINED = 0
    RELEVANT = 1
    IRRELEVANT = 2


@dataclass
class Flip:
    # Stable identifier; list key and correlation id for submission results
    hash: str

    # Answer / qualification marks (0 = unset)
    option: int = AnswerType.NONE
    relevance: int = RelevanceType.ABSTAINED

    # Spare/decoy item, excluded from the short-session completeness check
    extra: bool = False
    # Failed to load; kept out of the long sequence unless it decodes later
    missing: bool = False

    # Load status reported by the fetch/decode collaborator (images are opaque here)
    fetched: bool = False
    decoded: bool = False
    failed: bool = False

    # Keyword ids shown during qualification; only non-emptiness matters to the core
    words: List[int] = field(default_factory=list)

    def __post_init__(self):
        self.hash = str(self.hash)
        self.option = AnswerType(int(self.option or 0))
        self.relevance = RelevanceType(int(self.relevance or 0))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flip":
        """Build a flip from a wire/persisted dict, ignoring undeclared keys."""
        allowed = {f.name for f in dc_fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in allowed})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "option": int(self.option),
            "relevance": int(self.relevance),
            "extra": bool(self.extra),
            "missing": bool(self.missing),
            "fetched": bool(self.fetched),
            "decoded": bool(self.decoded),
            "failed": bool(self.failed),
            "words": list(self.words or []),
        }


@dataclass
class SessionContext:
    # Immutable session parameters (captured at creation)
    epoch: int = 0
    validationStart: int = 0  # epoch ms
    shortSessionDuration: int = 0  # seconds
    longSessionDuration: int = 0  # seconds
    coinbase: str = ""
    # Opaque credential handle, only forwarded to the submission collaborator
    privateKey: str = ""
    locale: str = "en"

    # Flip record store
    shortFlips: List[Flip] = field(default_factory=list)
    longFlips: List[Flip] = field(default_factory=list)

    # Navigation
    currentIndex: int = 0

    # Owned by the keyword-qualification UI
    translations: Dict[str, Any] = field(default_factory=dict)

    # Derived cache: long flips currently marked IRRELEVANT
    reportedFlipsCount: int = 0

    # --- Submission / deadline bookkeeping ---
    # Phase expiry that arrived while a submission was in flight: "", "short" or "long"
    pendingExpiry: str = ""
    submitAttempts: int = 0
    # Clock time (epoch ms) the latest submission attempt started
    submitStartedAt: int = 0
    lastSubmitError: Optional[str] = None
    # Set when the session ends in validationFailed
    failureReason: Optional[str] = None

    def __post_init__(self):
        self.shortFlips = [f if isinstance(f, Flip) else Flip.from_dict(f) for f in (self.shortFlips or [])]
        self.longFlips = [f if isinstance(f, Flip) else Flip.from_dict(f) for f in (self.longFlips or [])]
        if self.currentIndex is None or self.currentIndex < 0:
            self.currentIndex = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in dc_fields(self)}
        data["shortFlips"] = [f.to_dict() for f in self.shortFlips]
        data["longFlips"] = [f.to_dict() for f in self.longFlips]
        data["translations"] = dict(self.translations or {})
        return data


@dataclass
class SessionSnapshot:
    """Persistence record: the full context plus the current state path."""
    statePath: str
    context: SessionContext

    def to_dict(self) -> Dict[str, Any]:
        return {"statePath": self.statePath, "context": self.context.to_dict()}
