from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class FlipPayload(BaseModel):
    hash: str
    # AnswerType / RelevanceType values
    option: int = Field(default=0, ge=0, le=2)
    relevance: int = Field(default=0, ge=0, le=2)
    extra: bool = False
    missing: bool = False
    fetched: bool = False
    decoded: bool = False
    failed: bool = False
    words: List[int] = Field(default_factory=list)


class StartSessionRequest(BaseModel):
    privateKey: str
    coinbase: str
    epoch: int
    # Epoch ms, or the node's ISO-8601 `nextValidation`
    validationStart: Union[int, str]
    shortSessionDuration: int = Field(ge=0)
    longSessionDuration: int = Field(ge=0)
    locale: str = "en"
    shortFlips: List[FlipPayload] = Field(default_factory=list)
    longFlips: List[FlipPayload] = Field(default_factory=list)


class SessionView(BaseModel):
    epoch: int
    coinbase: str
    statePath: str
    predicates: Dict[str, Any]
    timeLeftMs: int
    # Side effects fired while handling this request (e.g. "exceededReports")
    effects: List[str] = Field(default_factory=list)
    # How long the UI keeps the exceeded-reports notice visible
    noticeDurationMs: int
    failureReason: Optional[str] = None
    lastSubmitError: Optional[str] = None
    translations: Dict[str, Any] = Field(default_factory=dict)
