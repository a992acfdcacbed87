"""
Deadline Clock
--------------
Decides from the validation start and the configured durations which window
is open "now", and produces the expiry events due at that instant. The
machine treats a re-delivered expiry as a no-op, so callers may tick as often
as they like (every second, and on every render/request).
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, List, Optional

from flipvalidation.core.events import Event, LongSessionExpired, ShortSessionExpired
from flipvalidation.observability.logging import log
from flipvalidation.settings import settings
from flipvalidation.utils.time import now_ms


class ClockPhase(str, Enum):
    SHORT = "short"
    LONG = "long"
    FINISHED = "finished"


class DeadlineClock:
    def __init__(self, validation_start_ms: int, short_session_sec: int, long_session_sec: int):
        self.validation_start_ms = int(validation_start_ms)
        self.short_session_sec = max(0, int(short_session_sec))
        self.long_session_sec = max(0, int(long_session_sec))

    @classmethod
    def from_context(cls, ctx) -> "DeadlineClock":
        return cls(ctx.validationStart, ctx.shortSessionDuration, ctx.longSessionDuration)

    @property
    def short_session_end_ms(self) -> int:
        return self.validation_start_ms + self.short_session_sec * 1000

    @property
    def long_session_end_ms(self) -> int:
        return self.short_session_end_ms + self.long_session_sec * 1000

    def phase_at(self, now: int) -> ClockPhase:
        if now < self.short_session_end_ms:
            return ClockPhase.SHORT
        if now < self.long_session_end_ms:
            return ClockPhase.LONG
        return ClockPhase.FINISHED

    def expiry_events(self, now: int) -> List[Event]:
        """Expiry events due at `now`, short before long."""
        phase = self.phase_at(now)
        if phase == ClockPhase.SHORT:
            return []
        if phase == ClockPhase.LONG:
            return [ShortSessionExpired()]
        return [ShortSessionExpired(), LongSessionExpired()]

    def time_left_ms(self, now: int, *, short_session: bool) -> int:
        """
        Value for the on-screen timer. The short-session countdown stops
        SHORT_SESSION_TIMER_MARGIN_SEC before the node deadline so answers go out in time.
        """
        margin_ms = int(getattr(settings, "SHORT_SESSION_TIMER_MARGIN_SEC", 10) or 0) * 1000
        if short_session:
            end = self.short_session_end_ms - margin_ms
        else:
            end = self.long_session_end_ms - margin_ms
        return max(0, end - int(now))


class DeadlineTicker:
    """
    Background thread feeding clock ticks into a long-lived, in-process session.
    Ticks go through session.tick(), i.e. the same serialized channel as UI events.
    The HTTP service does not run one: its sessions live for a single request
    and the orchestrator ticks them on every request instead.
    """

    def __init__(self, session, *, interval_sec: Optional[float] = None, clock: Callable[[], int] = now_ms):
        self.session = session
        self.interval_sec = float(interval_sec if interval_sec is not None else settings.TICK_INTERVAL_SEC)
        self.clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="deadline-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.session.tick(self.clock())
            except Exception as e:
                log(event="deadline_tick_exception", errorType=type(e).__name__, error=str(e)[:300])
            if self.session.is_done:
                break
            self._stop.wait(self.interval_sec)
