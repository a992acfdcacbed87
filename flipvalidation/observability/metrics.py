"""
Submission Metrics
------------------
Lightweight Redis counters/timers for answer submissions and a snapshot
function consumed by /admin/metrics. Missing keys (first boot) read as zero.
"""
from __future__ import annotations
import time
from typing import List, Tuple
from flipvalidation.store.redis_conn import get_redis

# Keys (best-effort, stable across restarts)
K_SUB_LAT = "metrics:submit:latencies"          # LPUSH ms
K_SUB_ATT = "metrics:submit:attempts"           # INCR
K_SUB_OK = "metrics:submit:succeeded"           # INCR
K_SUB_FAIL_RECENT = "metrics:submit:failed_recent"  # LPUSH "<epoch>:<coinbase>" (trim window)

_MAX_SAMPLES = 500  # cap to bound percentile computation cost

def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])

def _decode(x) -> str:
    return x.decode("utf-8") if isinstance(x, (bytes, bytearray)) else str(x)

def increment_submit_attempt() -> None:
    r = get_redis()
    r.incr(K_SUB_ATT, 1)

def increment_submit_succeeded() -> None:
    r = get_redis()
    r.incr(K_SUB_OK, 1)

def record_submit_latency(ms: int) -> None:
    try:
        ms = int(ms)
    except (TypeError, ValueError):
        return
    r = get_redis()
    r.lpush(K_SUB_LAT, ms)
    r.ltrim(K_SUB_LAT, 0, _MAX_SAMPLES - 1)

def record_failed_submission(session_key: str) -> None:
    """Track recent failures for incident attachments."""
    if not session_key:
        return
    r = get_redis()
    r.lpush(K_SUB_FAIL_RECENT, session_key)
    r.ltrim(K_SUB_FAIL_RECENT, 0, 49)  # keep last 50

def _read_latencies_s() -> List[float]:
    r = get_redis()
    out: List[float] = []
    for x in r.lrange(K_SUB_LAT, 0, _MAX_SAMPLES - 1) or []:
        try:
            out.append(float(_decode(x)) / 1000.0)
        except ValueError:
            continue
    return out

def _p50_p95(latencies_s: List[float]) -> Tuple[float, float]:
    if not latencies_s:
        return 0.0, 0.0
    return _percentile(latencies_s, 0.50), _percentile(latencies_s, 0.95)

def get_submission_snapshot() -> dict:
    r = get_redis()
    attempts = int(r.get(K_SUB_ATT) or 0)
    succeeded = int(r.get(K_SUB_OK) or 0)
    rate = (succeeded / attempts) * 100.0 if attempts > 0 else 0.0
    p50, p95 = _p50_p95(_read_latencies_s())
    recent_failed = [_decode(x) for x in (r.lrange(K_SUB_FAIL_RECENT, 0, 19) or [])]
    return {
        "submit_attempts": attempts,
        "submit_succeeded": succeeded,
        "submit_success_rate": round(rate, 3),
        "p50_submit_latency": round(p50, 3),
        "p95_submit_latency": round(p95, 3),
        "recent_failed_submissions": recent_failed,
        "snapshot_at": int(time.time()),
    }
