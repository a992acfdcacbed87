import time
from datetime import datetime, timezone

def now_ms() -> int:
    return int(time.time() * 1000)

def parse_timestamp_ms(ts) -> int:
    """
    Normalize a validation start value to epoch milliseconds (int).
    Accepts:
    - int/float: treated as epoch ms (or seconds if suspiciously small)
    - ISO-8601 string, as returned for the node's `nextValidation` (supports trailing 'Z')
    Raises ValueError for anything else: a session cannot be timed without a start.
    """
    if ts is None or isinstance(ts, bool):
        raise ValueError("validation start is required")
    if isinstance(ts, (int, float)):
        v = int(ts)
        # Heuristic: if looks like seconds (< 10^12), convert to ms.
        return v * 1000 if 0 < v < 10**12 else v
    if isinstance(ts, str):
        s = ts.strip()
        if not s:
            raise ValueError("validation start is empty")
        if s.lstrip("-").isdigit():
            return parse_timestamp_ms(int(s))
        # Support Zulu time
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    raise ValueError(f"unsupported validation start: {ts!r}")
