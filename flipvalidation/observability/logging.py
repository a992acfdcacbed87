import json
import time
from flipvalidation.settings import settings

# Credential-bearing keys never reach stdout in clear (if PII redaction enabled)
SENSITIVE_KEYS = {"privateKey", "credential", "key"}

def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    return v

def redact(fields: dict) -> dict:
    """
    Return a copy of `fields` with sensitive keys redacted at any depth.
    Lists are walked so flip lists and snapshots can be logged as-is.
    """
    out = {}
    for k, v in fields.items():
        if k in SENSITIVE_KEYS:
            out[k] = _redact_value(v)
        elif isinstance(v, dict):
            out[k] = redact(v)
        elif isinstance(v, list):
            out[k] = [redact(x) if isinstance(x, dict) else x for x in v]
        else:
            out[k] = v
    return out

def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}

    if settings.ENABLE_PII_REDACTION:
        payload.update(redact(fields))
    else:
        payload.update(fields)

    print(json.dumps(payload, ensure_ascii=False, default=str))
