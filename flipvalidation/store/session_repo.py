import json
import time
from dataclasses import fields as dc_fields
from typing import List, Optional

from redis.exceptions import RedisError

from flipvalidation.core.state_machine import state_from_path
from flipvalidation.observability.logging import log
from flipvalidation.settings import settings
from flipvalidation.store.models import Flip, SessionContext, SessionSnapshot
from flipvalidation.store.redis_conn import get_redis


def _key(epoch, coinbase: str) -> str:
    return f"{settings.STATE_KEY_PREFIX}{int(epoch)}:{(coinbase or '').lower()}"


def _log_key(epoch, coinbase: str) -> str:
    return f"logs-validation-{int(epoch)}:{(coinbase or '').lower()}"


def _migrate_snapshot_data(data: dict) -> dict:
    """
    Backward-compat migration for stored snapshots.
    Drops undeclared fields from the context and from every flip so that
    SessionContext(**kwargs) / Flip(**kwargs) never explode on records
    written by an older or newer build.
    """
    removed_context_fields = 0
    removed_flip_fields = 0

    ctx = data.get("context")
    if not isinstance(ctx, dict):
        ctx = {}
        data["context"] = ctx

    allowed_ctx = {f.name for f in dc_fields(SessionContext)}
    for k in list(ctx.keys()):
        if k not in allowed_ctx:
            del ctx[k]
            removed_context_fields += 1

    allowed_flip = {f.name for f in dc_fields(Flip)}
    for list_name in ("shortFlips", "longFlips"):
        flips = ctx.get(list_name)
        if not isinstance(flips, list):
            ctx[list_name] = []
            continue
        kept = []
        for flip in flips:
            if not isinstance(flip, dict) or not flip.get("hash"):
                removed_flip_fields += 1
                continue
            for k in list(flip.keys()):
                if k not in allowed_flip:
                    del flip[k]
                    removed_flip_fields += 1
            kept.append(flip)
        ctx[list_name] = kept

    if removed_context_fields or removed_flip_fields:
        log(
            event="validation_state_migrated",
            epoch=ctx.get("epoch"),
            removedContextFields=int(removed_context_fields),
            removedFlipFields=int(removed_flip_fields),
        )
    return data


def snapshot_from_dict(data: dict) -> SessionSnapshot:
    data = _migrate_snapshot_data(data)
    path = str(data.get("statePath") or "")
    # Validates the path; raises ValueError for paths this build cannot resume
    state_from_path(path)
    return SessionSnapshot(statePath=path, context=SessionContext(**data["context"]))


def load_validation_state(epoch, coinbase: str) -> Optional[SessionSnapshot]:
    """
    Returns the snapshot persisted for this epoch, or None.
    A record left over from another epoch (or one that cannot be read) is
    cleared and treated as none.
    """
    r = get_redis()
    raw = r.get(_key(epoch, coinbase))
    if not raw:
        return None

    try:
        snapshot = snapshot_from_dict(json.loads(raw))
    except (ValueError, TypeError, KeyError) as e:
        log(event="validation_state_unreadable", epoch=epoch, coinbase=coinbase, error=str(e)[:300])
        r.delete(_key(epoch, coinbase))
        return None

    if int(snapshot.context.epoch) != int(epoch):
        log(event="validation_state_stale_epoch", epoch=epoch, storedEpoch=snapshot.context.epoch)
        r.delete(_key(epoch, coinbase))
        return None
    return snapshot


def persist_validation_state(snapshot: SessionSnapshot) -> bool:
    """Idempotent snapshot write. Never raises: a failed write is logged and the session carries on."""
    ctx = snapshot.context
    try:
        r = get_redis()
        data = snapshot.to_dict()
        data["savedAtEpoch"] = int(time.time())
        r.set(_key(ctx.epoch, ctx.coinbase), json.dumps(data))
        return True
    except (RedisError, TypeError, ValueError) as e:
        log(
            event="validation_state_persist_failed",
            epoch=ctx.epoch,
            coinbase=ctx.coinbase,
            errorType=type(e).__name__,
            error=str(e)[:300],
        )
        return False


def expire_validation_state(epoch, coinbase: str, ttl_sec: Optional[int] = None) -> bool:
    """Teardown for a concluded session: the terminal snapshot lives on for ttl_sec, then disappears."""
    ttl = int(ttl_sec if ttl_sec is not None else settings.TERMINAL_STATE_TTL_SEC)
    try:
        r = get_redis()
        if ttl <= 0:
            r.delete(_key(epoch, coinbase))
        else:
            r.expire(_key(epoch, coinbase), ttl)
            if settings.STORE_TRANSITION_LOG:
                r.expire(_log_key(epoch, coinbase), ttl)
        return True
    except RedisError as e:
        log(event="validation_state_expire_failed", epoch=epoch, coinbase=coinbase, error=str(e)[:300])
        return False


def append_transition_log(epoch, coinbase: str, entry: dict) -> None:
    """Capped per-epoch transition log (the page keeps the same trail in local storage)."""
    if not settings.STORE_TRANSITION_LOG:
        return
    try:
        r = get_redis()
        key = _log_key(epoch, coinbase)
        r.rpush(key, json.dumps(entry))
        r.ltrim(key, -int(settings.TRANSITION_LOG_MAX), -1)
    except RedisError as e:
        log(event="transition_log_failed", epoch=epoch, error=str(e)[:300])


def read_transition_log(epoch, coinbase: str, limit: int = 100) -> List[dict]:
    r = get_redis()
    raw = r.lrange(_log_key(epoch, coinbase), -int(limit), -1) or []
    out = []
    for item in raw:
        try:
            out.append(json.loads(item))
        except ValueError:
            continue
    return out


class RedisValidationStore:
    """
    Keyed store for one session: init on session start, persist after every
    transition, teardown on the terminal state.
    """

    def __init__(self, epoch, coinbase: str):
        self.epoch = int(epoch)
        self.coinbase = coinbase

    def load(self) -> Optional[SessionSnapshot]:
        try:
            return load_validation_state(self.epoch, self.coinbase)
        except RedisError as e:
            log(event="validation_state_load_failed", epoch=self.epoch, error=str(e)[:300])
            return None

    def persist(self, snapshot: SessionSnapshot) -> bool:
        return persist_validation_state(snapshot)

    def record_transition(self, entry: dict) -> None:
        append_transition_log(self.epoch, self.coinbase, entry)

    def teardown(self) -> None:
        expire_validation_state(self.epoch, self.coinbase)
