from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from flipvalidation.api.auth import require_api_key
from flipvalidation.api.schemas import SessionView, StartSessionRequest
from flipvalidation.core.events import InvalidEventError, UnknownEventError
from flipvalidation.core.orchestrator import SessionNotFound, get_session_view, handle_event, start_session
from flipvalidation.utils.lock import SessionLockTimeout

router = APIRouter(prefix="/validation", dependencies=[Depends(require_api_key)])


async def _call(fn, *args):
    """Run a blocking orchestrator call off the event loop and map domain errors to HTTP."""
    try:
        return await run_in_threadpool(fn, *args)
    except (UnknownEventError, InvalidEventError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionLockTimeout as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/sessions", response_model=SessionView)
async def create_session(req: StartSessionRequest):
    try:
        return await _call(start_session, req)
    except ValueError as e:
        # e.g. an unparseable validationStart
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/sessions/{epoch}/{coinbase}", response_model=SessionView)
async def read_session(epoch: int, coinbase: str):
    return await _call(get_session_view, epoch, coinbase)


@router.post("/sessions/{epoch}/{coinbase}/events", response_model=SessionView)
async def post_event(epoch: int, coinbase: str, payload: Any = Body(...)):
    """
    Accepts {"type": "ANSWER", "hash": ..., "option": 1} or a bare "SUBMIT".
    Unknown event types are rejected here; events that do not apply to the
    current state are accepted and ignored by the machine.
    """
    return await _call(handle_event, epoch, coinbase, payload)
