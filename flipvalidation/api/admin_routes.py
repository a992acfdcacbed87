from fastapi import APIRouter, Depends, HTTPException
from flipvalidation.api.auth import require_admin
from flipvalidation.core.predicates import predicates_view
from flipvalidation.core.state_machine import state_from_path
from flipvalidation.observability.logging import redact
from flipvalidation.store.session_repo import load_validation_state, read_transition_log
import flipvalidation.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/validation/{epoch}/{coinbase}")
def get_validation_snapshot(epoch: int, coinbase: str, _=Depends(require_admin)):
    """Raw persisted snapshot (credential redacted) plus the derived predicates."""
    snapshot = load_validation_state(epoch, coinbase)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="no validation session")
    state = state_from_path(snapshot.statePath)
    return {
        "snapshot": redact(snapshot.to_dict()),
        "predicates": predicates_view(state, snapshot.context),
    }


@router.get("/validation/{epoch}/{coinbase}/timeline")
def get_validation_timeline(epoch: int, coinbase: str, limit: int = 100, _=Depends(require_admin)):
    """Ordered transition log for the session."""
    return {"epoch": epoch, "coinbase": coinbase, "transitions": read_transition_log(epoch, coinbase, limit)}


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    return metrics.get_submission_snapshot()
