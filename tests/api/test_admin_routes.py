from unittest.mock import patch
import pytest
from fastapi import HTTPException
from flipvalidation.api.admin_routes import get_metrics, get_validation_snapshot, get_validation_timeline
from flipvalidation.api.auth import require_admin
from flipvalidation.settings import settings
from flipvalidation.store.models import Flip, SessionContext, SessionSnapshot


@patch("flipvalidation.api.admin_routes.load_validation_state")
def test_admin_snapshot_redacts_credential(mock_load):
    ctx = SessionContext(epoch=5, coinbase="0xabc", privateKey="secret", longFlips=[Flip(hash=h) for h in "abc"])
    mock_load.return_value = SessionSnapshot("longSession.solve.answer.flips", ctx)

    snap = get_validation_snapshot(5, "0xabc")
    assert snap["snapshot"]["context"]["privateKey"] == "[REDACTED:6chars]"
    assert snap["snapshot"]["statePath"] == "longSession.solve.answer.flips"
    assert snap["predicates"]["availableReportsCount"] == 1


@patch("flipvalidation.api.admin_routes.load_validation_state")
def test_admin_snapshot_missing(mock_load):
    mock_load.return_value = None
    with pytest.raises(HTTPException) as exc:
        get_validation_snapshot(5, "0xabc")
    assert exc.value.status_code == 404


@patch("flipvalidation.api.admin_routes.read_transition_log")
def test_admin_timeline(mock_read):
    mock_read.return_value = [{"eventType": "SUBMIT", "from": "a", "to": "b"}]
    out = get_validation_timeline(5, "0xabc", limit=10)
    mock_read.assert_called_once_with(5, "0xabc", 10)
    assert out["transitions"][0]["eventType"] == "SUBMIT"


@patch("flipvalidation.api.admin_routes.metrics")
def test_admin_metrics(mock_metrics):
    mock_metrics.get_submission_snapshot.return_value = {"submit_attempts": 3}
    assert get_metrics() == {"submit_attempts": 3}


def test_require_admin():
    with patch.object(settings, "ADMIN_RBAC_ENABLED", True), patch.object(settings, "ADMIN_API_KEY", ""):
        with pytest.raises(HTTPException) as exc:
            require_admin("anything")
        assert exc.value.status_code == 403
    with patch.object(settings, "ADMIN_RBAC_ENABLED", True), patch.object(settings, "ADMIN_API_KEY", "k"):
        require_admin("k")
        with pytest.raises(HTTPException):
            require_admin("nope")
    with patch.object(settings, "ADMIN_RBAC_ENABLED", False):
        require_admin("")
