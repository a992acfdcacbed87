"""
HTTP submitter
--------------
Posts the answers to the node as a JSON-RPC call. Signing is done by the
node side of the credential handle; this client only forwards it.
"""

from __future__ import annotations

from typing import Optional

import httpx

from flipvalidation.settings import settings
from flipvalidation.submission.controller import SubmissionRequest, SubmissionResult

RPC_METHODS = {
    "short": "flip_submitShortAnswers",
    "long": "flip_submitLongAnswers",
}


def build_rpc_envelope(request: SubmissionRequest) -> dict:
    params = {
        "answers": request.answers,
        "epoch": request.epoch,
        "credential": request.privateKey,
    }
    return {
        "method": RPC_METHODS[request.tier],
        "params": [params],
        "id": f"{request.epoch}:{request.coinbase}:{request.tier}",
        "key": settings.NODE_API_KEY,
    }


def submit_answers_http(request: SubmissionRequest, *, timeout: Optional[float] = None) -> SubmissionResult:
    """
    One POST, no retry. Classifies the outcome:
    - 2xx with no "error" member -> success
    - 2xx with an "error" member -> rpc_error
    - non-2xx -> rejected
    - transport errors -> network
    """
    if not settings.SUBMIT_URL:
        return SubmissionResult.failed("exception", "SUBMIT_URL is not set")

    timeout = float(timeout if timeout is not None else settings.SUBMIT_TIMEOUT_SEC)
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(settings.SUBMIT_URL, json=build_rpc_envelope(request))
    except httpx.HTTPError as e:
        return SubmissionResult.failed("network", f"{type(e).__name__}: {str(e)[:300]}")

    if not (200 <= resp.status_code < 300):
        return SubmissionResult.failed("rejected", (resp.text or "")[:500], resp.status_code)

    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return SubmissionResult.failed("rpc_error", str(message)[:500], resp.status_code)
    return SubmissionResult.success()
