from flipvalidation.core.orchestrator import deliver_submission_result
from flipvalidation.core.predicates import is_submitting
from flipvalidation.core.state_machine import state_from_path
from flipvalidation.observability.logging import log
from flipvalidation.store.session_repo import RedisValidationStore
from flipvalidation.submission.client import submit_answers_http
from flipvalidation.submission.controller import SubmissionController, build_submission_request


def submit_answers_job(epoch: int, coinbase: str, tier: str) -> bool:
    """
    Background submission (SUBMIT_MODE=rq).
    Performs exactly one HTTP submission and feeds the outcome back into the
    session. Returns True when the node accepted the answers.
    The job is enqueued without RQ retries: a retry is always the user's call.
    """
    log(event="submit_job_start", epoch=epoch, coinbase=coinbase, tier=tier)
    snapshot = RedisValidationStore(epoch, coinbase).load()
    if snapshot is None:
        log(event="submit_job_no_session", epoch=epoch, coinbase=coinbase)
        return False
    if not is_submitting(state_from_path(snapshot.statePath)):
        # Already resolved, e.g. marked interrupted after the job timed out in the queue
        log(event="submit_job_stale", epoch=epoch, coinbase=coinbase, statePath=snapshot.statePath)
        return False

    try:
        controller = SubmissionController(submit_answers_http)
        result = controller.submit(build_submission_request(snapshot.context, tier))
        deliver_submission_result(epoch, coinbase, result)
    except Exception as e:
        log(event="submit_job_exception", epoch=epoch, coinbase=coinbase, error=str(e))
        raise
    return bool(result and result.ok)
