from redis import Redis
from rq import Queue
from rq.job import Job
from flipvalidation.settings import settings

# Enqueued by dotted path so the API process never imports the worker module
SUBMIT_JOB = "flipvalidation.queue.jobs.submit_answers_job"


def get_queue() -> Queue:
    # RQ pickles job payloads, so this connection must not decode responses
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.RQ_QUEUE_NAME, connection=conn)


def submission_job_timeout_sec() -> int:
    # HTTP call plus waiting for the session lock
    return int(settings.SUBMIT_TIMEOUT_SEC) + int(settings.SESSION_LOCK_TTL_MS) // 1000 + 5


def enqueue_submission(epoch: int, coinbase: str, tier: str) -> Job:
    """One background submission. RQ retries are never requested."""
    timeout_sec = submission_job_timeout_sec()
    return get_queue().enqueue(
        SUBMIT_JOB,
        epoch,
        coinbase,
        tier,
        job_timeout=timeout_sec,
        description=f"submit {tier} answers {epoch}:{coinbase}",
    )
