#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Set dummy env vars to avoid KeyErrors during config load if any
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import flipvalidation.main
    print("Import flipvalidation.main: OK")

    # RQ workers resolve the submission job by its dotted path
    from flipvalidation.core.orchestrator import SUBMIT_JOB
    import flipvalidation.queue.jobs as jobs
    assert SUBMIT_JOB == f"{jobs.__name__}.{jobs.submit_answers_job.__name__}"
    print(f"Resolve {SUBMIT_JOB}: OK")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
