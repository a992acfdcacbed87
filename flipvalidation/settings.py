import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "submissions")

    # Persisted validation state (one key per epoch + identity)
    STATE_KEY_PREFIX: str = os.getenv("STATE_KEY_PREFIX", "validation:")
    # Terminal snapshots are kept this long so a reload shows the outcome instead of a fresh session
    TERMINAL_STATE_TTL_SEC: int = int(os.getenv("TERMINAL_STATE_TTL_SEC", "7200"))
    STORE_TRANSITION_LOG: bool = os.getenv("STORE_TRANSITION_LOG", "true").lower() == "true"
    TRANSITION_LOG_MAX: int = int(os.getenv("TRANSITION_LOG_MAX", "500"))
    SESSION_LOCK_TTL_MS: int = int(os.getenv("SESSION_LOCK_TTL_MS", "15000"))

    # Qualification policy
    REPORT_QUOTA_DIVISOR: int = int(os.getenv("REPORT_QUOTA_DIVISOR", "3"))  # one report per 3 long flips
    EXCEEDED_REPORTS_NOTICE_MS: int = int(os.getenv("EXCEEDED_REPORTS_NOTICE_MS", "3000"))

    # Deadline clock
    # The displayed short-session timer runs ahead of the node deadline by this margin
    SHORT_SESSION_TIMER_MARGIN_SEC: int = int(os.getenv("SHORT_SESSION_TIMER_MARGIN_SEC", "10"))
    TICK_INTERVAL_SEC: float = float(os.getenv("TICK_INTERVAL_SEC", "1.0"))

    # Submission
    # Modes:
    # - "sync": submit inline while handling the SUBMIT event
    # - "rq": enqueue a background job, the job feeds the result back into the session
    SUBMIT_MODE: str = os.getenv("SUBMIT_MODE", "sync").lower()
    SUBMIT_URL: str = os.getenv("SUBMIT_URL", "")
    SUBMIT_TIMEOUT_SEC: float = float(os.getenv("SUBMIT_TIMEOUT_SEC", "10"))
    NODE_API_KEY: str = os.getenv("NODE_API_KEY", "")

    # Security & Privacy
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
