import hmac

from fastapi import Header, HTTPException
from flipvalidation.settings import settings


def require_api_key(x_api_key: str = Header(default="", alias="x-api-key")):
    """
    - If API_KEY env is empty: allow all requests (local UI / development).
    - If API_KEY env is set: require matching x-api-key header.
    """
    if not settings.API_KEY:
        return
    if not hmac.compare_digest(x_api_key or "", settings.API_KEY):
        raise HTTPException(status_code=401, detail="Invalid API key")


def require_admin(x_admin_key: str = Header(default="", alias="x-admin-key")):
    if not settings.ADMIN_RBAC_ENABLED:
        return
    # Secure default: if enabled but no key configured, reject all.
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Admin access disabled (no key configured)")
    if not hmac.compare_digest(x_admin_key or "", settings.ADMIN_API_KEY):
        raise HTTPException(status_code=403, detail="Invalid admin key")
