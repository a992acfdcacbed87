from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from flipvalidation.api.routes import router
from flipvalidation.api.admin_routes import router as admin_router
from flipvalidation.observability.logging import log
from flipvalidation.settings import settings
from flipvalidation.store.redis_conn import redis_available

app = FastAPI(title="Flip Validation Session API")

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Validation session API is running. POST /validation/sessions to start an epoch's session.",
    }


@app.get("/health")
def health():
    return {"status": "ok", "redis": redis_available(), "submitMode": settings.SUBMIT_MODE}


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    log(event="unhandled_exception", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:500])
    return JSONResponse(status_code=500, content={"status": "error", "detail": "internal error"})


log(event="boot", submitMode=settings.SUBMIT_MODE, submitUrlSet=bool(settings.SUBMIT_URL))
