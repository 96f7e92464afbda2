import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from veracity.api import auth, detection, share, storage, system, upload
from veracity.config import settings
from veracity.core.rate_limiter import RateLimiter
from veracity.integrations import firebase as firebase_module
from veracity.integrations import http_client as http_module
from veracity.integrations import redis_client as redis_module
from veracity.integrations.aiornot import AIOrNotClient
from veracity.integrations.storage import build_storage


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build every shared component once and park it on app.state."""
    testing = os.getenv("TESTING") == "true"

    app.state.http_session = None if testing else http_module.create_session()

    if testing:
        app.state.db = None
        app.state.redis = None
    else:
        try:
            app.state.db = firebase_module.initialize(settings)
        except Exception as e:
            logger.error(f"[STARTUP] Firestore unavailable: {e}")
            app.state.db = None
        app.state.redis = redis_module.initialize(settings)

    app.state.storage = build_storage(settings, session=app.state.http_session)
    app.state.detector = AIOrNotClient(
        settings.aiornot_api_url,
        settings.aiornot_api_key,
        session=app.state.http_session,
        timeout_sec=settings.aiornot_timeout_sec,
    )
    app.state.rate_limiter = RateLimiter(app.state.redis, settings)

    if not settings.aiornot_api_key:
        logger.warning("[STARTUP] AIORNOT_API_KEY is not set. Detection calls will fail.")
    logger.info("[STARTUP] Veracity API ready")

    yield

    await http_module.close(app.state.http_session)
    logger.info("[SHUTDOWN] Veracity API stopped")


app = FastAPI(title="Veracity AI Content Detection API", lifespan=lifespan)


# ---- Global Exception Handler for CORS ----
# HTTP errors must carry CORS headers so the browser can read the JSON body.
@app.exception_handler(StarletteHTTPException)
async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
    headers = dict(getattr(exc, "headers", None) or {})
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Credentials"] = "true"
    headers["Access-Control-Allow-Methods"] = "*"
    headers["Access-Control-Allow-Headers"] = "*"

    # Drain the request body so early rejections don't reset large uploads.
    try:
        async for _ in request.stream():
            pass
    except Exception as e:
        logger.debug(f"Request stream already consumed in exception handler: {e}")

    logger.info(f"[ERROR HANDLER] {request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(upload.router)
app.include_router(detection.router)
app.include_router(share.router)
app.include_router(storage.router)
app.include_router(auth.router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("veracity.main:app", host="0.0.0.0", port=port, log_level="info")
