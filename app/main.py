import os
import asyncio
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables at the very beginning
load_dotenv()

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import detection, feedback, system
from app.config import settings
from app.core.errors import DetectorError
from app.detection.cache import ResultCache
from app.integrations import http_client, redis_client
from app.services.detection_service import build_coordinator

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


async def periodic_cache_sweep(cache: ResultCache):
    """Background task dropping expired corroboration entries."""
    while True:
        try:
            await asyncio.sleep(settings.cleanup_interval_sec)
            cache.purge_expired()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"[CLEANUP] Error in cache sweep: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await http_client.initialize()
    redis_client.initialize()

    cache = ResultCache()
    app.state.cache = cache
    app.state.coordinator = build_coordinator(cache)

    sweep_task = None
    if not os.getenv("TESTING"):
        sweep_task = asyncio.create_task(periodic_cache_sweep(cache))
        logger.info("[STARTUP] Cache sweep task started")

    yield

    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    await http_client.close()
    redis_client.close()
    logger.info("[SHUTDOWN] Detector service stopped")


app = FastAPI(title="Ensemble AI Image Detector", lifespan=lifespan)


# ---- Error handlers ----
# Error responses must carry CORS headers or the browser client only sees
# a generic network error instead of the JSON body.
@app.exception_handler(StarletteHTTPException)
async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
    headers = dict(getattr(exc, "headers", None) or {})
    headers.update(CORS_HEADERS)
    logger.info(f"[ERROR HANDLER] Returning {exc.status_code} to client: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


@app.exception_handler(DetectorError)
async def detector_error_handler(request: Request, exc: DetectorError):
    logger.info(f"[ERROR HANDLER] {type(exc).__name__} → {exc.status_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=dict(CORS_HEADERS),
    )


# ---- CORS ----
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(detection.router)
app.include_router(feedback.router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8002"))
    uvicorn.run("app.main:app", host="0.0.0.0", port=port, log_level="info")
