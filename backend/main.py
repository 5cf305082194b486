import logging
import sys
import traceback
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .auth import router as auth_router
from .config import settings
from .limiter import limiter
from .routes import router as strava_router
from .services.rate_limiter import StravaRateLimiter
from .services.strava_client import StravaClient
from .services.token_cache import TokenCache
from .status import health_router, kudos_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # One HTTP pool, token cache and outbound limiter per process, handed to routes via deps
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as http:
        app.state.strava_client = StravaClient(
            http,
            TokenCache(settings.TOKEN_EXPIRY_BUFFER_SECONDS),
            StravaRateLimiter(settings.RATE_LIMIT_15_MIN, settings.RATE_LIMIT_DAILY),
        )
        logger.info(f"Strava Kudos Dashboard started ({settings.ENVIRONMENT})")
        yield

app = FastAPI(title="Strava Kudos Dashboard", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Include routers
app.include_router(auth_router, prefix="/strava", tags=["auth"])
app.include_router(strava_router, prefix="/strava", tags=["strava"])
app.include_router(kudos_router, prefix="/kudos", tags=["kudos"])
app.include_router(health_router, prefix="/health", tags=["health"])

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Global Exception: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )

# Dashboard pages, mounted last so API routes win
static_dir = Path(settings.STATIC_DIR)
if static_dir.is_dir():
    app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
