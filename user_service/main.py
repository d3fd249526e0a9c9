"""FastAPI application entry point with lifecycle management."""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import settings
from .routes import router, limiter
from .db import dispose_engine
from .cache import cache_manager
from .exceptions import UserServiceError
from .logger import logger
from .middleware import (
    graceful_shutdown_middleware,
    add_request_id_middleware,
    request_logging_middleware,
    security_headers_middleware,
    set_shutdown_manager,
)
from .monitoring import setup_monitoring

# ==================== Graceful Shutdown ====================


class GracefulShutdownManager:
    """Tracks in-flight requests so shutdown can drain them.

    Once draining starts the middleware rejects new requests; drain()
    returns when the last request finishes or the timeout expires.
    """

    def __init__(self, timeout: float = settings.GRACEFUL_SHUTDOWN_TIMEOUT, poll_interval: float = 0.1):
        self.is_shutting_down = False
        self.active_requests = 0
        self.shutdown_timeout = timeout
        self.poll_interval = poll_interval

    def request_started(self):
        self.active_requests += 1

    def request_finished(self):
        self.active_requests = max(0, self.active_requests - 1)

    async def drain(self) -> bool:
        """Stop accepting requests and wait for active ones.

        Returns:
            True if every request finished before the timeout
        """
        self.is_shutting_down = True
        if self.active_requests == 0:
            logger.info("No active requests - proceeding with shutdown")
            return True

        logger.info(f"Waiting for {self.active_requests} active request(s) to complete...")
        deadline = time.monotonic() + self.shutdown_timeout
        while self.active_requests > 0:
            if time.monotonic() >= deadline:
                logger.warning(
                    f"Shutdown timeout ({self.shutdown_timeout}s) reached with "
                    f"{self.active_requests} request(s) still active - forcing shutdown"
                )
                return False
            await asyncio.sleep(self.poll_interval)

        logger.info("All active requests completed")
        return True


shutdown_manager = GracefulShutdownManager()
set_shutdown_manager(shutdown_manager)

# ==================== Application Lifecycle ====================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the cache on startup; drain requests and close stores on shutdown."""
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")

    if settings.CACHE_ENABLED:
        await cache_manager.connect()
        if not cache_manager.is_connected and not cache_manager.fail_open:
            logger.warning("[cache] Redis unavailable and CACHE_FAIL_OPEN is off - user requests will fail until it returns")

    logger.info(f"{settings.APP_NAME} started - ready to accept requests")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await shutdown_manager.drain()

    if settings.CACHE_ENABLED:
        await cache_manager.disconnect()
    await dispose_engine()

    logger.info(f"{settings.APP_NAME} shutdown complete")

# ==================== Error Handlers ====================


async def user_service_error_handler(request: Request, exc: UserServiceError) -> JSONResponse:
    """Serialize domain errors in the same shape as HTTPException details."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})

# ==================== Application Setup ====================


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Last registered = outermost; request ids must be assigned before logging reads them
app.middleware("http")(security_headers_middleware)
app.middleware("http")(request_logging_middleware)
app.middleware("http")(add_request_id_middleware)
app.middleware("http")(graceful_shutdown_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(UserServiceError, user_service_error_handler)

app.include_router(router)

setup_monitoring(app)
