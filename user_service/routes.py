# API route definitions (HTTP layer)
# Maps user endpoints onto UserService

import os
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from .schemas import UserCreate, UserUpdate, UserOut, DeleteResponse
from .services import UserService
from .dependencies import get_user_service
from .cache import cache_manager
from .config import settings
from . import db

limiter = Limiter(key_func=get_remote_address)


def conditional_limit(limit_string):
    """Apply rate limit only if not in test mode."""
    if os.getenv('TEST_MODE'):
        def decorator(func):
            return func
        return decorator
    return limiter.limit(limit_string)


router = APIRouter()


@router.get("/")
def root():
    return {"app": settings.APP_NAME, "env": settings.APP_ENV}


@router.get("/health")
async def health_check():
    """Health check for load balancers.

    Returns:
        - 200 "healthy", or "degraded" when the cache is enabled but unreachable
        - 503 when the database is unreachable
    """
    health_status = {
        "status": "healthy",
        "service": settings.APP_NAME,
        "environment": settings.APP_ENV,
    }

    if not await db.check_db_connection():
        health_status["status"] = "unhealthy"
        health_status["database"] = "disconnected"
        raise HTTPException(status_code=503, detail=health_status)
    health_status["database"] = "connected"

    if settings.CACHE_ENABLED:
        is_healthy = await cache_manager.health_check()
        health_status["cache"] = "connected" if is_healthy else "disconnected"
        if not is_healthy:
            health_status["status"] = "degraded"
    else:
        health_status["cache"] = "disabled"

    return health_status


@router.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)


# ============================================================================
# User Endpoints
# ============================================================================

@router.post("/users", response_model=UserOut, status_code=201)
@conditional_limit(settings.RATE_LIMIT_WRITE)
async def create_user(
    user: UserCreate,
    request: Request,
    service: UserService = Depends(get_user_service),
):
    """Create a user, restoring a soft-deleted one with the same email.

    Raises:
        409: Email already in use by an active user
    """
    return await service.create(user.name, user.email)


@router.get("/users", response_model=list[UserOut])
@conditional_limit(settings.RATE_LIMIT_READ)
async def list_users(request: Request, service: UserService = Depends(get_user_service)):
    return await service.find_all()


@router.get("/users/{user_id}", response_model=UserOut)
@conditional_limit(settings.RATE_LIMIT_READ)
async def get_user(user_id: int, request: Request, service: UserService = Depends(get_user_service)):
    return await service.find_one(user_id)


@router.put("/users/{user_id}", response_model=UserOut)
@conditional_limit(settings.RATE_LIMIT_WRITE)
async def update_user(
    user_id: int,
    changes: UserUpdate,
    request: Request,
    service: UserService = Depends(get_user_service),
):
    """Partially update a user; omitted fields are left unchanged.

    Raises:
        404: No active user with this ID
        409: New email already in use
    """
    return await service.update(user_id, changes.changes())


@router.delete("/users/{user_id}", response_model=DeleteResponse)
@conditional_limit(settings.RATE_LIMIT_WRITE)
async def delete_user(user_id: int, request: Request, service: UserService = Depends(get_user_service)):
    await service.remove(user_id)
    return DeleteResponse(
        success=True,
        message=f"User with ID {user_id} has been successfully deleted",
    )
