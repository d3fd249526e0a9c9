"""FastAPI dependencies wiring the user service to its stores."""

from functools import lru_cache

from .cache import cache_manager
from .config import settings
from .crud import SqlUserStore
from .services import UserService


@lru_cache
def get_user_service() -> UserService:
    """Process-wide UserService over the SQL store and the shared Redis cache.

    Tests replace this through app.dependency_overrides.
    """
    return UserService(
        records=SqlUserStore(),
        cache=cache_manager,
        cache_settings=settings.cache_settings(),
    )
