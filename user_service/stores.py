"""Storage contracts the user service depends on.

SqlUserStore (crud.py) and CacheManager (cache.py) are the production
implementations; the test suite substitutes in-memory fakes.
"""

from datetime import datetime
from typing import Any, Protocol, Sequence


class UserRecord(Protocol):
    """Attributes the service reads and writes on a stored user row."""
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None


class RecordStore(Protocol):
    """Durable user storage with soft-delete support."""

    async def find_by_email(self, email: str, with_deleted: bool = False) -> UserRecord | None: ...

    async def find_by_id(self, user_id: int, with_deleted: bool = False) -> UserRecord | None: ...

    async def find_all(self, with_deleted: bool = False) -> Sequence[UserRecord]: ...

    async def insert(self, name: str, email: str) -> UserRecord:
        """Persist a new row. Raises ValueError on a duplicate email."""
        ...

    async def save(self, user: UserRecord) -> UserRecord:
        """Write every field of an existing row. Raises ValueError on a duplicate email."""
        ...

    async def soft_delete(self, user_id: int) -> int:
        """Mark the active row deleted; returns the number of rows affected."""
        ...

    async def restore(self, user_id: int) -> int:
        """Clear deleted_at on a soft-deleted row; returns the number of rows affected."""
        ...


class CacheStore(Protocol):
    """Key-value store with per-key TTL. None from get() means a miss."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_ms: int) -> bool: ...

    async def delete(self, key: str) -> bool: ...
