"""User service: CRUD over the record store with a read-through, write-invalidate cache.

Cache policy:
  - find_one / find_all read through: a miss loads from the record store and
    populates the per-id key or the collection key with the configured TTL.
  - create / update / remove drop the affected keys before writing, so an
    unreachable cache (fail-closed) rejects the operation before any row
    changes. Afterwards create and update repopulate the per-id key and all
    three drop the keys again.

No locking is done here. Two concurrent updates of the same user are both
read-merge-write sequences and the later save wins (lost update), and
concurrent misses on one key each hit the record store. Store errors
propagate unchanged; nothing is retried.

If the cache drops between the pre-write invalidation and the post-write
repopulate, the write is committed but the call still raises
CacheUnavailableError. The cache holds no entry for the user at that point,
so later reads load the committed row.
"""

from typing import Any

from .config import CacheSettings
from .exceptions import EmailConflictError, UserNotFoundError
from .logger import logger
from .monitoring import record_cache_invalidation, record_cache_lookup
from .cache import make_cache_key
from .schemas import UserOut
from .stores import CacheStore, RecordStore, UserRecord
from .utils import utcnow

UPDATABLE_FIELDS = ("name", "email")


def _convert_to_user_out(user: UserRecord) -> UserOut:
    """Convert a stored user row to the UserOut schema."""
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


class UserService:
    """Create, read, update and soft-delete users."""

    def __init__(self, records: RecordStore, cache: CacheStore, cache_settings: CacheSettings):
        self.records = records
        self.cache = cache
        self.cache_settings = cache_settings

    # ==================== Cache Helpers ====================

    def user_key(self, user_id: int) -> str:
        return make_cache_key(self.cache_settings.user_key_prefix, user_id)

    @property
    def all_users_key(self) -> str:
        return self.cache_settings.all_users_key

    async def _cache_get(self, key: str, key_kind: str) -> Any | None:
        if not self.cache_settings.enabled:
            return None
        value = await self.cache.get(key)
        record_cache_lookup(key_kind, hit=value is not None)
        return value

    async def _cache_set(self, key: str, value: Any) -> None:
        if self.cache_settings.enabled:
            await self.cache.set(key, value, self.cache_settings.ttl_ms)

    async def _cache_user(self, user_out: UserOut) -> None:
        await self._cache_set(self.user_key(user_out.id), user_out.model_dump(mode="json"))

    async def _invalidate(self, user_id: int | None = None) -> None:
        """Drop the collection key and, when given, the per-id key."""
        if not self.cache_settings.enabled:
            return
        if user_id is not None:
            await self.cache.delete(self.user_key(user_id))
            record_cache_invalidation("user")
        await self.cache.delete(self.all_users_key)
        record_cache_invalidation("all_users")

    # ==================== Operations ====================

    async def create(self, name: str, email: str) -> UserOut:
        """Create a user, or restore the soft-deleted user holding this email.

        Raises:
            EmailConflictError: an active user already has this email
        """
        logger.info(f"Creating user: {email}")

        existing = await self.records.find_by_email(email, with_deleted=True)
        if existing is not None and existing.deleted_at is None:
            logger.warning(f"Create rejected - email already in use: {email} (id={existing.id})")
            raise EmailConflictError(email)

        await self._invalidate(existing.id if existing is not None else None)

        try:
            if existing is not None:
                existing.deleted_at = None
                existing.name = name
                existing.email = email
                existing.updated_at = utcnow()
                user = await self.records.save(existing)
                logger.info(f"Restored soft-deleted user: id={user.id} email={user.email}")
            else:
                user = await self.records.insert(name, email)
                logger.info(f"User created: id={user.id} email={user.email}")
        except ValueError as e:
            # Lost a race with a concurrent create of the same email
            logger.warning(f"Create rejected by store - duplicate email: {email}")
            raise EmailConflictError(email) from e

        user_out = _convert_to_user_out(user)
        await self._cache_user(user_out)
        await self._invalidate()
        return user_out

    async def find_all(self) -> list[UserOut]:
        """All active users, served from the collection key when cached."""
        cached = await self._cache_get(self.all_users_key, "all_users")
        if cached is not None:
            logger.debug(f"Cache hit for user list ({len(cached)} users)")
            return [UserOut(**item) for item in cached]

        users = [_convert_to_user_out(u) for u in await self.records.find_all()]
        logger.debug(f"Loaded {len(users)} users from store")
        await self._cache_set(self.all_users_key, [u.model_dump(mode="json") for u in users])
        return users

    async def find_one(self, user_id: int) -> UserOut:
        """Active user by id.

        Raises:
            UserNotFoundError: no active user with this id
        """
        cached = await self._cache_get(self.user_key(user_id), "user")
        if cached is not None:
            logger.debug(f"Cache hit for user: id={user_id}")
            return UserOut(**cached)

        user = await self.records.find_by_id(user_id)
        if user is None:
            logger.warning(f"User not found: id={user_id}")
            raise UserNotFoundError(user_id)

        user_out = _convert_to_user_out(user)
        await self._cache_user(user_out)
        return user_out

    async def update(self, user_id: int, changes: dict[str, Any]) -> UserOut:
        """Merge the given fields onto an active user.

        Only name and email are applied; keys that are missing or None keep
        their stored value.

        Raises:
            UserNotFoundError: no active user with this id
            EmailConflictError: the new email belongs to another user
        """
        user = await self.records.find_by_id(user_id)
        if user is None:
            logger.warning(f"Cannot update - user not found: id={user_id}")
            raise UserNotFoundError(user_id)

        await self._invalidate(user_id)

        updates = {
            field: changes[field]
            for field in UPDATABLE_FIELDS
            if changes.get(field) is not None
        }
        new_email = updates.get("email")
        if new_email is not None and new_email != user.email:
            holder = await self.records.find_by_email(new_email, with_deleted=True)
            if holder is not None and holder.id != user.id:
                logger.warning(
                    f"Update rejected - email already in use: id={user_id} email={new_email}"
                )
                raise EmailConflictError(new_email)

        for field, value in updates.items():
            setattr(user, field, value)
        user.updated_at = utcnow()

        try:
            user = await self.records.save(user)
        except ValueError as e:
            logger.warning(f"Update rejected by store - duplicate email: id={user_id}")
            raise EmailConflictError(new_email or user.email) from e

        logger.info(f"User updated: id={user.id} fields={sorted(updates)}")
        user_out = _convert_to_user_out(user)
        await self._cache_user(user_out)
        # A concurrent miss may have refilled the list during the write
        await self._invalidate()
        return user_out

    async def remove(self, user_id: int) -> None:
        """Soft-delete an active user.

        Raises:
            UserNotFoundError: no active user with this id
        """
        logger.info(f"Removing user: id={user_id}")
        await self._invalidate(user_id)

        affected = await self.records.soft_delete(user_id)
        if affected == 0:
            logger.warning(f"Cannot remove - user not found: id={user_id}")
            raise UserNotFoundError(user_id)

        # A concurrent miss may have refilled either key during the write
        await self._invalidate(user_id)
        logger.info(f"User soft-deleted: id={user_id}")
