"""Database CRUD operations for user management."""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from . import db
from .models import User
from .logger import logger
from .utils import utcnow


def _visible(stmt, with_deleted: bool):
    """Restrict a User select to active rows unless with_deleted is set."""
    if with_deleted:
        return stmt
    return stmt.where(User.deleted_at.is_(None))


class SqlUserStore:
    """Record store backed by the users table.

    Each call opens its own session from db.async_session and commits its
    own transaction; rows come back detached (expire_on_commit=False).
    """

    # ==================== Reads ====================

    async def find_by_email(self, email: str, with_deleted: bool = False) -> User | None:
        """Retrieve a user by email address."""
        async with db.async_session() as session:
            stmt = _visible(select(User).where(User.email == email), with_deleted)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def find_by_id(self, user_id: int, with_deleted: bool = False) -> User | None:
        """Retrieve a user by ID."""
        async with db.async_session() as session:
            stmt = _visible(select(User).where(User.id == user_id), with_deleted)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def find_all(self, with_deleted: bool = False) -> list[User]:
        """All users ordered by id, active only by default."""
        async with db.async_session() as session:
            result = await session.execute(_visible(select(User), with_deleted).order_by(User.id))
            users = list(result.scalars().all())
            logger.debug(f"Query executed: returned {len(users)} users (with_deleted={with_deleted})")
            return users

    # ==================== Writes ====================

    async def insert(self, name: str, email: str) -> User:
        """Insert a new user. Raises ValueError on duplicate email."""
        async with db.async_session() as session:
            try:
                async with session.begin():
                    user = User(name=name, email=email)
                    session.add(user)
                await session.refresh(user)
                return user
            except IntegrityError as e:
                await session.rollback()
                logger.debug(f"Duplicate email rejected on insert: {email}")
                raise ValueError("duplicate email") from e

    async def save(self, user: User) -> User:
        """Write all fields of an existing (detached) user. Raises ValueError on duplicate email."""
        async with db.async_session() as session:
            try:
                async with session.begin():
                    merged = await session.merge(user)
                await session.refresh(merged)
                return merged
            except IntegrityError as e:
                await session.rollback()
                logger.debug(f"Duplicate email rejected on save: id={user.id} email={user.email}")
                raise ValueError("duplicate email") from e

    async def soft_delete(self, user_id: int) -> int:
        """Set deleted_at on the active row with this id. Returns affected row count."""
        return await self._set_deleted_at(
            user_id, utcnow(), User.deleted_at.is_(None), action="soft delete"
        )

    async def restore(self, user_id: int) -> int:
        """Clear deleted_at on the soft-deleted row with this id. Returns affected row count."""
        return await self._set_deleted_at(
            user_id, None, User.deleted_at.is_not(None), action="restore"
        )

    async def _set_deleted_at(self, user_id: int, value, condition, action: str) -> int:
        async with db.async_session() as session:
            try:
                async with session.begin():
                    result = await session.execute(
                        update(User)
                        .where(User.id == user_id, condition)
                        .values(deleted_at=value, updated_at=utcnow())
                    )
                logger.debug(f"{action}: id={user_id} affected={result.rowcount}")
                return result.rowcount
            except Exception:
                logger.error(f"Failed to {action} user id={user_id}", exc_info=True)
                raise
