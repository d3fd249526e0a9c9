"""SQLAlchemy ORM models for database tables."""

from datetime import timezone

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator
from .db import Base
from .config import settings
from .utils import utcnow


class UTCDateTime(TypeDecorator):
    """DateTime(timezone=True) that always loads as aware UTC.

    PostgreSQL returns timestamptz values with an offset; SQLite stores
    them without one, so naive values read back are tagged as UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class User(Base):
    """User row; deleted_at set means soft-deleted."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(settings.USER_NAME_MAX_LENGTH), nullable=False)
    # Unique across soft-deleted rows too: recreating a removed email restores the old row
    email = Column(String(settings.USER_EMAIL_MAX_LENGTH), nullable=False, unique=True, index=True)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    deleted_at = Column(UTCDateTime(timezone=True), nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} deleted={self.is_deleted}>"
