"""Pydantic schemas for request/response validation and serialization."""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from .config import settings
from .utils import normalize_email


# ==================== Error Schemas ====================

class ErrorResponse(BaseModel):
    """Standardized error response with code and message."""
    error: str
    message: str
    details: dict | None = None


class ErrorCode:
    """Centralized error codes for API responses."""
    USER_NOT_FOUND = "USER_NOT_FOUND"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ==================== User Schemas ====================

def _clean_name(v: str) -> str:
    if not v.strip():
        raise ValueError("Name cannot be empty or only whitespace")
    return v.strip()


class UserCreate(BaseModel):
    """Request body for POST /users."""
    name: str = Field(..., min_length=1, max_length=settings.USER_NAME_MAX_LENGTH, description="User's full name")
    email: EmailStr = Field(..., max_length=settings.USER_EMAIL_MAX_LENGTH, description="User's email address")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class UserUpdate(BaseModel):
    """Request body for PUT /users/{id}; omitted fields keep their value."""
    name: str | None = Field(None, min_length=1, max_length=settings.USER_NAME_MAX_LENGTH)
    email: EmailStr | None = Field(None, max_length=settings.USER_EMAIL_MAX_LENGTH)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        return None if v is None else _clean_name(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return None if v is None else normalize_email(v)

    def changes(self) -> dict:
        """Fields the client actually sent with a value."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class UserOut(BaseModel):
    """Active user as returned by the API and stored in the cache."""
    id: int
    name: str
    email: EmailStr
    created_at: datetime
    updated_at: datetime


class DeleteResponse(BaseModel):
    """Confirmation body for DELETE /users/{id}."""
    success: bool
    message: str
