"""Pydantic schemas for bookmark records."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

URL_SCHEMES = ("http://", "https://")


def normalize_url(url: str) -> str:
    """
    Trim a user-entered URL and prefix https:// when no scheme is present.

    Only http:// and https:// count as a scheme; anything else (including
    "example.com" or "ftp.example.com") gets the prefix.
    """
    url = url.strip()
    if not url.startswith(URL_SCHEMES):
        url = "https://" + url
    return url


class BookmarkCreate(BaseModel):
    """Schema for creating a new bookmark."""

    title: str
    url: str

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        """Trim title and reject empty values."""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """Reject empty values and normalize the scheme."""
        if not v.strip():
            raise ValueError("URL cannot be empty")
        return normalize_url(v)


class Bookmark(BaseModel):
    """A bookmark row as stored by the platform."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    url: str
    user_id: str
    created_at: datetime

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: object) -> object:
        """Identifiers may arrive as ints or UUIDs depending on the column type."""
        if isinstance(v, int | UUID):
            return str(v)
        return v
