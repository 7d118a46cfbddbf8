"""Pydantic schemas for the authenticated identity."""
from pydantic import BaseModel


class AuthUser(BaseModel):
    """The signed-in user as reported by the auth provider."""

    id: str
    email: str | None = None


class AuthSession(BaseModel):
    """Tokens and identity of a provider-issued session."""

    access_token: str
    refresh_token: str
    user: AuthUser
    # Unix time the access token stops being accepted
    expires_at: int | None = None
