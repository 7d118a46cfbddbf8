"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Supabase project - not validated here, a missing value fails in the client
    supabase_url: str = Field(default="", validation_alias="SUPABASE_URL")
    supabase_anon_key: str = Field(default="", validation_alias="SUPABASE_ANON_KEY")

    # Public origin used to build the OAuth callback URL. Empty means "use the
    # origin of the incoming request".
    site_url: str = Field(default="", validation_alias="SITE_URL")
    oauth_provider: str = Field(default="google", validation_alias="OAUTH_PROVIDER")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:8000",
        validation_alias="CORS_ORIGINS",
    )

    # Auth cookies are always HttpOnly; Secure is opt-in so plain-http dev works
    cookie_secure: bool = Field(default=False, validation_alias="COOKIE_SECURE")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def platform_configured(self) -> bool:
        """Whether both Supabase values are present."""
        return bool(self.supabase_url and self.supabase_anon_key)

    def callback_url(self, request_origin: str) -> str:
        """
        Build the absolute OAuth callback URL.

        Args:
            request_origin: Origin of the current request, used when SITE_URL is unset.
        """
        origin = (self.site_url or request_origin).rstrip("/")
        return f"{origin}/auth/callback"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
