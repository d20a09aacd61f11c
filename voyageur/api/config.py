"""
Configuration settings for FastAPI application.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from config.settings import supabase_config

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
]


class FastAPISettings(BaseSettings):
    """FastAPI application settings with environment variable loading."""

    # Application settings
    app_name: str = Field(default="Voyageur Nest API", description="Application name")
    app_description: str = Field(
        default="Bookings, expenses, analytics and OTA calendar sync for Voyageur Nest properties",
        description="Application description"
    )
    app_version: str = Field(default="1.0.0", description="Application version")

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8001, description="Server port")
    environment: str = Field(default="development", description="Environment (development, staging, production)")

    # API settings
    api_version: str = Field(default="v1", description="API version")
    api_prefix: str = Field(default="/api", description="API prefix")

    # Security settings
    cors_origins: Optional[list[str]] = Field(
        default=None,
        description="Allowed CORS origins",
        validation_alias="CORS_ORIGINS",
        validate_default=True
    )
    jwt_secret: str = Field(
        default="",
        description="Secret used to verify Supabase-issued access tokens",
        validation_alias="SUPABASE_JWT_SECRET"
    )
    auth_enabled: bool = Field(default=True, description="Require a bearer token on protected routes")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Supabase configuration (from existing config)
    supabase_url: str = Field(default_factory=lambda: supabase_config.url or "", description="Supabase project URL")
    supabase_anon_key: str = Field(default_factory=lambda: supabase_config.anon_key or "", description="Supabase anonymous key")
    supabase_service_role_key: Optional[str] = Field(
        default_factory=lambda: supabase_config.service_role_key or None,
        description="Supabase service role key"
    )

    # Performance settings
    cache_ttl_seconds: int = Field(default=300, description="Cache TTL in seconds")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from a comma-separated environment variable."""
        if v is None or v == "":
            return list(DEFAULT_CORS_ORIGINS)
        if isinstance(v, str):
            origins = [origin.strip().rstrip("/") for origin in v.split(',') if origin.strip()]
            return origins or list(DEFAULT_CORS_ORIGINS)
        return v

    @property
    def supabase_auth_key(self) -> str:
        """Get the appropriate Supabase authentication key."""
        return self.supabase_service_role_key or self.supabase_anon_key


# Global settings instance
settings = FastAPISettings()
