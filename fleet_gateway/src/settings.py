"""Settings for the Fleet Gateway server."""

from typing import Any, ClassVar, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables with error handling
try:
    load_dotenv()
except FileNotFoundError:
    # Expected when .env doesn't exist
    pass
except Exception as e:
    # Log unexpected errors but don't fail
    import warnings

    warnings.warn(f"Failed to load .env file: {e}")


class Settings(BaseSettings):
    """Configuration settings for the Fleet Gateway server.

    Uses Pydantic BaseSettings to load and validate configuration from environment variables.
    Provider credentials are optional at load time so the module can be imported without
    them; validate_config() enforces their presence before the server starts.
    """

    # Server Configuration
    HOST: str = Field(
        default="0.0.0.0",
        json_schema_extra={
            "env": "HOST",
            "description": "Host address for the HTTP server",
            "example": "localhost",
        },
    )
    PORT: int = Field(
        default=3000,
        ge=1024,
        le=65535,
        json_schema_extra={
            "env": "PORT",
            "description": "Port number for the HTTP server",
            "example": 3000,
        },
    )

    # Identity Provider Configuration
    FLEET_CLIENT_ID: Optional[str] = Field(
        default=None,
        json_schema_extra={
            "env": "FLEET_CLIENT_ID",
            "description": "OAuth client identifier registered with the identity provider",
            "example": "0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0",
        },
    )

    FLEET_CLIENT_SECRET: Optional[str] = Field(
        default=None,
        json_schema_extra={
            "env": "FLEET_CLIENT_SECRET",
            "description": "OAuth client secret",
            "example": "ta-secret.abc123",
            "sensitive": True,
        },
    )

    FLEET_REDIRECT_URI: Optional[str] = Field(
        default=None,
        json_schema_extra={
            "env": "FLEET_REDIRECT_URI",
            "description": "Redirect URI registered with the identity provider",
            "example": "http://localhost:3000/auth/callback",
        },
    )

    FLEET_AUTH_URL: str = Field(
        default="https://fleet-auth.prd.vn.cloud.tesla.com/oauth2/v3/authorize",
        json_schema_extra={
            "env": "FLEET_AUTH_URL",
            "description": "Authorization endpoint of the identity provider",
            "example": "https://fleet-auth.prd.vn.cloud.tesla.com/oauth2/v3/authorize",
        },
    )

    FLEET_TOKEN_URL: str = Field(
        default="https://fleet-auth.prd.vn.cloud.tesla.com/oauth2/v3/token",
        json_schema_extra={
            "env": "FLEET_TOKEN_URL",
            "description": "Token endpoint of the identity provider",
            "example": "https://fleet-auth.prd.vn.cloud.tesla.com/oauth2/v3/token",
        },
    )

    FLEET_API_URL: str = Field(
        default="https://fleet-api.prd.na.vn.cloud.tesla.com",
        json_schema_extra={
            "env": "FLEET_API_URL",
            "description": "Base URL of the device-control API",
            "example": "https://fleet-api.prd.eu.vn.cloud.tesla.com",
        },
    )

    FLEET_AUDIENCE: Optional[str] = Field(
        default=None,
        json_schema_extra={
            "env": "FLEET_AUDIENCE",
            "description": "Audience sent with the token exchange (defaults to FLEET_API_URL)",
            "example": "https://fleet-api.prd.na.vn.cloud.tesla.com",
        },
    )

    OAUTH_SCOPES: List[str] = Field(
        default=[
            "openid",
            "offline_access",
            "user_data",
            "vehicle_device_data",
            "vehicle_location",
            "vehicle_cmds",
            "vehicle_charging_cmds",
        ],
        json_schema_extra={
            "env": "OAUTH_SCOPES",
            "description": "Scopes requested at login (JSON list)",
            "example": '["openid", "vehicle_device_data"]',
        },
    )

    HTTP_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        json_schema_extra={
            "env": "HTTP_TIMEOUT",
            "description": "Timeout in seconds for calls to the provider and device API",
            "example": 30.0,
        },
    )

    # Session Configuration
    COOKIE_SECURE: bool = Field(
        default=False,
        json_schema_extra={
            "env": "COOKIE_SECURE",
            "description": "Mark cookies as Secure (enable behind HTTPS)",
            "example": True,
        },
    )

    SESSION_COOKIE_MAX_AGE: int = Field(
        default=7 * 24 * 60 * 60,
        ge=0,
        json_schema_extra={
            "env": "SESSION_COOKIE_MAX_AGE",
            "description": "Lifetime of the session_id cookie in seconds",
            "example": 604800,
        },
    )

    STORE_SWEEP_INTERVAL: int = Field(
        default=300,
        ge=0,
        json_schema_extra={
            "env": "STORE_SWEEP_INTERVAL",
            "description": "Seconds between sweeps of expired sessions and login states (0 disables)",
            "example": 300,
        },
    )

    CORS_ALLOW_ORIGINS: List[str] = Field(
        default=["*"],
        json_schema_extra={
            "env": "CORS_ALLOW_ORIGINS",
            "description": "Origins allowed by the CORS middleware (JSON list)",
            "example": '["https://example.com"]',
        },
    )

    # Logging Configuration
    LOGGING_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        json_schema_extra={
            "env": "LOGGING_LEVEL",
            "description": "Logging level for the application",
            "example": "INFO",
        },
    )

    # Accept lower/any-case input from env (e.g., "debug") and normalize
    @field_validator("LOGGING_LEVEL", mode="before")
    @classmethod
    def _normalize_logging_level(cls, v):  # type: ignore[no-untyped-def]
        return v.upper() if isinstance(v, str) else v

    LOGGER_NAME: str = Field(
        default="",
        json_schema_extra={
            "env": "LOGGER_NAME",
            "description": "Name for the logger",
            "example": "fleet-gateway",
        },
    )

    LOG_TO_FILE: bool = Field(
        default=False,
        json_schema_extra={
            "env": "LOG_TO_FILE",
            "description": "Enable logging to file (disable in containers)",
            "example": True,
        },
    )

    model_config: ClassVar[SettingsConfigDict] = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
        # Enable runtime assignment so tests can patch settings fields
        "validate_assignment": True,
        "frozen": False,
    }

    @property
    def audience(self) -> str:
        """Audience for the token exchange."""
        return self.FLEET_AUDIENCE or self.FLEET_API_URL


def validate_config(cfg: Settings) -> None:
    """Validate configuration settings.

    Ensures the identity provider credentials are present and values are within
    acceptable ranges before any traffic is served.

    Args:
        cfg: Settings instance to validate.

    Raises:
        ValueError: If required configuration is missing or invalid.
    """
    missing = [
        name
        for name in ("FLEET_CLIENT_ID", "FLEET_CLIENT_SECRET", "FLEET_REDIRECT_URI")
        if not getattr(cfg, name)
    ]
    if missing:
        raise ValueError(f"Missing required configuration: {', '.join(missing)}")

    if not 1024 <= cfg.PORT <= 65535:
        raise ValueError(f"PORT must be between 1024 and 65535, got {cfg.PORT}")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if cfg.LOGGING_LEVEL.upper() not in valid_log_levels:
        raise ValueError(
            f"LOGGING_LEVEL must be one of {valid_log_levels}, got {cfg.LOGGING_LEVEL}"
        )

    if not cfg.OAUTH_SCOPES:
        raise ValueError("OAUTH_SCOPES must contain at least one scope")


# Create config instance without validation (validation happens in main.py)
settings = Settings()


def get_setting(name: str) -> Any:
    """Return setting value, honoring runtime test patches.

    unittest.mock.patch may set attributes directly on the instance which can
    bypass pydantic's internal field store. Prefer a direct __dict__ lookup
    first, then fall back to normal attribute access.
    """
    if name in settings.__dict__:
        return settings.__dict__[name]
    return getattr(settings, name)
