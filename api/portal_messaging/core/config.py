import logging
from functools import lru_cache

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # API settings
    DEBUG: bool = False
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Portal Messaging"
    LOG_LEVEL: str = "INFO"

    # Environment settings
    ENVIRONMENT: str = "development"

    # CORS settings - accepts string or list, normalized to list[str] by validator
    CORS_ORIGINS: str | list[str] = "http://localhost:3000"

    # Employment service endpoints
    EMPLOYMENT_API_URL: str = "http://localhost:8089"
    EMPLOYMENT_WS_URL: str = "ws://localhost:8089"

    # HTTP client timeouts (seconds)
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_CONNECT_TIMEOUT_SECONDS: float = 3.0

    # Push channel
    PUSH_ENABLED: bool = True
    WS_RECONNECT_INITIAL_DELAY: float = 1.0  # doubled after every failed attempt
    WS_RECONNECT_MAX_DELAY: float = 30.0

    # Outgoing message limits
    MAX_MESSAGE_LENGTH: int = 5000

    # Per-viewer conversation services kept in memory
    MAX_ACTIVE_VIEWERS: int = 500
    VIEWER_IDLE_TTL_SECONDS: float = 1800.0

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {v}")
        return level

    @field_validator("EMPLOYMENT_API_URL")
    @classmethod
    def validate_employment_api_url(cls, v: str) -> str:
        """Normalize the employment service base URL.

        Ensures the URL has a scheme and removes trailing slashes so endpoint
        paths can be appended without producing double slashes.

        Raises:
            ValueError: If EMPLOYMENT_API_URL is empty or not http(s)
        """
        v = v.strip()
        if not v:
            raise ValueError("EMPLOYMENT_API_URL must be non-empty")
        if "://" not in v:
            v = "http://" + v
        if not v.startswith(("http://", "https://")):
            raise ValueError("EMPLOYMENT_API_URL must use http or https")
        return v.rstrip("/")

    @field_validator("EMPLOYMENT_WS_URL")
    @classmethod
    def validate_employment_ws_url(cls, v: str) -> str:
        """Normalize the WebSocket base URL (ws:// or wss://, no trailing slash)."""
        v = v.strip()
        if not v:
            raise ValueError("EMPLOYMENT_WS_URL must be non-empty")
        if "://" not in v:
            v = "ws://" + v
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("EMPLOYMENT_WS_URL must use ws or wss")
        return v.rstrip("/")

    @field_validator(
        "HTTP_TIMEOUT_SECONDS",
        "HTTP_CONNECT_TIMEOUT_SECONDS",
        "WS_RECONNECT_INITIAL_DELAY",
        "WS_RECONNECT_MAX_DELAY",
        "VIEWER_IDLE_TTL_SECONDS",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float, info: ValidationInfo) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("MAX_MESSAGE_LENGTH", "MAX_ACTIVE_VIEWERS")
    @classmethod
    def validate_at_least_one(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Normalize CORS_ORIGINS to list of hosts.

        Accepts either a comma-separated string or a list of strings.
        Handles wildcards, trims whitespace, and ignores empty entries.
        """
        if isinstance(v, list):
            return [
                host.strip() for host in v if isinstance(host, str) and host.strip()
            ]

        if isinstance(v, str):
            if v.strip() == "*":
                return ["*"]
            return [host.strip() for host in v.split(",") if host.strip()]

        # Fallback for unexpected types: fail-closed (deny all origins)
        return []

    @classmethod
    def _is_production(cls, info: ValidationInfo) -> bool:
        raw_env = info.data.get("ENVIRONMENT", "development")
        environment = str(raw_env).strip().lower()
        if environment in {"prod"}:
            environment = "production"
        return environment == "production"

    @field_validator("CORS_ORIGINS")
    @classmethod
    def validate_cors_in_production(cls, v: list[str], info) -> list[str]:
        """Reject wildcard CORS in production environments."""
        if cls._is_production(info) and "*" in v:
            raise ValueError("Wildcard CORS_ORIGINS is not allowed in production")
        return v

    @model_validator(mode="after")
    def validate_reconnect_window(self) -> "Settings":
        if self.WS_RECONNECT_MAX_DELAY < self.WS_RECONNECT_INITIAL_DELAY:
            raise ValueError(
                "WS_RECONNECT_MAX_DELAY must be >= WS_RECONNECT_INITIAL_DELAY"
            )
        return self

    def messages_ws_url(self, participant_id: str) -> str:
        """WebSocket URL delivering new-message events for one participant."""
        return f"{self.EMPLOYMENT_WS_URL}/ws/messages?userId={participant_id}"


# Thread-safe lazy initialization using lru_cache
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings instance with lazy initialization.

    Settings are only created once on first access, then cached for subsequent calls.
    This prevents module-level side effects and allows testing without
    environment variables.

    Returns:
        Settings: Application settings object
    """
    return Settings()


def reset_settings() -> None:
    """Reset the cached settings instance.

    Useful for testing when you need to reload settings with different values.
    """
    get_settings.cache_clear()
