"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.shared.types import StopActionMode


class Settings(BaseSettings):
    """Central configuration for the Booker order engine.

    Args loaded from .env file and environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Booker API
    booker_api_domain: str = "api-rc.taxicaller.net"
    booker_api_key: str = ""
    booker_subject: str = "*"
    booker_company_id: int = 0
    booker_provider_id: int = 0
    booker_request_timeout_seconds: float = 30.0

    # Bearer token lifetime
    token_safety_margin_seconds: int = 60
    token_default_ttl_seconds: int = 840

    # Normalization
    default_country_code: str = "+44"
    fallback_lat: float = 49.21
    fallback_lng: float = -2.13

    # Route graph marker for intermediate stops
    stop_action_mode: StopActionMode = StopActionMode.WAYPOINT

    # Runtime
    environment: str = "development"
    mock_booking: bool = False
    return_trip_in_background: bool = False

    # CORS
    cors_allowed_origins: list[str] = [
        "http://localhost:3000",
    ]

    @property
    def booker_base_url(self) -> str:
        """Base URL for Booker order endpoints."""
        return f"https://{self.booker_api_domain}/api/v1/booker"

    @property
    def token_url(self) -> str:
        """Token issuance endpoint for the long-lived API key."""
        return f"https://{self.booker_api_domain}/api/v1/jwt/for-key"

    @property
    def effective_provider_id(self) -> int:
        """Provider id sent with orders.

        Falls back to the company id when no provider is configured.
        """
        return self.booker_provider_id or self.booker_company_id

    @property
    def expose_upstream_details(self) -> bool:
        """Whether raw upstream payloads may be attached to errors."""
        return self.environment.lower() != "production"


def get_settings() -> Settings:
    """Return a Settings instance.

    Returns:
        Application settings loaded from env.
    """
    return Settings()
