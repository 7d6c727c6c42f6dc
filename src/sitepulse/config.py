"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    database_url: str = "sqlite+aiosqlite:///./sitepulse.db"
    api_host: str = "0.0.0.0"
    api_port: int = 8787
    environment: str = "development"

    # Origins allowed to call the dashboard API (stats, sites, live)
    cors_origins: str = "*"

    # Tracking endpoint settings
    track_allowed_origins: str = "*"
    visitor_cookie_name: str = "visitor_id"
    visitor_cookie_max_age: int = 365 * 24 * 60 * 60
    visitor_cookie_secure: bool = False

    # Geo enrichment headers set by the edge proxy
    geo_country_header: str = "cf-ipcountry"
    geo_latitude_header: str = "cf-iplatitude"
    geo_longitude_header: str = "cf-iplongitude"

    # Aggregation settings
    top_n_limit: int = 10

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_production(self) -> None:
        """Raise if running in production with a wildcard dashboard origin."""
        if self.environment == "production" and "*" in self.dashboard_origins():
            raise RuntimeError(
                "CORS_ORIGINS must list the dashboard origins explicitly in production."
            )

    def dashboard_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def tracking_origins(self) -> list[str]:
        return [o.strip() for o in self.track_allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
