"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. The remote reporting API token is the only secret and
is injected via environment — never hard-coded.

To extend: add new fields here and document them in .env.example.
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── CORS ──────────────────────────────────────────────────────
    # Comma-separated allowed origins for the admin console front-end.
    cors_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    # ─── Remote reporting API ──────────────────────────────────────
    api_base_url: str = "https://react-gpsapi.vercel.app/api"
    # Used when the incoming request carries no bearer token.
    # Leave empty in production so every admin uses their own session.
    api_token: str = ""
    api_timeout_seconds: float = 10.0
    incident_fetch_limit: int = 500

    # ─── Console sessions ──────────────────────────────────────────
    # One predictions view (and map) per admin browser; least recently
    # used sessions beyond this are closed.
    max_console_sessions: int = 50

    # ─── Map rendering (Leaflet via folium) ────────────────────────
    leaflet_script_url: str = "https://unpkg.com/leaflet@1.7.1/dist/leaflet.js"
    leaflet_stylesheet_url: str = "https://unpkg.com/leaflet@1.7.1/dist/leaflet.css"
    asset_timeout_seconds: float = 10.0

    standard_tiles_url: str = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
    standard_tiles_attribution: str = "&copy; OpenStreetMap contributors"
    satellite_tiles_url: str = (
        "https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}"
    )
    satellite_tiles_attribution: str = "Imagery &copy; Esri"

    # Delays let the hosting layout settle before the map is touched.
    map_init_delay_seconds: float = 0.3
    map_fit_delay_seconds: float = 0.2

    # ─── Geocoding / geolocation ───────────────────────────────────
    # Nominatim usage policy: identify the application, max 1 req/s.
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "RoadwatchConsole/0.1 (admin console; contact: admin@example.com)"
    ip_geolocation_url: str = "https://ipapi.co/json/"
    geolocation_timeout_seconds: float = 5.0
    geocoder_timeout_seconds: float = 10.0

    # IANA zone used for peak-hour bucketing and popups; empty = server local time
    display_timezone: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton: import this everywhere instead of instantiating Settings()
settings = Settings()
