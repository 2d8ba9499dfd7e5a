"""Runtime configuration for the app (loaded from the environment, swappable in tests)."""
import os
from typing import NamedTuple

from dotenv import load_dotenv

load_dotenv()


class Settings(NamedTuple):
    database_url: str
    jwt_secret: str
    token_ttl_seconds: int
    geocoder_url: str
    geocoder_user_agent: str
    geocoder_timeout: float
    default_latitude: float
    default_longitude: float
    log_level: str
    session_cookie: str


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./artisan_market.db"),
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        token_ttl_seconds=int(os.getenv("TOKEN_TTL_SECONDS", str(60 * 60 * 24))),
        geocoder_url=os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org/search"),
        geocoder_user_agent=os.getenv("GEOCODER_USER_AGENT", "artisan-market/0.1"),
        geocoder_timeout=float(os.getenv("GEOCODER_TIMEOUT", "10")),
        # New York City
        default_latitude=float(os.getenv("DEFAULT_LATITUDE", "40.7128")),
        default_longitude=float(os.getenv("DEFAULT_LONGITUDE", "-74.0060")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        session_cookie=os.getenv("SESSION_COOKIE", "artisan_session"),
    )


state = load_settings()


def get_settings() -> Settings:
    return state


def configure(**overrides) -> Settings:
    global state
    state = state._replace(**overrides)
    return state
