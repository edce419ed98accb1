"""
tourney/config/settings.py
Runtime settings loaded from the environment (.env supported).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


def get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return float(value)


class Settings:
    """
    Engine and service settings.

    Scheduling constants keep generated dates deterministic: every match is
    pinned to MATCH_HOUR regardless of wall-clock time.
    """

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./tourney.db")

    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = get_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 30)

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = get_int_env("PORT", 8000)

    # Scheduling
    MATCH_HOUR: int = get_int_env("MATCH_HOUR", 18)
    DEFAULT_WINDOW_DAYS: int = get_int_env("DEFAULT_WINDOW_DAYS", 7)
    HYBRID_LEAGUE_SHARE: float = get_float_env("HYBRID_LEAGUE_SHARE", 0.8)
    BRACKET_INTERVAL_MINUTES: int = get_int_env("BRACKET_INTERVAL_MINUTES", 60)

    # Listing
    PAGE_SIZE: int = get_int_env("PAGE_SIZE", 10)


settings = Settings()
