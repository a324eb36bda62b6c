import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Explicitly load .env from project root (parent of app/)
ENV_PATH = Path(__file__).parent.parent / ".env"
load_dotenv(ENV_PATH)

DEV_DB_PATH = Path(__file__).parent.parent / "shortener_dev.db"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, built once at startup and handed to create_app()."""

    api_key: str
    database_url: str = f"sqlite:///{DEV_DB_PATH}"
    environment: str = "dev"
    public_base_url: str | None = None
    host: str = "0.0.0.0"
    port: int = 3000

    db_pool_size: int = 20
    db_max_overflow: int = 0
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800
    db_connect_timeout: int = 10

    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max: int = 100

    short_code_length: int = 6
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        environment = os.getenv("ENVIRONMENT", "dev")

        # Dev: SQLite (zero config), Prod: whatever DATABASE_URL points at
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            if environment == "prod":
                raise RuntimeError("DATABASE_URL must be set in production")
            database_url = f"sqlite:///{DEV_DB_PATH}"

        api_key = (os.getenv("API_KEY") or "").strip()
        if not api_key:
            raise RuntimeError("API_KEY is not set")

        short_code_length = int(os.getenv("SHORT_CODE_LENGTH", 6))
        if not 4 <= short_code_length <= 10:
            raise RuntimeError("SHORT_CODE_LENGTH must be between 4 and 10")

        base_url = os.getenv("PUBLIC_BASE_URL") or os.getenv("BASE_URL") or None

        return cls(
            api_key=api_key,
            database_url=database_url,
            environment=environment,
            public_base_url=base_url.rstrip("/") if base_url else None,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", 3000)),
            db_pool_size=int(os.getenv("DB_POOL_SIZE", 20)),
            db_max_overflow=int(os.getenv("DB_MAX_OVERFLOW", 0)),
            db_pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", 30)),
            db_pool_recycle=int(os.getenv("DB_POOL_RECYCLE", 1800)),
            db_connect_timeout=int(os.getenv("DB_CONNECT_TIMEOUT", 10)),
            rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)),
            rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", 100)),
            short_code_length=short_code_length,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
