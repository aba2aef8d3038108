from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_URL: str = "sqlite:///./dev.db"
    # Bounded pool shared by request handlers and refresh runs
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 0

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    COUNTRY_API: str = "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
    EXCHANGE_API: str = "https://open.er-api.com/v6/latest/USD"
    FETCH_TIMEOUT_SECONDS: float = 10.0

    # Stored count at which the dataset is considered complete and refresh is skipped
    REFRESH_COMPLETE_THRESHOLD: int = 250
    SUMMARY_TOP_N: int = 5

    # Logging configuration used by country_gdp.logging
    LOG_LEVEL: str = "INFO"
    CONSOLE_LOG_LEVEL: str = "INFO"

    # Base directory of the project
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    CACHE_DIR: Path | None = None

    # Rate limiting / Redis configuration
    # If REDIS_URL is not provided, rate limiting is disabled.
    REDIS_URL: str | None = None
    RATE_LIMIT_DEFAULT_TIMES: int = 60
    RATE_LIMIT_DEFAULT_SECONDS: int = 60
    RATE_LIMIT_REFRESH_TIMES: int = 10
    RATE_LIMIT_REFRESH_SECONDS: int = 60
    RATE_LIMIT_IMAGE_TIMES: int = 30
    RATE_LIMIT_IMAGE_SECONDS: int = 60

    @property
    def cache_dir(self) -> Path:
        return Path(self.CACHE_DIR) if self.CACHE_DIR else self.BASE_DIR / "cache"

    @property
    def summary_image_path(self) -> Path:
        return self.cache_dir / "summary.png"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
