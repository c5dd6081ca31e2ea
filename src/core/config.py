from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = None

    STARTING_BALANCE: float = 10000.0
    ORPHAN_SELL_POLICY: Literal["ignore", "reject"] = "ignore"

    LEADERBOARD_SIZE: int = 10
    LEADERBOARD_SCAN_LIMIT: int = 1000
    LEADERBOARD_CACHE_TTL: int = 30

    MARKET_DATA_MODE: Literal["hyperliquid", "mock"] = "hyperliquid"
    HL_USE_TESTNET: bool = False
    NEWS_API_URL: Optional[str] = None

    USER_ID_HEADER: str = "X-User-Id"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
