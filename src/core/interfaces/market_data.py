from abc import ABC, abstractmethod
from typing import Dict, List
from src.core.entities.market import CoinPrice, NewsArticle, PricePoint

# duration -> (candle interval, lookback in ms)
HISTORY_DURATIONS = {
    "1d": ("15m", 24 * 60 * 60 * 1000),
    "7d": ("1h", 7 * 24 * 60 * 60 * 1000),
    "30d": ("4h", 30 * 24 * 60 * 60 * 1000),
    "90d": ("1d", 90 * 24 * 60 * 60 * 1000),
    "1y": ("1d", 365 * 24 * 60 * 60 * 1000),
}


def resolve_duration(duration: str):
    try:
        return HISTORY_DURATIONS[duration.lower()]
    except KeyError:
        raise ValueError(
            f"Unsupported duration '{duration}'. Use one of: {', '.join(HISTORY_DURATIONS)}"
        )


class IMarketData(ABC):
    """
    Best-effort market data. Implementations log failures and return
    empty results instead of raising, except for invalid arguments.
    """

    @abstractmethod
    async def get_top_prices(self, limit: int = 10) -> List[CoinPrice]:
        pass

    @abstractmethod
    async def get_prices_for_ids(self, ids: List[str]) -> Dict[str, float]:
        """
        Keys are the ids exactly as passed in; unknown ids are omitted.
        """
        pass

    @abstractmethod
    async def search(self, query: str) -> List[CoinPrice]:
        pass

    @abstractmethod
    async def get_price_history(self, coin_id: str, duration: str) -> List[PricePoint]:
        pass

    @abstractmethod
    async def get_news(self, page: int = 1) -> List[NewsArticle]:
        pass
