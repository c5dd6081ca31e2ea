import time
from typing import Dict, List, Optional
from src.core.interfaces.market_data import IMarketData, resolve_duration
from src.core.entities.market import CoinPrice, NewsArticle, PricePoint

DEFAULT_PRICES = {
    "BTC": 65000.0,
    "ETH": 3200.0,
    "SOL": 150.0,
    "DOGE": 0.15,
    "ARB": 0.9,
}


class LocalMockMarketData(IMarketData):
    """Fixed prices for local development and tests."""

    def __init__(self, prices: Optional[Dict[str, float]] = None, news: Optional[List[NewsArticle]] = None):
        self.prices = dict(DEFAULT_PRICES if prices is None else prices)
        self.news = list(news or [])

    def _coin(self, coin_id: str) -> CoinPrice:
        return CoinPrice(
            id=coin_id, name=coin_id, symbol=coin_id,
            price=self.prices[coin_id], percent_change_24h=0.0
        )

    async def get_top_prices(self, limit: int = 10) -> List[CoinPrice]:
        return [self._coin(c) for c in list(self.prices)[:limit]]

    async def get_prices_for_ids(self, ids: List[str]) -> Dict[str, float]:
        by_upper = {k.upper(): v for k, v in self.prices.items()}
        return {i: by_upper[i.upper()] for i in ids if i.upper() in by_upper}

    async def search(self, query: str) -> List[CoinPrice]:
        if not query:
            return []
        return [self._coin(c) for c in self.prices if query.upper() in c.upper()]

    async def get_price_history(self, coin_id: str, duration: str) -> List[PricePoint]:
        _, lookback_ms = resolve_duration(duration)
        price = (await self.get_prices_for_ids([coin_id])).get(coin_id)
        if price is None:
            return []
        end = int(time.time() * 1000)
        return [PricePoint(time_ms=end - lookback_ms, price=price), PricePoint(time_ms=end, price=price)]

    async def get_news(self, page: int = 1) -> List[NewsArticle]:
        return self.news if page == 1 else []
