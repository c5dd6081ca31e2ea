import asyncio
import logging
import time
from typing import Dict, List, Optional

import httpx
from hyperliquid.info import Info
from hyperliquid.utils import constants

from src.core.interfaces.market_data import IMarketData, resolve_duration
from src.core.entities.market import CoinPrice, NewsArticle, PricePoint

logger = logging.getLogger(__name__)

SEARCH_RESULT_LIMIT = 10


class HLPublicGateway(IMarketData):
    """
    Market data from the Hyperliquid Public Info API.
    Uses the official Python SDK wrapped in asyncio threads for non-blocking execution.
    Coin ids are Hyperliquid coin names (e.g. "BTC"), matched case-insensitively.
    News is not served by Hyperliquid and comes from `news_url` over HTTP.
    """

    def __init__(self, use_testnet: bool = False, news_url: Optional[str] = None, timeout: float = 10.0):
        """
        :param use_testnet: Boolean to toggle between Mainnet and Testnet.
        :param news_url: Base URL of the news proxy; news is empty when unset.
        """
        api_url = constants.TESTNET_API_URL if use_testnet else constants.MAINNET_API_URL

        # REST only; no background WS threads for a request/response service
        self.info = Info(base_url=api_url, skip_ws=True)
        self.news_url = news_url.rstrip("/") if news_url else None
        self.timeout = timeout
        logger.info(f"HLPublicGateway initialized. URL: {api_url}")

    async def _post(self, payload: dict):
        # The SDK is synchronous, so we run it in a separate thread to stay async
        return await asyncio.to_thread(self.info.post, "/info", payload)

    async def _asset_contexts(self) -> List[CoinPrice]:
        meta, ctxs = await self._post({"type": "metaAndAssetCtxs"})
        coins = []
        for asset, ctx in zip(meta.get("universe", []), ctxs):
            try:
                name = asset["name"]
                price = float(ctx.get("midPx") or ctx.get("markPx") or 0)
                prev = float(ctx.get("prevDayPx") or 0)
                change = ((price - prev) / prev) * 100 if prev > 0 else None
                coin = CoinPrice(id=name, name=name, symbol=name, price=price, percent_change_24h=change)
                # Volume is only used for ranking
                coins.append((float(ctx.get("dayNtlVlm") or 0), coin))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed asset context: {e}")
                continue
        coins.sort(key=lambda c: c[0], reverse=True)
        return [c for _, c in coins]

    async def get_top_prices(self, limit: int = 10) -> List[CoinPrice]:
        try:
            return (await self._asset_contexts())[:limit]
        except Exception as e:
            logger.error(f"Failed to fetch prices: {e}")
            return []

    async def get_prices_for_ids(self, ids: List[str]) -> Dict[str, float]:
        if not ids:
            return {}
        try:
            mids = await self._post({"type": "allMids"})
        except Exception as e:
            logger.error(f"Failed to fetch prices by ids: {e}")
            return {}

        by_upper = {k.upper(): v for k, v in mids.items()}
        prices = {}
        for coin_id in ids:
            px = by_upper.get(coin_id.upper())
            if px is not None:
                prices[coin_id] = float(px)
        return prices

    async def search(self, query: str) -> List[CoinPrice]:
        if not query:
            return []
        try:
            coins = await self._asset_contexts()
        except Exception as e:
            logger.error(f"Failed to search for '{query}': {e}")
            return []

        q = query.upper()
        # Exact matches first, then prefix, then substring
        matches = [c for c in coins if q in c.id.upper()]
        matches.sort(key=lambda c: (c.id.upper() != q, not c.id.upper().startswith(q)))
        return matches[:SEARCH_RESULT_LIMIT]

    async def get_price_history(self, coin_id: str, duration: str) -> List[PricePoint]:
        interval, lookback_ms = resolve_duration(duration)
        end = int(time.time() * 1000)
        payload = {
            "type": "candleSnapshot",
            "req": {
                "coin": coin_id.upper(),
                "interval": interval,
                "startTime": end - lookback_ms,
                "endTime": end
            }
        }

        try:
            candles = await self._post(payload)
        except Exception as e:
            logger.error(f"Failed to fetch price history for {coin_id}: {e}")
            return []

        points = []
        for candle in candles:
            try:
                points.append(PricePoint(time_ms=int(candle["t"]), price=float(candle["c"])))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed candle: {e}")
        points.sort(key=lambda p: p.time_ms)
        return points

    async def get_news(self, page: int = 1) -> List[NewsArticle]:
        if not self.news_url:
            return []
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.news_url}/api/crypto/news", params={"page": page})
                resp.raise_for_status()
                raw = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch news page {page}: {e}")
            return []

        articles = []
        for item in raw:
            try:
                articles.append(NewsArticle(**item))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed news article: {e}")
        return articles
