"""
Market data entities returned by the market data gateways.
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional


class CoinPrice(BaseModel):
    id: str
    name: str
    symbol: str
    price: Optional[float] = None
    percent_change_24h: Optional[float] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "BTC",
            "name": "BTC",
            "symbol": "BTC",
            "price": 65000.0,
            "percent_change_24h": 1.25
        }
    })


class PricePoint(BaseModel):
    time_ms: int
    price: float


class NewsArticle(BaseModel):
    title: str
    link: str
    source: str
    date: int
    image: str = ""
