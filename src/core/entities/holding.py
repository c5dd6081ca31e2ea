from pydantic import BaseModel
from typing import List


class Holding(BaseModel):
    """
    Derived snapshot of one asset, recomputed from trade history.
    """
    coin_id: str
    coin_symbol: str
    quantity: float = 0.0
    cost_basis: float = 0.0


class EnrichedHolding(Holding):
    current_price: float = 0.0
    current_value: float = 0.0
    net_profit: float = 0.0
    pnl_percent: float = 0.0


class PortfolioSummary(BaseModel):
    user_id: str
    cash_balance: float
    total_value: float
    total_cost_basis: float
    total_profit: float
    net_worth: float
    holdings: List[EnrichedHolding]
