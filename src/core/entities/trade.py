from pydantic import BaseModel, Field, FiniteFloat
from typing import Literal, Optional

TradeType = Literal["BUY", "SELL"]


class TradeRequest(BaseModel):
    """
    Trade as submitted by a caller, before the store assigns an owner
    and an ordering key.
    """
    coin_id: str
    coin_symbol: str
    type: TradeType
    fiat_amount: FiniteFloat
    crypto_amount: FiniteFloat
    execution_price: FiniteFloat


class Trade(TradeRequest):
    """
    Immutable, append-only trade record.
    `seq` is assigned by the store and is strictly increasing per store,
    so replaying in `seq` order is replaying in execution order.
    """
    user_id: str
    seq: Optional[int] = None
    created_at_ms: Optional[int] = None


class BuyRequest(BaseModel):
    coin_id: str
    coin_symbol: str
    current_price: FiniteFloat
    amount: Optional[FiniteFloat] = Field(None, description="Units of the asset to buy")
    fiat_amount: Optional[FiniteFloat] = Field(None, description="USD to spend instead of `amount`")


class SellRequest(BaseModel):
    coin_id: str
    coin_symbol: str
    amount: FiniteFloat
    current_price: FiniteFloat


class ActionResult(BaseModel):
    success: bool = False
    error: Optional[str] = None
