from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    username: str
    cash_balance: float


class UserRank(BaseModel):
    rank: int
    cash_balance: float
