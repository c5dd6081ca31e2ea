from pydantic import BaseModel
from typing import Optional


class Wallet(BaseModel):
    """
    A user's simulated cash balance and profile identity.
    `display_name` is the normalized (lowercase) unique form,
    `preferred_name` the form shown to other users.
    """
    user_id: str
    display_name: str
    preferred_name: Optional[str] = None
    cash_balance: float


class ProfileCreateRequest(BaseModel):
    preferred_name: str


class NameAvailability(BaseModel):
    name: str
    available: bool
