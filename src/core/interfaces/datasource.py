from abc import ABC, abstractmethod
from typing import List, Optional
from src.core.entities.trade import Trade
from src.core.entities.wallet import Wallet

class ILedgerStore(ABC):
    @abstractmethod
    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        pass

    @abstractmethod
    async def insert_wallet(self, wallet: Wallet) -> Wallet:
        """
        Raises UniqueConstraintViolation when the user_id or display_name
        is already taken.
        """
        pass

    @abstractmethod
    async def upsert_profile(
        self,
        user_id: str,
        display_name: str,
        preferred_name: str,
        starting_balance: float
    ) -> Wallet:
        """
        Creates the profile, or renames an existing one keeping its balance.
        """
        pass

    @abstractmethod
    async def display_name_exists(self, display_name: str) -> bool:
        pass

    @abstractmethod
    async def apply_trade(self, trade: Trade, cash_change: float) -> Trade:
        """
        Applies `cash_change` to the wallet and appends `trade` as one unit.
        Raises InsufficientFundsError (nothing written) when the balance
        would go negative. Returns the trade with `seq` assigned.
        """
        pass

    @abstractmethod
    async def get_trades(self, user_id: str) -> List[Trade]:
        """
        Returns the user's trades ordered by `seq` ascending.
        """
        pass

    @abstractmethod
    async def list_wallets(self, limit: Optional[int] = None) -> List[Wallet]:
        """
        Returns wallets ordered by cash_balance descending, ties by user_id.
        """
        pass
