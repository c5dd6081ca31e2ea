import threading
from typing import Dict, List, Optional
from src.core.interfaces.datasource import ILedgerStore
from src.core.entities.trade import Trade
from src.core.entities.wallet import Wallet
from src.core.errors import InsufficientFundsError, StorageError, UniqueConstraintViolation


class InMemoryLedgerStore(ILedgerStore):
    """
    Process-local store for development and tests.
    Same contract as PostgresRepo; mutations are serialized with a lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._wallets: Dict[str, Wallet] = {}
        self._trades: List[Trade] = []
        self._next_seq = 1

    def _name_taken(self, display_name: str, user_id: Optional[str] = None) -> bool:
        return any(
            w.display_name == display_name and w.user_id != user_id
            for w in self._wallets.values()
        )

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        wallet = self._wallets.get(user_id)
        return wallet.model_copy() if wallet else None

    async def insert_wallet(self, wallet: Wallet) -> Wallet:
        with self._lock:
            if wallet.user_id in self._wallets or self._name_taken(wallet.display_name):
                raise UniqueConstraintViolation()
            self._wallets[wallet.user_id] = wallet.model_copy()
        return wallet.model_copy()

    async def upsert_profile(
        self,
        user_id: str,
        display_name: str,
        preferred_name: str,
        starting_balance: float
    ) -> Wallet:
        with self._lock:
            if self._name_taken(display_name, user_id):
                raise UniqueConstraintViolation()
            existing = self._wallets.get(user_id)
            wallet = Wallet(
                user_id=user_id,
                display_name=display_name,
                preferred_name=preferred_name,
                cash_balance=existing.cash_balance if existing else starting_balance
            )
            self._wallets[user_id] = wallet
        return wallet.model_copy()

    async def display_name_exists(self, display_name: str) -> bool:
        return self._name_taken(display_name)

    async def apply_trade(self, trade: Trade, cash_change: float) -> Trade:
        with self._lock:
            wallet = self._wallets.get(trade.user_id)
            available = wallet.cash_balance if wallet else 0.0
            new_balance = available + cash_change

            if new_balance < 0:
                raise InsufficientFundsError(required=abs(cash_change), available=available)
            if wallet is None:
                raise StorageError(f"No wallet found for {trade.user_id}.")

            saved = trade.model_copy(update={"seq": self._next_seq})
            self._next_seq += 1
            wallet.cash_balance = new_balance
            self._trades.append(saved)
        return saved.model_copy()

    async def get_trades(self, user_id: str) -> List[Trade]:
        return [t.model_copy() for t in self._trades if t.user_id == user_id]

    async def list_wallets(self, limit: Optional[int] = None) -> List[Wallet]:
        wallets = sorted(self._wallets.values(), key=lambda w: (-w.cash_balance, w.user_id))
        if limit:
            wallets = wallets[:limit]
        return [w.model_copy() for w in wallets]
