import hashlib
import logging
import math
import time
from typing import List, Optional

from src.core.interfaces.datasource import ILedgerStore
from src.core.interfaces.market_data import IMarketData
from src.core.entities.trade import Trade, TradeRequest, ActionResult
from src.core.entities.wallet import Wallet
from src.core.entities.holding import Holding, PortfolioSummary
from src.core.entities.leaderboard import LeaderboardEntry, UserRank
from src.core.errors import (
    LedgerError,
    InvalidTradeError,
    InvalidDisplayNameError,
    InsufficientHoldingsError,
    UniqueConstraintViolation,
)
from src.core.use_cases.holdings_reconstructor import (
    HoldingsReconstructor,
    COMPUTATION_EPSILON,
    ORPHAN_SELL_IGNORE,
    ORPHAN_SELL_REJECT,
)
from src.core.use_cases.pnl_calculator import summarize_portfolio
from src.infrastructure.cache.redis_service import RedisService

logger = logging.getLogger(__name__)

DEFAULT_STARTING_BALANCE = 10000.00
LEADERBOARD_CACHE_KEY = "leaderboard:ranked"
MIN_DISPLAY_NAME_LENGTH = 3


def placeholder_display_name(user_id: str, qualified: bool = False) -> str:
    """
    Name given to a wallet before its owner picks one. The qualified form
    appends a digest of the full id, for ids that share their first 8 chars.
    """
    if qualified:
        digest = hashlib.sha1(user_id.encode("utf-8")).hexdigest()[:10]
        return f"User-{user_id[:8]}-{digest}"
    return f"User-{user_id[:8]}"


def _all_finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


# --- Business Logic Services ---

class LedgerService:
    def __init__(
        self,
        store: ILedgerStore,
        cache: Optional[RedisService] = None,
        starting_balance: float = DEFAULT_STARTING_BALANCE,
        orphan_sell_policy: str = ORPHAN_SELL_IGNORE
    ):
        self.store = store
        self.cache = cache
        self.starting_balance = starting_balance
        self.orphan_sell_policy = orphan_sell_policy

    async def get_or_create_wallet(self, user_id: str) -> Wallet:
        wallet = await self.store.get_wallet(user_id)
        if wallet:
            return wallet

        logger.info(f"No wallet for {user_id}, creating one with {self.starting_balance:.2f}")
        for qualified in (False, True):
            display_name = placeholder_display_name(user_id, qualified)
            try:
                wallet = await self.store.insert_wallet(Wallet(
                    user_id=user_id,
                    display_name=display_name,
                    cash_balance=self.starting_balance
                ))
            except UniqueConstraintViolation:
                # Either a concurrent request created this user, or another user holds the name
                wallet = await self.store.get_wallet(user_id)
                if wallet:
                    return wallet
                logger.warning(f"Placeholder name '{display_name}' is taken, cannot use it for {user_id}")
                continue

            self._invalidate_leaderboard()
            return wallet

        raise UniqueConstraintViolation(f"No free placeholder name for {user_id}.")

    async def record_trade(self, user_id: str, request: TradeRequest) -> Trade:
        if not _all_finite(request.fiat_amount, request.crypto_amount, request.execution_price):
            raise InvalidTradeError("Trade amounts must be finite numbers.")
        if request.fiat_amount <= 0 or request.crypto_amount <= 0:
            raise InvalidTradeError("Trade amounts must be greater than zero.")

        cash_change = -request.fiat_amount if request.type == "BUY" else request.fiat_amount

        await self.get_or_create_wallet(user_id)

        if request.type == "SELL" and self.orphan_sell_policy == ORPHAN_SELL_REJECT:
            await self._check_position(user_id, request)

        trade = Trade(
            **request.model_dump(),
            user_id=user_id,
            created_at_ms=int(time.time() * 1000)
        )
        saved = await self.store.apply_trade(trade, cash_change)
        logger.info(
            f"{saved.type} {saved.crypto_amount} {saved.coin_symbol} for "
            f"${saved.fiat_amount:.2f} by {user_id} (seq={saved.seq})"
        )

        self._invalidate_leaderboard()
        return saved

    def _invalidate_leaderboard(self):
        if self.cache:
            self.cache.delete(LEADERBOARD_CACHE_KEY)

    async def _check_position(self, user_id: str, request: TradeRequest):
        holdings = await self.compute_holdings(user_id)
        held = next((h.quantity for h in holdings if h.coin_id == request.coin_id), 0.0)
        if request.crypto_amount - held > COMPUTATION_EPSILON:
            raise InsufficientHoldingsError(request.coin_id, request.crypto_amount, held)

    async def compute_holdings(self, user_id: str) -> List[Holding]:
        trades = await self.store.get_trades(user_id)
        return HoldingsReconstructor.reconstruct(trades, self.orphan_sell_policy)

    async def list_trades(self, user_id: str) -> List[Trade]:
        trades = await self.store.get_trades(user_id)
        return list(reversed(HoldingsReconstructor.sort_trades(trades)))


class PortfolioService:
    def __init__(self, ledger: LedgerService, market: IMarketData):
        self.ledger = ledger
        self.market = market

    async def get_portfolio(self, user_id: str) -> PortfolioSummary:
        wallet = await self.ledger.get_or_create_wallet(user_id)
        holdings = await self.ledger.compute_holdings(user_id)

        prices = {}
        if holdings:
            prices = await self.market.get_prices_for_ids([h.coin_id for h in holdings])

        return summarize_portfolio(user_id, wallet.cash_balance, holdings, prices)


class TradingActions:
    """
    Caller-facing trade entry points. Ledger errors become
    ActionResult(error=...) instead of propagating.
    """

    def __init__(self, ledger: LedgerService):
        self.ledger = ledger

    async def sell_asset(
        self,
        user_id: str,
        coin_id: str,
        coin_symbol: str,
        amount: float,
        current_price: float
    ) -> ActionResult:
        if not _all_finite(amount, current_price, amount * current_price):
            return ActionResult(error="Trade amounts must be finite numbers.")
        if amount <= 0:
            return ActionResult(error="Sell amount must be greater than zero.")
        if current_price <= 0:
            return ActionResult(error="Price is currently unavailable.")

        return await self._execute(user_id, TradeRequest(
            coin_id=coin_id,
            coin_symbol=coin_symbol,
            type="SELL",
            fiat_amount=amount * current_price,
            crypto_amount=amount,
            execution_price=current_price
        ))

    async def buy_asset(
        self,
        user_id: str,
        coin_id: str,
        coin_symbol: str,
        current_price: float,
        amount: Optional[float] = None,
        fiat_amount: Optional[float] = None
    ) -> ActionResult:
        if (amount is None) == (fiat_amount is None):
            return ActionResult(error="Provide either an amount or a fiat amount.")
        if not _all_finite(current_price, amount if fiat_amount is None else fiat_amount):
            return ActionResult(error="Trade amounts must be finite numbers.")
        if current_price <= 0:
            return ActionResult(error="Price is currently unavailable.")

        if fiat_amount is not None:
            if fiat_amount <= 0:
                return ActionResult(error="Buy amount must be greater than zero.")
            amount = fiat_amount / current_price
        else:
            if amount <= 0:
                return ActionResult(error="Buy amount must be greater than zero.")
            fiat_amount = amount * current_price

        if not _all_finite(amount, fiat_amount):
            return ActionResult(error="Trade amounts must be finite numbers.")

        return await self._execute(user_id, TradeRequest(
            coin_id=coin_id,
            coin_symbol=coin_symbol,
            type="BUY",
            fiat_amount=fiat_amount,
            crypto_amount=amount,
            execution_price=current_price
        ))

    async def _execute(self, user_id: str, request: TradeRequest) -> ActionResult:
        try:
            await self.ledger.record_trade(user_id, request)
        except LedgerError as e:
            logger.warning(f"{request.type} {request.coin_id} rejected for {user_id}: {e}")
            return ActionResult(error=str(e))
        return ActionResult(success=True)


class LeaderboardService:
    def __init__(
        self,
        store: ILedgerStore,
        cache: Optional[RedisService] = None,
        scan_limit: int = 1000,
        cache_ttl: int = 30
    ):
        self.db = store
        self.cache = cache
        self.scan_limit = scan_limit
        self.cache_ttl = cache_ttl

    async def _ranked(self) -> List[LeaderboardEntry]:
        if self.cache:
            cached = self.cache.get(LEADERBOARD_CACHE_KEY)
            if cached is not None:
                return [LeaderboardEntry(**e) for e in cached]

        wallets = await self.db.list_wallets(self.scan_limit)

        # Store returns wallets sorted by balance descending; assign ranks
        leaderboard = [
            LeaderboardEntry(
                rank=i + 1,
                user_id=w.user_id,
                username=w.preferred_name or w.display_name or "Anonymous User",
                cash_balance=w.cash_balance
            )
            for i, w in enumerate(wallets)
        ]

        if self.cache:
            self.cache.set(LEADERBOARD_CACHE_KEY, leaderboard, ttl_seconds=self.cache_ttl)
        return leaderboard

    async def get_leaderboard(self, limit: int = 10) -> List[LeaderboardEntry]:
        return (await self._ranked())[:limit]

    async def get_user_rank(self, user_id: str) -> Optional[UserRank]:
        for entry in await self._ranked():
            if entry.user_id == user_id:
                return UserRank(rank=entry.rank, cash_balance=entry.cash_balance)
        return None


class ProfileService:
    def __init__(
        self,
        store: ILedgerStore,
        cache: Optional[RedisService] = None,
        starting_balance: float = DEFAULT_STARTING_BALANCE
    ):
        self.db = store
        self.cache = cache
        self.starting_balance = starting_balance

    async def check_display_name_availability(self, name: str) -> bool:
        if not name or len(name) < MIN_DISPLAY_NAME_LENGTH:
            return False
        return not await self.db.display_name_exists(name.lower())

    async def create_profile(self, user_id: str, preferred_name: str) -> Wallet:
        preferred_name = (preferred_name or "").strip()
        if len(preferred_name) < MIN_DISPLAY_NAME_LENGTH:
            raise InvalidDisplayNameError(
                f"Display name must be at least {MIN_DISPLAY_NAME_LENGTH} characters."
            )

        display_name = preferred_name.lower()
        existing = await self.db.get_wallet(user_id)
        keeps_own_name = existing is not None and existing.display_name == display_name
        if not keeps_own_name and await self.db.display_name_exists(display_name):
            raise UniqueConstraintViolation()

        wallet = await self.db.upsert_profile(
            user_id, display_name, preferred_name, self.starting_balance
        )
        logger.info(f"Profile '{display_name}' saved for {user_id}")

        if self.cache:
            self.cache.delete(LEADERBOARD_CACHE_KEY)
        return wallet
