import asyncio
import logging
import psycopg2
from psycopg2 import errorcodes
from typing import List, Optional
from src.core.interfaces.datasource import ILedgerStore
from src.core.entities.trade import Trade
from src.core.entities.wallet import Wallet
from src.core.errors import (
    LedgerError,
    InsufficientFundsError,
    PartialWriteError,
    StorageError,
    UniqueConstraintViolation,
)

logger = logging.getLogger(__name__)

WALLET_COLUMNS = "user_id, display_name, preferred_name, cash_balance"
TRADE_COLUMNS = (
    "coin_id, coin_symbol, type, fiat_amount, crypto_amount, "
    "execution_price, user_id, seq, created_at_ms"
)


def _wallet_from_row(row) -> Wallet:
    return Wallet(
        user_id=row[0],
        display_name=row[1],
        preferred_name=row[2],
        cash_balance=float(row[3])
    )


def _trade_from_row(row) -> Trade:
    return Trade(
        coin_id=row[0],
        coin_symbol=row[1],
        type=row[2],
        fiat_amount=float(row[3]),
        crypto_amount=float(row[4]),
        execution_price=float(row[5]),
        user_id=row[6],
        seq=row[7],
        created_at_ms=row[8]
    )


def _wrap_error(e: psycopg2.Error, action: str) -> LedgerError:
    if getattr(e, "pgcode", None) == errorcodes.UNIQUE_VIOLATION:
        return UniqueConstraintViolation()
    return StorageError(f"Database error {action}: {e}")


class PostgresRepo(ILedgerStore):
    def __init__(self, dsn: str):
        self.dsn = dsn
        self._init_db()

    def _connect(self):
        try:
            return psycopg2.connect(self.dsn)
        except psycopg2.Error as e:
            raise StorageError(f"Could not connect to database: {e}") from e

    def _init_db(self):
        conn = self._connect()
        cur = conn.cursor()

        # Profiles / wallets
        cur.execute("""
            CREATE TABLE IF NOT EXISTS user_profiles (
                user_id VARCHAR PRIMARY KEY,
                display_name VARCHAR NOT NULL UNIQUE,
                preferred_name VARCHAR,
                cash_balance DOUBLE PRECISION NOT NULL CHECK (cash_balance >= 0)
            );
        """)

        # Trades (append-only); seq is the replay ordering key
        cur.execute("""
            CREATE TABLE IF NOT EXISTS trades (
                seq BIGSERIAL PRIMARY KEY,
                user_id VARCHAR NOT NULL,
                coin_id VARCHAR NOT NULL,
                coin_symbol VARCHAR NOT NULL,
                type VARCHAR(4) NOT NULL CHECK (type IN ('BUY', 'SELL')),
                fiat_amount DOUBLE PRECISION NOT NULL CHECK (fiat_amount > 0),
                crypto_amount DOUBLE PRECISION NOT NULL CHECK (crypto_amount > 0),
                execution_price DOUBLE PRECISION NOT NULL,
                created_at_ms BIGINT
            );
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS trades_user_seq_idx ON trades (user_id, seq);")

        conn.commit()
        cur.close()
        conn.close()

    def _execute(self, action: str, query: str, params, fetch: str = "one", commit: bool = False):
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rows = cur.fetchall() if fetch == "all" else cur.fetchone()
            if commit:
                conn.commit()
            return rows
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Database error {action}: {e}")
            raise _wrap_error(e, action) from e
        finally:
            conn.close()

    # --- Wallets ---

    def _get_wallet(self, user_id: str) -> Optional[Wallet]:
        row = self._execute(
            "fetching profile",
            f"SELECT {WALLET_COLUMNS} FROM user_profiles WHERE user_id = %s",
            (user_id,)
        )
        return _wallet_from_row(row) if row else None

    def _insert_wallet(self, wallet: Wallet) -> Wallet:
        row = self._execute(
            "creating profile",
            f"""
                INSERT INTO user_profiles ({WALLET_COLUMNS})
                VALUES (%s, %s, %s, %s)
                RETURNING {WALLET_COLUMNS}
            """,
            (wallet.user_id, wallet.display_name, wallet.preferred_name, wallet.cash_balance),
            commit=True
        )
        return _wallet_from_row(row)

    def _upsert_profile(self, user_id, display_name, preferred_name, starting_balance) -> Wallet:
        row = self._execute(
            "saving profile",
            f"""
                INSERT INTO user_profiles ({WALLET_COLUMNS})
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE
                SET display_name = EXCLUDED.display_name,
                    preferred_name = EXCLUDED.preferred_name
                RETURNING {WALLET_COLUMNS}
            """,
            (user_id, display_name, preferred_name, starting_balance),
            commit=True
        )
        return _wallet_from_row(row)

    def _display_name_exists(self, display_name: str) -> bool:
        row = self._execute(
            "checking display name",
            "SELECT 1 FROM user_profiles WHERE display_name = %s LIMIT 1",
            (display_name,)
        )
        return row is not None

    def _list_wallets(self, limit: Optional[int]) -> List[Wallet]:
        query = f"SELECT {WALLET_COLUMNS} FROM user_profiles ORDER BY cash_balance DESC, user_id"
        params = []
        if limit:
            query += " LIMIT %s"
            params.append(limit)
        rows = self._execute("listing profiles", query, params, fetch="all")
        return [_wallet_from_row(r) for r in rows]

    # --- Trades ---

    def _apply_trade(self, trade: Trade, cash_change: float) -> Trade:
        conn = self._connect()
        try:
            try:
                with conn.cursor() as cur:
                    # Check and update in one statement so concurrent trades cannot overdraw
                    cur.execute(
                        """
                            UPDATE user_profiles
                            SET cash_balance = cash_balance + %s
                            WHERE user_id = %s AND cash_balance + %s >= 0
                            RETURNING cash_balance
                        """,
                        (cash_change, trade.user_id, cash_change)
                    )
                    if cur.fetchone() is None:
                        cur.execute(
                            "SELECT cash_balance FROM user_profiles WHERE user_id = %s",
                            (trade.user_id,)
                        )
                        row = cur.fetchone()
                        if row is None and cash_change >= 0:
                            raise StorageError(f"No wallet found for {trade.user_id}.")
                        available = float(row[0]) if row else 0.0
                        raise InsufficientFundsError(required=abs(cash_change), available=available)

                    cur.execute(
                        """
                            INSERT INTO trades (user_id, coin_id, coin_symbol, type, fiat_amount,
                                                crypto_amount, execution_price, created_at_ms)
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                            RETURNING seq
                        """,
                        (trade.user_id, trade.coin_id, trade.coin_symbol, trade.type,
                         trade.fiat_amount, trade.crypto_amount, trade.execution_price,
                         trade.created_at_ms)
                    )
                    seq = cur.fetchone()[0]
            except LedgerError:
                conn.rollback()
                raise
            except psycopg2.Error as e:
                conn.rollback()
                logger.error(f"Trade transaction failed for {trade.user_id}, rolled back: {e}")
                raise _wrap_error(e, "recording trade") from e

            try:
                conn.commit()
            except psycopg2.Error as e:
                logger.error(f"Commit outcome unknown for {trade.user_id} trade: {e}")
                raise PartialWriteError(
                    "Trade commit could not be confirmed; balance and history may be out of sync."
                ) from e

            return trade.model_copy(update={"seq": seq})
        finally:
            conn.close()

    def _get_trades(self, user_id: str) -> List[Trade]:
        rows = self._execute(
            "fetching trades",
            f"SELECT {TRADE_COLUMNS} FROM trades WHERE user_id = %s ORDER BY seq",
            (user_id,),
            fetch="all"
        )
        return [_trade_from_row(r) for r in rows]

    # ILedgerStore Implementation
    # psycopg2 is blocking, so every call is offloaded to a thread

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        return await asyncio.to_thread(self._get_wallet, user_id)

    async def insert_wallet(self, wallet: Wallet) -> Wallet:
        return await asyncio.to_thread(self._insert_wallet, wallet)

    async def upsert_profile(
        self,
        user_id: str,
        display_name: str,
        preferred_name: str,
        starting_balance: float
    ) -> Wallet:
        return await asyncio.to_thread(
            self._upsert_profile, user_id, display_name, preferred_name, starting_balance
        )

    async def display_name_exists(self, display_name: str) -> bool:
        return await asyncio.to_thread(self._display_name_exists, display_name)

    async def apply_trade(self, trade: Trade, cash_change: float) -> Trade:
        return await asyncio.to_thread(self._apply_trade, trade, cash_change)

    async def get_trades(self, user_id: str) -> List[Trade]:
        return await asyncio.to_thread(self._get_trades, user_id)

    async def list_wallets(self, limit: Optional[int] = None) -> List[Wallet]:
        return await asyncio.to_thread(self._list_wallets, limit)
