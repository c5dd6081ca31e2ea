import logging
from functools import lru_cache
from typing import List, Optional
from fastapi import FastAPI, Query, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# --- Imports ---
from src.core.config import Settings, get_settings
from src.core.errors import (
    LedgerError,
    NotAuthenticated,
    PartialWriteError,
    StorageError,
    UniqueConstraintViolation,
)
from src.core.interfaces.datasource import ILedgerStore
from src.core.interfaces.market_data import IMarketData
from src.core.entities.trade import Trade, BuyRequest, SellRequest, ActionResult
from src.core.entities.wallet import Wallet, ProfileCreateRequest, NameAvailability
from src.core.entities.holding import Holding, PortfolioSummary
from src.core.entities.leaderboard import LeaderboardEntry, UserRank
from src.core.entities.market import CoinPrice, NewsArticle, PricePoint
from src.core.services import (
    LedgerService,
    PortfolioService,
    TradingActions,
    LeaderboardService,
    ProfileService,
)
from src.infrastructure.cache.redis_service import RedisService
from src.infrastructure.persistence.postgres_repo import PostgresRepo
from src.infrastructure.persistence.memory_repo import InMemoryLedgerStore
from src.infrastructure.gateways.hl_public_api import HLPublicGateway
from src.infrastructure.gateways.local_mock import LocalMockMarketData

# Setup Logging
logging.basicConfig(level=get_settings().LOG_LEVEL)
logger = logging.getLogger("PaperTrade")

app = FastAPI(title="PaperTrade API", version="1.0.0", description="Paper trading ledger, portfolio & leaderboard API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Error Handling ---

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if isinstance(exc, NotAuthenticated):
        status, detail = 401, str(exc)
    elif isinstance(exc, PartialWriteError):
        logger.error(f"Partial write on {request.url.path}: {exc}")
        status, detail = 500, "Your trade could not be confirmed. Please check your wallet before retrying."
    elif isinstance(exc, StorageError):
        logger.error(f"Storage error on {request.url.path}: {exc}")
        status, detail = 503, "Storage is currently unavailable. Please try again."
    elif isinstance(exc, UniqueConstraintViolation):
        status, detail = 409, str(exc)
    else:
        status, detail = 400, str(exc)
    return JSONResponse(status_code=status, content={"detail": detail})

# --- Dependency Injection ---

@lru_cache()
def _default_store() -> ILedgerStore:
    db_url = get_settings().DATABASE_URL
    if not db_url:
        logger.warning("DATABASE_URL not set. Using in-memory ledger store; data is lost on restart.")
        return InMemoryLedgerStore()
    return PostgresRepo(db_url)

@lru_cache()
def _default_cache() -> RedisService:
    return RedisService(get_settings().REDIS_URL)

@lru_cache()
def _default_market_data() -> IMarketData:
    settings = get_settings()
    if settings.MARKET_DATA_MODE == "mock":
        return LocalMockMarketData()
    return HLPublicGateway(use_testnet=settings.HL_USE_TESTNET, news_url=settings.NEWS_API_URL)

def get_store() -> ILedgerStore:
    return _default_store()

def get_cache() -> RedisService:
    return _default_cache()

def get_market_data() -> IMarketData:
    return _default_market_data()

def get_current_user_id(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Identity comes from the upstream auth gateway via a trusted header."""
    user_id = (request.headers.get(settings.USER_ID_HEADER) or "").strip()
    if not user_id:
        raise NotAuthenticated()
    return user_id

def get_ledger(
    store: ILedgerStore = Depends(get_store),
    cache: RedisService = Depends(get_cache),
    settings: Settings = Depends(get_settings)
) -> LedgerService:
    return LedgerService(
        store,
        cache=cache,
        starting_balance=settings.STARTING_BALANCE,
        orphan_sell_policy=settings.ORPHAN_SELL_POLICY
    )

def get_leaderboard_service(
    store: ILedgerStore = Depends(get_store),
    cache: RedisService = Depends(get_cache),
    settings: Settings = Depends(get_settings)
) -> LeaderboardService:
    return LeaderboardService(
        store,
        cache=cache,
        scan_limit=settings.LEADERBOARD_SCAN_LIMIT,
        cache_ttl=settings.LEADERBOARD_CACHE_TTL
    )

def get_profile_service(
    store: ILedgerStore = Depends(get_store),
    cache: RedisService = Depends(get_cache),
    settings: Settings = Depends(get_settings)
) -> ProfileService:
    return ProfileService(store, cache=cache, starting_balance=settings.STARTING_BALANCE)

# --- Endpoints ---

@app.get("/health")
async def health():
    return {"status": "healthy"}

@app.get("/v1/wallet", response_model=Wallet)
async def get_wallet(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    return await ledger.get_or_create_wallet(user_id)

@app.get("/v1/trades", response_model=List[Trade])
async def get_trades(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    """Trade history, most recent first."""
    return await ledger.list_trades(user_id)

@app.post("/v1/trades/buy", response_model=ActionResult)
async def buy_asset(
    body: BuyRequest,
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    return await TradingActions(ledger).buy_asset(
        user_id,
        body.coin_id,
        body.coin_symbol,
        body.current_price,
        amount=body.amount,
        fiat_amount=body.fiat_amount
    )

@app.post("/v1/trades/sell", response_model=ActionResult)
async def sell_asset(
    body: SellRequest,
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    return await TradingActions(ledger).sell_asset(
        user_id, body.coin_id, body.coin_symbol, body.amount, body.current_price
    )

@app.get("/v1/portfolio", response_model=PortfolioSummary)
async def get_portfolio(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger),
    market: IMarketData = Depends(get_market_data)
):
    """Holdings valued at current prices. Missing prices value a holding at zero."""
    return await PortfolioService(ledger, market).get_portfolio(user_id)

@app.get("/v1/portfolio/holdings", response_model=List[Holding])
async def get_holdings(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger)
):
    return await ledger.compute_holdings(user_id)

@app.get("/v1/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: LeaderboardService = Depends(get_leaderboard_service),
    settings: Settings = Depends(get_settings)
):
    return await service.get_leaderboard(limit or settings.LEADERBOARD_SIZE)

@app.get("/v1/leaderboard/me", response_model=UserRank)
async def get_my_rank(
    user_id: str = Depends(get_current_user_id),
    service: LeaderboardService = Depends(get_leaderboard_service)
):
    rank = await service.get_user_rank(user_id)
    if rank is None:
        raise HTTPException(status_code=404, detail="You are not on the leaderboard yet.")
    return rank

@app.get("/v1/profiles/availability", response_model=NameAvailability)
async def check_display_name(
    name: str = Query(..., description="Display name to check"),
    service: ProfileService = Depends(get_profile_service)
):
    return NameAvailability(name=name, available=await service.check_display_name_availability(name))

@app.post("/v1/profiles", response_model=Wallet, status_code=201)
async def create_profile(
    body: ProfileCreateRequest,
    user_id: str = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    return await service.create_profile(user_id, body.preferred_name)

# --- Market Data (best-effort pass-through) ---

@app.get("/v1/market/prices", response_model=List[CoinPrice])
async def get_prices(
    limit: int = Query(10, ge=1, le=250),
    market: IMarketData = Depends(get_market_data)
):
    return await market.get_top_prices(limit)

@app.get("/v1/market/search", response_model=List[CoinPrice])
async def search_coins(
    query: str = Query(""),
    market: IMarketData = Depends(get_market_data)
):
    return await market.search(query)

@app.get("/v1/market/history/{coin_id}", response_model=List[PricePoint])
async def get_price_history(
    coin_id: str,
    duration: str = Query("7d"),
    market: IMarketData = Depends(get_market_data)
):
    try:
        return await market.get_price_history(coin_id, duration)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/v1/market/news", response_model=List[NewsArticle])
async def get_news(
    page: int = Query(1, ge=1),
    market: IMarketData = Depends(get_market_data)
):
    return await market.get_news(page)
