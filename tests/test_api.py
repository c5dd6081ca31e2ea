"""
Tests for the HTTP API using in-memory storage and mock market data.
"""
import pytest
from httpx import AsyncClient
from src.api.main import app, get_store
from src.core.entities.market import NewsArticle
from src.core.errors import StorageError
from src.infrastructure.persistence.memory_repo import InMemoryLedgerStore

TEST_USER = "3f1c9a7e-5b2d-4c8f-9e61-0a7d2b4c6e81"


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_identity_is_rejected(client: AsyncClient):
    for path in ["/v1/wallet", "/v1/trades", "/v1/portfolio", "/v1/leaderboard/me"]:
        resp = await client.get(path)
        assert resp.status_code == 401, path
        assert resp.json()["detail"] == "User not authenticated."

    resp = await client.post(
        "/v1/trades/sell",
        json={"coin_id": "BTC", "coin_symbol": "BTC", "amount": 1, "current_price": 100}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_wallet_created_on_first_access(client: AsyncClient, auth):
    resp = await client.get("/v1/wallet", headers=auth)
    assert resp.status_code == 200

    data = resp.json()
    assert data["user_id"] == TEST_USER
    assert data["cash_balance"] == 10000.0
    assert data["display_name"] == f"User-{TEST_USER[:8]}"


@pytest.mark.asyncio
async def test_buy_sell_flow(client: AsyncClient, auth):
    resp = await client.post(
        "/v1/trades/buy",
        headers=auth,
        json={"coin_id": "BTC", "coin_symbol": "BTC", "amount": 0.1, "current_price": 50000}
    )
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "error": None}

    resp = await client.post(
        "/v1/trades/sell",
        headers=auth,
        json={"coin_id": "BTC", "coin_symbol": "BTC", "amount": 0.05, "current_price": 60000}
    )
    assert resp.json()["success"] is True

    holdings = (await client.get("/v1/portfolio/holdings", headers=auth)).json()
    assert len(holdings) == 1
    assert holdings[0]["quantity"] == pytest.approx(0.05)
    assert holdings[0]["cost_basis"] == pytest.approx(2500.0)

    wallet = (await client.get("/v1/wallet", headers=auth)).json()
    assert wallet["cash_balance"] == pytest.approx(8000.0)

    trades = (await client.get("/v1/trades", headers=auth)).json()
    assert [t["type"] for t in trades] == ["SELL", "BUY"]


@pytest.mark.asyncio
async def test_buy_with_insufficient_funds_returns_error(client: AsyncClient, auth):
    resp = await client.post(
        "/v1/trades/buy",
        headers=auth,
        json={"coin_id": "BTC", "coin_symbol": "BTC", "amount": 1, "current_price": 65000}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Insufficient funds: Required: $65000.00, Available: $10000.00."

    wallet = (await client.get("/v1/wallet", headers=auth)).json()
    assert wallet["cash_balance"] == 10000.0


@pytest.mark.asyncio
async def test_sell_with_zero_amount_returns_error(client: AsyncClient, auth):
    resp = await client.post(
        "/v1/trades/sell",
        headers=auth,
        json={"coin_id": "BTC", "coin_symbol": "BTC", "amount": 0, "current_price": 65000}
    )
    assert resp.json() == {"success": False, "error": "Sell amount must be greater than zero."}


@pytest.mark.asyncio
async def test_portfolio_uses_market_prices(client: AsyncClient, auth):
    await client.post(
        "/v1/trades/buy",
        headers=auth,
        json={"coin_id": "eth", "coin_symbol": "ETH", "fiat_amount": 1600, "current_price": 1600}
    )
    resp = await client.get("/v1/portfolio", headers=auth)
    assert resp.status_code == 200

    data = resp.json()
    assert data["cash_balance"] == pytest.approx(8400.0)
    holding = data["holdings"][0]
    # Mock ETH price is 3200; ids are matched case-insensitively
    assert holding["current_price"] == 3200.0
    assert holding["net_profit"] == pytest.approx(1600.0)
    assert data["net_worth"] == pytest.approx(11600.0)


@pytest.mark.asyncio
async def test_leaderboard_and_rank(client: AsyncClient, auth):
    other = {"X-User-Id": "9d0e8f7a-1111-4222-8333-444455556666"}
    await client.post(
        "/v1/trades/buy",
        headers=other,
        json={"coin_id": "SOL", "coin_symbol": "SOL", "amount": 10, "current_price": 150}
    )
    await client.get("/v1/wallet", headers=auth)

    board = (await client.get("/v1/leaderboard")).json()
    assert [e["rank"] for e in board] == [1, 2]
    assert board[0]["user_id"] == TEST_USER
    assert board[0]["cash_balance"] >= board[1]["cash_balance"]

    resp = await client.get("/v1/leaderboard/me", headers=other)
    assert resp.json() == {"rank": 2, "cash_balance": 8500.0}

    resp = await client.get("/v1/leaderboard?limit=1")
    assert len(resp.json()) == 1


@pytest.mark.asyncio
async def test_rank_for_unknown_user_is_404(client: AsyncClient, auth):
    resp = await client.get("/v1/leaderboard/me", headers=auth)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_profile_creation_and_conflict(client: AsyncClient, auth):
    resp = await client.get("/v1/profiles/availability?name=MoonBoy")
    assert resp.json() == {"name": "MoonBoy", "available": True}

    resp = await client.post("/v1/profiles", headers=auth, json={"preferred_name": "MoonBoy"})
    assert resp.status_code == 201
    assert resp.json()["display_name"] == "moonboy"

    resp = await client.get("/v1/profiles/availability?name=moonboy")
    assert resp.json()["available"] is False

    resp = await client.post(
        "/v1/profiles",
        headers={"X-User-Id": "another-user"},
        json={"preferred_name": "MOONBOY"}
    )
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Display name already taken."

    resp = await client.post("/v1/profiles", headers=auth, json={"preferred_name": "ab"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_market_endpoints(client: AsyncClient, market):
    market.news = [NewsArticle(title="BTC rallies", link="https://example.com/a", source="Wire", date=1700000000)]

    prices = (await client.get("/v1/market/prices?limit=2")).json()
    assert [p["id"] for p in prices] == ["BTC", "ETH"]

    results = (await client.get("/v1/market/search?query=sol")).json()
    assert [r["id"] for r in results] == ["SOL"]

    history = (await client.get("/v1/market/history/btc?duration=30d")).json()
    assert len(history) == 2
    assert history[0]["time_ms"] < history[1]["time_ms"]

    news = (await client.get("/v1/market/news")).json()
    assert news[0]["title"] == "BTC rallies"


@pytest.mark.asyncio
async def test_unknown_history_duration_is_400(client: AsyncClient):
    resp = await client.get("/v1/market/history/btc?duration=5m")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_non_finite_trade_amounts_are_rejected(client: AsyncClient, auth):
    bodies = [
        ("/v1/trades/sell", {"coin_id": "BTC", "coin_symbol": "BTC", "amount": "NaN", "current_price": 100}),
        ("/v1/trades/sell", {"coin_id": "BTC", "coin_symbol": "BTC", "amount": "inf", "current_price": 100}),
        ("/v1/trades/sell", {"coin_id": "BTC", "coin_symbol": "BTC", "amount": 1, "current_price": "-inf"}),
        ("/v1/trades/buy", {"coin_id": "BTC", "coin_symbol": "BTC", "amount": "nan", "current_price": 100}),
        ("/v1/trades/buy", {"coin_id": "BTC", "coin_symbol": "BTC", "fiat_amount": "Infinity", "current_price": 100}),
    ]
    for path, body in bodies:
        resp = await client.post(path, headers=auth, json=body)
        assert resp.status_code == 422, body

    # Finite inputs whose product overflows are refused by the action itself
    resp = await client.post(
        "/v1/trades/sell",
        headers=auth,
        json={"coin_id": "BTC", "coin_symbol": "BTC", "amount": 1e200, "current_price": 1e200}
    )
    assert resp.json() == {"success": False, "error": "Trade amounts must be finite numbers."}

    wallet = (await client.get("/v1/wallet", headers=auth)).json()
    assert wallet["cash_balance"] == 10000.0
    assert (await client.get("/v1/trades", headers=auth)).json() == []


class UnavailableStore(InMemoryLedgerStore):
    async def get_wallet(self, user_id):
        raise StorageError("connection refused")


@pytest.mark.asyncio
async def test_storage_outage_is_503(client: AsyncClient, auth):
    app.dependency_overrides[get_store] = lambda: UnavailableStore()

    resp = await client.get("/v1/wallet", headers=auth)
    assert resp.status_code == 503
    assert resp.json()["detail"] == "Storage is currently unavailable. Please try again."

    resp = await client.post(
        "/v1/trades/sell",
        headers=auth,
        json={"coin_id": "BTC", "coin_symbol": "BTC", "amount": 1, "current_price": 100}
    )
    assert resp.json() == {"success": False, "error": "connection refused"}
