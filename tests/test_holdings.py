"""
Tests for trade replay into holdings (weighted-average cost).
"""
import pytest
from src.core.entities.trade import Trade
from src.core.errors import OrphanSellError
from src.core.use_cases.holdings_reconstructor import (
    HoldingsReconstructor,
    DUST_THRESHOLD,
    ORPHAN_SELL_REJECT,
)


def trade(type_, crypto, fiat, coin="btc", seq=None):
    return Trade(
        user_id="u1",
        coin_id=coin,
        coin_symbol=coin.upper(),
        type=type_,
        fiat_amount=fiat,
        crypto_amount=crypto,
        execution_price=fiat / crypto,
        seq=seq,
    )


def only(holdings, coin="btc"):
    matches = [h for h in holdings if h.coin_id == coin]
    assert len(matches) == 1
    return matches[0]


def test_buys_only_sum_quantity_and_cost():
    trades = [trade("BUY", 0.5, 20000.0), trade("BUY", 0.25, 11000.0), trade("BUY", 1.0, 39000.0)]
    h = only(HoldingsReconstructor.reconstruct(trades))
    assert h.quantity == pytest.approx(1.75)
    assert h.cost_basis == pytest.approx(70000.0)


def test_partial_sell_removes_proportional_cost():
    trades = [trade("BUY", 1.0, 5000.0), trade("SELL", 0.5, 3000.0)]
    h = only(HoldingsReconstructor.reconstruct(trades))
    assert h.quantity == pytest.approx(0.5)
    assert h.cost_basis == pytest.approx(2500.0)


def test_weighted_average_after_quarter_sell():
    trades = [trade("BUY", 2.0, 1000.0), trade("BUY", 2.0, 3000.0), trade("SELL", 1.0, 10.0)]
    h = only(HoldingsReconstructor.reconstruct(trades))
    # Sold 25% of 4 units: basis 4000 -> 3000 regardless of sale proceeds
    assert h.quantity == pytest.approx(3.0)
    assert h.cost_basis == pytest.approx(3000.0)


def test_full_liquidation_resets_and_drops_asset():
    trades = [trade("BUY", 2.0, 1000.0), trade("SELL", 2.0, 99999.0)]
    assert HoldingsReconstructor.reconstruct(trades) == []

    all_assets = HoldingsReconstructor.reconstruct_all(trades)
    assert all_assets["btc"].quantity == 0.0
    assert all_assets["btc"].cost_basis == 0.0


def test_full_liquidation_within_float_tolerance():
    trades = [
        trade("BUY", 0.1, 100.0),
        trade("BUY", 0.2, 200.0),
        trade("SELL", 0.30000000000000004, 300.0),
    ]
    h = HoldingsReconstructor.reconstruct_all(trades)["btc"]
    assert h.quantity == 0.0
    assert h.cost_basis == 0.0


def test_dust_below_threshold_is_zeroed_and_excluded():
    trades = [trade("BUY", 1.0, 1000.0), trade("SELL", 1.0 - DUST_THRESHOLD / 2, 990.0)]
    assert HoldingsReconstructor.reconstruct(trades) == []

    h = HoldingsReconstructor.reconstruct_all(trades)["btc"]
    assert h.quantity == 0.0
    assert h.cost_basis == 0.0


def test_orphan_sell_is_ignored_by_default():
    trades = [trade("SELL", 1.0, 500.0, coin="eth"), trade("BUY", 1.0, 5000.0)]
    holdings = HoldingsReconstructor.reconstruct(trades)
    assert [h.coin_id for h in holdings] == ["btc"]
    assert HoldingsReconstructor.reconstruct_all(trades)["eth"].quantity == 0.0


def test_orphan_sell_does_not_affect_later_buys():
    trades = [trade("SELL", 1.0, 500.0), trade("BUY", 2.0, 4000.0)]
    h = only(HoldingsReconstructor.reconstruct(trades))
    assert h.quantity == pytest.approx(2.0)
    assert h.cost_basis == pytest.approx(4000.0)


def test_orphan_sell_rejected_under_reject_policy():
    trades = [trade("SELL", 1.0, 500.0)]
    with pytest.raises(OrphanSellError):
        HoldingsReconstructor.reconstruct(trades, ORPHAN_SELL_REJECT)


def test_replay_follows_seq_not_input_order():
    # In execution order: buy 1 @ 1000, sell 0.5, buy 1 @ 3000
    trades = [
        trade("BUY", 1.0, 3000.0, seq=3),
        trade("SELL", 0.5, 800.0, seq=2),
        trade("BUY", 1.0, 1000.0, seq=1),
    ]
    h = only(HoldingsReconstructor.reconstruct(trades))
    assert h.quantity == pytest.approx(1.5)
    assert h.cost_basis == pytest.approx(3500.0)


def test_replay_is_pure():
    trades = [trade("BUY", 1.0, 5000.0), trade("SELL", 0.3, 1700.0), trade("BUY", 0.2, 900.0, coin="sol")]
    first = HoldingsReconstructor.reconstruct(trades)
    second = HoldingsReconstructor.reconstruct(trades)
    assert first == second
    assert trades[0].crypto_amount == 1.0


def test_assets_are_tracked_independently():
    trades = [trade("BUY", 1.0, 5000.0), trade("BUY", 10.0, 1500.0, coin="sol"), trade("SELL", 1.0, 6000.0)]
    holdings = HoldingsReconstructor.reconstruct(trades)
    assert [h.coin_id for h in holdings] == ["sol"]
    assert holdings[0].cost_basis == pytest.approx(1500.0)
