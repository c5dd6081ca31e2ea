from typing import Dict, List
from src.core.entities.trade import Trade
from src.core.entities.holding import Holding
from src.core.errors import OrphanSellError

# Tolerance for float comparisons while replaying trades
COMPUTATION_EPSILON = 1e-9
# Anything below this after replay is dust and reported as zero.
# Coarser than COMPUTATION_EPSILON so residue from many partial sells is absorbed.
DUST_THRESHOLD = 1e-4

ORPHAN_SELL_IGNORE = "ignore"
ORPHAN_SELL_REJECT = "reject"


class HoldingsReconstructor:
    @staticmethod
    def sort_trades(trades: List[Trade]) -> List[Trade]:
        # Stable: trades without seq keep the order they were given in
        return sorted(trades, key=lambda t: (t.seq is None, t.seq or 0))

    @staticmethod
    def reconstruct_all(
        trades: List[Trade],
        orphan_sell_policy: str = ORPHAN_SELL_IGNORE
    ) -> Dict[str, Holding]:
        """
        Replays trades into one accumulator per coin_id using the
        weighted-average cost method. Dust is zeroed but kept in the result.
        """
        holdings: Dict[str, Holding] = {}

        for trade in HoldingsReconstructor.sort_trades(trades):
            asset = holdings.get(trade.coin_id)
            if asset is None:
                asset = Holding(coin_id=trade.coin_id, coin_symbol=trade.coin_symbol)
                holdings[trade.coin_id] = asset

            if trade.type == "BUY":
                asset.quantity += trade.crypto_amount
                asset.cost_basis += trade.fiat_amount
                continue

            # SELL
            if abs(trade.crypto_amount - asset.quantity) < COMPUTATION_EPSILON:
                # Full liquidation resets exactly, no rounding residue
                asset.quantity = 0.0
                asset.cost_basis = 0.0
            elif asset.quantity > 0:
                sell_ratio = trade.crypto_amount / asset.quantity
                asset.cost_basis -= asset.cost_basis * sell_ratio
                asset.quantity -= trade.crypto_amount

                if asset.quantity < COMPUTATION_EPSILON:
                    asset.quantity = 0.0
                    asset.cost_basis = 0.0
            elif orphan_sell_policy == ORPHAN_SELL_REJECT:
                raise OrphanSellError(trade.coin_id)
            # else: SELL with nothing held is ignored

        for asset in holdings.values():
            if asset.quantity < DUST_THRESHOLD:
                asset.quantity = 0.0
                asset.cost_basis = 0.0

        return holdings

    @staticmethod
    def reconstruct(
        trades: List[Trade],
        orphan_sell_policy: str = ORPHAN_SELL_IGNORE
    ) -> List[Holding]:
        holdings = HoldingsReconstructor.reconstruct_all(trades, orphan_sell_policy)
        return [h for h in holdings.values() if h.quantity > DUST_THRESHOLD]
