from typing import Dict, List
from src.core.entities.holding import Holding, EnrichedHolding, PortfolioSummary


def value_holdings(holdings: List[Holding], prices: Dict[str, float]) -> List[EnrichedHolding]:
    """Missing prices value the holding at zero."""
    enriched = []
    for h in holdings:
        current_price = prices.get(h.coin_id, 0.0) or 0.0
        current_value = h.quantity * current_price
        net_profit = current_value - h.cost_basis
        pnl_percent = (net_profit / h.cost_basis) * 100 if h.cost_basis > 0 else 0.0

        enriched.append(EnrichedHolding(
            **h.model_dump(),
            current_price=current_price,
            current_value=current_value,
            net_profit=net_profit,
            pnl_percent=pnl_percent
        ))
    return enriched


def summarize_portfolio(
    user_id: str,
    cash_balance: float,
    holdings: List[Holding],
    prices: Dict[str, float]
) -> PortfolioSummary:
    enriched = value_holdings(holdings, prices)
    total_value = sum(h.current_value for h in enriched)
    total_cost = sum(h.cost_basis for h in enriched)

    return PortfolioSummary(
        user_id=user_id,
        cash_balance=cash_balance,
        total_value=total_value,
        total_cost_basis=total_cost,
        total_profit=total_value - total_cost,
        net_worth=cash_balance + total_value,
        holdings=enriched
    )
