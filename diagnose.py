
import sys
import os

# Add project root to path
sys.path.append(os.getcwd())

try:
    from src.core.entities.trade import Trade
    from src.core.use_cases.holdings_reconstructor import HoldingsReconstructor
    from src.api.main import app
    print("✅ All imports successful.")
except Exception as e:
    print(f"❌ Import failed: {e}")
    sys.exit(1)

# Replay a buy and a partial sell
def test_reconstruct():
    try:
        t1 = Trade(user_id="diag", coin_id="BTC", coin_symbol="BTC", type="BUY",
                   fiat_amount=5000.0, crypto_amount=1.0, execution_price=5000.0, seq=1)
        t2 = Trade(user_id="diag", coin_id="BTC", coin_symbol="BTC", type="SELL",
                   fiat_amount=3000.0, crypto_amount=0.5, execution_price=6000.0, seq=2)

        holdings = HoldingsReconstructor.reconstruct([t2, t1])

        if len(holdings) == 1 and abs(holdings[0].cost_basis - 2500.0) < 1e-9:
            print("✅ Holdings replay basic test passed.")
        else:
            print(f"❌ Holdings replay failed, expected cost basis 2500 on one holding, got {holdings}")
    except Exception as e:
        print(f"❌ Replay raised exception: {e}")

if __name__ == "__main__":
    test_reconstruct()
