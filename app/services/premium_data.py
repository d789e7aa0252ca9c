# app/services/premium_data.py
"""Mock premium crypto market data served behind the paywall."""
import random
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _asset(rng: random.Random, base: float, spread: float, decimals: int,
           change_range: float, volume_base: float, volume_spread: float, volume_unit: str) -> Dict[str, str]:
    return {
        "price": f"{rng.random() * spread + base:.{decimals}f}",
        "change24h": f"{rng.random() * change_range * 2 - change_range:.2f}%",
        "volume24h": f"${rng.random() * volume_spread + volume_base:.2f}{volume_unit}",
    }


def generate_premium_data(rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """
    Generate a snapshot of premium market data.

    Args:
        rng: Random source (seed it for reproducible output in tests)

    Returns:
        Dict with cryptoPrices, marketData and provider metadata
    """
    rng = rng or random.Random()
    return {
        "cryptoPrices": {
            "BTC": _asset(rng, 40000, 10000, 2, 5, 20, 10, "B"),
            "ETH": _asset(rng, 2000, 500, 2, 5, 8, 5, "B"),
            "XPL": _asset(rng, 0.5, 0.5, 4, 10, 1, 2, "M"),
        },
        "marketData": {
            "totalMarketCap": f"${rng.random() * 500 + 1500:.2f}B",
            "bitcoinDominance": f"{rng.random() * 10 + 45:.2f}%",
            "defiTVL": f"${rng.random() * 50 + 80:.2f}B",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "dataProvider": "Premium Crypto Data API",
        "refreshRate": "1 minute",
    }
