"""
oracle.py - Reference price oracles

Provides PriceOracle implementations for the lending engine:
- StaticPriceOracle: latest price per asset with its update time
- TimeSeriesPriceOracle: historical prices read at a clock-supplied time

All prices are USD at PRICE_PRECISION (1e8 == $1.00). Unknown assets raise
KeyError; the engine converts that into ExternalFailure(INVALID_PRICE).
"""

from __future__ import annotations
from bisect import bisect_right
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from .core import PRICE_PRECISION


def usd(amount) -> int:
    """Convert a human USD amount (int, str or Decimal) to PRICE_PRECISION."""
    return int(Decimal(str(amount)) * PRICE_PRECISION)


class StaticPriceOracle:
    """
    Oracle holding the latest price per asset.

    Example:
        oracle = StaticPriceOracle({"WETH": usd(2000), "USDC": usd(1)})
        oracle.set_price("WETH", usd(1700), timestamp=1_700_000_600)
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None, timestamp: int = 0):
        self._prices: Dict[str, Tuple[int, int]] = {
            asset: (price, timestamp) for asset, price in (prices or {}).items()
        }

    def get_price(self, asset_id: str) -> int:
        return self._prices[asset_id][0]

    def get_price_with_timestamp(self, asset_id: str) -> Tuple[int, int]:
        return self._prices[asset_id]

    def set_price(self, asset_id: str, price: int, timestamp: int = 0) -> None:
        """Record a new price. Validation is left to the consumer."""
        self._prices[asset_id] = (price, timestamp)

    def remove_price(self, asset_id: str) -> None:
        self._prices.pop(asset_id, None)

    def __repr__(self):
        return f"StaticPriceOracle({len(self._prices)} prices)"


class TimeSeriesPriceOracle:
    """
    Oracle over recorded price paths.

    Returns the most recent observation at or before clock(). A query
    earlier than the first observation raises KeyError.

    Example:
        oracle = TimeSeriesPriceOracle(lambda: pool.current_time, {
            "WETH": [(t0, usd(2000)), (t1, usd(1700))],
        })
    """

    def __init__(
        self,
        clock: Callable[[], int],
        price_paths: Optional[Dict[str, List[Tuple[int, int]]]] = None,
    ):
        self.clock = clock
        self.price_history: Dict[str, List[Tuple[int, int]]] = {}
        for asset, path in (price_paths or {}).items():
            if path:
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset_id: str, timestamp: int, price: int) -> None:
        history = self.price_history.setdefault(asset_id, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def get_price_with_timestamp(self, asset_id: str) -> Tuple[int, int]:
        history = self.price_history.get(asset_id)
        if not history:
            raise KeyError(asset_id)
        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self.clock())
        if idx == 0:
            raise KeyError(f"no {asset_id} price at or before {self.clock()}")
        timestamp, price = history[idx - 1]
        return price, timestamp

    def get_price(self, asset_id: str) -> int:
        return self.get_price_with_timestamp(asset_id)[0]

    def __repr__(self):
        total = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPriceOracle({len(self.price_history)} assets, {total} observations)"
