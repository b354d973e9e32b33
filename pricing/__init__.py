"""
pricing/ - Price fetching for the collection pipeline.

Modules:
- price_fetcher: facade over the swap simulator and read-only calls
- sampler: buy/sell price curves per token and block
"""

from pricing.price_fetcher import PriceFetcher, TxFee
from pricing.sampler import PriceCurveSampler, PriceRow, SamplerStats, sell_grid

__all__ = [
    "PriceFetcher",
    "TxFee",
    "PriceCurveSampler",
    "PriceRow",
    "SamplerStats",
    "sell_grid",
]
