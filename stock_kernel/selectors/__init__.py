"""Read-only query selectors."""

from stock_kernel.selectors.stock_selector import StockSelector
from stock_kernel.selectors.stocktaking_selector import LineFilter, StocktakingSelector

__all__ = ["LineFilter", "StockSelector", "StocktakingSelector"]
