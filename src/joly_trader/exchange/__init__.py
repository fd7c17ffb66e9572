__all__ = ["ClobClient", "OrderBook", "PricePoint"]

from joly_trader.exchange.clob import ClobClient, OrderBook, PricePoint
