__all__ = ["TradeOrchestrator"]

from joly_trader.engine.trader import TradeOrchestrator
