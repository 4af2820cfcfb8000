from arbcore.engine.trading_engine import TradingEngine

__all__ = ["TradingEngine"]
