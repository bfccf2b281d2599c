from .strategies import StrategyNotFoundError, StrategyRepository

__all__ = ["StrategyNotFoundError", "StrategyRepository"]
