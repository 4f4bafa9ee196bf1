class EngineError(Exception):
    """Base class for all fxengine exceptions."""


class ConfigurationError(EngineError, ValueError):
    """Raised when a strategy, backtest or bot configuration is rejected."""


class DataValidationError(EngineError, ValueError):
    """Raised when a candle series fails ingestion checks."""


__all__ = [
    "EngineError",
    "ConfigurationError",
    "DataValidationError",
]
