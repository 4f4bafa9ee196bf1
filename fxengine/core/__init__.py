"""Shared exceptions and value types."""

from .exceptions import (
    ConfigurationError,
    DataValidationError,
    EngineError,
)

__all__ = ["EngineError", "ConfigurationError", "DataValidationError"]
