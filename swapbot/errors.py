"""Exceptions raised by the swap bot."""
from typing import Any, Optional


class SwapBotError(RuntimeError):
    """Base class for every error raised by this package."""


class ConfigError(SwapBotError):
    """Raised at startup when the configuration cannot be used."""


class QueryError(SwapBotError):
    """Raised when an LCD query fails or returns an unexpected payload."""


class BroadcastError(SwapBotError):
    """Raised when a transaction cannot be signed, is rejected, or fails on chain."""

    def __init__(self, message: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.payload = payload


class InvalidAmountError(SwapBotError, ValueError):
    """Raised when a swap or simulation amount is not strictly positive."""
