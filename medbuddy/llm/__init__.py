"""Text generation for medication explanations."""

from .client import (
    GroqAPIError,
    GroqClient,
    GroqInsufficientFundsError,
    GroqRateLimitError,
    GroqTimeoutError,
)

__all__ = [
    "GroqClient",
    "GroqAPIError",
    "GroqTimeoutError",
    "GroqRateLimitError",
    "GroqInsufficientFundsError",
]
