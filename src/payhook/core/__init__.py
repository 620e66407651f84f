"""Core."""

from .config import (
    PayhookConfig,
    PayPalSettings,
    SquareSettings,
    StripeSettings,
    clear_config,
    get_config,
)

__all__ = [
    "PayhookConfig",
    "PayPalSettings",
    "SquareSettings",
    "StripeSettings",
    "clear_config",
    "get_config",
]
