"""Configuration types with environment variable support.

All settings can be configured via environment variables with the PAYHOOK_
prefix followed by the provider name.
Example: PAYHOOK_STRIPE_TOLERANCE_SECONDS=600 widens the Stripe freshness window.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MASK = "********"


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            data = tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in config.items():
        full_key = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            result.update(flatten_config(value, full_key))
        else:
            result[full_key] = value
    return result


def config_file_to_env(path: str | Path) -> dict[str, str]:
    """Translate a config file into PAYHOOK_ environment variables.

    A file such as::

        stripe:
          signing_secret: whsec_...

    yields ``{"PAYHOOK_STRIPE_SIGNING_SECRET": "whsec_..."}``.
    """
    env: dict[str, str] = {}
    for key, value in flatten_config(load_config_from_file(path)).items():
        if value is None:
            continue
        value_str = str(value).lower() if isinstance(value, bool) else str(value)
        env[f"PAYHOOK_{key.upper()}"] = value_str
    return env


def _mask(value: str | None) -> str | None:
    return MASK if value else None


class StripeSettings(BaseSettings):
    """Stripe signing configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PAYHOOK_STRIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    signing_secret: str | None = Field(
        default=None,
        repr=False,
        description="Endpoint signing secret (whsec_...).",
    )
    tolerance_seconds: int = Field(
        default=300,
        ge=0,
        description="Maximum age of the signed timestamp (seconds).",
    )


class PayPalSettings(BaseSettings):
    """PayPal verification API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PAYHOOK_PAYPAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    webhook_id: str | None = Field(
        default=None,
        description="Webhook id registered in the PayPal dashboard.",
    )
    client_id: str | None = Field(
        default=None,
        description="REST API client id.",
    )
    client_secret: str | None = Field(
        default=None,
        repr=False,
        description="REST API client secret.",
    )
    sandbox: bool = Field(
        default=False,
        description="Use the sandbox API.",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Verification request timeout (seconds).",
    )


class SquareSettings(BaseSettings):
    """Square signing configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PAYHOOK_SQUARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    signature_key: str | None = Field(
        default=None,
        repr=False,
        description="Subscription signature key.",
    )
    notification_url: str | None = Field(
        default=None,
        description="Notification URL exactly as registered with Square.",
    )
    tolerance_seconds: int = Field(
        default=60,
        ge=0,
        description="Maximum age of the event created_at (seconds).",
    )
    sandbox: bool = Field(
        default=False,
        description="Subscription belongs to a sandbox application.",
    )


class PayhookConfig(BaseSettings):
    """Master configuration combining all settings.

    Use get_config() to get a cached instance.

    Example:
        config = get_config()
        print(config.stripe.tolerance_seconds)
    """

    model_config = SettingsConfigDict(
        env_prefix="PAYHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def stripe(self) -> StripeSettings:
        """Get Stripe configuration."""
        return StripeSettings()

    @property
    def paypal(self) -> PayPalSettings:
        """Get PayPal configuration."""
        return PayPalSettings()

    @property
    def square(self) -> SquareSettings:
        """Get Square configuration."""
        return SquareSettings()

    def to_env_dict(self) -> dict[str, str]:
        """Export current configuration as environment variable dictionary.

        Unset values are exported as empty strings.
        """
        result = {}

        stripe = self.stripe
        result["PAYHOOK_STRIPE_SIGNING_SECRET"] = stripe.signing_secret or ""
        result["PAYHOOK_STRIPE_TOLERANCE_SECONDS"] = str(stripe.tolerance_seconds)

        paypal = self.paypal
        result["PAYHOOK_PAYPAL_WEBHOOK_ID"] = paypal.webhook_id or ""
        result["PAYHOOK_PAYPAL_CLIENT_ID"] = paypal.client_id or ""
        result["PAYHOOK_PAYPAL_CLIENT_SECRET"] = paypal.client_secret or ""
        result["PAYHOOK_PAYPAL_SANDBOX"] = str(paypal.sandbox).lower()
        result["PAYHOOK_PAYPAL_TIMEOUT"] = str(paypal.timeout)

        square = self.square
        result["PAYHOOK_SQUARE_SIGNATURE_KEY"] = square.signature_key or ""
        result["PAYHOOK_SQUARE_NOTIFICATION_URL"] = square.notification_url or ""
        result["PAYHOOK_SQUARE_TOLERANCE_SECONDS"] = str(square.tolerance_seconds)
        result["PAYHOOK_SQUARE_SANDBOX"] = str(square.sandbox).lower()

        return result

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a nested dictionary for display.

        Secrets are masked.
        """
        stripe = self.stripe
        paypal = self.paypal
        square = self.square
        return {
            "stripe": {
                "signing_secret": _mask(stripe.signing_secret),
                "tolerance_seconds": stripe.tolerance_seconds,
            },
            "paypal": {
                "webhook_id": paypal.webhook_id,
                "client_id": paypal.client_id,
                "client_secret": _mask(paypal.client_secret),
                "sandbox": paypal.sandbox,
                "timeout": paypal.timeout,
            },
            "square": {
                "signature_key": _mask(square.signature_key),
                "notification_url": square.notification_url,
                "tolerance_seconds": square.tolerance_seconds,
                "sandbox": square.sandbox,
            },
        }


_config: PayhookConfig | None = None


def get_config() -> PayhookConfig:
    """Get the global configuration instance.

    Returns a cached instance of PayhookConfig that reads from environment variables.
    The instance is created once and cached for the lifetime of the process.

    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = PayhookConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    Useful for testing.
    """
    global _config
    _config = None
