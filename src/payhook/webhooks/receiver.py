"""Webhook receiver.

Glue between an HTTP endpoint and the verification pipeline: verify with a
provider, then dispatch through a handler registry. Nothing is dispatched
unless verification succeeded.

Usage:
    receiver = WebhookReceiver(provider, registry)

    try:
        await receiver.handle(body, headers)
    except WebhookError as e:
        return Response(status_code=receiver.status_for(e))
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from payhook.webhooks.dispatch import HandlerRegistry
from payhook.webhooks.envelope import VerifiedEvent
from payhook.webhooks.errors import WebhookError
from payhook.webhooks.providers import WebhookProvider

logger = structlog.get_logger()


class WebhookReceiver:
    """Verify and dispatch notifications for a single provider."""

    def __init__(self, provider: WebhookProvider, registry: HandlerRegistry) -> None:
        self.provider = provider
        self.registry = registry

    async def handle(self, payload: bytes, headers: Mapping[str, str]) -> VerifiedEvent:
        """Verify ``payload`` and dispatch it to the registered handler.

        Raises:
            WebhookError: If verification fails. Handler exceptions propagate
                unchanged.
        """
        log = logger.bind(provider=self.provider.name)

        try:
            event = await self.provider.verify(payload, headers)
        except WebhookError as e:
            log_method = log.warning if e.retryable else log.info
            log_method("Webhook rejected", error_code=e.code, retryable=e.retryable)
            raise

        log.debug(
            "Webhook verified",
            event_id=event.envelope.id,
            event_type=event.envelope.event_type,
            live_mode=event.envelope.live_mode,
        )
        await self.registry.dispatch(event)
        return event

    @staticmethod
    def status_for(error: WebhookError) -> int:
        """HTTP status to answer a rejected notification with.

        503 asks the provider to redeliver later; 400 tells it not to.
        """
        return 503 if error.retryable else 400

    def describe(self) -> dict[str, Any]:
        """Summarize the provider and handler registry for status output."""
        return {
            "provider": self.provider.name,
            "handlers": len(self.registry),
            "frozen": self.registry.frozen,
        }
