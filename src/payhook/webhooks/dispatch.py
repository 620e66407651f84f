"""Handler registry and dispatch.

A HandlerRegistry maps event-type keys to reactions. Handlers are registered
during setup; the registry is frozen before traffic begins (explicitly with
freeze(), or implicitly on the first dispatch) and is read-only afterwards,
so it can be shared across concurrent dispatches without locking.

Usage:
    registry = HandlerRegistry()

    @registry.on(StripeEventType.PAYMENT_INTENT_SUCCEEDED)
    async def mark_paid(event: VerifiedEvent) -> None:
        await orders.mark_paid(event.object_id)

    registry.freeze()
    await registry.dispatch(verified_event)
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

import structlog

from payhook.webhooks.envelope import VerifiedEvent
from payhook.webhooks.errors import RegistryFrozenError
from payhook.webhooks.events import EventType, OtherEventType, event_type_key

logger = structlog.get_logger()

Reaction = Callable[[VerifiedEvent], Any]


class HandlerRegistry:
    """Build-once mapping from event type to reaction."""

    def __init__(self, handlers: Mapping[EventType | str, Reaction] | None = None) -> None:
        self._handlers: Mapping[str, Reaction] = {}
        self._default: Reaction | None = None
        self._frozen = False
        for event_type, reaction in (handlers or {}).items():
            self.register(event_type, reaction)

    @property
    def frozen(self) -> bool:
        """Whether the setup phase has ended."""
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError(
                "Handlers cannot be registered after the registry is frozen"
            )

    def register(self, event_type: EventType | str, reaction: Reaction) -> HandlerRegistry:
        """Register ``reaction`` for ``event_type``, replacing any previous one."""
        self._check_mutable()
        if not callable(reaction):
            raise TypeError("reaction must be callable")
        self._handlers[event_type_key(event_type)] = reaction  # type: ignore[index]
        return self

    def on(self, event_type: EventType | str) -> Callable[[Reaction], Reaction]:
        """Decorator form of register()."""

        def decorator(reaction: Reaction) -> Reaction:
            self.register(event_type, reaction)
            return reaction

        return decorator

    def register_default(self, reaction: Reaction) -> HandlerRegistry:
        """Register a fallback for event types with no specific handler."""
        self._check_mutable()
        self._default = reaction
        return self

    def freeze(self) -> HandlerRegistry:
        """End the setup phase. Idempotent."""
        if not self._frozen:
            self._handlers = MappingProxyType(dict(self._handlers))
            self._frozen = True
        return self

    def handler_for(self, event_type: EventType | str) -> Reaction | None:
        """Return the reaction that would handle ``event_type``."""
        return self._handlers.get(event_type_key(event_type), self._default)

    def __contains__(self, event_type: object) -> bool:
        if not isinstance(event_type, (str, Enum, OtherEventType)):
            return False
        return event_type_key(event_type) in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def _lookup(self, event: VerifiedEvent) -> Reaction | None:
        self.freeze()
        reaction = self.handler_for(event.event_type)
        if reaction is None:
            logger.debug(
                "No handler registered",
                event_id=event.envelope.id,
                event_type=event.envelope.event_type,
            )
        return reaction

    async def dispatch(self, event: VerifiedEvent) -> Any:
        """Invoke the handler for ``event`` and return its result.

        Awaitable results are awaited. Exceptions raised by the handler
        propagate unchanged. Returns None when no handler is registered.
        """
        reaction = self._lookup(event)
        if reaction is None:
            return None
        result = reaction(event)
        if inspect.isawaitable(result):
            result = await result
        return result

    def dispatch_sync(self, event: VerifiedEvent) -> Any:
        """Synchronous dispatch for registries holding only plain functions.

        Raises:
            TypeError: If the handler returns an awaitable.
        """
        reaction = self._lookup(event)
        if reaction is None:
            return None
        result = reaction(event)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise TypeError(
                f"Handler for {event.envelope.event_type!r} is asynchronous; use dispatch()"
            )
        return result
