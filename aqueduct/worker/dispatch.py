"""Event handler registry — maps an event type to what the worker does with it.

No automated handlers exist yet: every type resolves to ``unhandled_review``,
which routes the event to a human. Handlers registered here are picked up by
the drain worker without touching its state machine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from aqueduct.events import EventRecord, EventStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerOutcome:
    """Terminal transition a handler asks the worker to apply."""

    status: EventStatus
    needs_human_review: bool
    log: str


EventHandler = Callable[[EventRecord], HandlerOutcome]


def unhandled_review(record: EventRecord) -> HandlerOutcome:
    """Default: flag for human triage."""
    return HandlerOutcome(
        status=EventStatus.NEEDS_HUMAN_REVIEW,
        needs_human_review=True,
        log=f"Worker: no handler for type={record.type}. Marked Needs human review.",
    )


class HandlerRegistry:
    """Event type -> handler, with a default for unknown types."""

    def __init__(self, default: EventHandler = unhandled_review):
        self._handlers: dict[str, EventHandler] = {}
        self._default = default

    def register(self, event_type: str, handler: EventHandler) -> None:
        if event_type in self._handlers:
            logger.warning("Replacing handler for event type %s", event_type)
        self._handlers[event_type] = handler

    def unregister(self, event_type: str) -> None:
        self._handlers.pop(event_type, None)

    def resolve(self, event_type: str) -> EventHandler:
        return self._handlers.get(event_type, self._default)

    def registered_types(self) -> list[str]:
        return sorted(self._handlers)


_registry = HandlerRegistry()


def get_registry() -> HandlerRegistry:
    return _registry


def register_handler(event_type: str, handler: EventHandler) -> None:
    """Register ``handler`` for ``event_type`` on the process-wide registry."""
    _registry.register(event_type, handler)
