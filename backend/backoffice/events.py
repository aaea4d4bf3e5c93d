# Overview: Change notification channel; collaborators subscribe instead of polling.

"""
Entity change events.

After every successful commit the store emits one ChangeEvent per mutated
entity. The channel is a blinker Signal owned by the EntityStore instance
(never module-level), with the entity type as the sender, so a subscriber can
listen to one entity type or to all of them.

Receivers follow the blinker convention: receiver(sender, event=ChangeEvent).

Dispatch behaviour:
- receivers run sequentially, after the commit
- a failing receiver is logged and skipped; it never undoes the mutation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from blinker import Signal

from .enums import EntityType
from .time_utils import utcnow

logger = logging.getLogger(__name__)


CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    entity_type: EntityType
    action: str
    entity_id: int | None
    branch_id: int | None = None
    occurred_at: datetime = field(default_factory=utcnow)


class ChangeChannel:
    def __init__(self):
        self._signal = Signal("entity-changed")

    def subscribe(self, receiver: Callable, entity_type: EntityType | str | None = None) -> Callable:
        """Connect receiver to one entity type, or to every type when None."""
        if entity_type is None:
            self._signal.connect(receiver, weak=False)
        else:
            self._signal.connect(receiver, sender=EntityType(entity_type), weak=False)
        return receiver

    def unsubscribe(self, receiver: Callable) -> None:
        self._signal.disconnect(receiver)

    def emit(self, event: ChangeEvent) -> int:
        """Deliver event to its receivers. Returns how many receivers failed."""
        failed = 0
        for receiver in list(self._signal.receivers_for(event.entity_type)):
            try:
                receiver(event.entity_type, event=event)
            except Exception:
                failed += 1
                logger.exception(
                    "Change receiver %r failed for %s %s #%s",
                    receiver, event.entity_type, event.action, event.entity_id,
                )
        return failed

    def clear(self) -> None:
        # Receivers are connected strongly, so the stored values are the callables
        for receiver in list(self._signal.receivers.values()):
            self._signal.disconnect(receiver)
