"""Publish/subscribe boundary between state producers and the engine.

Producers (completion signals, override management, pathway assignment)
publish StateChanged after their write is committed.  The engine
subscribes once and recomputes the enrollment synchronously, inside the
publishing call.  The bus is an ordinary object passed in by whoever
wires the service together; there is no process-global instance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

logger = logging.getLogger(__name__)

Trigger = Literal[
    "signal", "override", "assignment", "config", "manual", "backfill", "clock"
]


@dataclass(frozen=True, slots=True)
class StateChanged:
    enrollment_id: UUID
    activity_id: UUID | None
    trigger: Trigger


Subscriber = Callable[[StateChanged], None]


class StateChangeBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, handler: Subscriber) -> None:
        self._subscribers.append(handler)

    def publish(self, event: StateChanged) -> None:
        logger.debug(
            "StateChanged trigger=%s activity=%s",
            event.trigger,
            event.activity_id,
            extra={"enrollment_id": str(event.enrollment_id)},
        )
        # Registration order; a failing subscriber propagates to the producer
        for handler in self._subscribers:
            handler(event)
