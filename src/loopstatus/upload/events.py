"""
Typed events between the controller and the upload layer.

Producers ``publish`` from the event loop thread; a single consumer task
(``EventBus.run``) hands each event to the subscribers in publication order,
so a settings change published before a loop completion is always handled
first.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from loopstatus.utils.clock import utcnow

logger = logging.getLogger("loopstatus.events")


class LoopUpdateContext(Enum):
    BOLUS = "bolus"
    CARBS = "carbs"
    GLUCOSE = "glucose"
    PREFERENCES = "preferences"
    TEMP_BASAL = "tempBasal"


@dataclass(frozen=True)
class LoopCompleted:
    date: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class LoopDataUpdated:
    context: LoopUpdateContext
    date: datetime = field(default_factory=utcnow)


Event = Union[LoopCompleted, LoopDataUpdated]
Handler = Callable[[Event], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[Event]]" = asyncio.Queue()
        self._subscribers: List[Handler] = []

    def subscribe(self, handler: Handler) -> None:
        self._subscribers.append(handler)

    def publish(self, event: Event) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Ask ``run`` to stop once the events already queued are handled."""
        self._queue.put_nowait(None)

    async def dispatch(self, event: Event) -> None:
        for handler in self._subscribers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", type(event).__name__)

    async def run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every published event has been handled."""
        await self._queue.join()
