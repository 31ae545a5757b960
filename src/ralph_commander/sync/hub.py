"""Fan-out of status, task and log events to live subscribers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

logger = logging.getLogger(__name__)

EventType = Literal["status", "logs", "tasks", "pong"]


@dataclass(slots=True)
class HubEvent:
    """A message delivered to subscribers as ``{"type": ..., "data": ...}``."""

    type: EventType
    data: Any = None

    def as_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"type": self.type}
        if self.type != "pong":
            message["data"] = _to_jsonable(self.data)
        return message


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


@dataclass(eq=False)
class Subscription:
    """Queue feeding one connected viewer."""

    id: int
    queue: asyncio.Queue[HubEvent] = field(default_factory=asyncio.Queue)
    closed: bool = False

    def deliver(self, event: HubEvent) -> None:
        if not self.closed:
            self.queue.put_nowait(event)

    async def next_event(self) -> HubEvent:
        return await self.queue.get()


class PublishHub:
    """Single broadcast point shared by the change bridge and every viewer."""

    def __init__(self) -> None:
        self._subscribers: set[Subscription] = set()
        self._counter = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        self._counter += 1
        subscription = Subscription(id=self._counter)
        self._subscribers.add(subscription)
        logger.debug("Subscriber connected", extra={"subscriber": subscription.id})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        self._subscribers.discard(subscription)
        # Drop anything still buffered for the departed viewer.
        while not subscription.queue.empty():
            subscription.queue.get_nowait()
        logger.debug("Subscriber disconnected", extra={"subscriber": subscription.id})

    def publish(self, type: EventType, data: Any = None) -> int:
        """Deliver an event to every current subscriber; returns the fan-out count."""

        event = HubEvent(type=type, data=data)
        recipients = list(self._subscribers)
        for subscription in recipients:
            subscription.deliver(event)
        return len(recipients)


__all__ = ["EventType", "HubEvent", "PublishHub", "Subscription"]
