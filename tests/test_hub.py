from __future__ import annotations

import asyncio

from ralph_commander.documents import StatusRecord, TaskRecord
from ralph_commander.sync import HubEvent, PublishHub


def test_publish_fans_out_to_all_subscribers() -> None:
    async def scenario() -> tuple[HubEvent, HubEvent, int]:
        hub = PublishHub()
        first = hub.subscribe()
        second = hub.subscribe()

        delivered = hub.publish("logs", "line\n")

        return await first.next_event(), await second.next_event(), delivered

    first, second, delivered = asyncio.run(scenario())

    assert delivered == 2
    assert first.as_message() == {"type": "logs", "data": "line\n"}
    assert second.as_message() == first.as_message()


def test_unsubscribed_viewer_receives_nothing_further() -> None:
    async def scenario() -> tuple[int, bool, int]:
        hub = PublishHub()
        viewer = hub.subscribe()
        hub.publish("logs", "before\n")

        hub.unsubscribe(viewer)
        delivered = hub.publish("logs", "after\n")

        return delivered, viewer.queue.empty(), hub.subscriber_count

    delivered, empty, count = asyncio.run(scenario())

    assert delivered == 0
    assert empty is True
    assert count == 0


def test_event_messages_serialize_models() -> None:
    status_event = HubEvent(type="status", data=StatusRecord(active=True, iteration=3))
    tasks_event = HubEvent(type="tasks", data=[TaskRecord(description="Write tests", phase="Setup")])

    status_message = status_event.as_message()
    tasks_message = tasks_event.as_message()

    assert status_message["type"] == "status"
    assert status_message["data"]["iteration"] == 3
    assert status_message["data"]["active"] is True
    assert tasks_message["data"] == [
        {"description": "Write tests", "completed": False, "phase": "Setup"}
    ]


def test_pong_has_no_data() -> None:
    assert HubEvent(type="pong").as_message() == {"type": "pong"}
