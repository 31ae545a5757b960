from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from watchfiles import Change

from ralph_commander.context import RalphContext
from ralph_commander.sync import ChangeBridge, FileChange
from ralph_commander.sync.hub import HubEvent, Subscription


def drain_events(subscription: Subscription) -> list[HubEvent]:
    events = []
    while not subscription.queue.empty():
        events.append(subscription.queue.get_nowait())
    return events


def append(path: Path, text: str) -> None:
    with path.open("a", encoding="utf-8") as handle:
        handle.write(text)


def test_enqueue_keeps_one_change_per_file(context: RalphContext) -> None:
    settings = context.settings
    bridge = ChangeBridge(context)

    queued = bridge.enqueue(
        [
            (Change.modified, str(settings.log_path)),
            (Change.modified, str(settings.log_path)),
            (Change.added, str(settings.plan_path)),
            (Change.modified, str(settings.root / "unrelated.txt")),
            (Change.modified, str(settings.stats_path)),
        ]
    )

    assert sorted(change.kind for change in queued) == ["logs", "tasks"]
    assert bridge.queue.qsize() == 2


def test_deleted_log_is_classified(context: RalphContext) -> None:
    bridge = ChangeBridge(context)

    queued = bridge.enqueue([(Change.deleted, str(context.settings.log_path))])

    assert [change.kind for change in queued] == ["logs"]


def test_watches_parent_directories(context: RalphContext) -> None:
    settings = context.settings
    bridge = ChangeBridge(context)

    assert bridge.directories == [settings.status_path.parent.resolve(), settings.root.resolve()]


def test_status_change_publishes_status_with_stats(context: RalphContext, write_status) -> None:
    bridge = ChangeBridge(context)
    viewer = context.hub.subscribe()

    write_status("---\nactive: true\niteration: 99\n---\nUpdated prompt")
    bridge.enqueue([(Change.modified, str(context.settings.status_path))])
    bridge.drain()

    events = drain_events(viewer)
    assert [event.type for event in events] == ["status"]
    message = events[0].as_message()
    assert message["data"]["iteration"] == 99
    assert message["data"]["active"] is True
    assert message["data"]["is_zombie"] is True
    assert message["data"]["stats"]["iteration_history"] == []


def test_malformed_status_is_skipped(context: RalphContext, write_status) -> None:
    bridge = ChangeBridge(context)
    viewer = context.hub.subscribe()

    write_status("---\nactive: true\n")
    bridge.enqueue([(Change.modified, str(context.settings.status_path))])

    assert bridge.drain() == 0
    assert drain_events(viewer) == []


def test_invalid_utf8_status_still_publishes(context: RalphContext) -> None:
    status_path = context.settings.status_path
    status_path.parent.mkdir(parents=True, exist_ok=True)
    status_path.write_bytes(b"---\nactive: true\niteration: 2\nphase: \xe2\x9c\n---\nPrompt")
    bridge = ChangeBridge(context)
    viewer = context.hub.subscribe()

    bridge.enqueue([(Change.modified, str(status_path))])

    assert bridge.drain() == 1
    assert drain_events(viewer)[0].as_message()["data"]["iteration"] == 2


def test_plan_change_publishes_tasks(context: RalphContext) -> None:
    bridge = ChangeBridge(context)
    viewer = context.hub.subscribe()

    context.settings.plan_path.write_text("**Phase 1: Setup**\n- [x] Scaffold\n", encoding="utf-8")
    bridge.enqueue([(Change.modified, str(context.settings.plan_path))])
    bridge.drain()

    events = drain_events(viewer)
    assert [event.type for event in events] == ["tasks"]
    assert events[0].as_message()["data"] == [
        {"description": "Scaffold", "completed": True, "phase": "Setup"}
    ]


def test_log_change_publishes_delta_only(context: RalphContext) -> None:
    log = context.settings.log_path
    append(log, "initial\n")
    bridge = ChangeBridge(context)
    context.tailer.prime()
    viewer = context.hub.subscribe()

    append(log, "UNIQUE_LOG_LINE\n")
    bridge.enqueue([(Change.modified, str(log))])
    bridge.drain()

    events = drain_events(viewer)
    assert [event.as_message() for event in events] == [{"type": "logs", "data": "UNIQUE_LOG_LINE\n"}]


def test_empty_log_delta_is_not_published(context: RalphContext) -> None:
    log = context.settings.log_path
    append(log, "initial\n")
    bridge = ChangeBridge(context)
    viewer = context.hub.subscribe()
    context.tailer.prime()

    bridge.queue.put_nowait(FileChange(kind="logs", path=log))

    assert bridge.drain() == 0
    assert drain_events(viewer) == []


def test_consumer_survives_failing_change(context: RalphContext, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"count": 0}
    original = context.read_tasks

    def flaky_read_tasks():
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("plan vanished mid-read")
        return original()

    monkeypatch.setattr(context, "read_tasks", flaky_read_tasks)

    async def scenario() -> HubEvent:
        bridge = ChangeBridge(context)
        viewer = context.hub.subscribe()
        consumer = asyncio.create_task(bridge.consume())
        try:
            bridge.queue.put_nowait(FileChange(kind="tasks", path=context.settings.plan_path))
            bridge.queue.put_nowait(FileChange(kind="tasks", path=context.settings.plan_path))
            event = await asyncio.wait_for(viewer.next_event(), timeout=5)
            assert not consumer.done()
            return event
        finally:
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)

    event = asyncio.run(scenario())

    assert event.type == "tasks"
    assert calls["count"] == 2


def test_running_bridge_streams_log_appends(context: RalphContext) -> None:
    log = context.settings.log_path
    append(log, "before start\n")

    async def scenario() -> HubEvent:
        bridge = ChangeBridge(context, interval=0.05)
        viewer = context.hub.subscribe()
        bridge.start()
        try:
            await asyncio.sleep(0.2)
            for _ in range(20):
                append(log, "streamed line\n")
                try:
                    return await asyncio.wait_for(viewer.next_event(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue
            raise AssertionError("no log event was published")
        finally:
            await bridge.stop()
            context.hub.unsubscribe(viewer)

    event = asyncio.run(scenario())

    message = event.as_message()
    assert message["type"] == "logs"
    assert message["data"].startswith("streamed line\n")
    assert "before start" not in message["data"]
