import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from conftest import APP, make_item

from dynconfig.events.client import backoff_delays
from dynconfig.events.subscriber import EventSubscriber
from dynconfig.handlers.event_handler import ConfigEventHandler


def test_parse_event():
    event = EventSubscriber.parse_event(
        {
            "event_id": "e-1",
            "event_type": "configuration_updated",
            "application_name": APP,
            "timestamp": "2024-05-01T10:00:00Z",
            "data": json.dumps({"name": "SiteName"}),
        }
    )

    assert event["event_type"] == "configuration_updated"
    assert event["application_name"] == APP
    assert event["data"] == {"name": "SiteName"}


def test_parse_event_with_bad_data():
    event = EventSubscriber.parse_event({"event_type": "configuration_updated", "data": "{oops"})

    assert event["data"] == {}


def test_backoff_delays_are_capped():
    delays = backoff_delays(1.0, maximum=4.0)

    assert [next(delays) for _ in range(5)] == [1.0, 2.0, 4.0, 4.0, 4.0]


def test_notification_for_own_application_triggers_refresh(make_reader, store):
    reader = make_reader()
    store.items.append(make_item("SiteName", "soty.io"))
    handler = ConfigEventHandler(reader)

    asyncio.run(
        handler.handle(
            {"event_type": "configuration_updated", "application_name": APP, "data": {}}
        )
    )

    reader.refresh_and_wait()
    assert reader.contains_key("SiteName")
    assert store.fetch_all_calls >= 2


def test_notification_for_other_application_is_ignored():
    reader = MagicMock()
    reader.application_name = APP
    handler = ConfigEventHandler(reader)

    asyncio.run(
        handler.handle(
            {"event_type": "configuration_updated", "application_name": "SERVICE-B", "data": {}}
        )
    )

    reader.refresh.assert_not_called()


def test_unknown_event_type_is_ignored():
    reader = MagicMock()
    reader.application_name = APP
    handler = ConfigEventHandler(reader)

    asyncio.run(handler.handle({"event_type": "something_else", "data": {}}))

    reader.refresh.assert_not_called()


def test_subscriber_acks_handled_messages():
    redis = MagicMock()
    redis.xgroup_create = AsyncMock()
    redis.xack = AsyncMock()
    client = MagicMock()
    client.get_redis.return_value = redis
    subscriber = EventSubscriber(client, "dynconfig-test", ["configuration-updates"], block_ms=10)
    received: list[dict] = []

    async def handler(event):
        received.append(event)
        await subscriber.stop()

    redis.xreadgroup = AsyncMock(
        return_value=[
            (
                "configuration-updates",
                [("1-0", {"event_type": "configuration_updated", "application_name": APP})],
            )
        ]
    )

    asyncio.run(subscriber.consume(handler))

    assert received[0]["event_type"] == "configuration_updated"
    redis.xgroup_create.assert_awaited_once()
    assert redis.xgroup_create.call_args.kwargs["id"] == "$"
    redis.xack.assert_awaited_once_with("configuration-updates", "dynconfig-test", "1-0")


def test_subscriber_does_not_ack_failed_messages():
    redis = MagicMock()
    redis.xgroup_create = AsyncMock(side_effect=Exception("BUSYGROUP Consumer Group name already exists"))
    redis.xack = AsyncMock()
    client = MagicMock()
    client.get_redis.return_value = redis
    subscriber = EventSubscriber(client, "dynconfig-test", ["configuration-updates"], block_ms=10)

    async def handler(event):
        await subscriber.stop()
        raise RuntimeError("boom")

    redis.xreadgroup = AsyncMock(
        return_value=[("configuration-updates", [("1-0", {"event_type": "configuration_updated"})])]
    )

    asyncio.run(subscriber.consume(handler))

    redis.xack.assert_not_awaited()
