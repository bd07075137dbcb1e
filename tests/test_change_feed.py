from __future__ import annotations

import asyncio

from roomsync.models.models import ChangeEvent, Message, Room
from roomsync.services.change_feed import InMemoryChangeFeed, room_topic
from roomsync.services.redis_pub_sub import RedisChangeFeed, redis_url
from roomsync.services.subscriber import subscribe

ROOM = Room(id="room-1", name="Public Chat Room", slug="public")


def _recorder():
    inserts, deletes = [], []
    return inserts, deletes, inserts.append, deletes.append


def test_subscriber_dispatches_one_callback_per_event(feed: InMemoryChangeFeed, make_message):
    inserts, deletes, on_insert, on_delete = _recorder()
    handle = subscribe(feed, ROOM, on_insert, on_delete)

    async def scenario():
        await feed.publish(room_topic(ROOM.id), ChangeEvent(kind="insert", record=make_message("1", 1)))
        await feed.publish(room_topic(ROOM.id), ChangeEvent(kind="insert", record=make_message("2", 2)))
        await feed.publish(room_topic(ROOM.id), ChangeEvent(kind="delete", record=Message(id="1", room_id=ROOM.id)))

    asyncio.run(scenario())
    assert [m.id for m in inserts] == ["1", "2"]
    assert deletes == ["1"]
    handle.cancel()


def test_subscriber_drops_foreign_room_events(feed, make_message):
    inserts, deletes, on_insert, on_delete = _recorder()
    subscribe(feed, ROOM, on_insert, on_delete)

    stray = make_message("x", 1, room_id="room-2")
    asyncio.run(feed.publish(room_topic(ROOM.id), ChangeEvent(kind="insert", record=stray)))
    assert inserts == []


def test_cancel_releases_subscription_once(feed, make_message):
    inserts, deletes, on_insert, on_delete = _recorder()
    handle = subscribe(feed, ROOM, on_insert, on_delete)
    assert feed.listener_count(room_topic(ROOM.id)) == 1

    handle.cancel()
    handle.cancel()

    assert handle.cancelled
    assert feed.listener_count(room_topic(ROOM.id)) == 0
    asyncio.run(feed.publish(room_topic(ROOM.id), ChangeEvent(kind="insert", record=make_message("1", 1))))
    assert inserts == []


def test_failing_handler_does_not_block_other_listeners(feed, make_message):
    received = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe("room:room-1", broken)
    feed.subscribe("room:room-1", received.append)
    asyncio.run(feed.publish("room:room-1", ChangeEvent(kind="insert", record=make_message("1", 1))))
    assert len(received) == 1


def test_redis_url():
    assert redis_url("cache", 6380) == "redis://cache:6380"
    assert redis_url("cache", 6380, "secret", ssl=True) == "rediss://:secret@cache:6380"


def test_redis_feed_routes_decoded_events_locally(make_message):
    redis_feed = RedisChangeFeed(client=object())
    received = []
    redis_feed.subscribe("room:room-1", received.append)

    payload = ChangeEvent(kind="insert", record=make_message("5", 5)).model_dump_json()

    async def scenario():
        await redis_feed.dispatch("room:room-1", payload)
        await redis_feed.dispatch("room:room-1", "{not json")
        await redis_feed.dispatch("room:room-2", payload)

    asyncio.run(scenario())
    assert [e.record.id for e in received] == ["5"]
    assert received[0].kind == "insert"
