import threading

from clipshelf.services import NotificationBus
from clipshelf.services.notification_service import ITEM_CREATED, ITEM_DELETED

from conftest import wait_for


def test_every_subscriber_receives_events(bus):
    first = bus.subscribe()
    second = bus.subscribe()

    bus.publish(ITEM_CREATED, "i_1", kind="text")

    for sub in (first, second):
        event = sub.get(timeout=0.1)
        assert event.kind == ITEM_CREATED
        assert event.item_id == "i_1"
        assert event.payload == {"kind": "text"}


def test_slow_subscriber_drops_oldest():
    bus = NotificationBus(default_maxsize=2)
    sub = bus.subscribe()

    for n in range(5):
        bus.publish(ITEM_CREATED, f"i_{n}")

    assert [e.item_id for e in sub.drain()] == ["i_3", "i_4"]
    assert sub.dropped == 3


def test_closed_subscription_stops_receiving(bus):
    sub = bus.subscribe()
    sub.close()

    bus.publish(ITEM_DELETED, "i_1")

    assert sub.get(timeout=0.01) is None
    assert bus.subscriber_count == 0


def test_publish_without_subscribers_is_harmless(bus):
    event = bus.publish(ITEM_CREATED, "i_1")
    assert event.to_dict()["kind"] == ITEM_CREATED


def test_listen_runs_callback_on_background_thread(bus):
    seen = []
    threads = set()

    def callback(event):
        threads.add(threading.current_thread().name)
        seen.append(event.item_id)

    stop = bus.listen(callback)
    try:
        bus.publish(ITEM_CREATED, "i_1")
        bus.publish(ITEM_DELETED, "i_1")
        assert wait_for(lambda: len(seen) == 2)
    finally:
        stop()

    assert seen == ["i_1", "i_1"]
    assert threads == {"clipshelf-listener"}


def test_failing_listener_does_not_stop_delivery(bus):
    seen = []

    def callback(event):
        seen.append(event.item_id)
        if event.item_id == "bad":
            raise ValueError("listener bug")

    stop = bus.listen(callback)
    try:
        bus.publish(ITEM_CREATED, "bad")
        bus.publish(ITEM_CREATED, "good")
        assert wait_for(lambda: seen == ["bad", "good"])
    finally:
        stop()
