from __future__ import annotations

from waybill_sync.bus import BusMessage, DataBus, Topic, topic_for_key


def test_broadcast_reaches_subscribers_until_unsubscribed() -> None:
    bus = DataBus()
    received: list[BusMessage] = []
    unsubscribe = bus.subscribe(received.append)

    bus.broadcast("waybills", {"id": "w1"})
    unsubscribe()
    bus.broadcast(Topic.SETTINGS)

    assert [(m.topic, m.payload) for m in received] == [(Topic.WAYBILLS, {"id": "w1"})]


def test_failing_subscriber_does_not_block_others() -> None:
    bus = DataBus()
    received: list[BusMessage] = []

    def _broken(_message: BusMessage) -> None:
        raise RuntimeError("boom")

    bus.subscribe(_broken)
    bus.subscribe(received.append)
    bus.broadcast(Topic.AUDIT)

    assert len(received) == 1


def test_topic_for_key() -> None:
    assert topic_for_key("stockTransactions") == Topic.STOCK
    assert topic_for_key("periodLocks") == Topic.INTEGRITY
    assert topic_for_key("appSettings") == Topic.SETTINGS
