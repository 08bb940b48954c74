"""Tests for the keyed publisher."""

import pytest

from scadcollab_api.pubsub import Publisher


@pytest.mark.asyncio
class TestPublisher:
    """Test subscribe/publish/unsubscribe semantics."""

    async def test_publish_reaches_all_subscribers_of_key(self):
        publisher = Publisher("test")
        received_a, received_b, received_other = [], [], []
        publisher.subscribe("s1", received_a.append)
        publisher.subscribe("s1", received_b.append)
        publisher.subscribe("s2", received_other.append)

        await publisher.publish("s1", "hello")

        assert received_a == ["hello"]
        assert received_b == ["hello"]
        assert received_other == []

    async def test_async_listeners_are_awaited(self):
        publisher = Publisher("test")
        received = []

        async def listener(value):
            received.append(value)

        publisher.subscribe("k", listener)
        await publisher.publish("k", 1)

        assert received == [1]

    async def test_no_delivery_after_unsubscribe(self):
        publisher = Publisher("test")
        received = []
        subscription = publisher.subscribe("k", received.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        await publisher.publish("k", "late")

        assert received == []
        assert not publisher.has_subscribers("k")

    async def test_unsubscribe_during_publish_skips_pending_listener(self):
        publisher = Publisher("test")
        received = []
        second = None

        def first(value):
            second.unsubscribe()

        publisher.subscribe("k", first)
        second = publisher.subscribe("k", received.append)

        await publisher.publish("k", "value")

        assert received == []

    async def test_listener_failure_does_not_stop_delivery(self):
        publisher = Publisher("test")
        received = []

        def broken(value):
            raise RuntimeError("boom")

        publisher.subscribe("k", broken)
        publisher.subscribe("k", received.append)

        await publisher.publish("k", "value")

        assert received == ["value"]

    async def test_subscription_is_callable(self):
        publisher = Publisher("test")
        subscription = publisher.subscribe("k", lambda v: None)
        assert publisher.subscriber_count("k") == 1

        subscription()

        assert publisher.subscriber_count("k") == 0
