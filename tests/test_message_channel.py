"""Tests for the team chat channel and unread counting."""

from datetime import UTC, datetime, timedelta

import pytest

from scadcollab_api.core import ClientSessionCache, UnreadCounter, order_comments
from scadcollab_api.models import CommentPosition, SessionComment

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def comment(comment_id: str, user_id: str, seconds: int) -> SessionComment:
    return SessionComment(
        id=comment_id,
        session_id="s1",
        user_id=user_id,
        user_name=user_id,
        content=f"comment {comment_id}",
        timestamp=T0 + timedelta(seconds=seconds),
    )


def test_order_comments_by_timestamp_then_id():
    comments = [comment("b", "u1", 5), comment("c", "u1", 1), comment("a", "u1", 5)]

    assert [c.id for c in order_comments(comments)] == ["c", "a", "b"]


@pytest.mark.asyncio
class TestMessageChannel:
    """Test posting and subscribing."""

    async def test_post_assigns_store_timestamp(self, channel, clock):
        posted = await channel.post(
            "s1", "u1", "Ann", "check line 3", position=CommentPosition(line=3, column=1)
        )

        assert posted.timestamp == clock.now
        assert posted.position.line == 3
        assert posted.user_name == "Ann"

    async def test_list_is_ordered_and_scoped(self, channel):
        first = await channel.post("s1", "u1", "Ann", "first")
        second = await channel.post("s1", "u2", "Bob", "second")
        await channel.post("s2", "u1", "Ann", "elsewhere")

        comments = await channel.list("s1")

        assert [c.id for c in comments] == [first.id, second.id]

    async def test_subscribe_delivers_full_list(self, channel):
        await channel.post("s1", "u1", "Ann", "first")
        deliveries = []

        await channel.subscribe("s1", deliveries.append)
        await channel.post("s1", "u2", "Bob", "second")

        assert [len(d) for d in deliveries] == [1, 2]
        assert [c.content for c in deliveries[-1]] == ["first", "second"]

    async def test_subscribe_orders_out_of_order_arrivals(self, channel, backend):
        deliveries = []
        await channel.subscribe("s1", deliveries.append)

        for comment_id, seconds in (("late", 30), ("early", 10), ("middle", 20)):
            await backend.insert(
                "comments",
                {
                    "session_id": "s1",
                    "user_id": "u1",
                    "user_name": "Ann",
                    "content": comment_id,
                    "timestamp": T0 + timedelta(seconds=seconds),
                },
                doc_id=comment_id,
            )

        assert [c.id for c in deliveries[-1]] == ["early", "middle", "late"]
        assert [c.id for c in deliveries[2]] == ["early", "late"]

    async def test_subscribe_load_failure_delivers_nothing(self, channel, backend):
        deliveries = []
        backend.available = False

        subscription = await channel.subscribe("s1", deliveries.append)

        assert deliveries == []
        subscription.unsubscribe()

    async def test_unsubscribe_stops_delivery(self, channel):
        deliveries = []
        subscription = await channel.subscribe("s1", deliveries.append)

        subscription.unsubscribe()
        await channel.post("s1", "u1", "Ann", "late")

        assert deliveries == [[]]


class TestUnreadCounter:
    """Test unread counting against the client cache."""

    def make_counter(self, now_seconds: int = 0) -> UnreadCounter:
        return UnreadCounter(
            ClientSessionCache(), "s1", "me", clock=lambda: T0 + timedelta(seconds=now_seconds)
        )

    def test_never_read_counts_all_from_others(self):
        counter = self.make_counter()
        comments = [comment("a", "u1", 1), comment("b", "me", 2), comment("c", "u2", 3)]

        assert counter.observe(comments) == 2

    def test_open_resets_and_marks_read(self):
        counter = self.make_counter()
        comments = [comment("a", "u1", 1), comment("b", "u2", 2)]
        counter.observe(comments)

        counter.open(comments)

        assert counter.unread == 0
        assert counter.last_read == T0 + timedelta(seconds=2)

    def test_deliveries_while_open_stay_read(self):
        counter = self.make_counter()
        counter.open([])

        assert counter.observe([comment("a", "u1", 10)]) == 0
        assert counter.last_read == T0 + timedelta(seconds=10)

    def test_only_newer_comments_count_after_close(self):
        counter = self.make_counter()
        seen = [comment("a", "u1", 1)]
        counter.open(seen)
        counter.close()

        unread = counter.observe([*seen, comment("b", "u1", 5), comment("c", "me", 6)])

        assert unread == 1

    def test_last_read_never_moves_backwards(self):
        counter = self.make_counter()
        counter.open([comment("a", "u1", 30)])

        counter.open([comment("b", "u1", 5)])

        assert counter.last_read == T0 + timedelta(seconds=30)
