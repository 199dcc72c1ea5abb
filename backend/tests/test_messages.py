"""Tests for message normalization and routing."""
from datetime import datetime, timezone

import pytest

from chat_relay.chat.identity import AnonymousIdentity, LinkedIdentity
from chat_relay.chat.messages import (
    ChatMessage,
    MessageIdGenerator,
    MessageRouter,
    normalize_text,
)


def _linked(connection_id: str = "c1") -> LinkedIdentity:
    return LinkedIdentity(
        connectionId=connection_id, username="miku", displayName="Miku", avatar="a.png"
    )


class TestNormalizeText:

    @pytest.mark.parametrize("payload,expected", [
        ("hi", "hi"),
        ("", ""),
        ({"text": "hello"}, "hello"),
        ({"type": "chat-send", "text": "  spaced  "}, "  spaced  "),
        ({}, ""),
        ({"text": None}, ""),
        ({"text": 42}, ""),
        ({"text": ["a"]}, ""),
        (None, ""),
        (17, ""),
        (["hi"], ""),
    ])
    def test_normalize(self, payload, expected):
        assert normalize_text(payload) == expected

    def test_markup_is_left_untouched(self):
        text = "<script>alert(1)</script>"
        assert normalize_text({"text": text}) == text


class TestMessageIdGenerator:

    def test_ids_strictly_increase(self):
        gen = MessageIdGenerator()
        ids = [gen.next_id() for _ in range(1000)]
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)

    def test_ids_are_time_derived(self):
        before = int(datetime.now(timezone.utc).timestamp() * 1000)
        assert MessageIdGenerator().next_id() >= before


class TestMessageRouter:

    def test_route_stamps_registered_sender(self, presence, history, message_router):
        identity = _linked()
        presence.register("c1", identity)
        before = datetime.now(timezone.utc)

        message = message_router.route("c1", {"text": "hi"})

        assert isinstance(message, ChatMessage)
        assert message.text == "hi"
        assert message.sender == identity
        assert message.timestamp >= before
        assert history.snapshot() == [message]

    def test_unknown_sender_is_dropped(self, history, message_router):
        assert message_router.route("ghost", {"text": "boo"}) is None
        assert history.snapshot() == []

    def test_sender_removed_before_routing_is_dropped(self, presence, history, message_router):
        presence.register("c1", _linked())
        presence.remove("c1")
        assert message_router.route("c1", "late") is None
        assert len(history) == 0

    def test_sender_snapshot_survives_disconnect(self, presence, message_router):
        identity = _linked()
        presence.register("c1", identity)
        message = message_router.route("c1", "bye")
        presence.remove("c1")
        assert message.sender == identity
        assert message.sender.displayName == "Miku"

    def test_sender_snapshot_unaffected_by_later_reregistration(self, presence, message_router):
        presence.register("c1", _linked())
        message = message_router.route("c1", "first")
        presence.register("c1", AnonymousIdentity(
            connectionId="c1", guestNumber=5, username="guest_5",
            displayName="Guest #5", avatar="g.png",
        ))
        assert message.sender.kind == "linked"
        assert message.sender.username == "miku"

    def test_empty_and_missing_text_are_routed(self, presence, history, message_router):
        presence.register("c1", _linked())
        assert message_router.route("c1", {"text": ""}).text == ""
        assert message_router.route("c1", {}).text == ""
        assert message_router.route("c1", None).text == ""
        assert len(history) == 3

    def test_ids_unique_across_messages(self, presence, message_router):
        presence.register("c1", _linked())
        ids = [message_router.route("c1", str(i)).id for i in range(20)]
        assert len(set(ids)) == 20
        assert ids == sorted(ids)

    def test_history_holds_most_recent(self, presence, history, message_router):
        presence.register("c1", _linked())
        for text in ("m1", "m2", "m3", "m4"):
            message_router.route("c1", text)
        assert [m.text for m in history.snapshot()] == ["m2", "m3", "m4"]

    def test_uses_injected_id_generator(self, presence, history):
        class FixedIds:
            def __init__(self):
                self.n = 0

            def next_id(self):
                self.n += 1
                return self.n

        router = MessageRouter(presence, history, ids=FixedIds())
        presence.register("c1", _linked())
        assert router.route("c1", "a").id == 1
        assert router.route("c1", "b").id == 2
