"""
Test suite for the event dispatcher
"""

from unittest.mock import Mock

from rebase_vault.events import (
    EventDispatcher, EventPayload, LedgerEvent,
    get_global_dispatcher, set_global_dispatcher
)


def make_event(event_type=LedgerEvent.MINTED):
    return EventPayload(event_type, "account", "0x" + "a" * 40, {"amount": "10"}, ledger_time=42)


class TestEventPayload:
    """Test payload serialization"""

    def test_to_dict(self):
        event = make_event()
        data = event.to_dict()

        assert data["event_type"] == "ledger.minted"
        assert data["entity"] == "account:0x" + "a" * 40
        assert data["ledger_time"] == 42
        assert data["data"] == {"amount": "10"}

    def test_from_dict(self):
        event = make_event(LedgerEvent.REDEEMED)
        restored = EventPayload.from_dict(event.to_dict())

        assert restored.event_type == LedgerEvent.REDEEMED
        assert restored.event_id == event.event_id
        assert restored.emitted_at == event.emitted_at
        assert restored.entity_id == event.entity_id
        assert restored.ledger_time == 42


class TestEventDispatcher:
    """Test subscribe/publish"""

    def test_publish_to_subscriber(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(LedgerEvent.MINTED, handler)

        event = make_event()
        dispatcher.publish(event)

        handler.assert_called_once_with(event)

    def test_only_matching_type(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(LedgerEvent.BURNED, handler)

        dispatcher.publish(make_event(LedgerEvent.MINTED))

        handler.assert_not_called()

    def test_global_handler_after_specific(self):
        """Test specific handlers run before catch-all handlers"""
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.subscribe_all(lambda event: calls.append("global"))
        dispatcher.subscribe(LedgerEvent.MINTED, lambda event: calls.append("specific"))

        dispatcher.publish(make_event())

        assert calls == ["specific", "global"]

    def test_failing_handler_does_not_block_others(self):
        dispatcher = EventDispatcher()
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        dispatcher.subscribe(LedgerEvent.MINTED, failing)
        dispatcher.subscribe(LedgerEvent.MINTED, healthy)

        dispatcher.publish(make_event())

        failing.assert_called_once()
        healthy.assert_called_once()

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(LedgerEvent.MINTED, handler)
        dispatcher.unsubscribe(LedgerEvent.MINTED, handler)

        dispatcher.publish(make_event())

        handler.assert_not_called()

    def test_unsubscribe_unknown_handler(self):
        """Test removing a handler that was never added is harmless"""
        dispatcher = EventDispatcher()
        dispatcher.subscribe(LedgerEvent.MINTED, Mock())
        dispatcher.unsubscribe(LedgerEvent.MINTED, Mock())
        dispatcher.unsubscribe_all(Mock())
        assert dispatcher.get_handler_count() == 1

    def test_unsubscribe_all(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe_all(handler)
        dispatcher.unsubscribe_all(handler)

        dispatcher.publish(make_event())

        handler.assert_not_called()

    def test_handler_counts(self):
        dispatcher = EventDispatcher()
        dispatcher.subscribe(LedgerEvent.MINTED, Mock())
        dispatcher.subscribe(LedgerEvent.MINTED, Mock())
        dispatcher.subscribe(LedgerEvent.BURNED, Mock())
        dispatcher.subscribe_all(Mock())

        assert dispatcher.get_handler_count(LedgerEvent.MINTED) == 2
        assert dispatcher.get_handler_count() == 4
        assert set(dispatcher.get_subscribed_events()) == {LedgerEvent.MINTED, LedgerEvent.BURNED}

        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


class TestGlobalDispatcher:
    """Test the process-wide dispatcher"""

    def test_set_and_get(self):
        original = get_global_dispatcher()
        custom = EventDispatcher()
        try:
            set_global_dispatcher(custom)
            assert get_global_dispatcher() is custom
        finally:
            set_global_dispatcher(original)

    def test_singleton(self):
        assert get_global_dispatcher() is get_global_dispatcher()
