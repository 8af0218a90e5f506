"""Tests for the synchronous event dispatcher."""

import threading

import pytest

from apikernel.core.request import Request
from apikernel.events import AuthorizeEvent, KernelEvent, KernelEvents, PrepareEvent
from apikernel.events.dispatcher import EventDispatcher
from tests._support.fakes import Recorder


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def event() -> KernelEvent:
    return PrepareEvent(None, Request.create("Contact", "get", {"version": 3}))


class TestOrdering:
    """Priority first (higher earlier), then registration order."""

    def test_priority_then_registration(self, dispatcher, event):
        order = []
        dispatcher.add_listener("e", lambda ev: order.append("low"), priority=-5)
        dispatcher.add_listener("e", lambda ev: order.append("first"))
        dispatcher.add_listener("e", lambda ev: order.append("high"), priority=10)
        dispatcher.add_listener("e", lambda ev: order.append("second"))
        dispatcher.dispatch("e", event)
        assert order == ["high", "first", "second", "low"]

    def test_get_listeners_in_call_order(self, dispatcher):
        a, b = Recorder("a"), Recorder("b")
        dispatcher.add_listener("e", a)
        dispatcher.add_listener("e", b, priority=1)
        assert dispatcher.get_listeners("e") == [b, a]


class TestDispatch:
    def test_returns_same_event(self, dispatcher, event):
        assert dispatcher.dispatch("nobody-listens", event) is event

    def test_listeners_mutate_event(self, dispatcher):
        event = AuthorizeEvent(None, Request.create("Contact", "get", {}))
        dispatcher.add_listener(KernelEvents.AUTHORIZE, lambda ev: ev.authorize())
        assert dispatcher.dispatch(KernelEvents.AUTHORIZE, event).is_authorized()

    def test_stop_propagation(self, dispatcher, event):
        late = Recorder("late")
        dispatcher.add_listener("e", lambda ev: ev.stop_propagation(), priority=1)
        dispatcher.add_listener("e", late)
        dispatcher.dispatch("e", event)
        assert event.is_propagation_stopped
        assert late.events == []

    def test_listener_errors_propagate(self, dispatcher, event):
        def broken(ev):
            raise RuntimeError("listener failed")

        dispatcher.add_listener("e", broken)
        with pytest.raises(RuntimeError, match="listener failed"):
            dispatcher.dispatch("e", event)

    def test_registration_during_dispatch_uses_snapshot(self, dispatcher, event):
        added = Recorder("added")

        def registers(ev):
            dispatcher.add_listener("e", added)

        dispatcher.add_listener("e", registers)
        dispatcher.dispatch("e", event)
        assert added.events == []
        assert len(dispatcher.get_listeners("e")) == 2


class TestRegistration:
    def test_remove_listener(self, dispatcher, event):
        recorder = Recorder()
        dispatcher.add_listener("e", recorder)
        dispatcher.remove_listener("e", recorder)
        dispatcher.dispatch("e", event)
        assert recorder.events == []
        assert not dispatcher.has_listeners("e")

    def test_has_listeners(self, dispatcher):
        assert not dispatcher.has_listeners()
        dispatcher.add_listener("e", Recorder())
        assert dispatcher.has_listeners()
        assert dispatcher.has_listeners("e")
        assert not dispatcher.has_listeners("other")

    def test_subscriber_specs(self, dispatcher, event):
        class Subscriber:
            def __init__(self):
                self.calls = []

            def plain(self, ev):
                self.calls.append("plain")

            def early(self, ev):
                self.calls.append("early")

            def late(self, ev):
                self.calls.append("late")

            def get_subscribed_events(self):
                return {
                    "a": "plain",
                    "b": ("early", 10),
                    "c": [("late", -10), ("early", 5)],
                }

        subscriber = Subscriber()
        dispatcher.add_subscriber(subscriber)
        assert dispatcher.listener_count == 4

        dispatcher.dispatch("c", event)
        assert subscriber.calls == ["early", "late"]

        dispatcher.remove_subscriber(subscriber)
        assert dispatcher.listener_count == 0

    def test_concurrent_registration(self, dispatcher):
        def register(n):
            for _ in range(50):
                dispatcher.add_listener("e", Recorder(str(n)))

        threads = [threading.Thread(target=register, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert dispatcher.listener_count == 200
