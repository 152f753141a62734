"""Tests for the change-event emitter."""

from workspace.events import CONTENT_CHANGED, EventEmitter


class TestEventEmitter:
    def test_emit_reaches_subscribers(self):
        emitter = EventEmitter()
        seen = []
        emitter.subscribe(seen.append)
        event = emitter.emit(CONTENT_CHANGED, "doc", length=3)
        assert seen == [event]
        assert event.data == {"length": 3}

    def test_unsubscribe(self):
        emitter = EventEmitter()
        seen = []
        unsubscribe = emitter.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        emitter.emit(CONTENT_CHANGED)
        assert seen == []
        assert len(emitter) == 0

    def test_failing_listener_does_not_block_others(self):
        emitter = EventEmitter()
        seen = []

        def broken(_event):
            raise RuntimeError("boom")

        emitter.subscribe(broken)
        emitter.subscribe(seen.append)
        emitter.emit(CONTENT_CHANGED)
        assert len(seen) == 1

    def test_listener_may_unsubscribe_during_emit(self):
        emitter = EventEmitter()
        calls = []
        holder = {}

        def once(event):
            calls.append(event.kind)
            holder["unsub"]()

        holder["unsub"] = emitter.subscribe(once)
        emitter.emit(CONTENT_CHANGED)
        emitter.emit(CONTENT_CHANGED)
        assert calls == [CONTENT_CHANGED]
