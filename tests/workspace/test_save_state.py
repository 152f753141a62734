"""Tests for debounced save-state tracking."""

import asyncio

from workspace.save_state import SaveTracker


def _tracker(clock, seen=None):
    return SaveTracker(
        window=0.8,
        clock=clock,
        wall_clock=lambda: 1700000000.0,
        on_change=(seen.append if seen is not None else None),
    )


class TestPolling:
    def test_edit_marks_dirty(self, clock):
        tracker = _tracker(clock)
        tracker.mark_dirty()
        assert tracker.state.dirty
        assert tracker.state.saving_indicator_active
        assert tracker.pending

    def test_settles_after_window(self, clock):
        tracker = _tracker(clock)
        tracker.mark_dirty()
        clock.advance(0.5)
        assert not tracker.poll()
        clock.advance(0.3)
        assert tracker.poll()
        assert not tracker.state.dirty
        assert not tracker.state.saving_indicator_active
        assert tracker.state.last_saved_at == 1700000000.0

    def test_each_edit_restarts_window(self, clock):
        tracker = _tracker(clock)
        tracker.mark_dirty()
        clock.advance(0.7)
        tracker.mark_dirty()
        clock.advance(0.7)
        assert not tracker.poll()
        assert tracker.state.dirty
        clock.advance(0.1)
        assert tracker.poll()

    def test_poll_without_edit(self, clock):
        tracker = _tracker(clock)
        assert not tracker.poll()
        assert tracker.state.last_saved_at is None

    def test_explicit_save(self, clock):
        seen = []
        tracker = _tracker(clock, seen)
        tracker.mark_dirty()
        tracker.mark_saved()
        assert not tracker.pending
        assert [s.dirty for s in seen][-1] is False

    def test_reset(self, clock):
        tracker = _tracker(clock)
        tracker.mark_dirty()
        tracker.reset(last_saved_at=5.0)
        assert not tracker.pending
        assert not tracker.state.dirty
        assert tracker.state.last_saved_at == 5.0


class TestLoopTimer:
    def test_timer_settles_inside_event_loop(self):
        async def scenario():
            tracker = SaveTracker(window=0.01)
            tracker.mark_dirty()
            assert tracker.state.dirty
            await asyncio.sleep(0.05)
            return tracker

        tracker = asyncio.run(scenario())
        assert not tracker.state.dirty
        assert tracker.state.last_saved_at is not None

    def test_rapid_edits_settle_once(self):
        async def scenario():
            saved = []
            tracker = SaveTracker(window=0.03)
            tracker.on_change = lambda s: saved.append(s.dirty) if not s.dirty else None
            for _ in range(5):
                tracker.mark_dirty()
                await asyncio.sleep(0.005)
            await asyncio.sleep(0.1)
            return saved

        assert asyncio.run(scenario()) == [False]
