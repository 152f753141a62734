"""
Settle-and-persist save tracking.

An edit flips the document to dirty and lights the saving indicator. Only
after a full quiescence window with no further edits does it settle to saved
(trailing-edge debounce): every edit inside the window pushes the deadline
out again.

The tracker is driven two ways:
  - Inside a running asyncio loop, each edit (re)schedules a loop timer that
    settles the state when the window elapses.
  - Without a loop (tests, batch tools), call poll() with an injectable
    clock; it settles once the deadline has passed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class SaveState:
    dirty: bool = False
    saving_indicator_active: bool = False
    last_saved_at: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "dirty": self.dirty,
            "saving_indicator_active": self.saving_indicator_active,
            "last_saved_at": self.last_saved_at,
        }


class SaveTracker:
    def __init__(
        self,
        window: float = 0.8,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        on_change: Callable[[SaveState], None] = None,
    ):
        self.window = window
        self.state = SaveState()
        self._clock = clock
        self._wall_clock = wall_clock
        self.on_change = on_change
        self._deadline: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def mark_dirty(self) -> None:
        """Record an edit and restart the quiescence window."""
        self.state.dirty = True
        self.state.saving_indicator_active = True
        self._deadline = self._clock() + self.window
        self._reschedule()
        self._notify()

    def poll(self) -> bool:
        """Settle if the window has elapsed. Returns True when it settled."""
        if self._deadline is None or self._clock() < self._deadline:
            return False
        self.mark_saved()
        return True

    def mark_saved(self) -> None:
        """Settle immediately (explicit save, or the debounce elapsed)."""
        self._cancel_timer()
        self._deadline = None
        self.state.dirty = False
        self.state.saving_indicator_active = False
        self.state.last_saved_at = self._wall_clock()
        self._notify()

    def reset(self, last_saved_at: Optional[float] = None) -> None:
        self._cancel_timer()
        self._deadline = None
        self.state = SaveState(last_saved_at=last_saved_at)

    def _reschedule(self) -> None:
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer = loop.call_later(self.window, self._on_timer)

    def _on_timer(self) -> None:
        # Each edit re-arms the timer, so firing means a full quiet window elapsed.
        self._timer = None
        if self._deadline is not None:
            self.mark_saved()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)
