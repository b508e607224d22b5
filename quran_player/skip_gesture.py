# quran_player/skip_gesture.py
from typing import Callable

DOUBLE_TAP_WINDOW = 0.75
RESTART_DELAY = 0.85


class SkipGestureDisambiguator:
    """
    Tells a single back press (restart the current item) from a double press
    (go to the previous item).

    The first press schedules ``on_restart`` after ``restart_delay``. A second
    press landing within ``double_tap_window`` of the first cancels it and runs
    ``on_previous`` at once. Any other press while a restart is pending is
    ignored.
    """

    def __init__(self, loop, on_restart: Callable[[], None], on_previous: Callable[[], None],
                 double_tap_window: float = DOUBLE_TAP_WINDOW, restart_delay: float = RESTART_DELAY):
        if not 0 < double_tap_window < restart_delay:
            raise ValueError("double_tap_window must be positive and shorter than restart_delay")
        self.loop = loop
        self.on_restart = on_restart
        self.on_previous = on_previous
        self.double_tap_window = double_tap_window
        self.restart_delay = restart_delay
        self._pending = None
        self._scheduled_at = 0.0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def press(self):
        if self._pending is None:
            self._scheduled_at = self.loop.time()
            self._pending = self.loop.call_later(self.restart_delay, self._fire_restart)
            return

        if self.loop.time() - self._scheduled_at < self.double_tap_window:
            self._pending.cancel()
            self._pending = None
            self.on_previous()
        # else: still waiting on the restart, ignore

    def reset(self):
        """Drop a pending restart without running it."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire_restart(self):
        self._pending = None
        self.on_restart()
