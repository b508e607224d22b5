# quran_player/media_engine.py
from enum import Enum
from typing import Callable, List, Optional, Sequence


class MediaStatus(Enum):
    READY = "ready"
    FAILED = "failed"
    UNKNOWN = "unknown"


class Subscription:
    """Handle returned by every ``on_*`` registration. ``cancel()`` is idempotent."""

    def __init__(self, listeners: List["Subscription"], callback: Callable):
        self._listeners = listeners
        self.callback = callback
        self.active = True
        listeners.append(self)

    def cancel(self):
        if not self.active:
            return
        self.active = False
        try:
            self._listeners.remove(self)
        except ValueError:
            pass


class MediaEngine:
    """
    Playback primitive driven by the sequencer.

    A load replaces the whole queue and starts at its first item. Exactly one
    terminal ``status_changed`` (READY, FAILED or UNKNOWN) follows each load; a
    FAILED status may still arrive later if the stream breaks during playback.
    When an item finishes the engine advances to the next queued item without
    a gap and emits ``item_ended(index)`` for the finished one. After the last
    item it stays positioned at the end: ``seek(0)`` + ``play()`` replays it.

    Subclasses call ``_emit_*`` from the control loop only.
    """

    def __init__(self):
        self._item_ended: List[Subscription] = []
        self._status_changed: List[Subscription] = []
        self._interruption: List[Subscription] = []

    # --- Subscriptions ---
    def on_item_ended(self, callback: Callable[[int], None]) -> Subscription:
        return Subscription(self._item_ended, callback)

    def on_status_changed(self, callback: Callable[[MediaStatus], None]) -> Subscription:
        return Subscription(self._status_changed, callback)

    def on_interruption(self, callback: Callable[[bool, bool], None]) -> Subscription:
        """callback(began, should_resume) for system audio interruptions."""
        return Subscription(self._interruption, callback)

    def _emit(self, listeners: List[Subscription], *args):
        for sub in list(listeners):
            # An earlier callback may have cancelled a later one
            if sub.active:
                sub.callback(*args)

    def _emit_item_ended(self, index: int):
        self._emit(self._item_ended, index)

    def _emit_status(self, status: MediaStatus):
        self._emit(self._status_changed, status)

    def _emit_interruption(self, began: bool, should_resume: bool = False):
        self._emit(self._interruption, began, should_resume)

    # --- Playback ---
    def load(self, urls: Sequence[str]):
        raise NotImplementedError

    def enqueue(self, url: str):
        raise NotImplementedError

    def play(self):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def seek(self, seconds: float):
        raise NotImplementedError

    def stop(self):
        raise NotImplementedError

    @property
    def current_index(self) -> int:
        raise NotImplementedError

    @property
    def current_time(self) -> float:
        raise NotImplementedError

    @property
    def duration(self) -> Optional[float]:
        raise NotImplementedError
