# quran_player/transport.py
from enum import Enum
from typing import Callable, List, Optional

from .media_engine import Subscription
from .models import NowPlayingInfo
from .playback_sequencer import PlaybackMode


class RemoteCommand(Enum):
    PLAY = "play"
    PAUSE = "pause"
    TOGGLE = "toggle"
    STOP = "stop"
    PREVIOUS = "previous"
    NEXT = "next"
    CHANGE_POSITION = "change_position"
    SKIP_BACKWARD = "skip_backward"
    SKIP_FORWARD = "skip_forward"


class CommandStatus(Enum):
    SUCCESS = "success"
    COMMAND_FAILED = "command_failed"
    NO_ACTION = "no_action"


class TransportIntegration:
    """
    Mirrors the sequencer onto the OS media controls.

    Observers receive a NowPlayingInfo after every sequencer change, or None
    once playback has stopped so the OS can clear its widget.
    """

    def __init__(self, sequencer, artwork: Optional[str] = "Al-Quran"):
        self.sequencer = sequencer
        self.artwork = artwork
        self._observers: List[Subscription] = []
        self.now_playing: Optional[NowPlayingInfo] = None
        self._subscription = sequencer.add_listener(lambda _: self.refresh())

    def add_observer(self, callback: Callable[[Optional[NowPlayingInfo]], None]) -> Subscription:
        return Subscription(self._observers, callback)

    def close(self):
        self._subscription.cancel()

    @property
    def skip_interval_enabled(self) -> bool:
        """±10 s buttons are offered only while a custom range plays."""
        return self.sequencer.mode is PlaybackMode.CUSTOM_RANGE

    @property
    def keep_awake(self) -> bool:
        return self.sequencer.keep_awake

    def refresh(self):
        info = self._build_info()
        self.now_playing = info
        for sub in list(self._observers):
            if sub.active:
                sub.callback(info)

    def _build_info(self) -> Optional[NowPlayingInfo]:
        seq = self.sequencer
        if seq.mode is PlaybackMode.IDLE or seq.now_playing_title is None:
            return None
        session = seq.session
        return NowPlayingInfo(
            title=seq.now_playing_title,
            artist=seq.now_playing_artist,
            detail=seq.custom_range_subtitle,
            elapsed=seq.elapsed,
            duration=seq.duration,
            playback_rate=1.0 if session.is_playing else 0.0,
            artwork=self.artwork,
        )

    def handle_command(self, command: RemoteCommand, position: Optional[float] = None) -> CommandStatus:
        seq = self.sequencer
        session = seq.session
        active = session.mode is not PlaybackMode.IDLE and not session.is_loading

        if command is RemoteCommand.PLAY:
            if not active or session.is_playing:
                return CommandStatus.COMMAND_FAILED
            seq.resume()
        elif command is RemoteCommand.PAUSE:
            if not active or not session.is_playing:
                return CommandStatus.COMMAND_FAILED
            seq.pause()
        elif command is RemoteCommand.TOGGLE:
            if not active:
                return CommandStatus.COMMAND_FAILED
            if session.is_playing:
                seq.pause()
            else:
                seq.resume()
        elif command is RemoteCommand.STOP:
            seq.stop()
        elif command is RemoteCommand.PREVIOUS:
            if not active:
                return CommandStatus.NO_ACTION
            seq.skip_backward()
        elif command is RemoteCommand.NEXT:
            if not active:
                return CommandStatus.NO_ACTION
            seq.skip_forward()
        elif command is RemoteCommand.CHANGE_POSITION:
            if not active or position is None:
                return CommandStatus.COMMAND_FAILED
            seq.seek_to(position)
        elif command in (RemoteCommand.SKIP_BACKWARD, RemoteCommand.SKIP_FORWARD):
            if not active or not self.skip_interval_enabled:
                return CommandStatus.COMMAND_FAILED
            delta = seq.skip_interval if command is RemoteCommand.SKIP_FORWARD else -seq.skip_interval
            seq.seek(delta)
        else:
            return CommandStatus.NO_ACTION
        return CommandStatus.SUCCESS
