# quran_player/playback_sequencer.py
import sys
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from colorama import Fore, Style

from .media_engine import MediaStatus, Subscription
from .models import (TOTAL_CHAPTERS, ContinuationPolicy, PlaybackQueueItem,
                     Reciter, ResumeRecord)
from .skip_gesture import SkipGestureDisambiguator

LOAD_TIMEOUT = 30.0     # seconds before a pending load counts as failed
SKIP_INTERVAL = 10.0    # custom-range back/forward seek


class PlaybackMode(Enum):
    IDLE = "idle"
    CHAPTER = "chapter"
    VERSE = "verse"
    CUSTOM_RANGE = "custom_range"


class RangeStep(NamedTuple):
    verse: int
    repeat: int          # 1-based repeat of this verse
    section_pass: int    # 1-based pass over the whole range


class CustomRangeProgress(NamedTuple):
    position: int        # 1-based queue position
    total: int
    verse: int
    repeat: int
    section_pass: int


def build_custom_range_plan(start: int, end: int, repeat_per_verse: int = 1,
                            repeat_section: int = 1) -> List[RangeStep]:
    """Section passes outermost, then verses, then the per-verse repeats."""
    return [
        RangeStep(verse, repeat, section_pass)
        for section_pass in range(1, repeat_section + 1)
        for verse in range(start, end + 1)
        for repeat in range(1, repeat_per_verse + 1)
    ]


def custom_range_progress_at(plan: Sequence[RangeStep], index: int) -> Optional[CustomRangeProgress]:
    """Progress for a 0-based queue index, None when out of range."""
    if not 0 <= index < len(plan):
        return None
    step = plan[index]
    return CustomRangeProgress(index + 1, len(plan), step.verse, step.repeat, step.section_pass)


@dataclass
class PlaybackSession:
    mode: PlaybackMode = PlaybackMode.IDLE
    current_chapter: Optional[int] = None
    chapter_name: str = ""
    current_verse: Optional[int] = None
    is_playing: bool = False
    is_paused: bool = False
    is_loading: bool = False
    repeat_total: int = 1
    repeat_remaining: int = 1
    queue: Tuple[PlaybackQueueItem, ...] = ()
    queue_position: int = 0
    continue_recitation: bool = False
    is_special_opening: bool = False
    reciter: Optional[Reciter] = None
    range_start: Optional[int] = None
    range_end: Optional[int] = None
    repeat_per_verse: int = 1
    repeat_section: int = 1
    range_plan: Tuple[RangeStep, ...] = ()


class PlaybackSequencer:
    """
    Owns the single playback session and drives the media engine.

    Every method runs on the control loop. Commands never raise for bad input:
    an invalid chapter, verse or range, or a reciter that cannot be resolved,
    leaves the current session untouched. While a load is pending only
    ``stop()`` and the ``play_*`` commands have any effect.

    Args:
        data_handler: Corpus access (chapters, verses, global ordinals).
        settings: Reciter, continuation policy.
        engine: MediaEngine implementation.
        resolver: PlaybackItemResolver.
        resume_store: ResumeStateStore.
        loop: asyncio loop (or anything with ``time()`` and ``call_later()``).
    """

    def __init__(self, data_handler, settings, engine, resolver, resume_store, loop,
                 load_timeout: float = LOAD_TIMEOUT, skip_interval: float = SKIP_INTERVAL):
        self.data_handler = data_handler
        self.settings = settings
        self.engine = engine
        self.resolver = resolver
        self.resume_store = resume_store
        self.loop = loop
        self.load_timeout = load_timeout
        self.skip_interval = skip_interval

        self._session = PlaybackSession()
        self._generation = 0
        self._subscriptions: List[Subscription] = []
        self._load_timer = None
        self._start_at: Optional[float] = None
        self._paused_by_interruption = False
        self._show_connectivity_alert = False
        self._listeners: List[Subscription] = []

        self.now_playing_title: Optional[str] = None
        self.now_playing_artist: Optional[str] = None

        self.skip_gesture = SkipGestureDisambiguator(
            loop, on_restart=self._restart_current, on_previous=self._play_previous)
        self._interruption_subscription = engine.on_interruption(self.handle_interruption)

    # --- State readers ---
    @property
    def session(self) -> PlaybackSession:
        """A copy of the live session."""
        return replace(self._session)

    @property
    def mode(self) -> PlaybackMode:
        return self._session.mode

    @property
    def show_connectivity_alert(self) -> bool:
        return self._show_connectivity_alert

    def clear_connectivity_alert(self):
        self._show_connectivity_alert = False
        self._notify()

    @property
    def elapsed(self) -> float:
        if self._session.mode is PlaybackMode.IDLE:
            return 0.0
        return self.engine.current_time or 0.0

    @property
    def duration(self) -> Optional[float]:
        if self._session.mode is PlaybackMode.IDLE:
            return None
        return self.engine.duration

    @property
    def keep_awake(self) -> bool:
        return self._session.is_playing or self._session.is_loading

    @property
    def custom_range_progress(self) -> Optional[CustomRangeProgress]:
        s = self._session
        if s.mode is not PlaybackMode.CUSTOM_RANGE:
            return None
        return custom_range_progress_at(s.range_plan, s.queue_position)

    @property
    def custom_range_subtitle(self) -> Optional[str]:
        progress = self.custom_range_progress
        if progress is None:
            return None
        s = self._session
        return (f"Ayah {s.range_start}-{s.range_end} · each x{s.repeat_per_verse} · "
                f"section x{s.repeat_section} · {progress.position}/{progress.total}")

    def add_listener(self, callback: Callable[["PlaybackSequencer"], None]) -> Subscription:
        """callback(sequencer) after every state change."""
        return Subscription(self._listeners, callback)

    def _notify(self):
        for sub in list(self._listeners):
            if sub.active:
                sub.callback(self)

    # --- Commands ---
    def play_chapter(self, chapter: int, name: str = "", resume_from_last_position: bool = False,
                     repeat_count: int = 1):
        if self._chapter(chapter) is None or repeat_count < 1:
            return

        record = self.resume_store.load() if resume_from_last_position else None
        reciter = self.resolver.find_reciter(record.reciter_id) if record else None
        if reciter is None:
            reciter = self.resolver.find_reciter(self.settings.reciter)
        if reciter is None:
            return

        start_at = None
        if record is not None and record.chapter_number == chapter \
                and 0 < record.elapsed_seconds < record.total_seconds:
            start_at = record.elapsed_seconds
        self._play_chapter(chapter, name, reciter, repeat_count, start_at)

    def play_verse(self, chapter: int, verse: int, continue_recitation: bool = False,
                   repeat_count: int = 1):
        chapter_info = self._chapter(chapter)
        if chapter_info is None or not 1 <= verse <= chapter_info.verse_count or repeat_count < 1:
            return
        reciter = self.resolver.find_reciter(self.settings.reciter)
        if reciter is None:
            return
        self._play_verse(chapter, verse, reciter, continue_recitation, repeat_count)

    def play_bismillah(self):
        """The opening basmala, played on its own."""
        reciter = self.resolver.find_reciter(self.settings.reciter)
        if reciter is None or self._chapter(1) is None:
            return
        self._play_verse(1, 1, reciter, is_special_opening=True)

    def play_custom_range(self, chapter: int, start_verse: int, end_verse: int,
                          repeat_per_verse: int = 1, repeat_section: int = 1):
        chapter_info = self._chapter(chapter)
        if chapter_info is None:
            return
        if not 1 <= start_verse <= end_verse <= chapter_info.verse_count:
            return
        if repeat_per_verse < 1 or repeat_section < 1:
            return
        reciter = self.resolver.find_reciter(self.settings.reciter)
        if reciter is None:
            return

        items = {}
        for verse in range(start_verse, end_verse + 1):
            item = self.resolver.resolve_verse(reciter, chapter, verse)
            if item is None:
                return
            items[verse] = item

        plan = build_custom_range_plan(start_verse, end_verse, repeat_per_verse, repeat_section)
        self._start(PlaybackSession(
            mode=PlaybackMode.CUSTOM_RANGE,
            current_chapter=chapter,
            chapter_name=chapter_info.name_transliteration,
            current_verse=start_verse,
            queue=tuple(items[step.verse] for step in plan),
            reciter=reciter,
            range_start=start_verse,
            range_end=end_verse,
            repeat_per_verse=repeat_per_verse,
            repeat_section=repeat_section,
            range_plan=tuple(plan),
        ))

    def pause(self, save_resume_state: bool = True):
        s = self._session
        if s.mode is PlaybackMode.IDLE or s.is_loading:
            return
        if save_resume_state:
            self._save_resume_state()
        self.engine.pause()
        s.is_playing = False
        s.is_paused = True
        self._notify()

    def resume(self):
        s = self._session
        if s.mode is PlaybackMode.IDLE or s.is_loading or s.is_playing:
            return
        self._paused_by_interruption = False
        self.engine.play()
        s.is_playing = True
        s.is_paused = False
        self._notify()

    def seek(self, delta_seconds: float):
        """Relative seek, clamped to the current item."""
        if not self._can_control():
            return
        self._seek_to((self.engine.current_time or 0.0) + delta_seconds)

    def seek_to(self, position: float):
        """Absolute seek, used by transport scrubbing."""
        if not self._can_control():
            return
        self._seek_to(position)

    def skip_backward(self):
        if not self._can_control():
            return
        if self._session.mode is PlaybackMode.CUSTOM_RANGE:
            self.seek(-self.skip_interval)
        else:
            self.skip_gesture.press()

    def skip_forward(self):
        if not self._can_control():
            return
        s = self._session
        if s.mode is PlaybackMode.CUSTOM_RANGE:
            self.seek(self.skip_interval)
        elif s.mode is PlaybackMode.CHAPTER:
            target = s.current_chapter + 1
            if target <= TOTAL_CHAPTERS and self._chapter(target) is not None:
                self._play_chapter(target, "", s.reciter, 1)
            else:
                self.stop()
        elif s.mode is PlaybackMode.VERSE:
            chapter_info = self._chapter(s.current_chapter)
            if s.current_verse < chapter_info.verse_count:
                self._play_verse(s.current_chapter, s.current_verse + 1, s.reciter, s.continue_recitation)
            else:
                self.stop()

    def stop(self):
        """Persist, tear everything down and return to idle. Safe to call repeatedly."""
        self._stop(save=True)

    def handle_interruption(self, began: bool, should_resume: bool = False):
        """System audio interruption (call, alarm). Resumes only a pause it caused itself."""
        s = self._session
        if began:
            if s.is_playing and not s.is_loading:
                self.pause()
                self._paused_by_interruption = True
            return
        if should_resume and self._paused_by_interruption and s.is_paused:
            self.resume()
        self._paused_by_interruption = False

    def save_resume_state(self):
        self._save_resume_state()

    # --- Session setup ---
    def _chapter(self, number):
        if not isinstance(number, int) or not 1 <= number <= TOTAL_CHAPTERS:
            return None
        return self.data_handler.chapter(number)

    def _can_control(self) -> bool:
        s = self._session
        return s.mode is not PlaybackMode.IDLE and not s.is_loading

    def _play_chapter(self, chapter: int, name: str, reciter: Reciter, repeat_count: int,
                      start_at: Optional[float] = None):
        item = self.resolver.resolve_chapter(reciter, chapter)
        if item is None:
            return
        self._start(PlaybackSession(
            mode=PlaybackMode.CHAPTER,
            current_chapter=chapter,
            chapter_name=name or self._chapter(chapter).name_transliteration,
            repeat_total=repeat_count,
            repeat_remaining=repeat_count,
            queue=(item,),
            reciter=reciter,
        ), start_at=start_at)

    def _play_verse(self, chapter: int, verse: int, reciter: Reciter, continue_recitation: bool = False,
                    repeat_count: int = 1, is_special_opening: bool = False):
        chapter_info = self._chapter(chapter)
        item = self.resolver.resolve_verse(reciter, chapter, verse, is_special_opening=is_special_opening)
        if chapter_info is None or item is None:
            return
        queue = [item]
        # Gapless: the next verse is queued behind the current one
        if continue_recitation and repeat_count == 1 and verse < chapter_info.verse_count:
            following = self.resolver.resolve_verse(reciter, chapter, verse + 1)
            if following is not None:
                queue.append(following)
        self._start(PlaybackSession(
            mode=PlaybackMode.VERSE,
            current_chapter=chapter,
            chapter_name=chapter_info.name_transliteration,
            current_verse=verse,
            repeat_total=repeat_count,
            repeat_remaining=repeat_count,
            queue=tuple(queue),
            continue_recitation=continue_recitation,
            is_special_opening=is_special_opening,
            reciter=reciter,
        ))

    def _start(self, session: PlaybackSession, start_at: Optional[float] = None):
        """Replace the live session and issue its load."""
        self._teardown()
        self._generation += 1
        generation = self._generation

        session.is_loading = True
        self._session = session
        self._start_at = start_at
        self._show_connectivity_alert = False
        self.now_playing_title = None
        self.now_playing_artist = None

        self._subscriptions = [
            self.engine.on_status_changed(lambda status: self._on_status_changed(generation, status)),
            self.engine.on_item_ended(lambda index: self._on_item_ended(generation, index)),
        ]
        self._load_timer = self.loop.call_later(self.load_timeout, self._on_load_timeout, generation)
        self.engine.load([item.url for item in session.queue])
        self._notify()

    def _teardown(self):
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []
        self._cancel_load_timer()
        self.skip_gesture.reset()
        self._paused_by_interruption = False
        self._start_at = None

    def _cancel_load_timer(self):
        if self._load_timer is not None:
            self._load_timer.cancel()
            self._load_timer = None

    def _stop(self, save: bool):
        if self._session.mode is PlaybackMode.IDLE and not self._subscriptions and self._load_timer is None:
            return
        if save:
            self._save_resume_state()
        self._teardown()
        self.engine.stop()
        self._session = PlaybackSession()
        self.now_playing_title = None
        self.now_playing_artist = None
        self._notify()

    # --- Engine events ---
    def _on_status_changed(self, generation: int, status: MediaStatus):
        if generation != self._generation:
            return
        s = self._session
        if status is not MediaStatus.READY:
            self._fail_load(f"media status {status.value}")
            return
        if not s.is_loading:
            return

        self._cancel_load_timer()
        s.is_loading = False
        self.engine.play()
        if self._start_at is not None:
            self.engine.seek(self._start_at)
            self._start_at = None
        s.is_playing = True
        s.is_paused = False
        self._publish_metadata()
        if s.mode is PlaybackMode.CHAPTER:
            self._save_resume_state()
        self._notify()

    def _on_load_timeout(self, generation: int):
        if generation != self._generation or not self._session.is_loading:
            return
        self._load_timer = None
        self._fail_load(f"no response after {self.load_timeout:.0f}s")

    def _fail_load(self, reason: str):
        print(f"{Fore.RED}Playback failed ({reason}). Check your internet connection.{Style.RESET_ALL}", file=sys.stderr)
        self._teardown()
        self.engine.stop()
        self._session = PlaybackSession()
        self.now_playing_title = None
        self.now_playing_artist = None
        self._show_connectivity_alert = True
        self._notify()

    def _on_item_ended(self, generation: int, index: int):
        if generation != self._generation or self._session.is_loading:
            return
        mode = self._session.mode
        if mode is PlaybackMode.CHAPTER:
            self._chapter_ended()
        elif mode is PlaybackMode.VERSE:
            self._verse_ended(index)
        elif mode is PlaybackMode.CUSTOM_RANGE:
            self._range_item_ended(index)

    def _repeat_current(self):
        s = self._session
        s.repeat_remaining -= 1
        self.engine.seek(0)
        self.engine.play()
        s.is_playing = True
        s.is_paused = False
        self._publish_metadata()
        self._notify()

    def _chapter_ended(self):
        s = self._session
        if s.repeat_remaining > 1:
            self._repeat_current()
            return

        self._save_resume_state(finished=True)
        target = self._continuation_target(s.current_chapter)
        if target is None:
            self._stop(save=False)
            return
        self._play_chapter(target, "", s.reciter, 1)

    def _verse_ended(self, index: int):
        s = self._session
        if s.repeat_remaining > 1:
            self._repeat_current()
            return

        chapter_info = self._chapter(s.current_chapter)
        if not (s.continue_recitation and s.repeat_total == 1 and s.current_verse < chapter_info.verse_count):
            self.stop()
            return

        next_position = index + 1
        if next_position >= len(s.queue):
            # Nothing was prefetched: load the next verse outright
            self._play_verse(s.current_chapter, s.current_verse + 1, s.reciter, True)
            return
        s.queue_position = next_position
        s.current_verse = s.queue[next_position].verse
        self._prefetch_following_verse()
        self._publish_metadata()
        self._notify()

    def _prefetch_following_verse(self):
        s = self._session
        chapter_info = self._chapter(s.current_chapter)
        following = s.current_verse + 1
        if following > chapter_info.verse_count:
            return
        if any(item.verse == following for item in s.queue[s.queue_position + 1:]):
            return
        item = self.resolver.resolve_verse(s.reciter, s.current_chapter, following)
        if item is None:
            return
        s.queue = s.queue + (item,)
        self.engine.enqueue(item.url)

    def _range_item_ended(self, index: int):
        s = self._session
        next_position = index + 1
        if next_position >= len(s.queue):
            self.stop()
            return
        s.queue_position = next_position
        s.current_verse = s.range_plan[next_position].verse
        self._publish_metadata()
        self._notify()

    # --- Skip gesture actions ---
    def _restart_current(self):
        s = self._session
        if not self._can_control():
            return
        self.engine.seek(0)
        self.engine.play()
        s.is_playing = True
        s.is_paused = False
        self._publish_metadata()
        self._save_resume_state()
        self._notify()

    def _play_previous(self):
        s = self._session
        if not self._can_control():
            return
        if s.mode is PlaybackMode.CHAPTER:
            if s.current_chapter > 1:
                self._play_chapter(s.current_chapter - 1, "", s.reciter, 1)
            else:
                self._restart_current()
        elif s.mode is PlaybackMode.VERSE:
            if s.current_verse > 1:
                self._play_verse(s.current_chapter, s.current_verse - 1, s.reciter, s.continue_recitation)
            elif s.current_chapter > 1:
                previous = self._chapter(s.current_chapter - 1)
                self._play_verse(previous.number, previous.verse_count, s.reciter, s.continue_recitation)
            else:
                self._restart_current()

    # --- Helpers ---
    def _continuation_target(self, chapter: int) -> Optional[int]:
        policy = self.settings.recite_type
        if policy is ContinuationPolicy.NEXT:
            target = chapter + 1
        elif policy is ContinuationPolicy.PREVIOUS:
            target = chapter - 1
        else:
            return None
        return target if self._chapter(target) is not None else None

    def _publish_metadata(self):
        s = self._session
        if s.mode is PlaybackMode.CHAPTER:
            title = f"Surah {s.current_chapter}: {s.chapter_name}"
        elif s.is_special_opening:
            title = "Bismillah"
        else:
            title = f"{s.chapter_name} {s.current_chapter}:{s.current_verse}"
        if s.repeat_total > 1 and s.mode is not PlaybackMode.CUSTOM_RANGE:
            title += f" (x {s.repeat_total - s.repeat_remaining + 1}/{s.repeat_total})"
        self.now_playing_title = title
        self.now_playing_artist = s.reciter.name if s.reciter else None

    def _save_resume_state(self, finished: Optional[bool] = None):
        """Chapter mode only. A finished chapter is recorded as the next one to play."""
        s = self._session
        if s.mode is not PlaybackMode.CHAPTER or s.is_loading or s.reciter is None:
            return
        if self.now_playing_title is None:
            return

        elapsed = self.engine.current_time or 0.0
        total = self.engine.duration or 0.0
        if finished is None:
            finished = total > 0 and elapsed >= total

        if not finished:
            record = ResumeRecord(chapter_number=s.current_chapter, chapter_name=s.chapter_name,
                                  reciter_id=s.reciter.ayah_identifier,
                                  elapsed_seconds=elapsed, total_seconds=total)
        else:
            target = self._continuation_target(s.current_chapter)
            if target is not None:
                record = ResumeRecord(chapter_number=target,
                                      chapter_name=self._chapter(target).name_transliteration,
                                      reciter_id=s.reciter.ayah_identifier,
                                      elapsed_seconds=0.0, total_seconds=0.0)
            else:
                record = ResumeRecord(chapter_number=s.current_chapter, chapter_name=s.chapter_name,
                                      reciter_id=s.reciter.ayah_identifier,
                                      elapsed_seconds=0.0, total_seconds=total)
        self.resume_store.save(record)

    def _seek_to(self, target: float):
        target = max(0.0, target)
        duration = self.engine.duration
        if duration:
            target = min(target, duration)
        self.engine.seek(target)
        self._save_resume_state()
        self._notify()
