"""Shared pytest fixtures: fake loop clock, fake media engine, synthetic corpus."""

import json
from pathlib import Path

import pytest

from quran_player.media_engine import MediaEngine, MediaStatus
from quran_player.playback_sequencer import PlaybackSequencer
from quran_player.quran_data_handler import QuranDataHandler
from quran_player.reciters import PlaybackItemResolver
from quran_player.resume_store import ResumeStateStore
from quran_player.settings_manager import MemoryStore, Settings

BUNDLED_CORPUS = Path(__file__).resolve().parents[1] / "quran_player" / "database" / "quran.json"

# Verses given recognisable text in the synthetic corpus
SPECIAL_VERSES = {
    (2, 255): {
        "textEnglishSaheeh": "Allah - there is no deity except Him, the Ever-Living, the Sustainer of existence.",
        "textTransliteration": "Allahu la ilaha illa huwal hayyul qayyum",
    },
    (112, 1): {
        "textEnglishSaheeh": "Say, He is Allah, [who is] One,",
        "textTransliteration": "Qul huwa Allahu ahad",
    },
}

WARSH_OVERLAY = {"1": [{"id": 4, "text": "مَلِكِ يَوْمِ الدِّينِ"}, {"id": 5, "text": ""}]}


class FakeHandle:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """The parts of an asyncio loop the sequencer uses, driven by ``advance()``."""

    def __init__(self):
        self._time = 0.0
        self._handles = []

    def time(self):
        return self._time

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self._time + delay, callback, args)
        self._handles.append(handle)
        return handle

    def advance(self, seconds):
        target = self._time + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self._time = max(self._time, handle.when)
            handle.callback(*handle.args)
        self._time = target

    @property
    def pending(self):
        return [h for h in self._handles if not h.cancelled]


class FakeMediaEngine(MediaEngine):
    """Records every call; tests drive status and item ends by hand."""

    def __init__(self, item_duration=100.0):
        super().__init__()
        self.item_duration = item_duration
        self.loads = []
        self.enqueued = []
        self.seeks = []
        self.stop_count = 0
        self.urls = []
        self.index = 0
        self.position = 0.0
        self.playing = False

    # --- MediaEngine ---
    def load(self, urls):
        self.loads.append(list(urls))
        self.urls = list(urls)
        self.index = 0
        self.position = 0.0
        self.playing = False

    def enqueue(self, url):
        self.enqueued.append(url)
        self.urls.append(url)

    def play(self):
        self.playing = True

    def pause(self):
        self.playing = False

    def seek(self, seconds):
        self.seeks.append(seconds)
        self.position = max(0.0, min(seconds, self.item_duration))

    def stop(self):
        self.stop_count += 1
        self.urls = []
        self.index = 0
        self.position = 0.0
        self.playing = False

    @property
    def current_index(self):
        return self.index

    @property
    def current_time(self):
        return self.position

    @property
    def duration(self):
        return self.item_duration if self.urls else None

    # --- Test drivers ---
    def complete_load(self, status=MediaStatus.READY):
        self._emit_status(status)

    def fail_load(self):
        self._emit_status(MediaStatus.FAILED)

    def finish_item(self):
        finished = self.index
        if finished + 1 < len(self.urls):
            self.index += 1
            self.position = 0.0
        else:
            self.position = self.item_duration
            self.playing = False
        self._emit_item_ended(finished)

    def interrupt(self, began, should_resume=False):
        self._emit_interruption(began, should_resume)


def _synthetic_corpus():
    with open(BUNDLED_CORPUS, encoding="utf-8") as f:
        chapters = json.load(f)
    for chapter in chapters:
        if chapter["ayahs"]:
            continue
        verses = []
        for number in range(1, chapter["numberOfAyahs"] + 1):
            verse = {
                "id": number,
                "textArabic": "نَصٌّ",
                "textEnglishSaheeh": "Synthetic verse text.",
                "textEnglishMustafa": "",
                "textTransliteration": "",
            }
            verse.update(SPECIAL_VERSES.get((chapter["id"], number), {}))
            verses.append(verse)
        chapter["ayahs"] = verses
    return chapters


@pytest.fixture(scope="session")
def corpus_dir(tmp_path_factory):
    """Full 114-chapter corpus plus a Warsh overlay, written once per run."""
    root = tmp_path_factory.mktemp("corpus")
    (root / "quran.json").write_text(json.dumps(_synthetic_corpus(), ensure_ascii=False), encoding="utf-8")
    qiraat = root / "Qiraat"
    qiraat.mkdir()
    (qiraat / "QiraahWarsh.json").write_text(json.dumps(WARSH_OVERLAY, ensure_ascii=False), encoding="utf-8")
    return root


@pytest.fixture(scope="session")
def data_handler(corpus_dir):
    return QuranDataHandler(str(corpus_dir / "quran.json"), str(corpus_dir / "Qiraat"), quiet=True)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings(store):
    return Settings(store)


@pytest.fixture
def resume_store(store):
    return ResumeStateStore(store)


@pytest.fixture
def resolver(data_handler):
    return PlaybackItemResolver(data_handler)


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def engine():
    return FakeMediaEngine()


@pytest.fixture
def sequencer(data_handler, settings, engine, resolver, resume_store, loop):
    return PlaybackSequencer(data_handler, settings, engine, resolver, resume_store, loop)


@pytest.fixture
def minshawi(resolver):
    return resolver.find_reciter("ar.minshawi")
