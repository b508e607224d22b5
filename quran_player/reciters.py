# quran_player/reciters.py
from typing import Optional, Sequence

from .models import TOTAL_CHAPTERS, PlaybackQueueItem, Reciter, normalize_style

# Verse-segmented recitations: {base}/{bitrate}/{identifier}/{global verse}.mp3
VERSE_AUDIO_BASE_URL = "https://cdn.islamic.network/quran/audio"

DEFAULT_RECITER = "Muhammad Al-Minshawi (Murattal)"

RECITERS = (
    Reciter(name="Muhammad Al-Minshawi (Murattal)", ayah_identifier="ar.minshawi",
            ayah_bitrate=128, surah_link="https://server10.mp3quran.net/minsh/"),
    Reciter(name="Mishary Rashid Alafasy", ayah_identifier="ar.alafasy",
            ayah_bitrate=128, surah_link="https://server8.mp3quran.net/afs/"),
    Reciter(name="Abdul Basit Abdul Samad (Murattal)", ayah_identifier="ar.abdulbasitmurattal",
            ayah_bitrate=64, surah_link="https://server7.mp3quran.net/basit/"),
    Reciter(name="Mahmoud Khalil Al-Husary", ayah_identifier="ar.husary",
            ayah_bitrate=128, surah_link="https://server13.mp3quran.net/husr/"),
    Reciter(name="Abdurrahmaan As-Sudais", ayah_identifier="ar.abdurrahmaansudais",
            ayah_bitrate=192, surah_link="https://server11.mp3quran.net/sds/"),
    Reciter(name="Saood Ash-Shuraym", ayah_identifier="ar.saoodshuraym",
            ayah_bitrate=64, surah_link="https://server7.mp3quran.net/shur/"),
    Reciter(name="Maher Al Muaiqly", ayah_identifier="ar.mahermuaiqly",
            ayah_bitrate=128, surah_link="https://server12.mp3quran.net/maher/"),
    Reciter(name="Muhammad Al Luhaidan", ayah_identifier="ar.luhaidan",
            ayah_bitrate=64, surah_link="https://server8.mp3quran.net/lhdan/"),
    Reciter(name="Abdul Basit (Warsh)", ayah_identifier="ar.abdulbasitwarsh",
            ayah_bitrate=64, surah_link="https://server7.mp3quran.net/basit/Rewayat-Warsh-A-n-Nafi/",
            style="Warsh"),
)


class PlaybackItemResolver:
    """Turns (reciter, chapter[, verse]) into playable queue items."""

    def __init__(self, data_handler, reciters: Sequence[Reciter] = RECITERS,
                 verse_base_url: str = VERSE_AUDIO_BASE_URL):
        self.data_handler = data_handler
        self.reciters = tuple(reciters)
        self.verse_base_url = verse_base_url.rstrip("/")

    def find_reciter(self, key: Optional[str], style: Optional[str] = None) -> Optional[Reciter]:
        """
        Look up a reciter by display name or verse-audio identifier.

        When ``style`` is given the reciter must record that reading; a mismatch
        counts as not found.
        """
        if not key:
            return None
        match = next((r for r in self.reciters if key in (r.name, r.ayah_identifier)), None)
        if match is None:
            return None
        if style is not None and normalize_style(style).casefold() != normalize_style(match.style).casefold():
            return None
        return match

    def chapter_url(self, reciter: Reciter, chapter: int) -> str:
        return f"{reciter.surah_link}{chapter:03d}.mp3"

    def verse_url(self, reciter: Reciter, global_ordinal: int) -> str:
        return f"{self.verse_base_url}/{reciter.ayah_bitrate}/{reciter.ayah_identifier}/{global_ordinal}.mp3"

    def resolve_chapter(self, reciter: Reciter, chapter: int) -> Optional[PlaybackQueueItem]:
        if not (1 <= chapter <= TOTAL_CHAPTERS) or self.data_handler.chapter(chapter) is None:
            return None
        return PlaybackQueueItem(chapter=chapter, url=self.chapter_url(reciter, chapter))

    def resolve_verse(self, reciter: Reciter, chapter: int, verse: int,
                      is_special_opening: bool = False) -> Optional[PlaybackQueueItem]:
        ordinal = self.data_handler.global_verse_ordinal(chapter, verse)
        if ordinal is None:
            return None
        return PlaybackQueueItem(
            chapter=chapter,
            verse=verse,
            global_ordinal=ordinal,
            url=self.verse_url(reciter, ordinal),
            is_special_opening=is_special_opening,
        )
