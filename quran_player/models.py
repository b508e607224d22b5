# quran_player/models.py
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .text_normalizer import strip_arabic_diacritics

TOTAL_CHAPTERS = 114

# Recitation style (qiraah) variants carried per verse.
# Each entry: (Verse field, names/spellings that select it)
STYLE_FIELDS = (
    ("text_warsh", ("Warsh",)),
    ("text_qaloon", ("Qaloon",)),
    ("text_duri", ("Duri", "Doori")),
    ("text_buzzi", ("Buzzi", "Bazzi")),
    ("text_qunbul", ("Qunbul", "Qumbul")),
    ("text_shubah", ("Shu'bah", "Shouba")),
    ("text_susi", ("Susi", "Soosi")),
)

DEFAULT_STYLE = ""


def normalize_style(selector: Optional[str]) -> str:
    """Map None/"Hafs" to the default (canonical) selector."""
    if not selector or selector.strip().casefold() == "hafs":
        return DEFAULT_STYLE
    return selector.strip()


def style_field(selector: Optional[str]) -> Optional[str]:
    """Verse field holding a style's text. None for the canonical text or an unknown name."""
    selector = normalize_style(selector).casefold()
    if not selector:
        return None
    for field_name, names in STYLE_FIELDS:
        if any(name.casefold() in selector for name in names):
            return field_name
    return None


class Verse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    number: int = Field(alias="id", ge=1)
    text_hafs: str = Field(alias="textArabic")       # canonical text
    text_transliteration: str = Field(default="", alias="textTransliteration")
    text_english_saheeh: str = Field(default="", alias="textEnglishSaheeh")
    text_english_mustafa: str = Field(default="", alias="textEnglishMustafa")

    text_warsh: Optional[str] = Field(default=None, alias="textWarsh")
    text_qaloon: Optional[str] = Field(default=None, alias="textQaloon")
    text_duri: Optional[str] = Field(default=None, alias="textDuri")
    text_buzzi: Optional[str] = Field(default=None, alias="textBuzzi")
    text_qunbul: Optional[str] = Field(default=None, alias="textQunbul")
    text_shubah: Optional[str] = Field(default=None, alias="textShubah")
    text_susi: Optional[str] = Field(default=None, alias="textSusi")

    def text_for_style(self, selector: Optional[str]) -> str:
        """Arabic text for a recitation style, canonical when the variant is missing."""
        field_name = style_field(selector)
        raw = getattr(self, field_name) if field_name else None
        return (raw or self.text_hafs).strip()

    def clean_text_for_style(self, selector: Optional[str]) -> str:
        """Same as text_for_style, without diacritics and Quranic signs."""
        return strip_arabic_diacritics(self.text_for_style(selector))


class Chapter(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    number: int = Field(alias="id", ge=1, le=TOTAL_CHAPTERS)
    name_arabic: str = Field(default="", alias="nameArabic")
    name_transliteration: str = Field(alias="nameTransliteration")
    name_english: str = Field(default="", alias="nameEnglish")
    type: str = "Unknown"            # "meccan" or "medinan"
    verse_count: int = Field(alias="numberOfAyahs", ge=1)
    verses: List[Verse] = Field(default_factory=list, alias="ayahs")


class Reciter(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    ayah_identifier: str       # e.g. "ar.minshawi"
    ayah_bitrate: int          # kbps folder of the verse-segmented source
    surah_link: str            # chapter-level base URL, ends with "/"
    style: str = DEFAULT_STYLE


class PlaybackQueueItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    chapter: int
    verse: Optional[int] = None            # None marks a whole-chapter item
    global_ordinal: Optional[int] = None
    url: str
    is_special_opening: bool = False       # the opening "Bismillah" recitation

    @property
    def is_chapter_marker(self) -> bool:
        return self.verse is None


class ResumeRecord(BaseModel):
    chapter_number: int = Field(ge=1, le=TOTAL_CHAPTERS)
    chapter_name: str
    reciter_id: str
    elapsed_seconds: float = 0.0
    total_seconds: float = 0.0


class VerseIndexEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str                 # "chapter:verse"
    chapter: int
    verse: int
    arabic_blob: str
    latin_blob: str


class ContinuationPolicy(str, Enum):
    """What happens when a whole chapter finishes playing."""
    NEXT = "Continue to Next"
    PREVIOUS = "Continue to Previous"
    END = "End Recitation"


class NowPlayingInfo(BaseModel):
    title: str
    artist: Optional[str] = None
    detail: Optional[str] = None       # custom-range progress line
    elapsed: float = 0.0
    duration: Optional[float] = None
    playback_rate: float = 0.0
    artwork: Optional[str] = None
