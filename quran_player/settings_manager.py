# quran_player/settings_manager.py
import json
import os
import sys
import threading
from typing import Dict, List, Literal, Optional, Protocol, Union

from colorama import Fore, Style
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import TOTAL_CHAPTERS, ContinuationPolicy
from .reciters import DEFAULT_RECITER, RECITERS
from .utils import get_config_dir

PREF_FILENAME = "QuranPlayer-Settings.json"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...


class MemoryStore:
    """Process-local store, used for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """
    Key-value store persisted as one JSON object in the user config directory.

    Values are bytes on the interface and UTF-8 text on disk. The whole file is
    rewritten on each ``set``.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or str(get_config_dir() / PREF_FILENAME)
        self._lock = threading.Lock()
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError:
            print(f"{Fore.YELLOW}Preferences file '{self.path}' is corrupted, resetting.{Style.RESET_ALL}", file=sys.stderr)
            return {}
        except OSError as e:
            print(f"{Fore.RED}Error loading preferences from '{self.path}': {e}{Style.RESET_ALL}", file=sys.stderr)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self):
        try:
            pref_dir = os.path.dirname(self.path)
            if pref_dir:
                os.makedirs(pref_dir, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2)
        except OSError as e:
            print(f"{Fore.RED}Error saving preferences to '{self.path}': {e}{Style.RESET_ALL}", file=sys.stderr)

    def get(self, key: str) -> Optional[bytes]:
        value = self._data.get(key)
        return value.encode('utf-8') if value is not None else None

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = value.decode('utf-8')
            self._save()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._save()


class InvalidSettingsPayload(ValueError):
    """A settings sync message failed validation."""


class SettingsPayload(BaseModel):
    """Versioned settings message exchanged between devices."""
    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = 1
    reciter: Optional[str] = None
    recite_type: Optional[ContinuationPolicy] = None
    display_style: Optional[str] = None
    last_read_chapter: Optional[int] = Field(default=None, ge=0, le=TOTAL_CHAPTERS)
    last_read_verse: Optional[int] = Field(default=None, ge=0)
    favorite_chapters: Optional[List[int]] = None

    @field_validator("favorite_chapters")
    @classmethod
    def _check_favorites(cls, value):
        if value is not None:
            bad = [c for c in value if not 1 <= c <= TOTAL_CHAPTERS]
            if bad:
                raise ValueError(f"Favorite chapters out of range: {bad}")
        return value


def parse_settings_message(message: Union[bytes, str, dict]) -> SettingsPayload:
    """Validate an incoming sync message. Raises InvalidSettingsPayload."""
    try:
        if isinstance(message, dict):
            return SettingsPayload.model_validate(message)
        return SettingsPayload.model_validate_json(message)
    except (ValidationError, ValueError) as e:
        raise InvalidSettingsPayload(str(e)) from e


class Settings:
    """Typed accessors over a KeyValueStore."""

    RECITER_KEY = "reciter"
    RECITE_TYPE_KEY = "reciteType"
    DISPLAY_STYLE_KEY = "displayQiraah"
    LAST_READ_CHAPTER_KEY = "lastReadSurah"
    LAST_READ_VERSE_KEY = "lastReadAyah"
    FAVORITES_KEY = "favoriteSurahsData"

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _get_text(self, key: str) -> Optional[str]:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError:
            print(f"{Fore.YELLOW}Warning: Ignoring undecodable setting '{key}'.{Style.RESET_ALL}", file=sys.stderr)
            return None

    def _set_text(self, key: str, value: str):
        self.store.set(key, value.encode('utf-8'))

    def _get_int(self, key: str, default: int = 0) -> int:
        text = self._get_text(key)
        try:
            return int(text) if text is not None else default
        except ValueError:
            return default

    @property
    def reciter(self) -> str:
        value = self._get_text(self.RECITER_KEY)
        if not value:
            return DEFAULT_RECITER
        # Older versions stored the verse-audio identifier, not the display name
        if value.startswith("ar."):
            match = next((r for r in RECITERS if r.ayah_identifier == value), None)
            return match.name if match else DEFAULT_RECITER
        return value

    @reciter.setter
    def reciter(self, value: str):
        self._set_text(self.RECITER_KEY, value)

    @property
    def recite_type(self) -> ContinuationPolicy:
        value = self._get_text(self.RECITE_TYPE_KEY)
        try:
            return ContinuationPolicy(value)
        except ValueError:
            return ContinuationPolicy.NEXT

    @recite_type.setter
    def recite_type(self, value: Union[ContinuationPolicy, str]):
        self._set_text(self.RECITE_TYPE_KEY, ContinuationPolicy(value).value)

    @property
    def display_style(self) -> Optional[str]:
        """Recitation style used to display and search text. None means the canonical text."""
        value = self._get_text(self.DISPLAY_STYLE_KEY)
        return value or None

    @display_style.setter
    def display_style(self, value: Optional[str]):
        self._set_text(self.DISPLAY_STYLE_KEY, value or "")

    @property
    def last_read_chapter(self) -> int:
        return self._get_int(self.LAST_READ_CHAPTER_KEY)

    @last_read_chapter.setter
    def last_read_chapter(self, value: int):
        self._set_text(self.LAST_READ_CHAPTER_KEY, str(int(value)))

    @property
    def last_read_verse(self) -> int:
        return self._get_int(self.LAST_READ_VERSE_KEY)

    @last_read_verse.setter
    def last_read_verse(self, value: int):
        self._set_text(self.LAST_READ_VERSE_KEY, str(int(value)))

    @property
    def favorite_chapters(self) -> List[int]:
        text = self._get_text(self.FAVORITES_KEY)
        if not text:
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return []
        return [int(c) for c in data if isinstance(c, int)] if isinstance(data, list) else []

    @favorite_chapters.setter
    def favorite_chapters(self, value: List[int]):
        self._set_text(self.FAVORITES_KEY, json.dumps(list(value)))

    def toggle_favorite(self, chapter: int):
        favorites = self.favorite_chapters
        if chapter in favorites:
            favorites.remove(chapter)
        else:
            favorites.append(chapter)
        self.favorite_chapters = favorites

    def is_favorite(self, chapter: int) -> bool:
        return chapter in self.favorite_chapters

    def snapshot(self) -> SettingsPayload:
        return SettingsPayload(
            reciter=self.reciter,
            recite_type=self.recite_type,
            display_style=self.display_style or "",
            last_read_chapter=self.last_read_chapter,
            last_read_verse=self.last_read_verse,
            favorite_chapters=self.favorite_chapters,
        )

    def apply(self, payload: SettingsPayload):
        """Copy every field the payload carries. Absent fields keep their current value."""
        if payload.reciter is not None:
            self.reciter = payload.reciter
        if payload.recite_type is not None:
            self.recite_type = payload.recite_type
        if payload.display_style is not None:
            self.display_style = payload.display_style
        if payload.last_read_chapter is not None:
            self.last_read_chapter = payload.last_read_chapter
        if payload.last_read_verse is not None:
            self.last_read_verse = payload.last_read_verse
        if payload.favorite_chapters is not None:
            self.favorite_chapters = payload.favorite_chapters
