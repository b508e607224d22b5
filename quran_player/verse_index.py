# quran_player/verse_index.py
import threading
from typing import List, Optional

from .models import VerseIndexEntry, normalize_style
from .text_normalizer import clean_search, contains_arabic_letters, contains_digit


class VerseIndex:
    """
    Normalized in-memory search index over every verse of the corpus.

    Entries are built lazily on the first search and cached. The cache is keyed
    to the display style selector read from settings: when the selector changes
    the whole index is rebuilt before the next search runs.
    """

    def __init__(self, data_handler, settings):
        self.data_handler = data_handler
        self.settings = settings
        self._entries: List[VerseIndexEntry] = []
        self._built_for: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def built_for(self) -> Optional[str]:
        """Style selector the current entries were built with (None before the first build)."""
        return self._built_for

    def _current_style(self) -> str:
        return normalize_style(self.settings.display_style)

    def _build(self, style: str) -> List[VerseIndexEntry]:
        entries = []
        for chapter in self.data_handler.chapters:
            for verse in chapter.verses:
                raw = verse.text_for_style(style)
                clean = verse.clean_text_for_style(style)
                arabic_blob = clean_search(raw) + " " + clean_search(clean)
                latin_blob = " ".join([
                    clean_search(verse.text_english_saheeh),
                    clean_search(verse.text_english_mustafa),
                    clean_search(verse.text_transliteration),
                ])
                entries.append(VerseIndexEntry(
                    id=f"{chapter.number}:{verse.number}",
                    chapter=chapter.number,
                    verse=verse.number,
                    arabic_blob=arabic_blob,
                    latin_blob=latin_blob,
                ))
        return entries

    def ensure_built(self) -> List[VerseIndexEntry]:
        """Return the entries, rebuilding them when the style selector changed."""
        style = self._current_style()
        with self._lock:
            if self._built_for != style:
                self._entries = self._build(style)
                self._built_for = style
            return self._entries

    def search(self, query: str, limit: Optional[int] = 10, offset: int = 0) -> List[VerseIndexEntry]:
        """
        Substring search in corpus order.

        Args:
            query: Free text. Queries containing any digit return nothing.
            limit: Maximum number of results, None for no limit.
            offset: Number of matches to skip before collecting.
        """
        normalized = clean_search(query, whitespace=True)
        if not normalized or contains_digit(query):
            return []
        if limit is not None and limit <= 0:
            return []

        use_arabic = contains_arabic_letters(query)
        entries = self.ensure_built()

        results = []
        skipped = 0
        for entry in entries:
            blob = entry.arabic_blob if use_arabic else entry.latin_blob
            if normalized not in blob:
                continue
            if skipped < max(offset, 0):
                skipped += 1
                continue
            results.append(entry)
            if limit is not None and len(results) >= limit:
                break
        return results

    def search_all(self, query: str) -> List[VerseIndexEntry]:
        return self.search(query, limit=None, offset=0)
