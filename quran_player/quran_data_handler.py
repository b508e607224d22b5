# quran_player/quran_data_handler.py
import json
import os
import sys
from typing import Dict, List, Optional

import arabic_reshaper
from bidi.algorithm import get_display
from colorama import Fore, Style
from pydantic import ValidationError

from .models import TOTAL_CHAPTERS, Chapter, Verse
from .utils import get_app_path


class CorpusLoadError(Exception):
    """The bundled corpus is missing or malformed. Not recoverable at runtime."""


class QuranDataHandler:
    DATABASE_FILENAME = "database/quran.json"
    QIRAAT_DIRNAME = "database/Qiraat"

    # Overlay file name -> Verse field it fills
    QIRAAT_OVERLAYS = (
        ("QiraahWarsh", "text_warsh"),
        ("QiraahQaloon", "text_qaloon"),
        ("QiraahDuri", "text_duri"),
        ("QiraahBuzzi", "text_buzzi"),
        ("QiraahQunbul", "text_qunbul"),
        ("QiraahShubah", "text_shubah"),
        ("QiraahSusi", "text_susi"),
    )

    def __init__(self, corpus_path: Optional[str] = None, qiraat_dir: Optional[str] = None, quiet: bool = False):
        """
        Loads the corpus once. Raises CorpusLoadError when it cannot be read.

        Args:
            corpus_path: JSON document with the ordered chapter list.
                         Defaults to the bundled database/quran.json.
            qiraat_dir: Directory holding the optional Qiraah*.json overlays.
                        Defaults to the bundled database/Qiraat.
            quiet: Suppress the success message.
        """
        self.corpus_path = corpus_path or get_app_path(self.DATABASE_FILENAME)
        self.qiraat_dir = qiraat_dir or get_app_path(self.QIRAAT_DIRNAME)
        self.arabic_reversed = False

        raw_chapters = self._load_corpus_document(self.corpus_path)
        overlays = self._load_qiraat_overlays(self.qiraat_dir)
        self.chapters: List[Chapter] = self._build_chapters(raw_chapters, overlays)
        self._chapter_index: Dict[int, Chapter] = {c.number: c for c in self.chapters}

        if not quiet:
            print(f"{Fore.GREEN}Successfully loaded Quran corpus ({len(self.chapters)} chapters).{Style.RESET_ALL}")

    def _load_corpus_document(self, path: str) -> list:
        if not os.path.exists(path):
            print(f"{Fore.RED}Fatal Error: Quran corpus not found at {path}{Style.RESET_ALL}", file=sys.stderr)
            raise CorpusLoadError(f"Corpus file not found: {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            print(f"{Fore.RED}Fatal Error: Failed to parse Quran corpus ({path}): {e}{Style.RESET_ALL}", file=sys.stderr)
            raise CorpusLoadError(f"Corpus file is not valid JSON: {path}") from e
        if not isinstance(data, list) or not data:
            raise CorpusLoadError(f"Corpus must be a non-empty list of chapters: {path}")
        return data

    def _load_qiraat_overlays(self, directory: str) -> Dict[str, Dict[int, Dict[int, str]]]:
        """field name -> chapter -> verse -> text. Missing or unreadable files are skipped."""
        result: Dict[str, Dict[int, Dict[int, str]]] = {}
        if not directory or not os.path.isdir(directory):
            return result

        for filename, field_name in self.QIRAAT_OVERLAYS:
            path = os.path.join(directory, f"{filename}.json")
            if not os.path.exists(path):
                continue
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    raw = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
                print(f"{Fore.YELLOW}Warning: Skipping overlay {filename}: {e}{Style.RESET_ALL}", file=sys.stderr)
                continue
            if not isinstance(raw, dict):
                print(f"{Fore.YELLOW}Warning: Overlay {filename} has an invalid layout, skipped.{Style.RESET_ALL}", file=sys.stderr)
                continue

            by_chapter: Dict[int, Dict[int, str]] = {}
            for chapter_key, entries in raw.items():
                try:
                    chapter_number = int(chapter_key)
                except (TypeError, ValueError):
                    continue
                lookup = {}
                for entry in entries or []:
                    if not isinstance(entry, dict) or "id" not in entry:
                        continue
                    text = entry.get("text") or entry.get("textArabic")
                    if text:
                        lookup[int(entry["id"])] = text
                by_chapter[chapter_number] = lookup
            result[field_name] = by_chapter
        return result

    def _build_chapters(self, raw_chapters: list, overlays: dict) -> List[Chapter]:
        chapters = []
        try:
            for raw in raw_chapters:
                chapter = Chapter.model_validate(raw)
                if overlays:
                    verses = []
                    for verse in chapter.verses:
                        updates = {}
                        for field_name, by_chapter in overlays.items():
                            text = by_chapter.get(chapter.number, {}).get(verse.number)
                            if text:
                                updates[field_name] = text
                        verses.append(verse.model_copy(update=updates) if updates else verse)
                    chapter = chapter.model_copy(update={"verses": verses})
                chapters.append(chapter)
        except ValidationError as e:
            print(f"{Fore.RED}Fatal Error: Quran corpus has invalid entries: {e}{Style.RESET_ALL}", file=sys.stderr)
            raise CorpusLoadError("Corpus failed validation") from e

        numbers = [c.number for c in chapters]
        if numbers != list(range(1, len(chapters) + 1)):
            raise CorpusLoadError("Chapters must be ordered and contiguous starting at 1")
        if len(chapters) > TOTAL_CHAPTERS:
            raise CorpusLoadError(f"Corpus has more than {TOTAL_CHAPTERS} chapters")
        return chapters

    def chapter(self, number: int) -> Optional[Chapter]:
        return self._chapter_index.get(number)

    def verse(self, chapter_number: int, verse_number: int) -> Optional[Verse]:
        chapter = self.chapter(chapter_number)
        if chapter is None or not (1 <= verse_number <= len(chapter.verses)):
            return None
        verse = chapter.verses[verse_number - 1]
        if verse.number == verse_number:
            return verse
        # Fall back to a scan if the document skips or reorders verses
        return next((v for v in chapter.verses if v.number == verse_number), None)

    def global_verse_ordinal(self, chapter_number: int, verse_number: int) -> Optional[int]:
        """1-based position of a verse across the whole corpus."""
        chapter = self.chapter(chapter_number)
        if chapter is None or not (1 <= verse_number <= chapter.verse_count):
            return None
        count_before = sum(c.verse_count for c in self.chapters[:chapter_number - 1])
        return count_before + verse_number

    def total_verses(self) -> int:
        return sum(c.verse_count for c in self.chapters)

    def toggle_arabic_reversal(self):
        """Toggles the arabic_reversed flag used by fix_arabic_text."""
        self.arabic_reversed = not self.arabic_reversed

    def fix_arabic_text(self, text: str) -> str:
        """Reshapes and applies BiDi algorithm, optionally reversing for display."""
        if not text:
            return ""
        reshaped_text = arabic_reshaper.reshape(text)
        bidi_text = str(get_display(reshaped_text))
        if self.arabic_reversed:
            return "".join(reversed(bidi_text))
        return bidi_text
