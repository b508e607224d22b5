# quran_player/resume_store.py
import sys
from typing import Optional

from colorama import Fore, Style
from pydantic import ValidationError

from .models import ResumeRecord

RESUME_KEY = "lastListenedSurahData"


class ResumeStateStore:
    """Last-listened chapter position, overwritten wholesale on every save."""

    def __init__(self, store, key: str = RESUME_KEY):
        self.store = store
        self.key = key

    def save(self, record: ResumeRecord):
        self.store.set(self.key, record.model_dump_json().encode('utf-8'))

    def load(self) -> Optional[ResumeRecord]:
        """The saved record, or None on first run or when the stored data is unreadable."""
        raw = self.store.get(self.key)
        if not raw:
            return None
        try:
            return ResumeRecord.model_validate_json(raw)
        except ValidationError as e:
            print(f"{Fore.YELLOW}Warning: Discarding unreadable resume state: {e.error_count()} error(s).{Style.RESET_ALL}", file=sys.stderr)
            return None

    def clear(self):
        remove = getattr(self.store, "remove", None)
        if remove is not None:
            remove(self.key)
        else:
            self.store.set(self.key, b"")
