# quran_player/text_normalizer.py
"""Text normalizations shared by search, indexing and verse matching."""
import re
import unicodedata

# Tashkeel U+064B..U+065F and Quranic annotation signs U+06D6..U+06ED,
# plus dagger alif, inverted damma, high hamza and hamza below.
_QURAN_STRIP_CHARS = frozenset(
    [chr(cp) for cp in range(0x064B, 0x0660)]
    + [chr(cp) for cp in range(0x06D6, 0x06EE)]
    + [chr(0x0670), chr(0x0657), chr(0x0674), chr(0x0656)]
)
_HAMZAT_WASL = "ٱ"
_ALIF = "ا"

_ARABIC_RANGES = (
    (0x0600, 0x06FF),
    (0x0750, 0x077F),
    (0x08A0, 0x08FF),
    (0xFB50, 0xFDFF),
    (0xFE70, 0xFEFF),
)

_WHITESPACE_RUN = re.compile(r"\s+")


def strip_arabic_diacritics(text: str) -> str:
    """Remove harakat and Quranic annotation signs, folding hamzat-wasl to alif."""
    if not text:
        return ""
    out = []
    for ch in text:
        if ch == _HAMZAT_WASL:
            out.append(_ALIF)
        elif ch not in _QURAN_STRIP_CHARS:
            out.append(ch)
    return "".join(out)


def clean_search(text: str, whitespace: bool = False) -> str:
    """
    Normalize text for substring search.

    Decomposes compatibility forms, drops every combining mark (diacritics in
    any script) and punctuation, folds case and collapses whitespace runs.
    The query side passes ``whitespace=True`` so surrounding blanks are trimmed.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    kept = []
    for ch in decomposed:
        category = unicodedata.category(ch)
        if category.startswith("M") or category.startswith("P"):
            continue
        kept.append(ch)
    cleaned = _WHITESPACE_RUN.sub(" ", "".join(kept)).casefold()
    if whitespace:
        cleaned = cleaned.strip()
    return cleaned


def contains_arabic_letters(text: str) -> bool:
    """True when any letter of the text falls in an Arabic script block."""
    for ch in text or "":
        if not ch.isalpha():
            continue
        cp = ord(ch)
        if any(lo <= cp <= hi for lo, hi in _ARABIC_RANGES):
            return True
    return False


def contains_digit(text: str) -> bool:
    """True for any decimal digit, Western or Arabic-Indic."""
    return any(ch.isdecimal() for ch in text or "")


__all__ = [
    "strip_arabic_diacritics",
    "clean_search",
    "contains_arabic_letters",
    "contains_digit",
]
