"""Corpus loading, overlays and verse addressing."""

import json

import pytest

from quran_player.quran_data_handler import CorpusLoadError, QuranDataHandler


def test_bundled_corpus_loads_every_chapter():
    handler = QuranDataHandler(quiet=True)
    assert len(handler.chapters) == 114
    assert handler.total_verses() == 6236
    assert handler.chapter(1).name_transliteration == "Al-Fatihah"
    assert handler.chapter(114).verse_count == 6
    assert handler.verse(1, 1).text_hafs.startswith("بِسْمِ")


@pytest.mark.parametrize(
    "chapter, verse, expected",
    [(1, 1, 1), (1, 7, 7), (2, 1, 8), (2, 255, 262), (114, 6, 6236)],
)
def test_global_verse_ordinal(data_handler, chapter, verse, expected):
    assert data_handler.global_verse_ordinal(chapter, verse) == expected


@pytest.mark.parametrize("chapter, verse", [(1, 0), (1, 8), (2, 287), (0, 1), (115, 1)])
def test_global_verse_ordinal_out_of_range(data_handler, chapter, verse):
    assert data_handler.global_verse_ordinal(chapter, verse) is None


def test_verse_lookup(data_handler):
    assert data_handler.verse(1, 4).text_hafs == "مَالِكِ يَوْمِ الدِّينِ"
    assert data_handler.verse(1, 8) is None
    assert data_handler.verse(115, 1) is None


def test_qiraah_overlay_merged_by_chapter_and_verse(data_handler):
    verse = data_handler.verse(1, 4)
    assert verse.text_warsh == "مَلِكِ يَوْمِ الدِّينِ"
    assert verse.text_for_style("Warsh") == "مَلِكِ يَوْمِ الدِّينِ"
    assert verse.clean_text_for_style("Warsh") == "ملك يوم الدين"


def test_missing_variant_falls_back_to_canonical_text(data_handler):
    verse = data_handler.verse(1, 4)
    assert verse.text_qaloon is None
    assert verse.text_for_style("Qaloon") == verse.text_hafs
    assert verse.text_for_style("Hafs") == verse.text_hafs
    assert verse.text_for_style(None) == verse.text_hafs


def test_empty_overlay_text_is_ignored(data_handler):
    verse = data_handler.verse(1, 5)
    assert verse.text_warsh is None
    assert verse.text_for_style("Warsh") == verse.text_hafs


def test_missing_corpus_is_fatal(tmp_path, capsys):
    with pytest.raises(CorpusLoadError):
        QuranDataHandler(str(tmp_path / "missing.json"), quiet=True)
    assert "Fatal Error" in capsys.readouterr().err


def test_malformed_corpus_is_fatal(tmp_path):
    path = tmp_path / "quran.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CorpusLoadError):
        QuranDataHandler(str(path), quiet=True)


def test_invalid_chapter_entry_is_fatal(tmp_path):
    path = tmp_path / "quran.json"
    path.write_text(json.dumps([{"id": 200, "nameTransliteration": "X", "numberOfAyahs": 1}]), encoding="utf-8")
    with pytest.raises(CorpusLoadError):
        QuranDataHandler(str(path), quiet=True)


def test_chapters_must_be_contiguous(tmp_path):
    path = tmp_path / "quran.json"
    chapters = [
        {"id": 1, "nameTransliteration": "Al-Fatihah", "numberOfAyahs": 7},
        {"id": 3, "nameTransliteration": "Ali 'Imran", "numberOfAyahs": 200},
    ]
    path.write_text(json.dumps(chapters), encoding="utf-8")
    with pytest.raises(CorpusLoadError):
        QuranDataHandler(str(path), quiet=True)


def test_unreadable_overlay_is_skipped(tmp_path, capsys):
    path = tmp_path / "quran.json"
    path.write_text(json.dumps([{"id": 1, "nameTransliteration": "Al-Fatihah", "numberOfAyahs": 7}]), encoding="utf-8")
    qiraat = tmp_path / "Qiraat"
    qiraat.mkdir()
    (qiraat / "QiraahWarsh.json").write_text("[broken", encoding="utf-8")
    handler = QuranDataHandler(str(path), str(qiraat), quiet=True)
    assert handler.chapter(1).verse_count == 7
    assert "Skipping overlay" in capsys.readouterr().err


def test_fix_arabic_text(data_handler):
    assert data_handler.fix_arabic_text("") == ""
    shaped = data_handler.fix_arabic_text("بسم الله")
    assert isinstance(shaped, str) and shaped
    data_handler.toggle_arabic_reversal()
    try:
        assert data_handler.fix_arabic_text("بسم الله") == shaped[::-1]
    finally:
        data_handler.toggle_arabic_reversal()
