"""Search index behaviour: script routing, pagination, style-keyed rebuilds."""

import pytest

from quran_player.text_normalizer import contains_arabic_letters
from quran_player.verse_index import VerseIndex


@pytest.fixture
def index(data_handler, settings):
    return VerseIndex(data_handler, settings)


def ids(entries):
    return [e.id for e in entries]


def test_index_is_built_lazily(index):
    assert index.built_for is None
    index.search("mercy")
    assert index.built_for == ""


def test_latin_query_matches_transliteration(index):
    assert ids(index.search("bismillah")) == ["1:1"]


def test_latin_query_is_case_insensitive(index):
    assert ids(index.search("MERCIFUL")) == ["1:1", "1:3"]


def test_query_matches_either_translation(index):
    # "Compassionate" only appears in the Mustafa translation
    assert ids(index.search("compassionate")) == ["1:1", "1:3"]
    assert ids(index.search("Recompense")) == ["1:4"]


def test_arabic_query_ignores_diacritics(index):
    assert ids(index.search("الرحمن الرحيم")) == ["1:1", "1:3"]
    assert ids(index.search("مَالِكِ")) == ["1:4"]


def test_results_follow_corpus_order_and_pagination(index):
    assert ids(index.search("synthetic", limit=3)) == ["2:1", "2:2", "2:3"]
    assert ids(index.search("synthetic", limit=2, offset=2)) == ["2:3", "2:4"]
    assert len(index.search_all("synthetic")) == 6227


@pytest.mark.parametrize("query", ["", "   ", "...", "2:255", "verse 7", "آية ٢٥٥"])
def test_empty_or_numeric_queries_return_nothing(index, query):
    assert index.search(query) == []


def test_zero_limit_returns_nothing(index):
    assert index.search("merciful", limit=0) == []


def test_offset_past_the_end(index):
    assert index.search("merciful", offset=5) == []


def test_style_change_rebuilds_index(index, settings):
    assert index.search("ملك يوم") == []
    settings.display_style = "Warsh"
    assert ids(index.search("ملك يوم")) == ["1:4"]
    assert index.built_for == "Warsh"

    settings.display_style = "Hafs"
    assert index.search("ملك يوم") == []
    assert index.built_for == ""


def test_entries_are_reused_while_style_is_unchanged(index):
    first = index.ensure_built()
    assert index.ensure_built() is first


def test_latin_blob_holds_only_translations_and_transliteration(index):
    entries = index.ensure_built()
    assert not any(contains_arabic_letters(e.latin_blob) for e in entries)
    assert all(contains_arabic_letters(e.arabic_blob) for e in entries[:7])
