"""Argument parsing and the interactive command dispatcher."""

import pytest

from quran_player.cli import QuranPlayerApp, main, parse_args
from quran_player.models import ContinuationPolicy
from quran_player.playback_sequencer import PlaybackMode
from quran_player.version import VERSION


@pytest.fixture
def app(loop, data_handler, store, engine):
    return QuranPlayerApp(loop, data_handler, store, engine)


def test_parse_args_defaults():
    args = parse_args([])
    assert args.corpus is None
    assert args.qiraat_dir is None
    assert args.settings is None
    assert args.cache_dir is None


def test_parse_args_paths():
    args = parse_args(["--corpus", "q.json", "--qiraat-dir", "qiraat", "--settings", "prefs.json",
                       "--cache-dir", "cache"])
    assert (args.corpus, args.qiraat_dir, args.settings, args.cache_dir) == (
        "q.json", "qiraat", "prefs.json", "cache")


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as exc:
        parse_args(["--version"])
    assert exc.value.code == 0
    assert VERSION in capsys.readouterr().out


def test_main_reports_missing_corpus(tmp_path, capsys):
    assert main(["--corpus", str(tmp_path / "missing.json")]) == 1
    assert "Corpus file not found" in capsys.readouterr().err


def test_play_command(app, engine, capsys):
    assert app.handle_command("play 18")
    assert engine.loads == [["https://server10.mp3quran.net/minsh/018.mp3"]]
    engine.complete_load()
    assert "Surah 18: Al-Kahf" in capsys.readouterr().out


def test_play_with_repeat(app, engine):
    app.handle_command("p 112 2")
    engine.complete_load()
    assert app.sequencer.session.repeat_total == 2


def test_play_rejects_bad_chapter(app, engine, capsys):
    app.handle_command("play 200")
    assert engine.loads == []
    assert "between 1 and 114" in capsys.readouterr().out


def test_verse_command_with_continue_and_repeat(app, engine):
    app.handle_command("verse 2 255")
    assert app.sequencer.session.current_verse == 255

    app.handle_command("v 2 5 c")
    assert app.sequencer.session.continue_recitation
    assert len(engine.loads[-1]) == 2

    app.handle_command("v 1 2 3")
    session = app.sequencer.session
    assert not session.continue_recitation
    assert session.repeat_total == 3


def test_range_command(app, engine):
    app.handle_command("range 2 5 7 2 3")
    assert len(engine.loads[-1]) == 18
    assert app.sequencer.mode is PlaybackMode.CUSTOM_RANGE


def test_range_limits_repeats(app, engine, capsys):
    app.handle_command("r 2 5 7 21")
    assert engine.loads == []
    assert "between 1 and 20" in capsys.readouterr().out


def test_bismillah_command(app, engine):
    app.handle_command("bismillah")
    engine.complete_load()
    assert app.sequencer.now_playing_title == "Bismillah"


def test_playback_controls(app, engine):
    app.handle_command("play 18")
    engine.complete_load()
    app.handle_command("pause")
    assert app.sequencer.session.is_paused
    app.handle_command("resume")
    assert app.sequencer.session.is_playing
    app.handle_command("seek +15")
    assert engine.seeks == [15.0]
    app.handle_command("next")
    assert app.sequencer.session.current_chapter == 19
    engine.complete_load()
    app.handle_command("stop")
    assert app.sequencer.mode is PlaybackMode.IDLE


def test_back_command_uses_gesture(app, engine, loop):
    app.handle_command("play 18")
    engine.complete_load()
    app.handle_command("b")
    loop.advance(0.1)
    app.handle_command("b")
    assert app.sequencer.session.current_chapter == 17


def test_last_resumes_saved_chapter(app, engine, capsys):
    app.handle_command("last")
    assert "Nothing listened yet" in capsys.readouterr().out

    app.handle_command("play 18")
    engine.complete_load()
    engine.position = 40.0
    app.handle_command("stop")
    app.handle_command("last")
    engine.complete_load()
    assert engine.loads[-1] == ["https://server10.mp3quran.net/minsh/018.mp3"]
    assert engine.seeks == [40.0]


def test_search_command(app, capsys):
    app.handle_command("search merciful")
    out = capsys.readouterr().out
    assert "Al-Fatihah 1:1" in out
    assert "Al-Fatihah 1:3" in out


def test_search_without_results(app, capsys):
    app.handle_command("s zzzz")
    assert "No verses found" in capsys.readouterr().out


def test_search_reports_remaining_matches(app, capsys):
    app.handle_command("search synthetic")
    assert "6217 more" in capsys.readouterr().out


def test_style_command(app, capsys):
    app.handle_command("style warsh")
    assert app.settings.display_style == "warsh"
    assert "Recitation style: warsh" in capsys.readouterr().out

    app.handle_command("style Hafs")
    assert app.settings.display_style is None


def test_reciter_command(app, capsys):
    app.handle_command("reciter alafasy")
    assert app.settings.reciter == "Mishary Rashid Alafasy"
    app.handle_command("reciter ar.husary")
    assert app.settings.reciter == "Mahmoud Khalil Al-Husary"
    app.handle_command("reciter nobody")
    assert app.settings.reciter == "Mahmoud Khalil Al-Husary"
    assert "Unknown reciter" in capsys.readouterr().out


def test_policy_command(app, capsys):
    app.handle_command("policy end")
    assert app.settings.recite_type is ContinuationPolicy.END
    app.handle_command("policy prev")
    assert app.settings.recite_type is ContinuationPolicy.PREVIOUS
    app.handle_command("policy sideways")
    assert app.settings.recite_type is ContinuationPolicy.PREVIOUS
    assert "Choose one of" in capsys.readouterr().out


def test_status_command(app, engine, capsys):
    app.handle_command("status")
    assert "Nothing is playing" in capsys.readouterr().out
    app.handle_command("play 18")
    app.handle_command("status")
    assert "Loading" in capsys.readouterr().out
    engine.complete_load()
    app.handle_command("status")
    assert "Playing: Surah 18: Al-Kahf" in capsys.readouterr().out


def test_connectivity_alert_is_printed_once(app, engine, capsys):
    app.handle_command("play 18")
    engine.fail_load()
    assert "Could not load the recitation" in capsys.readouterr().out
    assert not app.sequencer.show_connectivity_alert


def test_invalid_arguments_are_reported(app, capsys):
    assert app.handle_command("verse two")
    assert app.handle_command("seek")
    out = capsys.readouterr().out
    assert out.count("Invalid arguments") == 2


def test_unknown_and_empty_commands(app, capsys):
    assert app.handle_command("")
    assert app.handle_command("dance")
    assert "Unknown command 'dance'" in capsys.readouterr().out


def test_quit_stops_playback(app, engine):
    app.handle_command("play 18")
    engine.complete_load()
    assert not app.handle_command("quit")
    assert app.sequencer.mode is PlaybackMode.IDLE


def test_style_command_rejects_unknown_names(app, capsys):
    app.handle_command("style warsh")
    app.handle_command("style Foo")
    assert app.settings.display_style == "warsh"
    out = capsys.readouterr().out
    assert "Unknown recitation style 'Foo'" in out
    assert "Hafs, Warsh, Qaloon" in out


def test_reverse_command_toggles_arabic_reversal(app, data_handler, capsys):
    before = data_handler.arabic_reversed
    try:
        app.handle_command("reverse")
        assert data_handler.arabic_reversed is not before
        assert f"Arabic reversal {'off' if before else 'on'}" in capsys.readouterr().out
    finally:
        data_handler.arabic_reversed = before


def test_fav_command(app, capsys):
    app.handle_command("fav")
    assert "No favourite chapters" in capsys.readouterr().out

    app.handle_command("fav 18")
    app.handle_command("fav 36")
    assert app.settings.favorite_chapters == [18, 36]
    assert "Added Al-Kahf (18)" in capsys.readouterr().out

    app.handle_command("fav")
    assert "Al-Kahf" in capsys.readouterr().out

    app.handle_command("fav 18")
    assert not app.settings.is_favorite(18)
    assert "Removed Al-Kahf (18)" in capsys.readouterr().out

    app.handle_command("fav 115")
    assert app.settings.favorite_chapters == [36]


def test_verse_command_records_last_read(app, capsys):
    app.handle_command("verse 2 255")
    assert (app.settings.last_read_chapter, app.settings.last_read_verse) == (2, 255)

    app.handle_command("verse 1 99")
    assert (app.settings.last_read_chapter, app.settings.last_read_verse) == (2, 255)

    app.handle_command("status")
    assert "Last read: 2:255" in capsys.readouterr().out
