"""Single vs double back-press disambiguation."""

import pytest

from quran_player.skip_gesture import DOUBLE_TAP_WINDOW, RESTART_DELAY, SkipGestureDisambiguator


@pytest.fixture
def calls():
    return []


@pytest.fixture
def gesture(loop, calls):
    return SkipGestureDisambiguator(loop, lambda: calls.append("restart"), lambda: calls.append("previous"))


def test_defaults():
    assert DOUBLE_TAP_WINDOW == 0.75
    assert RESTART_DELAY == 0.85


def test_single_press_restarts_after_delay(loop, gesture, calls):
    gesture.press()
    assert gesture.pending
    loop.advance(0.8)
    assert calls == []
    loop.advance(0.05)
    assert calls == ["restart"]
    assert not gesture.pending


def test_double_press_goes_to_previous_immediately(loop, gesture, calls):
    gesture.press()
    loop.advance(0.3)
    gesture.press()
    assert calls == ["previous"]
    loop.advance(2.0)
    assert calls == ["previous"]


def test_second_press_after_window_is_ignored(loop, gesture, calls):
    gesture.press()
    loop.advance(0.8)
    gesture.press()
    assert calls == []
    loop.advance(0.05)
    assert calls == ["restart"]


def test_presses_after_restart_start_a_new_gesture(loop, gesture, calls):
    gesture.press()
    loop.advance(1.0)
    gesture.press()
    loop.advance(0.1)
    gesture.press()
    assert calls == ["restart", "previous"]


def test_reset_drops_pending_restart(loop, gesture, calls):
    gesture.press()
    gesture.reset()
    loop.advance(2.0)
    assert calls == []
    assert not gesture.pending


@pytest.mark.parametrize("window, delay", [(0.85, 0.85), (1.0, 0.5), (0.0, 0.85)])
def test_window_must_be_shorter_than_delay(loop, window, delay):
    with pytest.raises(ValueError):
        SkipGestureDisambiguator(loop, lambda: None, lambda: None, double_tap_window=window, restart_delay=delay)
