import pytest

from sixfs.keyboard import CTLMAP, KEY_UP, NORMALMAP, SHIFTMAP, KeyboardDecoder, control

A_KEY = 0x1E
LSHIFT = 0x2A
LCTRL = 0x1D
CAPS = 0x3A


def test_tables_have_full_range_and_keypad_enter_decodes():
    assert len(NORMALMAP) == len(SHIFTMAP) == len(CTLMAP) == 256
    kbd = KeyboardDecoder()
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x1C) == ord("\n")


def test_plain_key():
    kbd = KeyboardDecoder()
    assert kbd.feed(A_KEY) == ord("a")


def test_release_yields_nothing():
    kbd = KeyboardDecoder()
    assert kbd.feed(A_KEY | 0x80) == 0


def test_shift_press_and_release():
    kbd = KeyboardDecoder()
    assert kbd.feed(LSHIFT) == 0
    assert kbd.feed(A_KEY) == ord("A")
    kbd.feed(LSHIFT | 0x80)
    assert kbd.feed(A_KEY) == ord("a")


def test_control_key():
    kbd = KeyboardDecoder()
    kbd.feed(LCTRL)
    assert kbd.feed(A_KEY) == control("A")


def test_capslock_toggles_and_inverts_with_shift():
    kbd = KeyboardDecoder()
    kbd.feed(CAPS)
    assert kbd.feed(A_KEY) == ord("A")
    kbd.feed(LSHIFT)
    assert kbd.feed(A_KEY) == ord("a")
    kbd.feed(LSHIFT | 0x80)
    kbd.feed(CAPS | 0x80)
    kbd.feed(CAPS)
    assert kbd.feed(A_KEY) == ord("a")


def test_e0_escape_arrow():
    kbd = KeyboardDecoder()
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x48) == KEY_UP
    assert kbd.feed(0x48) == NORMALMAP[0x48]


def test_keypad_divide_under_control():
    assert CTLMAP[0xB5] == control("/") & 0xFF


def test_bad_scancode():
    with pytest.raises(ValueError):
        KeyboardDecoder().feed(256)