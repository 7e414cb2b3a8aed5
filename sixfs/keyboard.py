"""PC keyboard scan-code decoding."""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def control(ch: str) -> int:
    """Code of Control-``ch``, e.g. control('A') for Control-A."""
    return ord(ch) - ord("@")


def _table(prefix: Sequence[int], extra: Dict[int, int]) -> Tuple[int, ...]:
    table = [NO] * 256
    table[: len(prefix)] = prefix
    for code, value in extra.items():
        table[code] = value
    return tuple(table)


def _codes(text: str) -> List[int]:
    return [ord(c) for c in text]


_SPECIAL = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_KEYPAD = "\x00" * 7 + "789-456+1230." + "\x00" * 4

SHIFTCODE = _table([], {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT})
TOGGLECODE = _table([], {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK})

NORMALMAP = _table(
    _codes(
        "\x00\x1b1234567890-=\b\t"
        "qwertyuiop[]\n\x00as"
        "dfghjkl;'`\x00\\zxcv"
        "bnm,./\x00*\x00 " + "\x00" * 6 + _KEYPAD
    ),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)

SHIFTMAP = _table(
    _codes(
        "\x00\x1b!@#$%^&*()_+\b\t"
        "QWERTYUIOP{}\n\x00AS"
        'DFGHJKL:"~\x00|ZXCV'
        "BNM<>?\x00*\x00 " + "\x00" * 6 + _KEYPAD
    ),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)

CTLMAP = _table(
    [NO] * 16
    + [control(c) for c in "QWERTYUIOP"]
    + [NO, NO, ord("\r"), NO, control("A"), control("S")]
    + [control(c) for c in "DFGHJKL"]
    + [NO, NO, NO, NO, control("\\")]
    + [control(c) for c in "ZXCV"]
    + [control(c) for c in "BNM"]
    + [NO, NO, control("/") & 0xFF, NO, NO],
    {0x9C: ord("\r"), 0xB5: control("/") & 0xFF, **_SPECIAL},
)

_CHARCODE = (NORMALMAP, SHIFTMAP, CTLMAP, CTLMAP)


class KeyboardDecoder:
    """Turns a stream of scan codes into character codes.

    Keeps the modifier and lock state between calls.
    """

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, scancode: int) -> int:
        """Process one scan code; return a character code, or 0 for none."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code out of range: {scancode}")
        data = scancode
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(SHIFTCODE[data] | E0ESC)
            return 0
        if self.shift & E0ESC:
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= SHIFTCODE[data]
        self.shift ^= TOGGLECODE[data]
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c