"""Console: line-edited keyboard input and character output."""

from __future__ import annotations

import sys
import threading
from typing import Callable, Iterable, Optional, TextIO, Union

from .formatting import format_kernel
from .keyboard import control

INPUT_BUF = 128
BACKSPACE = 0x100

_NEWLINE = ord("\n")
_EOF = control("D")


class Console:
    """A console with an input line buffer and an output stream.

    Characters arriving through ``interrupt`` are echoed and edited
    (backspace, kill line); ``read`` hands out whole lines.
    """

    def __init__(
        self,
        output: Optional[TextIO] = None,
        procdump: Optional[Callable[[], None]] = None,
    ) -> None:
        self._out = output if output is not None else sys.stdout
        self._procdump = procdump
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

    def putc(self, c: Union[int, str]) -> None:
        """Write one character; BACKSPACE erases the previous one."""
        if isinstance(c, str):
            c = ord(c)
        self._out.write("\b \b" if c == BACKSPACE else chr(c))

    def write(self, data: Union[str, bytes]) -> int:
        """Write ``data`` to the console and return how much was written."""
        with self._cond:
            for ch in data:
                code = ord(ch) if isinstance(ch, str) else ch
                self.putc(code & 0xFF)
        return len(data)

    def printf(self, fmt: Optional[str], *args: object) -> None:
        """Formatted output understanding %d, %x, %p, %s and %%."""
        text = format_kernel(fmt, *args)
        with self._cond:
            for ch in text:
                self.putc(ch)

    def interrupt(self, chars: Iterable[Union[int, str]]) -> None:
        """Feed input characters, as a keyboard or serial interrupt would.

        A negative code ends the input early.
        """
        doprocdump = False
        with self._cond:
            for ch in chars:
                c = ord(ch) if isinstance(ch, str) else ch
                if c < 0:
                    break
                if c == control("P"):
                    doprocdump = True
                elif c == control("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != _NEWLINE:
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c in (control("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = _NEWLINE
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self.putc(c)
                    if c in (_NEWLINE, _EOF) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if doprocdump and self._procdump is not None:
            self._procdump()

    def read(self, n: int) -> str:
        """Read up to ``n`` characters, stopping after a newline.

        Blocks until a line is available. Control-D ends input; if some
        characters were already read it is kept for the next call, which
        then returns an empty string.
        """
        out = []
        remaining = n
        with self._cond:
            while remaining > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _EOF:
                    if remaining < n:
                        self._r -= 1
                    break
                out.append(chr(c))
                remaining -= 1
                if c == _NEWLINE:
                    break
        return "".join(out)