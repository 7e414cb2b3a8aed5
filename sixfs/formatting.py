"""The small printf dialects used by user programs and by the kernel console."""

from __future__ import annotations

from typing import Any, Iterator, Optional

from .errors import KernelPanic

UPPER_DIGITS = "0123456789ABCDEF"
LOWER_DIGITS = "0123456789abcdef"


def format_int(value: int, base: int = 10, signed: bool = True, digits: str = UPPER_DIGITS) -> str:
    """Render ``value`` as a 32-bit integer in ``base``.

    Signed values are read as two's complement; unsigned ones wrap to 32 bits.
    """
    if not 2 <= base <= len(digits):
        raise ValueError(f"unsupported base: {base}")
    x = value & 0xFFFFFFFF
    negative = signed and bool(x & 0x80000000)
    if negative:
        x = -x & 0xFFFFFFFF
    out = []
    while True:
        x, r = divmod(x, base)
        out.append(digits[r])
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _take(args: Iterator[Any]) -> Any:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def _string(value: Any) -> str:
    return "(null)" if value is None else str(value)


def _format(fmt: str, args: Iterator[Any], digits: str, with_char: bool) -> str:
    out = []
    pending = False
    for c in fmt:
        if not pending:
            if c == "%":
                pending = True
            else:
                out.append(c)
            continue
        pending = False
        if c == "d":
            out.append(format_int(_take(args), 10, True, digits))
        elif c in "xp":
            out.append(format_int(_take(args), 16, False, digits))
        elif c == "s":
            out.append(_string(_take(args)))
        elif c == "c" and with_char:
            value = _take(args)
            out.append(value if isinstance(value, str) else chr(value & 0xFF))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)


def format_user(fmt: str, *args: Any) -> str:
    """User-level printf: %d, %x, %p, %s, %c and %%."""
    return _format(fmt, iter(args), UPPER_DIGITS, with_char=True)


def format_kernel(fmt: Optional[str], *args: Any) -> str:
    """Console printf: %d, %x, %p, %s and %%, with lower-case hex."""
    if fmt is None:
        raise KernelPanic("null fmt")
    return _format(fmt, iter(args), LOWER_DIGITS, with_char=False)