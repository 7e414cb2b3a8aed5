"""A tiny regular-expression matcher and the grep command built on it.

Supported operators: ``^`` ``.`` ``*`` ``$``.
"""

from __future__ import annotations

import sys
from typing import BinaryIO, Iterator, List, Optional

_BUFSIZE = 1024


def match(regex: str, text: str) -> bool:
    """Search for ``regex`` anywhere in ``text``."""
    if regex.startswith("^"):
        return match_here(regex[1:], text)
    return any(match_here(regex, text[i:]) for i in range(len(text) + 1))


def match_here(regex: str, text: str) -> bool:
    """Search for ``regex`` at the beginning of ``text``."""
    if not regex:
        return True
    if len(regex) > 1 and regex[1] == "*":
        return match_star(regex[0], regex[2:], text)
    if regex == "$":
        return not text
    if text and (regex[0] == "." or regex[0] == text[0]):
        return match_here(regex[1:], text[1:])
    return False


def match_star(c: str, regex: str, text: str) -> bool:
    """Search for ``c*regex`` at the beginning of ``text``."""
    i = 0
    while True:
        if match_here(regex, text[i:]):
            return True
        if i >= len(text) or not (text[i] == c or c == "."):
            return False
        i += 1


def grep_lines(pattern: str, stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of ``stream`` that matches.

    Lines are read through a 1024-byte buffer: a final line without a
    newline is never reported, and a buffer full of text with no newline
    is discarded.
    """
    pending = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        *lines, rest = pending.split(b"\n")
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                yield line + b"\n"
        pending = rest if lines else b""


def main(argv: Optional[List[str]] = None) -> int:
    """grep pattern [file ...]"""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 2
    pattern, paths = args[0], args[1:]
    out = sys.stdout.buffer
    try:
        if not paths:
            out.writelines(grep_lines(pattern, sys.stdin.buffer))
            return 0
        for path in paths:
            try:
                stream = open(path, "rb")
            except OSError:
                out.write(f"grep: cannot open {path}\n".encode())
                return 1
            with stream:
                out.writelines(grep_lines(pattern, stream))
        return 0
    finally:
        out.flush()


if __name__ == "__main__":
    sys.exit(main())