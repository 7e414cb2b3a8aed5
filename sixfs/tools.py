"""Small user commands: cat, echo and ls."""

from __future__ import annotations

import sys
from typing import BinaryIO, Iterable, List, Optional, TextIO

from .disk import MemDisk
from .fs import FileSystem, Stat
from .layout import DIRSIZ, T_DIR, T_FILE, Dirent

_CHUNK = 512
_PATHBUF = 512


def cat(streams: Iterable[BinaryIO], out: BinaryIO) -> None:
    """Copy each binary stream to ``out`` in turn."""
    for stream in streams:
        while True:
            chunk = stream.read(_CHUNK)
            if not chunk:
                break
            out.write(chunk)


def echo(args: Iterable[str]) -> str:
    """The arguments joined by spaces and ended by a newline; empty for none."""
    items = list(args)
    return " ".join(items) + "\n" if items else ""


def fmtname(path: str) -> str:
    """Last path element, blank-padded to DIRSIZ characters."""
    name = path.rpartition("/")[2]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {st.type} {st.ino} {st.size}\n"


def _stat(fs: FileSystem, path: str) -> Optional[Stat]:
    ip = fs.namei(path)
    if ip is None:
        return None
    fs.ilock(ip)
    try:
        return fs.stati(ip)
    finally:
        fs.iunlockput(ip)


def ls(fs: FileSystem, path: str, out: TextIO) -> None:
    """List ``path`` on ``fs``: one line of name, type, inode and size per file.

    Raises FileNotFoundError if ``path`` does not exist.
    """
    with fs.transaction():
        ip = fs.namei(path)
        if ip is None:
            raise FileNotFoundError(path)
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
            contents = fs.readi(ip, 0, ip.size) if st.type == T_DIR else b""
        finally:
            fs.iunlockput(ip)

        if st.type == T_FILE:
            out.write(_line(path, st))
        elif st.type == T_DIR:
            if len(path) + 1 + DIRSIZ + 1 > _PATHBUF:
                out.write("ls: path too long\n")
                return
            whole = len(contents) - len(contents) % Dirent.SIZE
            for start in range(0, whole, Dirent.SIZE):
                de = Dirent.unpack(contents[start : start + Dirent.SIZE])
                if de.inum == 0:
                    continue
                child = f"{path}/{de.name}"
                child_st = _stat(fs, child)
                if child_st is None:
                    out.write(f"ls: cannot stat {child}\n")
                    continue
                out.write(_line(child, child_st))


def _main_cat(paths: List[str]) -> int:
    out = sys.stdout.buffer
    try:
        if not paths:
            cat([sys.stdin.buffer], out)
            return 1
        for path in paths:
            try:
                stream = open(path, "rb")
            except OSError:
                out.flush()
                print(f"cat: cannot open {path}")
                return 1
            with stream:
                cat([stream], out)
        return 0
    finally:
        out.flush()


def _main_ls(args: List[str]) -> int:
    if not args:
        print("usage: ls image [path ...]", file=sys.stderr)
        return 2
    image, paths = args[0], args[1:] or ["."]
    fs = FileSystem(MemDisk.from_file(image))
    for path in paths:
        try:
            ls(fs, path, sys.stdout)
        except FileNotFoundError:
            print(f"ls: cannot open {path}", file=sys.stderr)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """tools cat [file ...] | echo [arg ...] | ls image [path ...]"""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: tools cat|echo|ls ...", file=sys.stderr)
        return 2
    command, rest = args[0], args[1:]
    if command == "cat":
        return _main_cat(rest)
    if command == "echo":
        sys.stdout.write(echo(rest))
        return 0
    if command == "ls":
        return _main_ls(rest)
    print(f"unknown command: {command}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    sys.exit(main())