"""Open file objects: reference-counted handles on inodes and pipes."""

from __future__ import annotations

import errno
import io
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from .errors import KernelPanic
from .fs import FileSystem, Inode, Stat
from .layout import BSIZE
from .pipe import Pipe

NFILE = 100


class FileType(Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class File:
    """An open file: what it refers to, how it may be used and where it is."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional[Pipe] = None
    ip: Optional[Inode] = None
    off: int = 0


class FileTable:
    """A fixed-size table of open files shared by everyone using ``fs``."""

    def __init__(self, fs: Optional[FileSystem], nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files: List[File] = [File() for _ in range(nfile)]

    def _require_fs(self) -> FileSystem:
        if self.fs is None:
            raise KernelPanic("no file system attached")
        return self.fs

    def alloc(self) -> File:
        """Take a free slot with one reference; raise OSError if the table is full."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: File) -> File:
        """Add a reference to ``f`` and return it."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; release the underlying object on the last one."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.type, f.pipe, f.ip, f.writable
            f.type = FileType.NONE
            f.pipe = None
            f.ip = None
            f.off = 0
            f.readable = f.writable = False

        if kind is FileType.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileType.INODE and ip is not None:
            fs = self._require_fs()
            with fs.transaction():
                fs.iput(ip)

    def stat(self, f: File) -> Stat:
        """Metadata of the inode behind ``f``."""
        if f.type is not FileType.INODE or f.ip is None:
            raise io.UnsupportedOperation("stat needs a file backed by an inode")
        fs = self._require_fs()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f`` at its current offset."""
        if not f.readable:
            raise io.UnsupportedOperation("not readable")
        if f.type is FileType.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.type is FileType.INODE and f.ip is not None:
            fs = self._require_fs()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: File, data: Union[bytes, bytearray, memoryview]) -> int:
        """Write all of ``data`` to ``f`` and return its length."""
        if not f.writable:
            raise io.UnsupportedOperation("not writable")
        if f.type is FileType.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.type is FileType.INODE and f.ip is not None:
            fs = self._require_fs()
            payload = bytes(data)
            # A few blocks per transaction: the inode, an indirect block,
            # bitmap blocks and slop for unaligned writes must all fit.
            limit = ((fs.log.maxopblocks - 1 - 1 - 2) // 2) * BSIZE
            if limit <= 0:
                raise KernelPanic("filewrite: log too small")
            i = 0
            while i < len(payload):
                chunk = payload[i : i + limit]
                with fs.transaction():
                    fs.ilock(f.ip)
                    try:
                        r = fs.writei(f.ip, chunk, f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        fs.iunlock(f.ip)
                if r != len(chunk):
                    raise KernelPanic("short filewrite")
                i += r
            return len(payload)
        raise KernelPanic("filewrite")

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> File:
        """Open a referenced inode; the file takes over that reference."""
        f = self.alloc()
        f.type = FileType.INODE
        f.ip = ip
        f.pipe = None
        f.off = 0
        f.readable = bool(readable)
        f.writable = bool(writable)
        return f

    def open_pipe(self) -> Tuple[File, File]:
        """Create a pipe and return its (read end, write end) files."""
        reader = self.alloc()
        try:
            writer = self.alloc()
        except OSError:
            self.close(reader)
            raise
        pipe = Pipe()
        reader.type = FileType.PIPE
        reader.readable, reader.writable = True, False
        reader.pipe = pipe
        writer.type = FileType.PIPE
        writer.readable, writer.writable = False, True
        writer.pipe = pipe
        return reader, writer