"""Buffer cache: cached copies of disk blocks with per-buffer locks.

Read a block with ``read``, write modified data back with ``write``,
and hand the buffer back with ``release``. Only one thread may hold a
buffer at a time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import List, Optional

from .disk import MemDisk
from .errors import KernelPanic
from .layout import BSIZE


@dataclass(eq=False)
class Buf:
    """A cached disk block."""

    dev: Optional[int] = None
    blockno: Optional[int] = None
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _holder: Optional[int] = field(default=None, repr=False)

    @property
    def held(self) -> bool:
        """True if the calling thread holds this buffer's lock."""
        return self._lock.locked() and self._holder == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._holder = threading.get_ident()

    def _release(self) -> None:
        self._holder = None
        self._lock.release()


class BufferCache:
    """A fixed pool of buffers kept in most-recently-used order."""

    def __init__(self, disk: MemDisk, nbuf: int = 30) -> None:
        self.disk = disk
        self._lock = threading.Lock()
        # Index 0 is the most recently used buffer.
        self._mru: List[Buf] = [Buf() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            for b in self._mru:
                if b.dev == dev and b.blockno == blockno:
                    b.refcnt += 1
                    break
            else:
                # A dirty buffer is pinned by the log even with no references.
                for b in reversed(self._mru):
                    if b.refcnt == 0 and not b.dirty:
                        b.dev = dev
                        b.blockno = blockno
                        b.valid = False
                        b.dirty = False
                        b.refcnt = 1
                        break
                else:
                    raise KernelPanic("bget: no buffers")
        b._acquire()
        return b

    def _sync(self, b: Buf) -> None:
        if not b.held:
            raise KernelPanic("iderw: buf not locked")
        if b.valid and not b.dirty:
            raise KernelPanic("iderw: nothing to do")
        if b.dev != self.disk.dev:
            raise KernelPanic(f"iderw: request not for disk {self.disk.dev}")
        if b.dirty:
            self.disk.write_block(b.blockno, bytes(b.data))
            b.dirty = False
        else:
            b.data[:] = self.disk.read_block(b.blockno)
        b.valid = True

    def read(self, dev: int, blockno: int) -> Buf:
        """Return a locked buffer holding the contents of the block."""
        b = self._get(dev, blockno)
        if not b.valid:
            self._sync(b)
        return b

    def write(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.held:
            raise KernelPanic("bwrite")
        buf.dirty = True
        self._sync(buf)

    def release(self, buf: Buf) -> None:
        """Unlock a buffer and, if unreferenced, mark it most recently used."""
        if not buf.held:
            raise KernelPanic("brelse")
        buf._release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)