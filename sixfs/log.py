"""Write-ahead redo log that makes multi-block file system updates atomic.

A transaction gathers the updates of several concurrent operations and
commits only when none of them is still running. Operations bracket their
work with ``begin_op``/``end_op`` (or the ``transaction`` context manager)
and record modified buffers with ``log_write`` instead of writing them.

On-disk format: a header block holding the count and the home block
numbers, followed by one log block per recorded block.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator, List

from .bufcache import Buf, BufferCache
from .errors import KernelPanic
from .layout import BSIZE, Superblock

MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3

_COUNT = struct.Struct("<i")


class Log:
    """The log of one device."""

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        superblock: Superblock,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        if _COUNT.size * (1 + logsize) >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.start = superblock.logstart
        self.size = superblock.nlog
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self.blocks: List[int] = []
        self._cond = threading.Condition()
        self.recover()

    # -- header -----------------------------------------------------------

    def _read_head(self) -> List[int]:
        buf = self.cache.read(self.dev, self.start)
        try:
            (n,) = _COUNT.unpack_from(buf.data, 0)
            if not 0 <= n <= self.logsize:
                raise KernelPanic("log header corrupt")
            return list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))
        finally:
            self.cache.release(buf)

    def _write_head(self) -> None:
        """Write the in-memory header to disk; this is the commit point."""
        buf = self.cache.read(self.dev, self.start)
        try:
            _COUNT.pack_into(buf.data, 0, len(self.blocks))
            struct.pack_into(f"<{len(self.blocks)}i", buf.data, _COUNT.size, *self.blocks)
            self.cache.write(buf)
        finally:
            self.cache.release(buf)

    # -- copying ----------------------------------------------------------

    def _install(self) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, home in enumerate(self.blocks):
            lbuf = self.cache.read(self.dev, self.start + tail + 1)
            dbuf = self.cache.read(self.dev, home)
            dbuf.data[:] = lbuf.data
            self.cache.write(dbuf)
            self.cache.release(lbuf)
            self.cache.release(dbuf)

    def _write_log(self) -> None:
        """Copy modified blocks from the cache into the log."""
        for tail, home in enumerate(self.blocks):
            to = self.cache.read(self.dev, self.start + tail + 1)
            src = self.cache.read(self.dev, home)
            to.data[:] = src.data
            self.cache.write(to)
            self.cache.release(src)
            self.cache.release(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()
            self._install()
            self.blocks = []
            self._write_head()

    # -- public interface -------------------------------------------------

    def recover(self) -> None:
        """Replay a committed transaction left on disk, then clear the log."""
        self.blocks = self._read_head()
        self._install()
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start a file system operation, waiting for log space if needed."""
        with self._cond:
            while True:
                if self.committing:
                    self._cond.wait()
                elif len(self.blocks) + (self.outstanding + 1) * self.maxopblocks > self.logsize:
                    self._cond.wait()
                else:
                    self.outstanding += 1
                    return

    def end_op(self) -> None:
        """Finish an operation; the last one out commits the transaction."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buf) -> None:
        """Record a modified buffer and pin it in the cache until commit."""
        if len(self.blocks) >= self.logsize or len(self.blocks) >= self.size - 1:
            raise KernelPanic("too big a transaction")
        if self.outstanding < 1:
            raise KernelPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the body between ``begin_op`` and ``end_op``."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()