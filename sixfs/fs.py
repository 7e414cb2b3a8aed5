"""File system core: block allocation, inodes, directories and path names.

The layers, bottom up: raw block allocation through the free bitmap,
crash recovery through the log, inodes and their contents, directories
(inodes holding a list of entries) and path name lookup.

An in-memory inode must be locked with ``ilock`` before its on-disk
fields are examined or changed, and released with ``iunlock``; ``iget``
and ``iput`` manage its reference count in the inode cache. Updates that
write to disk must run inside ``transaction()``.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .bufcache import BufferCache
from .disk import MemDisk
from .errors import KernelPanic
from .layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    T_DEV,
    T_DIR,
    Dirent,
    DiskInode,
    Superblock,
    bblock,
    iblock,
)
from .log import LOGSIZE, MAXOPBLOCKS, Log

NINODE = 50
NBUF = MAXOPBLOCKS * 3
ROOTDEV = 1

_UINT = struct.Struct("<I")


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode.

    ``ref`` counts in-memory references; ``valid`` tells whether the
    fields below it have been read from disk.
    """

    dev: Optional[int] = None
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: List[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _holder: Optional[int] = field(default=None, repr=False)

    @property
    def held(self) -> bool:
        """True if the calling thread holds this inode's lock."""
        return self._lock.locked() and self._holder == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._holder = threading.get_ident()

    def _release(self) -> None:
        self._holder = None
        self._lock.release()


def skipelem(path: str) -> Optional[Tuple[str, str]]:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes, or
    None if there is no element. Names are cut to DIRSIZ characters.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    name, _, rest = stripped.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def namecmp(s: str, t: str) -> int:
    """Compare two directory entry names over their first DIRSIZ characters."""
    a, b = s[:DIRSIZ], t[:DIRSIZ]
    return (a > b) - (a < b)


class FileSystem:
    """A mounted file system on one device."""

    def __init__(
        self,
        disk: MemDisk,
        dev: int = ROOTDEV,
        ninode: int = NINODE,
        nbuf: int = NBUF,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        self.dev = dev
        self.cache = BufferCache(disk, nbuf)
        self.devsw: Dict[int, Any] = {}
        self._icache_lock = threading.Lock()
        self._icache: List[Inode] = [Inode() for _ in range(ninode)]
        self.sb = self._readsb()
        self.log = Log(self.cache, dev, self.sb, logsize, maxopblocks)

    # -- blocks -----------------------------------------------------------

    def _readsb(self) -> Superblock:
        bp = self.cache.read(self.dev, 1)
        try:
            return Superblock.unpack(bytes(bp.data[: Superblock.SIZE]))
        finally:
            self.cache.release(bp)

    def _bzero(self, bno: int) -> None:
        bp = self.cache.read(self.dev, bno)
        try:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)
        finally:
            self.cache.release(bp)

    def _balloc(self) -> int:
        """Allocate a zeroed disk block."""
        for b in range(0, self.sb.size, BPB):
            bp = self.cache.read(self.dev, bblock(b, self.sb))
            found = None
            try:
                for bi in range(min(BPB, self.sb.size - b)):
                    m = 1 << (bi % 8)
                    if not bp.data[bi // 8] & m:
                        bp.data[bi // 8] |= m
                        self.log.log_write(bp)
                        found = b + bi
                        break
            finally:
                self.cache.release(bp)
            if found is not None:
                self._bzero(found)
                return found
        raise KernelPanic("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        bp = self.cache.read(self.dev, bblock(b, self.sb))
        try:
            bi = b % BPB
            m = 1 << (bi % 8)
            if not bp.data[bi // 8] & m:
                raise KernelPanic("freeing free block")
            bp.data[bi // 8] &= ~m & 0xFF
            self.log.log_write(bp)
        finally:
            self.cache.release(bp)

    # -- transactions -----------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["FileSystem"]:
        """Group the body's updates into one atomic log transaction."""
        with self.log.transaction():
            yield self

    # -- inodes -----------------------------------------------------------

    @staticmethod
    def _dinode_offset(inum: int) -> int:
        return (inum % IPB) * DiskInode.SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate an on-disk inode of ``type``; return it referenced but unlocked."""
        for inum in range(1, self.sb.ninodes):
            bp = self.cache.read(self.dev, iblock(inum, self.sb))
            try:
                off = self._dinode_offset(inum)
                din = DiskInode.unpack(bytes(bp.data[off : off + DiskInode.SIZE]))
                if din.type == 0:
                    bp.data[off : off + DiskInode.SIZE] = DiskInode(type=type).pack()
                    self.log.log_write(bp)
                    free = True
                else:
                    free = False
            finally:
                self.cache.release(bp)
            if free:
                return self.iget(inum)
        raise KernelPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a locked in-memory inode's fields to disk."""
        bp = self.cache.read(ip.dev, iblock(ip.inum, self.sb))
        try:
            off = self._dinode_offset(ip.inum)
            din = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
            bp.data[off : off + DiskInode.SIZE] = din.pack()
            self.log.log_write(bp)
        finally:
            self.cache.release(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum``, neither locked nor read from disk."""
        with self._icache_lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Optional[Inode]) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip._acquire()
        if not ip.valid:
            bp = self.cache.read(ip.dev, iblock(ip.inum, self.sb))
            try:
                off = self._dinode_offset(ip.inum)
                din = DiskInode.unpack(bytes(bp.data[off : off + DiskInode.SIZE]))
            finally:
                self.cache.release(bp)
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Optional[Inode]) -> None:
        """Unlock ``ip``."""
        if ip is None or not ip.held or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip._release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode if it was the last and it has no links.

        Must run inside a transaction in case the inode is freed.
        """
        ip._acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip._release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    # -- inode content ----------------------------------------------------

    def _bmap(self, ip: Inode, bn: int) -> int:
        """Disk block of the ``bn``th block of ``ip``, allocated if missing."""
        if bn < NDIRECT:
            addr = ip.addrs[bn]
            if addr == 0:
                addr = ip.addrs[bn] = self._balloc()
            return addr
        bn -= NDIRECT
        if bn < NINDIRECT:
            addr = ip.addrs[NDIRECT]
            if addr == 0:
                addr = ip.addrs[NDIRECT] = self._balloc()
            bp = self.cache.read(ip.dev, addr)
            try:
                (addr,) = _UINT.unpack_from(bp.data, bn * _UINT.size)
                if addr == 0:
                    addr = self._balloc()
                    _UINT.pack_into(bp.data, bn * _UINT.size, addr)
                    self.log.log_write(bp)
            finally:
                self.cache.release(bp)
            return addr
        raise KernelPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        """Free all of ``ip``'s content blocks."""
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            bp = self.cache.read(ip.dev, ip.addrs[NDIRECT])
            try:
                entries = struct.unpack_from(f"<{NINDIRECT}I", bp.data)
            finally:
                self.cache.release(bp)
            for a in entries:
                if a:
                    self._bfree(a)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _driver(self, ip: Inode, op: str) -> Any:
        func = getattr(self.devsw.get(ip.major), op, None)
        if func is None:
            raise ValueError(f"no {op} driver for device {ip.major}")
        return func

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == T_DEV:
            data = self._driver(ip, "read")(n)
            return data.encode("latin-1") if isinstance(data, str) else bytes(data)
        if off < 0 or n < 0 or off > ip.size:
            raise ValueError(f"read at offset {off} outside file of size {ip.size}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            bp = self.cache.read(ip.dev, self._bmap(ip, off // BSIZE))
            try:
                start = off % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += bp.data[start : start + m]
            finally:
                self.cache.release(bp)
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode; return the count written."""
        if ip.type == T_DEV:
            return self._driver(ip, "write")(data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"write at offset {off} beyond end of file of size {ip.size}")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the maximum file size")
        view = memoryview(bytes(data))
        while view:
            bp = self.cache.read(ip.dev, self._bmap(ip, off // BSIZE))
            try:
                start = off % BSIZE
                m = min(len(view), BSIZE - start)
                bp.data[start : start + m] = view[:m]
                self.log.log_write(bp)
            finally:
                self.cache.release(bp)
            view = view[m:]
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # -- directories ------------------------------------------------------

    def _entries(self, dp: Inode) -> Iterator[Tuple[int, Dirent]]:
        for off in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise KernelPanic("dirlookup read")
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> Optional[Tuple[Inode, int]]:
        """Find ``name`` in locked directory ``dp``.

        Returns the referenced inode and the entry's byte offset, or None.
        """
        if dp.type != T_DIR:
            raise KernelPanic("dirlookup not DIR")
        for off, de in self._entries(dp):
            if de.inum and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (``name``, ``inum``) to locked directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        off = dp.size
        for entry_off, de in self._entries(dp):
            if de.inum == 0:
                off = entry_off
                break
        if self.writei(dp, Dirent(inum, name[:DIRSIZ]).pack(), off) != Dirent.SIZE:
            raise KernelPanic("dirlink")

    # -- paths ------------------------------------------------------------

    def _namex(self, path: str, parent: bool, cwd: Optional[Inode]) -> Optional[Tuple[Inode, str]]:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while True:
            step = skipelem(path)
            if step is None:
                break
            name, path = step
            self.ilock(ip)
            if ip.type != T_DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Optional[Inode] = None) -> Optional[Inode]:
        """Referenced inode for ``path``, or None if it does not exist.

        Relative paths start at ``cwd``, or at the root if none is given.
        """
        result = self._namex(path, False, cwd)
        return None if result is None else result[0]

    def nameiparent(self, path: str, cwd: Optional[Inode] = None) -> Optional[Tuple[Inode, str]]:
        """Referenced inode of the parent directory and the final element's name."""
        return self._namex(path, True, cwd)