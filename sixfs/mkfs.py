"""Build a file system image holding a root directory and some files."""

from __future__ import annotations

import os
import struct
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    T_DIR,
    T_FILE,
    Dirent,
    DiskInode,
    Superblock,
    iblock,
)
from .log import LOGSIZE

FSSIZE = 1000
NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image and appends files to its root directory.

    Layout: boot block, superblock, log, inode blocks, bitmap, data.
    """

    def __init__(self, fssize: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE) -> None:
        self.fssize = fssize
        self.ninodes = ninodes
        self.nlog = nlog
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fssize - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = Superblock(
            size=fssize,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._finished = False
        self._image = bytearray(fssize * BSIZE)
        self._wsect(1, self.sb.pack())

        self.rootino = self.ialloc(T_DIR)
        if self.rootino != ROOTINO:
            raise AssertionError("root inode must be allocated first")
        self.iappend(self.rootino, Dirent(self.rootino, ".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, "..").pack())

    # -- sectors and inodes ----------------------------------------------

    def _rsect(self, sec: int) -> bytes:
        return bytes(self._image[sec * BSIZE : (sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        if len(data) > BSIZE:
            raise ValueError("sector data larger than a block")
        if not 0 <= sec < self.fssize:
            raise ValueError(f"sector {sec} outside the image")
        self._image[sec * BSIZE : (sec + 1) * BSIZE] = data.ljust(BSIZE, b"\0")

    def _inode_offset(self, inum: int) -> int:
        return iblock(inum, self.sb) * BSIZE + (inum % IPB) * DiskInode.SIZE

    def _rinode(self, inum: int) -> DiskInode:
        off = self._inode_offset(inum)
        return DiskInode.unpack(self._image[off : off + DiskInode.SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        off = self._inode_offset(inum)
        self._image[off : off + DiskInode.SIZE] = din.pack()

    def _new_block(self) -> int:
        if self.freeblock >= self.fssize:
            raise ValueError("out of data blocks")
        bno = self.freeblock
        self.freeblock += 1
        return bno

    def _check_open(self) -> None:
        if self._finished:
            raise RuntimeError("image already finished")

    # -- building ---------------------------------------------------------

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with one link and return its number."""
        self._check_open()
        if self.freeinode >= self.ninodes:
            raise ValueError("out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=type, nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``."""
        self._check_open()
        din = self._rinode(inum)
        off = din.size
        view = memoryview(data)
        while view:
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._new_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._new_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._new_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(len(view), (fbn + 1) * BSIZE - off)
            start = x * BSIZE + off - fbn * BSIZE
            self._image[start : start + n1] = view[:n1]
            view = view[n1:]
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading '_' is dropped."""
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(T_FILE)
        self.iappend(self.rootino, Dirent(inum, name[:DIRSIZ]).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory up to whole blocks, write the bitmap
        and return the image."""
        self._check_open()
        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)

        used = self.freeblock
        if used >= BSIZE * 8:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._wsect(self.sb.bmapstart, bytes(bitmap))
        self._finished = True
        return bytes(self._image)


def build_image(
    files: Iterable[Tuple[str, bytes]],
    fssize: int = FSSIZE,
    ninodes: int = NINODES,
    nlog: int = LOGSIZE,
) -> bytes:
    """Return an image holding ``files`` given as (name, contents) pairs."""
    builder = ImageBuilder(fssize, ninodes, nlog)
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: Optional[List[str]] = None) -> int:
    """mkfs fs.img files..."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    target, inputs = args[0], args[1:]
    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.fssize}"
    )
    for path in inputs:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            print(f"{path}: {exc.strerror or exc}", file=sys.stderr)
            return 1
        try:
            builder.add_file(path, data)
        except ValueError as exc:
            print(f"mkfs: {exc}", file=sys.stderr)
            return 1
    used = builder.freeblock
    try:
        image = builder.finish()
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    print(f"balloc: first {used} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        with open(target, "wb") as fh:
            fh.write(image)
    except OSError as exc:
        print(f"{os.fspath(target)}: {exc.strerror or exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())