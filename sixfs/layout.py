"""On-disk layout: block geometry, superblock, inodes and directory entries.

All multi-byte fields are stored little-endian.

Disk layout::

    [ boot block | super block | log | inode blocks | free bit map | data blocks ]
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import ClassVar, List

ROOTINO = 1
BSIZE = 512

NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT

DIRSIZ = 14

T_DIR = 1
T_FILE = 2
T_DEV = 3


@dataclass
class Superblock:
    """Describes where each region of the disk starts and how large it is."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    FORMAT: ClassVar[struct.Struct] = struct.Struct("<7I")
    SIZE: ClassVar[int] = FORMAT.size

    def pack(self) -> bytes:
        return self.FORMAT.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        return cls(*cls.FORMAT.unpack_from(data))


@dataclass
class DiskInode:
    """An inode as stored on disk."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: List[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    FORMAT: ClassVar[struct.Struct] = struct.Struct(f"<4hI{NDIRECT + 1}I")
    SIZE: ClassVar[int] = FORMAT.size

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} block addresses")
        return self.FORMAT.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DiskInode":
        type_, major, minor, nlink, size, *addrs = cls.FORMAT.unpack_from(data)
        return cls(type_, major, minor, nlink, size, list(addrs))


@dataclass
class Dirent:
    """A directory entry; inum 0 marks a free slot.

    Names are stored as at most DIRSIZ latin-1 bytes, NUL padded.
    """

    inum: int = 0
    name: str = ""

    FORMAT: ClassVar[struct.Struct] = struct.Struct(f"<H{DIRSIZ}s")
    SIZE: ClassVar[int] = FORMAT.size

    def pack(self) -> bytes:
        raw = self.name.encode("latin-1")[:DIRSIZ]
        return self.FORMAT.pack(self.inum, raw)

    @classmethod
    def unpack(cls, data: bytes) -> "Dirent":
        inum, raw = cls.FORMAT.unpack_from(data)
        return cls(inum, raw.split(b"\0", 1)[0].decode("latin-1"))


# Inodes per block.
IPB = BSIZE // DiskInode.SIZE

# Bitmap bits per block.
BPB = BSIZE * 8


def iblock(inum: int, sb: Superblock) -> int:
    """Block holding inode number ``inum``."""
    return inum // IPB + sb.inodestart


def bblock(b: int, sb: Superblock) -> int:
    """Free-map block holding the bit for block ``b``."""
    return b // BPB + sb.bmapstart