"""A disk kept entirely in memory, addressed in BSIZE blocks."""

from __future__ import annotations

from pathlib import Path
from typing import Union

from .errors import KernelPanic
from .layout import BSIZE

PathLike = Union[str, Path]


class MemDisk:
    """Block device backed by a bytearray image."""

    def __init__(self, image: bytes, dev: int = 1) -> None:
        self._image = bytearray(image)
        self.dev = dev

    @classmethod
    def from_file(cls, path: PathLike, dev: int = 1) -> "MemDisk":
        return cls(Path(path).read_bytes(), dev)

    @property
    def nblocks(self) -> int:
        return len(self._image) // BSIZE

    @property
    def image(self) -> bytes:
        return bytes(self._image)

    def _check(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise KernelPanic("iderw: block out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        start = self._check(blockno)
        return bytes(self._image[start : start + BSIZE])

    def write_block(self, blockno: int, data: bytes) -> None:
        start = self._check(blockno)
        if len(data) != BSIZE:
            raise ValueError(f"a block is {BSIZE} bytes, got {len(data)}")
        self._image[start : start + BSIZE] = data

    def save(self, path: PathLike) -> None:
        Path(path).write_bytes(self._image)