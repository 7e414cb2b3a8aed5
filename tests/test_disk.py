import pytest

from sixfs.disk import MemDisk
from sixfs.errors import KernelPanic
from sixfs.layout import BSIZE


def test_read_write_block():
    disk = MemDisk(bytes(4 * BSIZE))
    assert disk.nblocks == 4
    disk.write_block(2, b"z" * BSIZE)
    assert disk.read_block(2) == b"z" * BSIZE
    assert disk.read_block(1) == bytes(BSIZE)


def test_out_of_range_panics():
    disk = MemDisk(bytes(2 * BSIZE))
    with pytest.raises(KernelPanic, match="out of range"):
        disk.read_block(2)
    with pytest.raises(KernelPanic, match="out of range"):
        disk.write_block(-1, bytes(BSIZE))


def test_wrong_size_write_rejected():
    disk = MemDisk(bytes(BSIZE))
    with pytest.raises(ValueError):
        disk.write_block(0, b"short")


def test_file_round_trip(tmp_path):
    disk = MemDisk(bytes(3 * BSIZE), dev=1)
    disk.write_block(0, bytes(range(256)) * 2)
    path = tmp_path / "fs.img"
    disk.save(path)
    again = MemDisk.from_file(path)
    assert again.image == disk.image
    assert again.dev == 1


def test_image_is_copied():
    source = bytearray(BSIZE)
    disk = MemDisk(source)
    source[0] = 9
    assert disk.read_block(0) == bytes(BSIZE)