import struct

import pytest

from sixfs.layout import (
    BSIZE,
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
from sixfs.mkfs import ImageBuilder, build_image, main


def block(image, n):
    return image[n * BSIZE : (n + 1) * BSIZE]


def read_inode(image, sb, inum):
    off = iblock(inum, sb) * BSIZE + (inum % IPB) * DiskInode.SIZE
    return DiskInode.unpack(image[off : off + DiskInode.SIZE])


def inode_blocks(image, din):
    addrs = [a for a in din.addrs[:NDIRECT] if a]
    if din.addrs[NDIRECT]:
        indirect = struct.unpack(f"<{NINDIRECT}I", block(image, din.addrs[NDIRECT]))
        addrs += [a for a in indirect if a]
    return addrs


def file_bytes(image, din):
    data = b"".join(block(image, a) for a in inode_blocks(image, din))
    return data[: din.size]


def root_entries(image, sb):
    raw = file_bytes(image, read_inode(image, sb, ROOTINO))
    entries = [Dirent.unpack(raw[i : i + Dirent.SIZE]) for i in range(0, len(raw), Dirent.SIZE)]
    return [e for e in entries if e.inum]


def test_empty_image_size_and_superblock():
    image = build_image([], fssize=1000, ninodes=200, nlog=30)
    assert len(image) == 1000 * BSIZE
    sb = Superblock.unpack(block(image, 1))
    assert sb.size == 1000
    assert sb.ninodes == 200
    assert sb.nlog == 30
    assert sb.logstart == 2
    assert sb.inodestart == 2 + 30
    assert sb.bmapstart > sb.inodestart


def test_layout_regions_add_up():
    builder = ImageBuilder()
    assert builder.nmeta + builder.nblocks == builder.fssize
    assert builder.sb.bmapstart + builder.nbitmap == builder.nmeta


def test_root_directory_has_dot_entries():
    image = build_image([])
    sb = Superblock.unpack(block(image, 1))
    root = read_inode(image, sb, ROOTINO)
    assert root.type == T_DIR
    assert root.nlink == 1
    assert root.size % BSIZE == 0
    names = [(e.name, e.inum) for e in root_entries(image, sb)]
    assert names == [(".", ROOTINO), ("..", ROOTINO)]


def test_file_contents_round_trip_and_underscore_dropped():
    content = bytes(range(256)) * 3
    builder = ImageBuilder()
    inum = builder.add_file("_cat", content)
    image = builder.finish()
    sb = builder.sb
    assert inum == ROOTINO + 1
    din = read_inode(image, sb, inum)
    assert din.type == T_FILE
    assert file_bytes(image, din) == content
    assert ("cat", inum) in [(e.name, e.inum) for e in root_entries(image, sb)]


def test_large_file_uses_indirect_block():
    content = bytes((i * 7) % 251 for i in range(BSIZE * (NDIRECT + 5) + 17))
    builder = ImageBuilder()
    inum = builder.add_file("big", content)
    image = builder.finish()
    din = read_inode(image, builder.sb, inum)
    assert din.addrs[NDIRECT] != 0
    assert file_bytes(image, din) == content


def test_data_blocks_lie_in_data_region():
    builder = ImageBuilder()
    inum = builder.add_file("a", b"x" * (BSIZE * 3))
    image = builder.finish()
    for a in inode_blocks(image, read_inode(image, builder.sb, inum)):
        assert builder.nmeta <= a < builder.freeblock


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("a", b"hello")
    image = builder.finish()
    bitmap = block(image, builder.sb.bmapstart)
    used = builder.freeblock
    bits = [(bitmap[i // 8] >> (i % 8)) & 1 for i in range(used + 1)]
    assert bits == [1] * used + [0]


def test_file_too_large_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("huge", b"x" * (MAXFILE * BSIZE + 1))


def test_slash_in_name_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("dir/file", b"")


def test_finish_twice_rejected():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.finish()


def test_main_writes_image(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_echo").write_bytes(b"echo-binary")
    assert main(["fs.img", "_echo"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    sb = Superblock.unpack(block(image, 1))
    entries = {e.name: e.inum for e in root_entries(image, sb)}
    assert file_bytes(image, read_inode(image, sb, entries["echo"])) == b"echo-binary"


def test_main_without_arguments_fails(capsys):
    assert main([]) == 1
    assert "Usage: mkfs" in capsys.readouterr().err


def test_main_missing_input_fails(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "missing"]) == 1
    assert not (tmp_path / "fs.img").exists()