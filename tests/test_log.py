import struct
import threading

import pytest

from sixfs.bufcache import BufferCache
from sixfs.disk import MemDisk
from sixfs.errors import KernelPanic
from sixfs.layout import BSIZE, Superblock
from sixfs.log import Log

LOGSTART = 2


def superblock(nlog=30):
    return Superblock(
        size=100,
        nblocks=50,
        ninodes=8,
        nlog=nlog,
        logstart=LOGSTART,
        inodestart=LOGSTART + nlog,
        bmapstart=LOGSTART + nlog + 1,
    )


def make(nlog=30, logsize=30, image=None):
    disk = MemDisk(image if image is not None else bytes(BSIZE * 100), dev=1)
    cache = BufferCache(disk)
    log = Log(cache, 1, superblock(nlog), logsize=logsize)
    return disk, cache, log


def put(cache, log, blockno, payload):
    b = cache.read(1, blockno)
    b.data[:] = payload
    log.log_write(b)
    cache.release(b)


def header_count(disk):
    return struct.unpack_from("<i", disk.read_block(LOGSTART))[0]


def test_commit_writes_home_block_only_at_end():
    disk, cache, log = make()
    payload = b"A" * BSIZE
    with log.transaction():
        put(cache, log, 50, payload)
        assert disk.read_block(50) == bytes(BSIZE)
    assert disk.read_block(50) == payload
    assert disk.read_block(LOGSTART + 1) == payload
    assert header_count(disk) == 0
    assert log.blocks == []


def test_log_write_outside_transaction_panics():
    _, cache, log = make()
    b = cache.read(1, 50)
    with pytest.raises(KernelPanic):
        log.log_write(b)


def test_absorption_records_block_once():
    _, cache, log = make()
    log.begin_op()
    put(cache, log, 50, b"a" * BSIZE)
    put(cache, log, 50, b"b" * BSIZE)
    put(cache, log, 51, b"c" * BSIZE)
    assert log.blocks == [50, 51]
    log.end_op()
    assert log.blocks == []


def test_nested_operations_commit_when_last_ends():
    disk, cache, log = make()
    log.begin_op()
    log.begin_op()
    put(cache, log, 60, b"z" * BSIZE)
    log.end_op()
    assert disk.read_block(60) == bytes(BSIZE)
    assert log.outstanding == 1
    log.end_op()
    assert disk.read_block(60) == b"z" * BSIZE


def test_transaction_too_big_for_log_region():
    _, cache, log = make(nlog=5)
    log.begin_op()
    for blockno in range(40, 44):
        put(cache, log, blockno, b"q" * BSIZE)
    b = cache.read(1, 44)
    with pytest.raises(KernelPanic):
        log.log_write(b)


def test_header_too_big_panics():
    with pytest.raises(KernelPanic):
        make(logsize=200)


def test_recovery_installs_committed_transaction():
    image = bytearray(BSIZE * 100)
    struct.pack_into("<ii", image, LOGSTART * BSIZE, 1, 60)
    image[(LOGSTART + 1) * BSIZE : (LOGSTART + 2) * BSIZE] = b"x" * BSIZE
    disk, _, log = make(image=bytes(image))
    assert disk.read_block(60) == b"x" * BSIZE
    assert header_count(disk) == 0
    assert log.blocks == []


def test_committed_buffer_is_no_longer_pinned():
    _, cache, log = make()
    with log.transaction():
        put(cache, log, 70, b"p" * BSIZE)
        b = cache.read(1, 70)
        assert b.dirty
        cache.release(b)
    b = cache.read(1, 70)
    assert not b.dirty
    assert bytes(b.data) == b"p" * BSIZE
    cache.release(b)


def test_begin_op_waits_for_log_space():
    _, _, log = make()
    for _ in range(3):
        log.begin_op()
    started = threading.Event()

    def worker():
        log.begin_op()
        started.set()

    t = threading.Thread(target=worker)
    t.start()
    assert not started.wait(0.1)
    log.end_op()
    assert started.wait(2)
    t.join(2)
    assert log.outstanding == 3