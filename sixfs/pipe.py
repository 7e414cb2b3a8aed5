"""In-memory pipes with a bounded buffer and blocking reads and writes."""

from __future__ import annotations

import threading
from typing import Union

PIPESIZE = 512


class Pipe:
    """A one-way byte channel between a read end and a write end.

    Writers block while the buffer is full and readers block while it is
    empty. Reading from an empty pipe whose write end is closed returns
    ``b""``. Writing to a full pipe whose read end is closed raises
    BrokenPipeError.
    """

    def __init__(self, size: int = PIPESIZE) -> None:
        if size < 1:
            raise ValueError("pipe size must be positive")
        self.size = size
        self._data = bytearray(size)
        self.nread = 0  # bytes read so far
        self.nwrite = 0  # bytes written so far
        self.readopen = True
        self.writeopen = True
        self._cond = threading.Condition()

    def __len__(self) -> int:
        """Number of bytes waiting to be read."""
        with self._cond:
            return self.nwrite - self.nread

    def write(self, data: Union[bytes, bytearray, memoryview]) -> int:
        """Write all of ``data``, blocking while the buffer is full."""
        payload = bytes(data)
        with self._cond:
            for byte in payload:
                while self.nwrite == self.nread + self.size:
                    if not self.readopen:
                        raise BrokenPipeError("pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % self.size] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(payload)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, blocking until data arrives or writers close."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            out = bytearray()
            while len(out) < n and self.nread != self.nwrite:
                out.append(self._data[self.nread % self.size])
                self.nread += 1
            self._cond.notify_all()
        return bytes(out)

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        """True once both ends are closed."""
        return not self.readopen and not self.writeopen