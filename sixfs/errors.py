"""Exceptions raised by the file system core."""


class KernelPanic(RuntimeError):
    """An internal invariant was violated and the operation cannot go on."""