"""A small Unix-style file system: block cache, redo log, inodes, directories, pipes and tools."""

__version__ = "0.1.0"