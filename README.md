# sixfs

sixfs is a small Unix-style file system written in plain Python. It covers
every layer from raw blocks up to path names. The package has these modules:

- `sixfs.layout` defines the on-disk format: `Superblock`, `DiskInode` and
  `Dirent`, each with `pack()` and `unpack()`, plus the `iblock` and `bblock`
  helpers. Blocks are 512 bytes. An inode has 12 direct block addresses and
  one indirect block. Directory names are at most 14 characters. Every field
  is stored little-endian.
- `sixfs.disk` provides `MemDisk`, a block device held in memory. It can be
  built from bytes, loaded with `MemDisk.from_file` and written out with
  `save`.
- `sixfs.bufcache` provides `BufferCache`, a fixed pool of locked buffers
  kept in most-recently-used order. It has `read`, `write` and `release`.
- `sixfs.log` provides `Log`, a redo log. Operations run between
  `begin_op`/`end_op`, or inside the `transaction()` context manager. The
  last operation to finish commits the transaction. `recover` replays a
  committed transaction that was left on disk.
- `sixfs.fs` provides `FileSystem`, which mounts a `MemDisk`. It allocates
  and caches inodes (`ialloc`, `iget`, `idup`, `ilock`, `iunlock`, `iput`,
  `iunlockput`, `iupdate`, `stati`) and reads and writes their contents
  (`readi`, `writei`). It also handles directories (`dirlookup`, `dirlink`)
  and path lookup (`namei`, `nameiparent`). Two helpers work on names:
  `skipelem` and `namecmp`.
- `sixfs.pipe` provides `Pipe`, a bounded in-memory byte channel. Reads and
  writes block when the pipe is empty or full.
- `sixfs.file` provides `FileTable` and `File`. These are reference-counted
  open files backed by an inode or by a pipe.
- `sixfs.mkfs` provides `ImageBuilder` and `build_image`, which lay out a
  fresh image whose root directory holds the given files.
- `sixfs.console` provides `Console`. It edits input lines (backspace,
  Control-U, Control-D as end of input) and echoes characters to an output
  stream.
- `sixfs.keyboard` provides `KeyboardDecoder`, which turns PC scan codes
  into character codes and keeps track of Shift, Ctrl and the lock keys.
- `sixfs.formatting` has three functions: `format_int`, `format_user` and
  `format_kernel`. `format_user` understands `%d %x %p %s %c %%`.
  `format_kernel` understands the same set without `%c` and prints hex in
  lower case.
- `sixfs.matcher` provides `match`, a tiny regular-expression matcher that
  supports `^ . * $`, and `grep_lines`.
- `sixfs.tools` has `cat`, `echo`, `fmtname` and `ls`.

Some conditions would stop the whole system, such as running out of blocks,
freeing a block twice or writing to the log outside a transaction. These
raise `sixfs.errors.KernelPanic`.

## Installing

    pip install .

The package has no runtime dependencies. To install the test tools as well:

    pip install .[test]

## Commands

This command builds a 1000-block file-system image whose root directory holds
some files:

    sixfs-mkfs fs.img README.md notes.txt

Each argument is stored under its own name. A leading `_` is removed and the
name is cut to 14 characters. Names must not contain `/`, so run the command
from the directory that holds the files.

This command searches files, or standard input when no file is given, and
prints the lines that match:

    sixfs-grep '^hello.*world$' notes.txt

Only lines that end in a newline are checked.

`sixfs-tool` runs one of the bundled tools:

    sixfs-tool echo hello world
    sixfs-tool cat notes.txt
    sixfs-tool ls fs.img /

`cat` reads host files. With no file it copies standard input and exits with
status 1. `ls` opens an image and lists a path inside it. It prints one line
per entry with the padded name, type, inode number and size. The default
path is the root directory.

## Using the library

    from sixfs.mkfs import build_image
    from sixfs.disk import MemDisk
    from sixfs.fs import FileSystem

    image = build_image([("hello.txt", b"hi there\n")])
    fs = FileSystem(MemDisk(image, 1))

    with fs.transaction():
        ip = fs.namei("/hello.txt")
    fs.ilock(ip)
    print(fs.readi(ip, 0, 100))
    fs.iunlock(ip)

Changes to disk, such as `writei`, `dirlink` and `ialloc`, must run inside
`fs.transaction()`. `FileTable.write` opens its own transactions.

## What the package does not do

There is no layer of system calls or commands for opening, creating,
linking, unlinking or making directories inside an image. Those steps have
to be put together from the `FileSystem` methods. No command adds files to
an image that already exists, and no command writes a changed image back to
a file. For the latter, call `MemDisk.save` from your own code. Images are
held in memory only, and there are no processes, no scheduling and no
drivers for real disks or consoles.

## Running the tests

    pip install .[test]
    pytest