# xv6fs

A small, self-contained model of the xv6 teaching file system in pure
Python, with no dependencies. It builds disk images in the xv6 on-disk
format and works with them through the same layers the kernel uses:

- `xv6fs.layout`: the on-disk structures `Superblock`, `DiskInode`,
  `DirEntry` and `FileType`, each with `pack`/`unpack` to and from
  little-endian bytes, and the layout constants (`BSIZE`, `NDIRECT`,
  `DIRSIZ`, `FSSIZE`, ...).
- `xv6fs.disk`: `MemoryDisk`, a block device held in a bytearray; it can be
  loaded with `MemoryDisk.from_file` and written back with `save`.
  Out-of-range blocks raise `DiskError`.
- `xv6fs.bufcache`: `BufferCache`, a fixed pool of block buffers kept in
  most-recently-used order (`bread`, `bwrite`, `brelse`, the `block`
  context manager, `mru_order`). Misuse raises `CacheError`.
- `xv6fs.journal`: `Log`, a redo log that groups block writes into
  transactions (`begin_op`/`end_op` or the `transaction()` context manager,
  `log_write`) and replays a committed transaction on `recover()`.
- `xv6fs.mkfs`: `ImageBuilder` and `build_image` to create a fresh file
  system holding a root directory and a flat set of files.
- `xv6fs.filesystem`: `FileSystem` and `Inode`: block allocation, the inode
  cache, reading and writing inode contents, directories (`dirlookup`,
  `dirlink`) and path lookup (`namei`, `nameiparent`). Errors raise
  `FileSystemError`.
- `xv6fs.files`: `FileTable` and `OpenFile`, the table of open files with
  reference counts and file offsets; `Device` holds read/write handlers for
  device inodes.
- `xv6fs.kbd`: `KeyboardDecoder`, which turns PC scan codes (set 1) into
  characters, tracking shift, control and caps lock.
- `xv6fs.printfmt`: the minimal printf formatting, `format_printf`
  (`%d %x %p %s %c %%`) and `format_int`.
- `xv6fs.grep`: the tiny regular-expression matcher (`match`, `match_here`,
  `match_star`) supporting `^ . * $`, and `grep_stream` for line filtering.
- `xv6fs.commands`: `Shell`, with `cat`, `echo`, `ls`, `mkdir`, `rm`, `ln`
  and `grep` working on a `FileSystem`.

## Installing

```
pip install .
```

## Building an image

```
xv6-mkfs fs.img README notes.txt _cat
```

The first argument is the image to create; the remaining files are copied
into the root directory. A leading underscore is dropped from each name, so
`_cat` is stored as `cat`. File names may not contain `/`. The image has
1000 blocks of 512 bytes, 200 inodes and a 30-block log.

From Python:

```python
from xv6fs.mkfs import build_image

image = build_image([("hello.txt", b"hello, world\n")])
```

`ImageBuilder` lets you add files one at a time with `add_file(name, data)`
and then call `finish()` to get the image bytes.

## Working with an image

```
xv6-sh fs.img ls /
xv6-sh fs.img cat hello.txt
xv6-sh fs.img mkdir docs
xv6-sh fs.img ln hello.txt docs/hi.txt
xv6-sh fs.img grep '^hel' hello.txt
xv6-sh fs.img rm hello.txt
```

The image is loaded into memory; `mkdir`, `rm` and `ln` go through the log
and the image file is then written back. `ls` prints one line per entry: the
name padded to 14 characters, the file type, the inode number and the size
in bytes. Relative paths are looked up from the root directory.

The same operations are methods of `xv6fs.commands.Shell`. A shell writes
bytes to the `stdout` and `stderr` streams it was given (the process's
standard streams by default) and reads standard input from `stdin`:

```python
import io

from xv6fs.bufcache import BufferCache
from xv6fs.commands import Shell
from xv6fs.disk import MemoryDisk
from xv6fs.filesystem import FileSystem
from xv6fs.journal import Log
from xv6fs.mkfs import build_image

disk = MemoryDisk(build_image([("hello.txt", b"hello, world\n")]))
cache = BufferCache(disk)
fs = FileSystem(cache, Log(cache))
out = io.BytesIO()
Shell(fs, stdout=out, stderr=out).cat(["hello.txt"])
```

## What it does not do

There is no running kernel or process model: no scheduler, no interactive
console or line editing, and no pipe implementation. An `OpenFile` of kind
`FileKind.PIPE` only passes reads, writes and closes on to whatever object
is stored in its `pipe` field. Device inodes work only through `Device`
handlers registered in `FileSystem.devices`.

## Running the tests

```
pip install .[test]
pytest
```