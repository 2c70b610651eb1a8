"""Build a file-system image holding a flat set of files in the root directory."""
from __future__ import annotations

import struct
import sys
from pathlib import Path
from typing import Callable, Iterable

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    Superblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out boot, superblock, log, inodes, bitmap and data blocks."""

    def __init__(
        self,
        fssize: int = FSSIZE,
        ninodes: int = NINODES,
        nlog: int = LOGSIZE,
        report: Callable[[str], object] | None = None,
    ) -> None:
        self.fssize = fssize
        self.ninodes = ninodes
        self.nlog = nlog
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fssize - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self._report = report or (lambda message: None)
        self.superblock = Superblock(
            size=fssize,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self._report(
            f"nmeta {self.nmeta} (boot, super, log blocks {nlog} inode blocks "
            f"{self.ninodeblocks}, bitmap blocks {self.nbitmap}) blocks "
            f"{self.nblocks} total {fssize}"
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._image = bytearray(fssize * BSIZE)
        self._finished = False
        self._wsect(1, self.superblock.pack())

        self.root = self._ialloc(FileType.DIR)
        if self.root != ROOTINO:
            raise ValueError("root inode was not allocated first")
        self._iappend(self.root, DirEntry(self.root, ".").pack())
        self._iappend(self.root, DirEntry(self.root, "..").pack())

    def _wsect(self, sec: int, data) -> None:
        if not 0 <= sec < self.fssize:
            raise ValueError(f"sector {sec} outside the image")
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = bytes(data).ljust(BSIZE, b"\0")

    def _rsect(self, sec: int) -> bytearray:
        if not 0 <= sec < self.fssize:
            raise ValueError(f"sector {sec} outside the image")
        return bytearray(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _inode_slot(self, inum: int) -> tuple[int, int]:
        return self.superblock.inode_block(inum), (inum % IPB) * DINODE_SIZE

    def _rinode(self, inum: int) -> DiskInode:
        bn, off = self._inode_slot(inum)
        return DiskInode.unpack(self._rsect(bn)[off:off + DINODE_SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        bn, off = self._inode_slot(inum)
        buf = self._rsect(bn)
        buf[off:off + DINODE_SIZE] = din.pack()
        self._wsect(bn, buf)

    def _ialloc(self, type_: FileType) -> int:
        if self.freeinode >= self.ninodes:
            raise ValueError("out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=type_, nlink=1, size=0))
        return inum

    def _next_block(self) -> int:
        if self.freeblock >= self.fssize:
            raise ValueError("out of data blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def _iappend(self, inum: int, data: bytes) -> None:
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._next_block()
                target = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._next_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._next_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                target = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            buf = self._rsect(target)
            start = off - fbn * BSIZE
            buf[start:start + n1] = data[pos:pos + n1]
            self._wsect(target, buf)
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a regular file to the root directory; a leading '_' is dropped."""
        if self._finished:
            raise ValueError("image already finished")
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name}")
        if name.startswith("_"):
            name = name[1:]
        inum = self._ialloc(FileType.FILE)
        self._iappend(self.root, DirEntry(inum, name).pack())
        self._iappend(inum, bytes(data))
        return inum

    def finish(self) -> bytes:
        """Round up the root directory, write the bitmap and return the image."""
        if not self._finished:
            din = self._rinode(self.root)
            din.size = (din.size // BSIZE + 1) * BSIZE
            self._winode(self.root, din)

            used = self.freeblock
            self._report(f"balloc: first {used} blocks have been allocated")
            if used >= BPB:
                raise ValueError("too many blocks for one bitmap block")
            bitmap = bytearray(BSIZE)
            for blockno in range(used):
                bitmap[blockno // 8] |= 1 << (blockno % 8)
            self._report(
                f"balloc: write bitmap block at sector {self.superblock.bmapstart}"
            )
            self._wsect(self.superblock.bmapstart, bitmap)
            self._finished = True
        return bytes(self._image)


def build_image(
    files: Iterable[tuple[str, bytes]],
    fssize: int = FSSIZE,
    ninodes: int = NINODES,
    nlog: int = LOGSIZE,
) -> bytes:
    """Return an image holding ``files``, given as (name, data) pairs."""
    builder = ImageBuilder(fssize, ninodes, nlog)
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *names = args
    try:
        builder = ImageBuilder(report=print)
        for name in names:
            if "/" in name:
                print(f"mkfs: {name}: file name may not contain '/'", file=sys.stderr)
                return 1
            builder.add_file(name, Path(name).read_bytes())
        Path(image_path).write_bytes(builder.finish())
    except OSError as exc:
        print(f"{exc.filename}: {exc.strerror}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())