"""On-disk layout: superblock, inodes and directory entries."""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

ROOTINO = 1
ROOTDEV = 1
BSIZE = 512

NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT

DIRSIZ = 14

# Bitmap bits per block.
BPB = BSIZE * 8

MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 1000

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size

# Inodes per block.
IPB = BSIZE // DINODE_SIZE


class FileType(IntEnum):
    """Type of an inode as stored on disk."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEVICE = 3


@dataclass
class Superblock:
    """Describes the disk layout."""

    size: int
    nblocks: int
    ninodes: int
    nlog: int
    logstart: int
    inodestart: int
    bmapstart: int

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data) -> Superblock:
        if len(data) < SUPERBLOCK_SIZE:
            raise ValueError("superblock data too short")
        return cls(*_SUPERBLOCK.unpack_from(bytes(data)))

    def inode_block(self, inum: int) -> int:
        """Block holding inode ``inum``."""
        return inum // IPB + self.inodestart

    def bitmap_block(self, blockno: int) -> int:
        """Bitmap block holding the bit for ``blockno``."""
        return blockno // BPB + self.bmapstart


def _empty_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass
class DiskInode:
    """An inode as laid out on disk."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_empty_addrs)

    def __post_init__(self) -> None:
        self.addrs = list(self.addrs)
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} addresses")

    def pack(self) -> bytes:
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data) -> DiskInode:
        if len(data) < DINODE_SIZE:
            raise ValueError("inode data too short")
        type_, major, minor, nlink, size, *addrs = _DINODE.unpack_from(bytes(data))
        return cls(type_, major, minor, nlink, size, addrs)


@dataclass
class DirEntry:
    """One entry of a directory file."""

    inum: int = 0
    name: bytes = b""

    def __post_init__(self) -> None:
        if isinstance(self.name, str):
            self.name = self.name.encode("utf-8", "surrogateescape")
        self.name = bytes(self.name)[:DIRSIZ]

    def pack(self) -> bytes:
        return _DIRENT.pack(self.inum, self.name)

    @classmethod
    def unpack(cls, data) -> DirEntry:
        if len(data) < DIRENT_SIZE:
            raise ValueError("directory entry data too short")
        inum, raw = _DIRENT.unpack_from(bytes(data))
        return cls(inum, raw.split(b"\0", 1)[0])

    def decoded_name(self) -> str:
        return self.name.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")