"""Open-file table: reference-counted handles over inodes, pipes and devices."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .filesystem import FileSystem, FileSystemError, Inode, Stat
from .layout import BSIZE, MAXOPBLOCKS

NFILE = 100

# Blocks per write transaction: inode, indirect block, allocation blocks
# and two blocks of slop for unaligned writes.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileKind(Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass
class Device:
    """Read and write handlers for a device major number."""

    read: Callable[[Inode, int], bytes] | None = None
    write: Callable[[Inode, bytes], int] | None = None


@dataclass(eq=False)
class OpenFile:
    """One entry of the open-file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Any = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed-size table of open files."""

    def __init__(self, fs: FileSystem, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def alloc(self) -> OpenFile:
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    f.kind = FileKind.NONE
                    f.readable = f.writable = False
                    f.pipe = f.ip = None
                    f.off = 0
                    return f
        raise FileSystemError("filealloc: no free files")

    def dup(self, f: OpenFile) -> OpenFile:
        with self._lock:
            if f.ref < 1:
                raise FileSystemError("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with self._lock:
            if f.ref < 1:
                raise FileSystemError("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = f.ip = None
        if kind is FileKind.PIPE:
            pipe.close(writable)
        elif kind is FileKind.INODE:
            with self.fs.log.transaction():
                ip.put()

    def stat(self, f: OpenFile) -> Stat:
        if f.kind is not FileKind.INODE:
            raise FileSystemError("stat of a file without an inode")
        with f.ip.locked():
            return f.ip.stat()

    def read(self, f: OpenFile, n: int) -> bytes:
        if not f.readable:
            raise FileSystemError("file not open for reading")
        if f.kind is FileKind.PIPE:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE:
            with f.ip.locked():
                data = f.ip.read(f.off, n)
                f.off += len(data)
            return data
        raise FileSystemError("fileread")

    def write(self, f: OpenFile, data) -> int:
        if not f.writable:
            raise FileSystemError("file not open for writing")
        data = bytes(data)
        if f.kind is FileKind.PIPE:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE:
            pos = 0
            while pos < len(data):
                chunk = data[pos:pos + _MAX_WRITE]
                with self.fs.log.transaction(), f.ip.locked():
                    written = f.ip.write(chunk, f.off)
                    if written > 0:
                        f.off += written
                if written != len(chunk):
                    raise FileSystemError("short filewrite")
                pos += written
            return len(data)
        raise FileSystemError("filewrite")

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> OpenFile:
        """Open a file on ``ip``, taking over the caller's reference."""
        f = self.alloc()
        f.kind = FileKind.INODE
        f.ip = ip
        f.off = 0
        f.readable = bool(readable)
        f.writable = bool(writable)
        return f