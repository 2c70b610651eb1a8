"""Inodes, directories and path names on top of the log and buffer cache."""
from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from .bufcache import BufferCache
from .journal import Log
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTDEV,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    Superblock,
)

NINODE = 50

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class FileSystemError(Exception):
    """A file-system operation that cannot be carried out."""


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


class Inode:
    """In-memory copy of an inode, shared through the inode cache."""

    def __init__(self, fs: FileSystem) -> None:
        self._fs = fs
        self.dev = 0
        self.inum = 0
        self.ref = 0
        self.valid = False
        self.type = 0
        self.major = 0
        self.minor = 0
        self.nlink = 0
        self.size = 0
        self.addrs = [0] * (NDIRECT + 1)
        self._lock = threading.Lock()
        self._owner: Any = None

    def __repr__(self) -> str:
        return f"Inode(dev={self.dev}, inum={self.inum}, ref={self.ref}, type={self.type})"

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()

    def _holding(self) -> bool:
        return self._lock.locked() and self._owner == threading.get_ident()

    def lock(self) -> None:
        """Lock the inode, reading it from disk if needed."""
        if self.ref < 1:
            raise FileSystemError("ilock")
        self._acquire()
        if not self.valid:
            try:
                din = self._fs._read_dinode(self.dev, self.inum)
            except Exception:
                self._release()
                raise
            self.type = din.type
            self.major = din.major
            self.minor = din.minor
            self.nlink = din.nlink
            self.size = din.size
            self.addrs = list(din.addrs)
            self.valid = True
            if self.type == 0:
                self._release()
                raise FileSystemError("ilock: no type")

    def unlock(self) -> None:
        if not self._holding() or self.ref < 1:
            raise FileSystemError("iunlock")
        self._release()

    def put(self) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        held = self._holding()
        if not held:
            self._acquire()
        try:
            if self.valid and self.nlink == 0:
                with self._fs._icache_lock:
                    refs = self.ref
                if refs == 1:
                    self._truncate()
                    self.type = 0
                    self.update()
                    self.valid = False
        finally:
            if not held:
                self._release()
        with self._fs._icache_lock:
            self.ref -= 1

    def unlock_put(self) -> None:
        self.unlock()
        self.put()

    def update(self) -> None:
        """Copy the in-memory inode to disk through the log."""
        self._fs._write_dinode(
            self.dev,
            self.inum,
            DiskInode(self.type, self.major, self.minor, self.nlink, self.size, self.addrs),
        )

    def _bmap(self, bn: int) -> int:
        fs = self._fs
        if bn < NDIRECT:
            if self.addrs[bn] == 0:
                self.addrs[bn] = fs._balloc(self.dev)
            return self.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if self.addrs[NDIRECT] == 0:
                self.addrs[NDIRECT] = fs._balloc(self.dev)
            with fs.cache.block(self.dev, self.addrs[NDIRECT]) as buf:
                (addr,) = _ADDR.unpack_from(buf.data, bn * _ADDR.size)
                if addr == 0:
                    addr = fs._balloc(self.dev)
                    _ADDR.pack_into(buf.data, bn * _ADDR.size, addr)
                    fs.log.log_write(buf)
            return addr
        raise FileSystemError("bmap: out of range")

    def _truncate(self) -> None:
        fs = self._fs
        for i, addr in enumerate(self.addrs[:NDIRECT]):
            if addr:
                fs._bfree(self.dev, addr)
                self.addrs[i] = 0
        if self.addrs[NDIRECT]:
            with fs.cache.block(self.dev, self.addrs[NDIRECT]) as buf:
                entries = _INDIRECT.unpack_from(buf.data)
            for addr in entries:
                if addr:
                    fs._bfree(self.dev, addr)
            fs._bfree(self.dev, self.addrs[NDIRECT])
            self.addrs[NDIRECT] = 0
        self.size = 0
        self.update()

    def _device(self, op: str):
        device = self._fs.devices.get(self.major)
        handler = getattr(device, op, None) if device is not None else None
        if handler is None:
            raise FileSystemError(f"no device {op} for major {self.major}")
        return handler

    def read(self, offset: int, n: int) -> bytes:
        """Read up to ``n`` bytes from ``offset``; the caller holds the lock."""
        if self.type == FileType.DEVICE:
            return self._device("read")(self, n)
        if offset < 0 or n < 0 or offset > self.size:
            raise FileSystemError("read outside the file")
        end = offset + min(n, self.size - offset)
        out = bytearray()
        off = offset
        while off < end:
            with self._fs.cache.block(self.dev, self._bmap(off // BSIZE)) as buf:
                start = off % BSIZE
                m = min(end - off, BSIZE - start)
                out += buf.data[start:start + m]
            off += m
        return bytes(out)

    def write(self, data, offset: int) -> int:
        """Write ``data`` at ``offset``; the caller holds the lock and a transaction."""
        data = bytes(data)
        if self.type == FileType.DEVICE:
            return self._device("write")(self, data)
        n = len(data)
        if offset < 0 or offset > self.size:
            raise FileSystemError("write outside the file")
        if offset + n > MAXFILE * BSIZE:
            raise FileSystemError("write beyond the largest file size")
        off = offset
        pos = 0
        while pos < n:
            with self._fs.cache.block(self.dev, self._bmap(off // BSIZE)) as buf:
                start = off % BSIZE
                m = min(n - pos, BSIZE - start)
                buf.data[start:start + m] = data[pos:pos + m]
                self._fs.log.log_write(buf)
            pos += m
            off += m
        if n > 0 and off > self.size:
            self.size = off
            self.update()
        return n

    def stat(self) -> Stat:
        return Stat(self.dev, self.inum, self.type, self.nlink, self.size)

    @contextmanager
    def locked(self) -> Iterator[Inode]:
        self.lock()
        try:
            yield self
        finally:
            self.unlock()


class FileSystem:
    """Block allocator, inode cache, directories and path lookup for one device."""

    def __init__(
        self,
        cache: BufferCache,
        log: Log,
        dev: int = ROOTDEV,
        ninode: int = NINODE,
        devices: dict | None = None,
    ) -> None:
        self.cache = cache
        self.log = log
        self.dev = dev
        self.devices: dict = {} if devices is None else devices
        self._icache_lock = threading.Lock()
        self._inodes = [Inode(self) for _ in range(ninode)]
        with cache.block(dev, 1) as buf:
            self.sb = Superblock.unpack(buf.data)

    # Blocks.

    def _bzero(self, dev: int, blockno: int) -> None:
        with self.cache.block(dev, blockno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.log_write(buf)

    def _claim_bit(self, buf, count: int) -> int | None:
        for bi in range(count):
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                buf.data[bi // 8] |= mask
                self.log.log_write(buf)
                return bi
        return None

    def _balloc(self, dev: int) -> int:
        for base in range(0, self.sb.size, BPB):
            with self.cache.block(dev, self.sb.bitmap_block(base)) as buf:
                bi = self._claim_bit(buf, min(BPB, self.sb.size - base))
            if bi is not None:
                self._bzero(dev, base + bi)
                return base + bi
        raise FileSystemError("balloc: out of blocks")

    def _bfree(self, dev: int, blockno: int) -> None:
        with self.cache.block(dev, self.sb.bitmap_block(blockno)) as buf:
            bi = blockno % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise FileSystemError("freeing free block")
            buf.data[bi // 8] &= ~mask & 0xFF
            self.log.log_write(buf)

    # Inodes.

    def _dinode_offset(self, inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def _read_dinode(self, dev: int, inum: int) -> DiskInode:
        off = self._dinode_offset(inum)
        with self.cache.block(dev, self.sb.inode_block(inum)) as buf:
            return DiskInode.unpack(buf.data[off:off + DINODE_SIZE])

    def _write_dinode(self, dev: int, inum: int, din: DiskInode) -> None:
        off = self._dinode_offset(inum)
        with self.cache.block(dev, self.sb.inode_block(inum)) as buf:
            buf.data[off:off + DINODE_SIZE] = din.pack()
            self.log.log_write(buf)

    def ialloc(self, type_) -> Inode:
        """Allocate an inode of the given type; returned referenced but unlocked."""
        for inum in range(1, self.sb.ninodes):
            off = self._dinode_offset(inum)
            with self.cache.block(self.dev, self.sb.inode_block(inum)) as buf:
                if DiskInode.unpack(buf.data[off:off + DINODE_SIZE]).type != 0:
                    continue
                buf.data[off:off + DINODE_SIZE] = DiskInode(type=int(type_)).pack()
                self.log.log_write(buf)
            return self.iget(inum)
        raise FileSystemError("ialloc: no inodes")

    def iget(self, inum: int) -> Inode:
        """Find or make the cache entry for ``inum`` without locking or reading it."""
        with self._icache_lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FileSystemError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        with self._icache_lock:
            ip.ref += 1
        return ip

    # Directories.

    def _entries(self, dp: Inode) -> Iterator[tuple[int, DirEntry]]:
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = dp.read(off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FileSystemError("directory read")
            yield off, DirEntry.unpack(raw)

    def dirlookup(self, dp: Inode, name) -> tuple[Inode, int] | None:
        """Return the named entry's inode and its byte offset, or None."""
        if dp.type != FileType.DIR:
            raise FileSystemError("dirlookup not DIR")
        for off, de in self._entries(dp):
            if de.inum and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name, inum: int) -> None:
        """Add the entry (name, inum) to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            found[0].put()
            raise FileSystemError(f"dirlink: {name!r} already exists")
        off = next((o for o, de in self._entries(dp) if de.inum == 0), dp.size)
        if dp.write(DirEntry(inum, name).pack(), off) != DIRENT_SIZE:
            raise FileSystemError("dirlink")

    # Paths.

    def _namex(self, path: str, want_parent: bool, cwd: Inode | None):
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            ip.lock()
            if ip.type != FileType.DIR:
                ip.unlock_put()
                return None
            if want_parent and path == "":
                ip.unlock()
                return ip, name
            found = self.dirlookup(ip, name)
            ip.unlock_put()
            if found is None:
                return None
            ip = found[0]
        if want_parent:
            ip.put()
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Inode for ``path``; relative paths start at ``cwd`` (root if None)."""
        result = self._namex(path, False, cwd)
        return None if result is None else result[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """Parent directory of ``path`` and the final path element."""
        return self._namex(path, True, cwd)


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first path element: ("a", "bb/c") for "a/bb/c"."""
    path = path.lstrip("/")
    if not path:
        return None
    name, _, rest = path.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def _name_bytes(name) -> bytes:
    if isinstance(name, str):
        name = name.encode("utf-8", "surrogateescape")
    return bytes(name)[:DIRSIZ].split(b"\0", 1)[0]


def namecmp(s, t) -> int:
    """Compare two directory names over at most DIRSIZ bytes."""
    a, b = _name_bytes(s), _name_bytes(t)
    return (a > b) - (a < b)