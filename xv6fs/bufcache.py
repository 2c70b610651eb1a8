"""Buffer cache of disk blocks with most-recently-used ordering."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from .disk import DiskError, MemoryDisk
from .layout import BSIZE, NBUF


class CacheError(Exception):
    """Misuse of the buffer cache."""


@dataclass(eq=False)
class Buffer:
    """Cached copy of one disk block."""

    dev: int = 0
    blockno: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: Any = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: Any = field(default=None, init=False, repr=False)

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()

    def _holding(self) -> bool:
        return self._lock.locked() and self._owner == threading.get_ident()


class BufferCache:
    """Fixed pool of buffers over one disk."""

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Most recently used first.
        self._buffers: list[Buffer] = [Buffer() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            found = next(
                (b for b in self._buffers if b.dev == dev and b.blockno == blockno),
                None,
            )
            if found is not None:
                found.refcnt += 1
            else:
                # A dirty buffer is pinned by the log even with no references.
                found = next(
                    (b for b in reversed(self._buffers) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if found is None:
                    raise CacheError("bget: no buffers")
                found.dev = dev
                found.blockno = blockno
                found.valid = False
                found.dirty = False
                found.refcnt = 1
        found._acquire()
        return found

    def _sync(self, buf: Buffer) -> None:
        if not buf._holding():
            raise CacheError("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise CacheError("iderw: nothing to do")
        if buf.dev != self.disk.dev:
            raise DiskError(f"iderw: request not for disk {self.disk.dev}")
        if buf.dirty:
            buf.dirty = False
            self.disk.write_block(buf.blockno, bytes(buf.data))
        else:
            buf.data[:] = self.disk.read_block(buf.blockno)
        buf.valid = True

    def bread(self, dev: int, blockno: int) -> Buffer:
        """Return a locked buffer holding the block's contents."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            try:
                self._sync(buf)
            except Exception:
                self.brelse(buf)
                raise
        return buf

    def bwrite(self, buf: Buffer) -> None:
        """Write a locked buffer to disk."""
        if not buf._holding():
            raise CacheError("bwrite")
        buf.dirty = True
        self._sync(buf)

    def brelse(self, buf: Buffer) -> None:
        """Release a locked buffer and make it most recently used."""
        if not buf._holding():
            raise CacheError("brelse")
        buf._release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._buffers.remove(buf)
                self._buffers.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buffer]:
        buf = self.bread(dev, blockno)
        try:
            yield buf
        finally:
            self.brelse(buf)

    def mru_order(self) -> list[Buffer]:
        """Buffers from most to least recently used."""
        with self._lock:
            return list(self._buffers)