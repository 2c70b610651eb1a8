"""Write-ahead redo log that groups file-system operations into transactions."""
from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .bufcache import Buffer, BufferCache
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, ROOTDEV, Superblock

_COUNT = struct.Struct("<i")


class LogError(Exception):
    """Misuse of the log or a transaction that cannot fit."""


class Log:
    """The on-disk log: a header block followed by copies of logged blocks."""

    def __init__(
        self,
        cache: BufferCache,
        dev: int = ROOTDEV,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        if _COUNT.size * (1 + logsize) >= BSIZE:
            raise LogError("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self._blocks: list[int] = []
        self._cond = threading.Condition()
        with cache.block(dev, 1) as buf:
            sb = Superblock.unpack(buf.data)
        self.start = sb.logstart
        self.size = sb.nlog
        self.recover()

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            (n,) = _COUNT.unpack_from(buf.data)
            if not 0 <= n <= self.logsize:
                raise LogError(f"corrupt log header: {n} blocks")
            self._blocks = list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        buf = self.cache.bread(self.dev, self.start)
        try:
            n = len(self._blocks)
            _COUNT.pack_into(buf.data, 0, n)
            struct.pack_into(f"<{n}i", buf.data, _COUNT.size, *self._blocks)
            self.cache.bwrite(buf)
        finally:
            self.cache.brelse(buf)

    def _install_trans(self) -> None:
        for tail, blockno in enumerate(self._blocks):
            lbuf = self.cache.bread(self.dev, self.start + tail + 1)
            dbuf = self.cache.bread(self.dev, blockno)
            dbuf.data[:] = lbuf.data
            self.cache.bwrite(dbuf)
            self.cache.brelse(lbuf)
            self.cache.brelse(dbuf)

    def _write_log(self) -> None:
        for tail, blockno in enumerate(self._blocks):
            to = self.cache.bread(self.dev, self.start + tail + 1)
            source = self.cache.bread(self.dev, blockno)
            to.data[:] = source.data
            self.cache.bwrite(to)
            self.cache.brelse(source)
            self.cache.brelse(to)

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()  # the real commit point
            self._install_trans()
            self._blocks = []
            self._write_head()

    def recover(self) -> None:
        """Replay a committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans()
        self._blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start a file-system operation, waiting while the log is busy or full."""
        with self._cond:
            while self.committing or (
                len(self._blocks) + (self.outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise LogError("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self._blocks) >= self.logsize or len(self._blocks) >= self.size - 1:
            raise LogError("too big a transaction")
        if self.outstanding < 1:
            raise LogError("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def pending_blocks(self) -> tuple[int, ...]:
        with self._cond:
            return tuple(self._blocks)