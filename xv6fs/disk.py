"""A disk kept entirely in memory."""
from __future__ import annotations

from pathlib import Path

from .layout import BSIZE, ROOTDEV


class DiskError(Exception):
    """A request the disk cannot serve."""


class MemoryDisk:
    """Block device backed by a bytearray."""

    def __init__(self, data=b"", dev: int = ROOTDEV) -> None:
        self._data = bytearray(data)
        self.dev = dev
        self.nblocks = len(self._data) // BSIZE

    @classmethod
    def from_file(cls, path, dev: int = ROOTDEV) -> MemoryDisk:
        return cls(Path(path).read_bytes(), dev)

    def _offset(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        off = self._offset(blockno)
        return bytes(self._data[off:off + BSIZE])

    def write_block(self, blockno: int, data) -> None:
        if len(data) != BSIZE:
            raise DiskError(f"block data must be {BSIZE} bytes")
        off = self._offset(blockno)
        self._data[off:off + BSIZE] = data

    def save(self, path) -> None:
        Path(path).write_bytes(self._data)

    def image(self) -> bytes:
        return bytes(self._data)