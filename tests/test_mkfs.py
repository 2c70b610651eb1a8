import struct

import pytest

from xv6fs.layout import (
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
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
from xv6fs.mkfs import ImageBuilder, build_image, main


def superblock(image):
    return Superblock.unpack(image[BSIZE:2 * BSIZE])


def read_inode(image, inum):
    sb = superblock(image)
    off = sb.inode_block(inum) * BSIZE + (inum % IPB) * DINODE_SIZE
    return DiskInode.unpack(image[off:off + DINODE_SIZE])


def file_bytes(image, din):
    blocks = list(din.addrs[:NDIRECT])
    ind = din.addrs[NDIRECT]
    if ind:
        blocks += struct.unpack(f"<{NINDIRECT}I", image[ind * BSIZE:(ind + 1) * BSIZE])
    data = b"".join(image[b * BSIZE:(b + 1) * BSIZE] for b in blocks if b)
    return data[:din.size]


def root_entries(image):
    raw = file_bytes(image, read_inode(image, ROOTINO))
    entries = [DirEntry.unpack(raw[i:i + DIRENT_SIZE]) for i in range(0, len(raw), DIRENT_SIZE)]
    return [e for e in entries if e.inum]


def test_empty_image_layout():
    image = build_image([])
    assert len(image) == FSSIZE * BSIZE
    sb = superblock(image)
    assert sb.size == FSSIZE
    assert sb.logstart == 2
    assert sb.inodestart == 2 + LOGSIZE
    assert sb.nlog == LOGSIZE


def test_root_directory():
    image = build_image([])
    root = read_inode(image, ROOTINO)
    assert root.type == FileType.DIR
    assert root.nlink == 1
    assert root.size == BSIZE
    names = [(e.inum, e.decoded_name()) for e in root_entries(image)]
    assert names == [(ROOTINO, "."), (ROOTINO, "..")]


def test_add_file_strips_underscore():
    payload = b"hello, world\n"
    image = build_image([("_cat", payload)])
    entry = root_entries(image)[2]
    assert entry.decoded_name() == "cat"
    din = read_inode(image, entry.inum)
    assert din.type == FileType.FILE
    assert file_bytes(image, din) == payload


def test_large_file_uses_indirect_block():
    payload = bytes(range(256)) * ((NDIRECT + 3) * BSIZE // 256)
    image = build_image([("big", payload)])
    din = read_inode(image, root_entries(image)[2].inum)
    assert din.addrs[NDIRECT] != 0
    assert file_bytes(image, din) == payload


def test_file_too_large():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("huge", bytes(MAXFILE * BSIZE + 1))


def test_name_with_slash_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("a/b", b"")


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("f", b"x" * (BSIZE * 2))
    image = builder.finish()
    bitmap = image[builder.superblock.bmapstart * BSIZE:][:BSIZE]
    used = builder.freeblock
    assert sum(bin(byte).count("1") for byte in bitmap) == used
    assert bitmap[(used - 1) // 8] & (1 << ((used - 1) % 8))


def test_finish_is_stable():
    builder = ImageBuilder()
    first = builder.finish()
    assert builder.finish() == first


def test_report_messages():
    messages = []
    builder = ImageBuilder(report=messages.append)
    builder.finish()
    assert messages[0].startswith(f"nmeta {builder.nmeta} ")
    assert messages[-1] == f"balloc: write bitmap block at sector {builder.superblock.bmapstart}"


def test_main_writes_image(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "README").write_bytes(b"readme text")
    assert main(["fs.img", "README"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    assert len(image) == FSSIZE * BSIZE
    assert [e.decoded_name() for e in root_entries(image)][2:] == ["README"]


def test_main_usage():
    assert main([]) == 1


def test_main_missing_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "absent"]) == 1