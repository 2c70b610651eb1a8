import pytest

from xv6fs.layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    NDIRECT,
    DirEntry,
    DiskInode,
    FileType,
    Superblock,
)


def make_sb():
    return Superblock(
        size=1000, nblocks=941, ninodes=200, nlog=30, logstart=2,
        inodestart=32, bmapstart=58,
    )


def test_superblock_round_trip():
    sb = make_sb()
    assert Superblock.unpack(sb.pack()) == sb


def test_superblock_unpack_from_padded_block():
    sb = make_sb()
    block = sb.pack().ljust(BSIZE, b"\0")
    assert Superblock.unpack(block) == sb


def test_superblock_unpack_short_data():
    with pytest.raises(ValueError):
        Superblock.unpack(b"\0" * 4)


def test_inode_block():
    sb = make_sb()
    assert sb.inode_block(0) == sb.inodestart
    assert sb.inode_block(IPB - 1) == sb.inodestart
    assert sb.inode_block(IPB) == sb.inodestart + 1


def test_bitmap_block():
    sb = make_sb()
    assert sb.bitmap_block(BPB - 1) == sb.bmapstart
    assert sb.bitmap_block(BPB) == sb.bmapstart + 1


def test_dinode_fits_block_exactly():
    din = DiskInode()
    assert len(din.pack()) * IPB == BSIZE


def test_dinode_round_trip():
    addrs = list(range(1, NDIRECT + 2))
    din = DiskInode(type=FileType.FILE, major=0, minor=0, nlink=1, size=777, addrs=addrs)
    back = DiskInode.unpack(din.pack())
    assert back == din
    assert back.type == FileType.FILE


def test_dinode_wrong_address_count():
    with pytest.raises(ValueError):
        DiskInode(addrs=[0, 0])


def test_dirent_wire_bytes():
    assert DirEntry(1, ".").pack() == b"\x01\x00." + b"\x00" * (DIRSIZ - 1)


def test_dirent_size_divides_block():
    packed = DirEntry(3, "cat").pack()
    assert len(packed) == 2 + DIRSIZ
    assert BSIZE % len(packed) == 0


def test_dirent_round_trip_and_name():
    de = DirEntry.unpack(DirEntry(7, "README").pack())
    assert de.inum == 7
    assert de.decoded_name() == "README"


def test_dirent_long_name_truncated():
    name = "x" * (DIRSIZ + 5)
    de = DirEntry.unpack(DirEntry(2, name).pack())
    assert de.decoded_name() == name[:DIRSIZ]