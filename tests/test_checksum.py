import hashlib
import os

import pytest

from pcskit.checksum import (
    DEFAULT_BUF_SIZE,
    ChecksumFlag,
    ChecksumWriteUnit,
    Crc32ChecksumWriter,
    FileIsNoneError,
    HashChecksumWriter,
    LocalFileChecksum,
    LocalFileMeta,
    get_file_sum,
)

HELLO = b"hello world"
HELLO_MD5 = bytes.fromhex("5eb63bbbe01eeed093cb22bb8f5acdc3")
HELLO_CRC32 = 0x0D4A1185
FOX = b"The quick brown fox jumps over the lazy dog"
FOX_MD5 = bytes.fromhex("9e107d9d372bb6826bd81d3542a419d6")
FOX_CRC32 = 0x414FA339

FLAG_LIST = [
    ChecksumFlag.MD5,
    ChecksumFlag.SLICE_MD5,
    ChecksumFlag.CRC32,
    ChecksumFlag.MD5 | ChecksumFlag.SLICE_MD5,
    ChecksumFlag.SLICE_MD5 | ChecksumFlag.CRC32,
    ChecksumFlag.MD5 | ChecksumFlag.CRC32,
    ChecksumFlag.MD5 | ChecksumFlag.SLICE_MD5 | ChecksumFlag.CRC32,
]


@pytest.fixture
def hello_file(tmp_path):
    p = tmp_path / "hello.txt"
    p.write_bytes(HELLO)
    return str(p)


@pytest.mark.parametrize("flag", FLAG_LIST)
def test_flag_combinations(hello_file, flag):
    lfc = get_file_sum(hello_file, flag)
    meta = lfc.meta
    assert meta.length == len(HELLO)
    assert meta.md5 == (HELLO_MD5 if flag & ChecksumFlag.MD5 else b"")
    assert meta.slice_md5 == (HELLO_MD5 if flag & ChecksumFlag.SLICE_MD5 else b"")
    assert meta.crc32 == (HELLO_CRC32 if flag & ChecksumFlag.CRC32 else 0)
    assert lfc.file is None


def test_known_fox_digests(tmp_path):
    p = tmp_path / "fox"
    p.write_bytes(FOX)
    lfc = get_file_sum(str(p), ChecksumFlag.MD5 | ChecksumFlag.CRC32)
    assert lfc.meta.md5 == FOX_MD5
    assert lfc.meta.crc32 == FOX_CRC32


def test_small_slice(hello_file):
    lfc = get_file_sum(hello_file, ChecksumFlag.SLICE_MD5 | ChecksumFlag.MD5, slice_size=5)
    assert lfc.meta.slice_md5 == bytes.fromhex("5d41402abc4b2a76b9719d911017c592")
    assert lfc.meta.md5 == HELLO_MD5


def test_large_file_with_odd_buffer(tmp_path):
    data = bytes(range(256)) * 5000
    p = tmp_path / "big.bin"
    p.write_bytes(data)
    lfc = LocalFileChecksum(str(p), DEFAULT_BUF_SIZE, DEFAULT_BUF_SIZE - 3)
    lfc.open_path()
    lfc.sum(ChecksumFlag.MD5 | ChecksumFlag.SLICE_MD5 | ChecksumFlag.CRC32)
    lfc.close()
    assert lfc.meta.length == len(data)
    assert lfc.meta.md5 == hashlib.md5(data).digest()
    assert lfc.meta.slice_md5 == hashlib.md5(data[:DEFAULT_BUF_SIZE]).digest()
    assert lfc.buf_size == DEFAULT_BUF_SIZE


def test_file_exactly_buffer_size(tmp_path):
    data = b"\x07" * DEFAULT_BUF_SIZE
    p = tmp_path / "exact.bin"
    p.write_bytes(data)
    lfc = get_file_sum(str(p), ChecksumFlag.MD5 | ChecksumFlag.SLICE_MD5)
    assert lfc.meta.md5 == hashlib.md5(data).digest()
    assert lfc.meta.slice_md5 == lfc.meta.md5


def test_empty_file(tmp_path):
    p = tmp_path / "empty"
    p.write_bytes(b"")
    lfc = get_file_sum(str(p), ChecksumFlag.MD5 | ChecksumFlag.CRC32)
    assert lfc.meta.length == 0
    assert lfc.meta.md5 == b""
    assert lfc.meta.crc32 == 0


def test_sum_rewinds_file(hello_file):
    with LocalFileChecksum(hello_file) as lfc:
        lfc.sum(ChecksumFlag.MD5)
        assert lfc.file.tell() == 0
        lfc.sum(ChecksumFlag.CRC32)
    assert lfc.meta.md5 == HELLO_MD5
    assert lfc.meta.crc32 == HELLO_CRC32


def test_sum_without_open_raises(hello_file):
    lfc = LocalFileChecksum(hello_file)
    with pytest.raises(FileIsNoneError):
        lfc.sum(ChecksumFlag.MD5)


def test_close_without_open_raises(hello_file):
    with pytest.raises(FileIsNoneError):
        LocalFileChecksum(hello_file).close()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        get_file_sum(str(tmp_path / "nope"), ChecksumFlag.MD5)


def test_open_path_records_mod_time(hello_file):
    os.utime(hello_file, (1000, 2000))
    lfc = LocalFileChecksum(hello_file)
    lfc.open_path()
    lfc.close()
    assert lfc.meta.mod_time == 2000


def test_write_unit_in_pieces():
    unit = ChecksumWriteUnit(HashChecksumWriter(), end=len(HELLO), slice_end=5)
    assert unit.write(HELLO[:3]) is False
    assert unit.write(HELLO[3:8]) is False
    assert unit.slice_sum == hashlib.md5(HELLO[:5]).digest()
    assert unit.write(HELLO[8:] + b"extra") is True
    assert unit.sum == HELLO_MD5


def test_write_unit_only_slice_stops():
    unit = ChecksumWriteUnit(HashChecksumWriter(), end=len(HELLO), slice_end=5, only_slice_sum=True)
    unit.write(HELLO)
    assert unit.write(b"more") is True
    assert unit.sum is None
    assert unit.slice_sum == bytes.fromhex("5d41402abc4b2a76b9719d911017c592")


def test_write_unit_zero_end_stops():
    unit = ChecksumWriteUnit(Crc32ChecksumWriter(), end=0)
    assert unit.write(b"abc") is True
    assert unit.sum is None


def test_crc32_writer_incremental():
    w = Crc32ChecksumWriter()
    w.write(HELLO[:4])
    w.write(HELLO[4:])
    assert w.sum() == HELLO_CRC32


def test_meta_equal_and_abs_path():
    a = LocalFileMeta(path="x", length=3, md5=b"\x01")
    b = LocalFileMeta(path="y", length=3, md5=b"\x01")
    c = LocalFileMeta(path="y", length=4, md5=b"\x01")
    assert a.equal_length_md5(b)
    assert not a.equal_length_md5(c)
    a.complete_abs_path()
    assert a.path == os.path.abspath("x")