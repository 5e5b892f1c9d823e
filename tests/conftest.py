"""Shared test fixtures -- synthetic TIFF/RW2 file generators."""

import struct
import pytest
from pathlib import Path

MAKE_VALUE = b'Panasonic\x00'


def build_tiff(entries, endian='<', magic=42, extra_data=None):
    """Build a minimal single-IFD TIFF file in memory.

    Args:
        entries: List of (tag_id, type_id, count, value) tuples.
            An int is packed into the value slot as-is.
            Bytes of 4 or fewer go inline (NUL-padded to 4);
            longer bytes go out-of-line after the IFD.
        endian: '<' for little-endian, '>' for big-endian.
        magic: Header magic number (42 for TIFF, 85 for RW2).
        extra_data: Optional bytes appended at the end (stand-in for image data).

    Returns:
        bytes: Complete file content.
    """
    bo = b'II' if endian == '<' else b'MM'
    header = bo + struct.pack(endian + 'H', magic)

    # IFD starts at offset 8
    header += struct.pack(endian + 'I', 8)

    num_entries = len(entries)
    ifd_header = struct.pack(endian + 'H', num_entries)

    # Out-of-line data starts after: header(8) + ifd_count(2) + entries(12*n) + next_ifd(4)
    data_offset = 8 + 2 + 12 * num_entries + 4
    entry_bytes = b''
    data_bytes = b''

    for tag_id, type_id, count, value in entries:
        entry_bytes += struct.pack(endian + 'HHI', tag_id, type_id, count)
        if isinstance(value, bytes) and len(value) > 4:
            entry_bytes += struct.pack(endian + 'I', data_offset + len(data_bytes))
            data_bytes += value
        elif isinstance(value, bytes):
            entry_bytes += value.ljust(4, b'\x00')
        else:
            entry_bytes += struct.pack(endian + 'I', value)

    next_ifd = struct.pack(endian + 'I', 0)

    result = header + ifd_header + entry_bytes + next_ifd + data_bytes
    if extra_data:
        result += extra_data
    return result


def build_rw2(model=b'DC-S9\x00', endian='<', magic=85, count=None,
              image_data=b'\xAB' * 64):
    """Build a synthetic RW2: Make, Model and a couple of SHORT tags in IFD0.

    The Model entry is at index 1; its value is out-of-line when longer
    than 4 bytes.
    """
    entries = [
        (0x010F, 2, len(MAKE_VALUE), MAKE_VALUE),
        (0x0110, 2, len(model) if count is None else count, model),
        (0x0002, 3, 1, 6000),
        (0x0003, 3, 1, 4000),
    ]
    return build_tiff(entries, endian=endian, magic=magic, extra_data=image_data)


def model_value_offset(content, endian='<'):
    """Offset of the Model value in a build_rw2() file (read back from the entry)."""
    entry = 8 + 2 + 12 * 1
    count = struct.unpack_from(endian + 'I', content, entry + 4)[0]
    if count <= 4:
        return entry + 8
    return struct.unpack_from(endian + 'I', content, entry + 8)[0]


def write_file(tmp_path, name, content):
    tmp_path.mkdir(parents=True, exist_ok=True)
    filepath = tmp_path / name
    filepath.write_bytes(content)
    return filepath


@pytest.fixture
def tmp_rw2(tmp_path):
    """Little-endian S9 file with magic 85 and an out-of-line Model."""
    return write_file(tmp_path, 'P1000001.RW2', build_rw2())


@pytest.fixture
def tmp_rw2_s5(tmp_path):
    """File whose Model is already DC-S5."""
    return write_file(tmp_path, 'P1000002.RW2', build_rw2(model=b'DC-S5\x00'))


@pytest.fixture
def tmp_rw2_be(tmp_path):
    """Big-endian S9 file, magic 42, Model field of 8 bytes."""
    content = build_rw2(model=b'DC-S9\x00\x00\x00', endian='>', magic=42)
    return write_file(tmp_path, 'P1000003.RW2', content)


@pytest.fixture
def tmp_rw2_s1r(tmp_path):
    """File from a different camera."""
    return write_file(tmp_path, 'P1000004.RW2', build_rw2(model=b'DC-S1R\x00'))


@pytest.fixture
def tmp_not_tiff(tmp_path):
    return write_file(tmp_path, 'P1000005.RW2', b'\xff\xd8\xff\xe0' + b'\x00' * 60)


@pytest.fixture
def rw2_dir(tmp_path):
    """Directory with a mix of convertible, converted, foreign and non-RW2 files."""
    folder = tmp_path / 'card'
    folder.mkdir()
    write_file(folder, 'P1000010.RW2', build_rw2())
    write_file(folder, 'P1000011.rw2', build_rw2(model=b'DC-S9\x00\x00\x00', endian='>'))
    write_file(folder, 'P1000012.RW2', build_rw2(model=b'DC-S5\x00'))
    write_file(folder, 'P1000013.RW2', build_rw2(model=b'DC-S1R\x00'))
    write_file(folder, 'P1000010.JPG', b'\xff\xd8\xff\xd9')
    write_file(folder, '.P1000099.RW2', build_rw2())
    return folder
