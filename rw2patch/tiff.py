"""Low-level TIFF/RW2 binary parser -- stdlib only (struct module).

Handles the classic 8-byte TIFF header used by Panasonic RW2 files, with
little-endian (II) and big-endian (MM) byte orders. RW2 files carry magic
85 instead of the standard 42; both are accepted.

Helpers here raise RW2FormatError with a human-readable reason. Callers
at the analyze/patch/validate boundary turn those into outcome values.
"""

import os
import struct
from typing import BinaryIO, Dict, List, Optional

# Byte-order marks
LITTLE_ENDIAN_MARK = b'II'
BIG_ENDIAN_MARK = b'MM'

# 42 is classic TIFF, 85 is what Panasonic writes into RW2 headers
ACCEPTED_MAGIC = (42, 85)

HEADER_SIZE = 8
ENTRY_COUNT_SIZE = 2
ENTRY_SIZE = 12
INLINE_VALUE_SIZE = 4

TYPE_ASCII = 2
MODEL_TAG = 0x0110

# Tags that commonly show up in RW2 IFD0, for display only
TAG_NAMES: Dict[int, str] = {
    0x0001: 'PanasonicRawVersion', 0x0002: 'SensorWidth',
    0x0003: 'SensorHeight', 0x0017: 'ISO',
    0x002E: 'JpgFromRaw', 0x0111: 'StripOffsets',
    0x0112: 'Orientation', 0x010F: 'Make', 0x0110: 'Model',
    0x0116: 'RowsPerStrip', 0x0117: 'StripByteCounts',
    0x0118: 'RawDataOffset', 0x8769: 'ExifOffset', 0x8825: 'GPSInfo',
}


class RW2FormatError(ValueError):
    """Raised when a file does not have the structure the parser expects."""


def unpack_u16(data: bytes, offset: int, endian: str) -> int:
    """Decode an unsigned 16-bit integer at offset."""
    return struct.unpack_from(endian + 'H', data, offset)[0]


def unpack_u32(data: bytes, offset: int, endian: str) -> int:
    """Decode an unsigned 32-bit integer at offset."""
    return struct.unpack_from(endian + 'I', data, offset)[0]


def read_exact(f: BinaryIO, offset: int, size: int, what: str) -> bytes:
    """Seek to offset and read exactly size bytes or raise RW2FormatError.

    Ranges past the end of the stream fail before anything is read.
    """
    end = f.seek(0, os.SEEK_END)
    if offset + size > end:
        raise RW2FormatError(f'Could not read {what}')
    f.seek(offset)
    data = f.read(size)
    if len(data) < size:
        raise RW2FormatError(f'Could not read {what}')
    return data


class TIFFHeader:
    """Parsed 8-byte TIFF header."""
    __slots__ = ('endian', 'magic', 'first_ifd_offset')

    def __init__(self, endian: str, magic: int, first_ifd_offset: int):
        self.endian = endian
        self.magic = magic
        self.first_ifd_offset = first_ifd_offset

    @property
    def is_little_endian(self) -> bool:
        return self.endian == '<'

    @property
    def byte_order(self) -> str:
        return 'little-endian (II)' if self.is_little_endian else 'big-endian (MM)'


class IFDEntry:
    """A single 12-byte IFD entry.

    ``value_field`` is the raw 32-bit value-or-offset slot. For values of
    four bytes or fewer it holds the value itself and ``value_offset``
    points into the entry; otherwise it is the absolute file offset.
    """
    __slots__ = ('tag_id', 'dtype', 'count', 'value_field', 'entry_offset')

    def __init__(self, tag_id: int, dtype: int, count: int,
                 value_field: int, entry_offset: int):
        self.tag_id = tag_id
        self.dtype = dtype
        self.count = count
        self.value_field = value_field
        self.entry_offset = entry_offset

    @property
    def tag_name(self) -> str:
        return TAG_NAMES.get(self.tag_id, f'Tag_0x{self.tag_id:04X}')

    @property
    def is_inline(self) -> bool:
        return self.count <= INLINE_VALUE_SIZE

    @property
    def value_offset(self) -> int:
        # Inline values sit after tag(2) + type(2) + count(4)
        if self.is_inline:
            return self.entry_offset + 8
        return self.value_field


def parse_header(data: bytes) -> TIFFHeader:
    """Validate the byte-order mark and magic, then decode the IFD0 offset.

    The byte order has to be settled before any multi-byte field is read.
    """
    if len(data) < HEADER_SIZE:
        raise RW2FormatError('Could not read file header')

    mark = data[0:2]
    if mark == LITTLE_ENDIAN_MARK:
        endian = '<'
    elif mark == BIG_ENDIAN_MARK:
        endian = '>'
    else:
        raise RW2FormatError('Not a valid TIFF/RW2 file')

    magic = unpack_u16(data, 2, endian)
    if magic not in ACCEPTED_MAGIC:
        raise RW2FormatError(f'Not a valid RW2 file (magic: {magic})')

    return TIFFHeader(endian, magic, unpack_u32(data, 4, endian))


def read_header(f: BinaryIO) -> TIFFHeader:
    """Read and validate the header at the start of f."""
    f.seek(0)
    return parse_header(f.read(HEADER_SIZE))


def read_ifd(f: BinaryIO, header: TIFFHeader,
             ifd_offset: Optional[int] = None) -> List[IFDEntry]:
    """Read the entry table of an IFD (IFD0 by default).

    The whole table is read in one go; a short read of either the
    entry count or the table itself is an error.
    """
    if ifd_offset is None:
        ifd_offset = header.first_ifd_offset
    endian = header.endian

    count_data = read_exact(f, ifd_offset, ENTRY_COUNT_SIZE, 'IFD')
    num_entries = unpack_u16(count_data, 0, endian)

    table = f.read(num_entries * ENTRY_SIZE)
    if len(table) < num_entries * ENTRY_SIZE:
        raise RW2FormatError('Could not read IFD entries')

    entries = []
    table_start = ifd_offset + ENTRY_COUNT_SIZE
    for i in range(num_entries):
        pos = i * ENTRY_SIZE
        tag_id, dtype, count, value_field = struct.unpack_from(
            endian + 'HHII', table, pos)
        entries.append(IFDEntry(tag_id, dtype, count, value_field,
                                table_start + pos))
    return entries


def find_entry(entries: List[IFDEntry], tag_id: int) -> Optional[IFDEntry]:
    """Return the first entry with the given tag, in table order."""
    for entry in entries:
        if entry.tag_id == tag_id:
            return entry
    return None


def read_field(f: BinaryIO, offset: int, length: int) -> bytes:
    """Read exactly length bytes of a field value."""
    return read_exact(f, offset, length, 'model string')


def decode_ascii(raw: bytes) -> str:
    """Decode an ASCII field up to (not including) the first NUL."""
    return raw.split(b'\x00', 1)[0].decode('ascii', errors='replace')
