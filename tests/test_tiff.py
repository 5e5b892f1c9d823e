"""Tests for the TIFF/RW2 header and IFD parser."""

import io
import struct
import pytest
from rw2patch.tiff import (
    MODEL_TAG, RW2FormatError, decode_ascii, find_entry, parse_header,
    read_field, read_header, read_ifd, unpack_u16, unpack_u32,
)
from tests.conftest import build_rw2, build_tiff


class TestBinaryHelpers:
    def test_u16_both_orders(self):
        assert unpack_u16(b'\x2a\x00', 0, '<') == 42
        assert unpack_u16(b'\x00\x2a', 0, '>') == 42

    def test_u32_at_offset(self):
        data = b'\xff\xff' + struct.pack('<I', 0x01020304)
        assert unpack_u32(data, 2, '<') == 0x01020304
        assert unpack_u32(data, 2, '>') == 0x04030201


class TestParseHeader:
    def test_little_endian_rw2(self):
        header = parse_header(b'II' + struct.pack('<HI', 85, 8))
        assert header.endian == '<'
        assert header.is_little_endian
        assert header.magic == 85
        assert header.first_ifd_offset == 8

    def test_big_endian_tiff(self):
        header = parse_header(b'MM' + struct.pack('>HI', 42, 0x1234))
        assert header.endian == '>'
        assert not header.is_little_endian
        assert header.first_ifd_offset == 0x1234

    def test_bad_byte_order(self):
        with pytest.raises(RW2FormatError, match='Not a valid TIFF/RW2 file'):
            parse_header(b'XX' + struct.pack('<HI', 42, 8))

    def test_mixed_case_mark_rejected(self):
        with pytest.raises(RW2FormatError):
            parse_header(b'IM' + struct.pack('<HI', 42, 8))

    def test_wrong_magic_reports_number(self):
        with pytest.raises(RW2FormatError, match='magic: 99'):
            parse_header(b'II' + struct.pack('<HI', 99, 8))

    def test_magic_decoded_in_file_order(self):
        # 42 written little-endian reads as 10752 big-endian
        with pytest.raises(RW2FormatError, match='10752'):
            parse_header(b'MM' + struct.pack('<HI', 42, 8))

    def test_short_header(self):
        with pytest.raises(RW2FormatError, match='header'):
            parse_header(b'II*')


class TestReadIFD:
    def test_read_entries(self):
        f = io.BytesIO(build_rw2())
        header = read_header(f)
        entries = read_ifd(f, header)
        assert [e.tag_id for e in entries] == [0x010F, 0x0110, 0x0002, 0x0003]
        assert entries[1].tag_name == 'Model'
        assert entries[1].entry_offset == 8 + 2 + 12

    def test_out_of_line_value_offset(self):
        f = io.BytesIO(build_rw2())
        header = read_header(f)
        model = find_entry(read_ifd(f, header), MODEL_TAG)
        assert not model.is_inline
        assert model.value_offset == model.value_field == 62 + 10

    def test_inline_value_offset(self):
        f = io.BytesIO(build_rw2(model=b'S9\x00\x00'))
        header = read_header(f)
        model = find_entry(read_ifd(f, header), MODEL_TAG)
        assert model.is_inline
        assert model.value_offset == 8 + 2 + 12 + 8

    def test_big_endian_entries(self):
        f = io.BytesIO(build_rw2(endian='>', magic=42))
        header = read_header(f)
        entries = read_ifd(f, header)
        assert entries[2].dtype == 3
        assert entries[2].value_field == 6000

    def test_missing_ifd(self):
        f = io.BytesIO(b'II' + struct.pack('<HI', 85, 999))
        header = read_header(f)
        with pytest.raises(RW2FormatError, match='Could not read IFD$'):
            read_ifd(f, header)

    def test_truncated_entry_table(self):
        data = b'II' + struct.pack('<HI', 85, 8) + struct.pack('<H', 3)
        data += struct.pack('<HHII', 0x0110, 2, 6, 100)
        f = io.BytesIO(data)
        header = read_header(f)
        with pytest.raises(RW2FormatError, match='IFD entries'):
            read_ifd(f, header)

    def test_empty_ifd(self):
        f = io.BytesIO(build_tiff([]))
        header = read_header(f)
        assert read_ifd(f, header) == []

    def test_unknown_tag_name(self):
        f = io.BytesIO(build_tiff([(0xABCD, 3, 1, 7)]))
        header = read_header(f)
        assert read_ifd(f, header)[0].tag_name == 'Tag_0xABCD'


class TestFieldHelpers:
    def test_find_entry_first_match(self):
        f = io.BytesIO(build_tiff([(0x0110, 2, 3, b'A\x00'), (0x0110, 2, 3, b'B\x00')]))
        header = read_header(f)
        entry = find_entry(read_ifd(f, header), 0x0110)
        assert entry.entry_offset == 10

    def test_find_entry_missing(self):
        assert find_entry([], MODEL_TAG) is None

    def test_read_field_short(self):
        with pytest.raises(RW2FormatError, match='model string'):
            read_field(io.BytesIO(b'abc'), 1, 10)

    def test_decode_stops_at_first_nul(self):
        assert decode_ascii(b'DC-S9\x00junk') == 'DC-S9'

    def test_decode_no_nul(self):
        assert decode_ascii(b'DC-S9') == 'DC-S9'
