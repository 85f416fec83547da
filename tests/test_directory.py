import io
import struct

import pytest

from constants import INODE_TYPE
from directory import decode_directory_listing, decode_directory_table
from errors import CorruptDirectory, CorruptReference, TruncatedInput
from image_builder import dir_entry, dir_header, frame_blocks
from metadata import read_metadata_region
from structures import Reader


def test_negative_delta(config):
    e = config.endian
    data = dir_header(e, 1, 0, 100) + dir_entry(e, b'five-back', -5)

    [entry] = decode_directory_table(data, config)

    assert entry.inode_delta == -5
    assert entry.inode_number == 95


def test_delta_is_signed_16_bit(config):
    e = config.endian
    data = dir_header(e, 2, 0, 40000) + dir_entry(e, b'a', -32768) + dir_entry(e, b'b', 32767)

    low, high = decode_directory_table(data, config)

    assert low.inode_number == 40000 - 32768
    assert high.inode_number == 40000 + 32767


def test_delta_bytes_are_twos_complement(config):
    e = config.endian
    raw_delta = struct.pack(e + 'H', 0xFFFB)
    entry = struct.pack(e + 'H', 0) + raw_delta + struct.pack(e + 'HH', 2, 0) + b'x'

    [decoded] = decode_directory_table(dir_header(e, 1, 0, 100) + entry, config)

    assert decoded.inode_number == 95


@pytest.mark.parametrize('stored, length', [(0, 1), (11, 12), (255, 256)])
def test_name_length_is_stored_minus_one(config, stored, length):
    e = config.endian
    name = b'n' * length
    data = dir_header(e, 1, 0, 1) + dir_entry(e, name, 0)
    assert struct.unpack_from(e + 'H', data, 12 + 6)[0] == stored

    [entry] = decode_directory_table(data, config)

    assert entry.name_size == stored
    assert entry.name == 'n' * length


def test_entry_count_is_stored_plus_one(config):
    e = config.endian
    data = dir_header(e, 3, 0, 10) + b''.join(
        dir_entry(e, name, delta) for name, delta in [(b'x', 0), (b'y', 1), (b'z', 2)])
    assert struct.unpack_from(e + 'I', data, 0)[0] == 2

    entries = decode_directory_table(data, config)

    assert [(x.name, x.inode_number) for x in entries] == [('x', 10), ('y', 11), ('z', 12)]


def test_multiple_headers_are_flattened(config):
    e = config.endian
    first = dir_header(e, 1, 0x20, 5) + dir_entry(e, b'etc', 0, INODE_TYPE.BASIC_DIR, offset=8)
    second = (dir_header(e, 2, 0x40, 200) + dir_entry(e, b'bin', -1, offset=4) +
              dir_entry(e, b'lib', 3, INODE_TYPE.BASIC_SYMLINK))

    entries = decode_directory_table(first + second, config)

    assert [x.name for x in entries] == ['etc', 'bin', 'lib']
    assert [x.inode_number for x in entries] == [5, 199, 203]
    assert [x.listing_position for x in entries] == [0, len(first), len(first)]
    assert entries[0].type == INODE_TYPE.BASIC_DIR
    assert entries[0].inode_ref == (0x20 << 16) | 8
    assert entries[2].type_name == 'symlink'


def test_utf8_names(config):
    e = config.endian
    name = 'grüße.txt'.encode('utf-8')
    [entry] = decode_directory_table(dir_header(e, 1, 0, 1) + dir_entry(e, name, 0), config)
    assert entry.name == 'grüße.txt'


def test_invalid_utf8_name_survives(config):
    e = config.endian
    [entry] = decode_directory_table(dir_header(e, 1, 0, 1) + dir_entry(e, b'\xff\xfe', 0), config)
    assert entry.name.encode('utf-8', errors='surrogateescape') == b'\xff\xfe'


def test_empty_table(config):
    assert decode_directory_table(b'', config) == []


@pytest.mark.parametrize('cut', [4, 12, 15, 20])
def test_truncated_table(config, cut):
    e = config.endian
    data = dir_header(e, 1, 0, 1) + dir_entry(e, b'abcdefgh', 0)

    with pytest.raises(TruncatedInput):
        decode_directory_table(data[:cut], config)


def test_header_count_too_large(config):
    data = struct.pack(config.endian + 'III', 256, 0, 1)

    with pytest.raises(CorruptDirectory):
        decode_directory_table(data, config)


def test_listing_spanning_metadata_blocks(config):
    e = config.endian
    data = dir_header(e, 4, 0, 50) + b''.join(
        dir_entry(e, f'entry-{i}'.encode(), i) for i in range(4))
    region = frame_blocks([data[:7], data[7:30], data[30:]], e, [True, False, True])

    stream = read_metadata_region(io.BytesIO(region), 0, len(region), config)
    entries = decode_directory_table(stream, config)

    assert [x.name for x in entries] == ['entry-0', 'entry-1', 'entry-2', 'entry-3']
    assert [x.inode_number for x in entries] == [50, 51, 52, 53]


def test_decode_single_listing(config):
    e = config.endian
    first = dir_header(e, 1, 0, 10) + dir_entry(e, b'one', 0)
    second = dir_header(e, 2, 0, 20) + dir_entry(e, b'two', 0) + dir_entry(e, b'three', 1)
    region = frame_blocks([first, second], e, [False, True])
    stream = read_metadata_region(io.BytesIO(region), 0, len(region), config)
    second_block = 2 + len(first)

    entries = decode_directory_listing(stream, second_block, 0, len(second) + 3, config)

    assert [(x.name, x.inode_number) for x in entries] == [('two', 20), ('three', 21)]
    assert decode_directory_listing(stream, 0, 0, 3, config) == []


def test_listing_reference_outside_stream(config):
    e = config.endian
    data = dir_header(e, 1, 0, 10) + dir_entry(e, b'one', 0)
    region = frame_blocks([data], e)
    stream = read_metadata_region(io.BytesIO(region), 0, len(region), config)

    with pytest.raises(CorruptReference):
        decode_directory_listing(stream, 0, 0, len(data) + 10, config)
    with pytest.raises(CorruptReference):
        decode_directory_listing(stream, 99, 0, len(data) + 3, config)


def test_listing_does_not_read_past_its_size(config):
    e = config.endian
    # Header claims two entries but the inode sizes the listing for one
    short = dir_header(e, 2, 0, 10) + dir_entry(e, b'one', 0)
    following = dir_entry(e, b'spill', 1) + dir_header(e, 1, 0, 30) + dir_entry(e, b'x', 0)
    region = frame_blocks([short + following], e)
    stream = read_metadata_region(io.BytesIO(region), 0, len(region), config)

    with pytest.raises(TruncatedInput):
        decode_directory_listing(stream, 0, 0, len(short) + 3, config)


def test_reader_end_bound():
    reader = Reader(b'abcdefgh', '<', 2, 5)

    assert reader.remaining == 3
    assert reader.take(3) == b'cde'
    with pytest.raises(TruncatedInput):
        reader.take(1)
    assert Reader(b'abc', '<', 0, 10).remaining == 3
