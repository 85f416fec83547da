import dataclasses
import io
import struct

import pytest

import compression
from constants import COMPRESSION, INODE_TYPE
from errors import (CorruptReference, SquashfsError, TruncatedInput, UnknownInodeType,
                    UnsupportedCompression)
from filesystem import open_image, read_image
from image_builder import (build_image, dir_entry, dir_header, dir_inode, file_inode,
                           inode_header, minimal_image, minimal_tables, symlink_inode)
from tables import directory_table_end, read_id_table


def test_minimal_image(minimal_stream):
    image = read_image(minimal_stream)

    assert [i.inode_number for i in image.inodes] == [1, 2]
    root, regular = image.inodes
    assert root.type == INODE_TYPE.BASIC_DIR
    assert root.data.parent_inode == 1
    assert regular.type == INODE_TYPE.BASIC_FILE
    assert regular.size == 0

    [entry] = image.directory_entries
    assert entry.name == 'a'
    assert entry.inode_number == 2
    assert image.inode_by_number(entry.inode_number) is regular


@pytest.mark.parametrize('compress', [False, True], ids=['stored', 'compressed'])
def test_byte_order_and_compression_do_not_change_result(compress):
    little = read_image(io.BytesIO(minimal_image('<', compress=compress)))
    big = read_image(io.BytesIO(minimal_image('>', compress=compress)))

    def positionless(image):
        return [(i.inode_number, i.type, i.data) for i in image.inodes]

    assert positionless(little) == positionless(big)
    assert little.directory_entries == big.directory_entries


def test_parallel_read_matches(endian):
    data = minimal_image(endian, compress=True)
    assert read_image(io.BytesIO(data), max_workers=4) == read_image(io.BytesIO(data))


def test_root_inode_and_walk(minimal_stream):
    image = read_image(minimal_stream)

    assert image.root_inode.inode_number == 1
    assert [(path, inode.inode_number) for path, inode in image.walk()] == [('/', 1), ('/a', 2)]


def linked_image(endian, extra_entries=b'', count=2):
    """Root (inode 1) listing 'a' and 'b', both naming file inode 2."""
    e = endian
    listing = (dir_header(e, count, 0, 2) + dir_entry(e, b'a', 0, offset=32) +
               dir_entry(e, b'b', 0, offset=32) + extra_entries)
    inode_table = dir_inode(e, 1, 1, file_size=len(listing) + 3) + file_inode(e, 2, 0)
    return build_image(inode_table, listing, 2, endian=e)


def test_walk_yields_every_hard_link(endian):
    image = read_image(io.BytesIO(linked_image(endian)))

    walked = [(path, inode.inode_number) for path, inode in image.walk()]
    assert walked == [('/', 1), ('/a', 2), ('/b', 2)]
    assert [e.path for e in image.extract_files()] == ['/', '/a', '/b']


def test_walk_skips_directory_loops(endian):
    loop = dir_entry(endian, b'self', -1, INODE_TYPE.BASIC_DIR)
    image = read_image(io.BytesIO(linked_image(endian, loop, count=3)))

    assert [path for path, _ in image.walk()] == ['/', '/a', '/b']


def build_tree(endian='<', compress=False, chunk_size=8192):
    """
    /            inode 1
    /bin         inode 2 (dir)
    /bin/sh      inode 3 -> busybox (symlink)
    /bin/busybox inode 4 (file, 2 blocks + fragment)
    /etc         inode 5 (dir, empty)
    /README      inode 6 (file)
    """
    e = endian
    bin_listing = (dir_header(e, 2, 0, 3) + dir_entry(e, b'busybox', 1) +
                   dir_entry(e, b'sh', 0, INODE_TYPE.BASIC_SYMLINK))
    root_listing = (dir_header(e, 3, 0, 2) + dir_entry(e, b'README', 4) +
                    dir_entry(e, b'bin', 0, INODE_TYPE.BASIC_DIR) +
                    dir_entry(e, b'etc', 3, INODE_TYPE.BASIC_DIR))
    directory_table = bin_listing + root_listing

    inodes = [
        dir_inode(e, 2, 1, block_offset=0, file_size=len(bin_listing) + 3, uid_idx=1),
        symlink_inode(e, 3, b'busybox'),
        file_inode(e, 4, 2 * (1 << 17) + 100, block_sizes=[9000, 8000], fragment_index=0,
                   uid_idx=1, gid_idx=1),
        dir_inode(e, 5, 1, file_size=3),
        file_inode(e, 6, 12, block_sizes=[12], permissions=0o600),
    ]
    root = dir_inode(e, 1, 7, block_offset=len(bin_listing), file_size=len(root_listing) + 3)
    inode_table = b''.join(inodes) + root
    root_position = len(inode_table) - len(root)

    return build_image(inode_table, directory_table, 6, endian=e, compress=compress,
                       ids=(0, 1000), root_position=root_position, chunk_size=chunk_size)


@pytest.mark.parametrize('compress, chunk_size', [(False, 8192), (True, 8192), (True, 37)])
def test_walk_tree(endian, compress, chunk_size):
    image = read_image(io.BytesIO(build_tree(endian, compress, chunk_size)))

    paths = [(path, inode.inode_number) for path, inode in image.walk()]
    assert paths == [('/', 1), ('/README', 6), ('/bin', 2), ('/bin/busybox', 4),
                     ('/bin/sh', 3), ('/etc', 5)]
    assert len(image.directory_entries) == 5
    assert image.root_inode.data.parent_inode == 7


def test_id_lookup(endian):
    image = read_image(io.BytesIO(build_tree(endian)))

    assert image.ids == (0, 1000)
    busybox = image.inode_by_number(4)
    assert image.uid_of(busybox) == 1000
    assert image.gid_of(busybox) == 1000
    assert image.uid_of(image.root_inode) == 0


def test_extract_files():
    image = read_image(io.BytesIO(build_tree()))

    entries = {e.path: e for e in image.extract_files()}

    assert entries['/'].type == 'directory'
    assert entries['/'].name == '/'
    assert entries['/bin'].uid == 1000
    assert entries['/bin/sh'].symlink_target == 'busybox'
    assert entries['/bin/sh'].mode_str == 'lrwxrwxrwx'
    assert entries['/bin/busybox'].block_count == 2
    assert entries['/bin/busybox'].fragment_index == 0
    assert entries['/README'].fragment_index is None
    assert entries['/README'].mode_str == '-rw-------'
    assert entries['/etc'].parent_inode == 1


def test_list_directory_rejects_files():
    image = read_image(io.BytesIO(build_tree()))
    with pytest.raises(ValueError):
        image.list_directory(image.inode_by_number(6))


def test_missing_inode_number():
    image = read_image(io.BytesIO(build_tree()))
    with pytest.raises(CorruptReference):
        image.inode_by_number(42)


def test_open_image(tmp_path):
    path = tmp_path / 'tiny.sqsh'
    path.write_bytes(minimal_image('<', compress=True))

    image = open_image(str(path))

    assert image.superblock.inode_count == 2
    assert [e.name for e in image.directory_entries] == ['a']


def test_unknown_inode_type_fails_whole_read(endian):
    e = endian
    inode_table = dir_inode(e, 1, 1) + inode_header(e, 0, 2) + b'\x00' * 16
    listing = dir_header(e, 1, 0, 2) + dir_entry(e, b'a', 0)
    data = build_image(inode_table, listing, 2, endian=e)

    with pytest.raises(UnknownInodeType) as exc:
        read_image(io.BytesIO(data))
    assert exc.value.inode_type == 0


def test_compressed_image_without_codec(monkeypatch):
    monkeypatch.delitem(compression.DECOMPRESSORS, COMPRESSION.GZIP)

    with pytest.raises(UnsupportedCompression):
        read_image(io.BytesIO(minimal_image('<', compress=True)))


def test_truncated_image():
    data = minimal_image('<')
    with pytest.raises(TruncatedInput):
        read_image(io.BytesIO(data[:110]))


def test_wrong_inode_count():
    inode_table, listing = minimal_tables('<')
    data = build_image(inode_table, listing, 3)

    with pytest.raises(SquashfsError):
        read_image(io.BytesIO(data))


def test_id_table_without_ids():
    data = minimal_image('<')
    image = read_image(io.BytesIO(data))
    sb = image.superblock
    assert read_id_table(io.BytesIO(data), sb) == [0]

    inode_table, listing = minimal_tables('<')
    image = read_image(io.BytesIO(build_image(inode_table, listing, 2, ids=())))
    assert image.ids == ()
    [entry] = image.extract_files()[1:]
    assert entry.uid == 0


def test_directory_table_stops_at_fragment_blocks(endian):
    inode_table, listing = minimal_tables(endian)
    base = build_image(inode_table, listing, 2, endian=endian, ids=())
    fragment_block_start = len(base)
    # One stored fragment metadata block followed by the fragment index
    fragment_block = struct.pack(endian + 'H', 0x8010) + b'\x00' * 16
    index_start = fragment_block_start + len(fragment_block)
    data = (base + fragment_block + struct.pack(endian + 'Q', fragment_block_start))
    data = bytearray(data)
    sb_patch = build_image(inode_table, listing, 2, endian=endian, ids=(),
                           fragment_entry_count=1, fragment_table_start=index_start)[:96]
    data[:96] = sb_patch

    image = read_image(io.BytesIO(bytes(data)))

    assert directory_table_end(io.BytesIO(bytes(data)), image.superblock) == fragment_block_start
    assert [e.name for e in image.directory_entries] == ['a']


def test_image_without_streams(minimal_stream):
    image = read_image(minimal_stream)
    bare = dataclasses.replace(image, inode_stream=None, directory_stream=None)

    with pytest.raises(ValueError):
        bare.root_inode
    with pytest.raises(ValueError):
        bare.list_directory(image.root_inode)
    assert bare.inode_by_number(2) == image.inode_by_number(2)
