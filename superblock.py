"""
SquashFS Superblock Parser - Read and validate superblock from image file.
"""
import logging
import struct
from typing import BinaryIO

from constants import (COMPRESSION_NAMES, INVALID_TABLE, SQUASHFS_MAGIC, SUPERBLOCK_OFFSET,
                       SUPERBLOCK_SIZE, SUPPORTED_VERSION_MAJOR)
from errors import (CorruptSuperblock, InvalidMagic, TruncatedInput,
                    UnsupportedCompression, UnsupportedVersion)
from structures import Superblock

logger = logging.getLogger(__name__)


def detect_endian(data: bytes) -> str:
    """
    Determine the image byte order from the magic value.

    Returns:
        '<' for little-endian images, '>' for big-endian images
    """
    if len(data) < 4:
        raise TruncatedInput(4, len(data), SUPERBLOCK_OFFSET, 'superblock magic')

    magic_le = struct.unpack_from('<I', data, 0)[0]
    if magic_le == SQUASHFS_MAGIC:
        return '<'
    magic_be = struct.unpack_from('>I', data, 0)[0]
    if magic_be == SQUASHFS_MAGIC:
        return '>'
    raise InvalidMagic(magic_le, magic_be)


def parse_superblock(data: bytes) -> Superblock:
    """Decode and validate a 96-byte superblock."""
    if len(data) < SUPERBLOCK_SIZE:
        raise TruncatedInput(SUPERBLOCK_SIZE, len(data), SUPERBLOCK_OFFSET, 'superblock')

    endian = detect_endian(data)
    sb = Superblock.unpack(data, endian)

    if sb.version_major != SUPPORTED_VERSION_MAJOR:
        raise UnsupportedVersion(sb.version_major, sb.version_minor)

    if sb.compression_id not in COMPRESSION_NAMES:
        raise UnsupportedCompression(sb.compression_id)

    if sb.block_log >= 32 or sb.block_size != 1 << sb.block_log:
        raise CorruptSuperblock(
            f"Block size {sb.block_size} does not match block log {sb.block_log}")

    return sb


def read_superblock(f: BinaryIO) -> Superblock:
    """
    Read and parse superblock from an open image.

    Args:
        f: Seekable binary stream positioned anywhere
    """
    f.seek(SUPERBLOCK_OFFSET)
    data = f.read(SUPERBLOCK_SIZE)

    sb = parse_superblock(data)
    logger.info("Superblock parsed: %s-endian, version %d.%d, %s, block size %d, %d inodes",
                sb.byte_order, sb.version_major, sb.version_minor,
                sb.compression_name, sb.block_size, sb.inode_count)
    return sb


def format_table_offset(offset: int) -> str:
    if offset == INVALID_TABLE:
        return '(none)'
    return f"0x{offset:x}"


def print_superblock_info(sb: Superblock):
    """Display superblock information."""
    print("=== SquashFS Superblock ===")
    print(f"Version:         {sb.version_major}.{sb.version_minor}")
    print(f"Byte order:      {sb.byte_order}")
    print(f"Compression:     {sb.compression_name} ({sb.compression_id})")
    print(f"Block size:      {sb.block_size} (log {sb.block_log})")
    print(f"Flags:           {sb.flags_str or '(none)'} (0x{sb.flags:04x})")
    print(f"Inodes:          {sb.inode_count}")
    print(f"Ids:             {sb.id_count}")
    print(f"Fragments:       {sb.fragment_entry_count}")
    print(f"Modified:        {sb.to_datetime().isoformat()}")
    print(f"Bytes used:      {sb.bytes_used:,} ({sb.bytes_used / 1024**2:.2f} MiB)")
    print(f"Root inode:      block 0x{sb.root_inode_block:x}, offset {sb.root_inode_offset}")
    print(f"Id table:        {format_table_offset(sb.id_table_start)}")
    print(f"Xattr id table:  {format_table_offset(sb.xattr_id_table_start)}")
    print(f"Inode table:     {format_table_offset(sb.inode_table_start)}")
    print(f"Directory table: {format_table_offset(sb.directory_table_start)}")
    print(f"Fragment table:  {format_table_offset(sb.fragment_table_start)}")
    print(f"Export table:    {format_table_offset(sb.export_table_start)}")
