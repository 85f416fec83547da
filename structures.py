"""
SquashFS Data Structures - Dataclass definitions for parsing binary data.

Every multi-byte field is read with the byte order detected from the
superblock magic, passed around as a struct prefix ('<' or '>').
"""
import math
import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from constants import (COMPRESSION_NAMES, INODE_TYPE, INODE_TYPE_NAMES,
                       INVALID_FRAGMENT, parse_mode, parse_sb_flags)
from errors import TruncatedInput

# Structure size constants
SQUASHFS_SUPERBLOCK_FORMAT = 'IIIIIHHHHHHQQQQQQQQ'   # 96 bytes
SQUASHFS_INODE_HEADER_FORMAT = 'HHHHII'              # 16 bytes
SQUASHFS_DIR_INODE_FORMAT = 'IIHHI'                  # 16 bytes
SQUASHFS_FILE_INODE_FORMAT = 'IIII'                  # 16 bytes + block list
SQUASHFS_SYMLINK_INODE_FORMAT = 'II'                 # 8 bytes + target
SQUASHFS_DIR_HEADER_FORMAT = 'III'                   # 12 bytes
SQUASHFS_DIR_ENTRY_FORMAT = 'HhHH'                   # 8 bytes + name


def byte_order_name(endian: str) -> str:
    return 'little' if endian == '<' else 'big'


class Reader:
    """Bounds-checked cursor over a logical byte stream.

    Every read checks the remaining length first and raises TruncatedInput,
    so a corrupted length field can never slice past the end of the data.
    """

    def __init__(self, data: bytes, endian: str, pos: int = 0, end: Optional[int] = None):
        self.data = data
        self.endian = endian
        self.pos = pos
        self.end = len(data) if end is None else min(end, len(data))

    @property
    def remaining(self) -> int:
        return self.end - self.pos

    def take(self, size: int, what: str = 'data') -> bytes:
        """Read exactly size bytes."""
        if size < 0 or size > self.remaining:
            raise TruncatedInput(size, max(self.remaining, 0), self.pos, what)
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def unpack(self, fmt: str, what: str = 'record') -> tuple:
        """Read a fixed-size struct (without byte-order prefix)."""
        fmt = self.endian + fmt
        size = struct.calcsize(fmt)
        if size > self.remaining:
            raise TruncatedInput(size, max(self.remaining, 0), self.pos, what)
        values = struct.unpack_from(fmt, self.data, self.pos)
        self.pos += size
        return values

    def u32_array(self, count: int, what: str = 'u32 array') -> Tuple[int, ...]:
        """Read count 32-bit values; length is checked before the format is built."""
        if count == 0:
            return ()
        if count * 4 > self.remaining:
            raise TruncatedInput(count * 4, max(self.remaining, 0), self.pos, what)
        return self.unpack(f'{count}I', what)

    def text(self, size: int, what: str = 'name') -> str:
        return self.take(size, what).decode('utf-8', errors='surrogateescape')


@dataclass(frozen=True)
class DecoderConfig:
    """Read-only decoder parameters derived from the superblock."""
    endian: str               # '<' or '>'
    block_size: int
    compression_id: int


@dataclass(frozen=True)
class Superblock:
    """96 bytes - filesystem superblock."""
    endian: str
    magic: int
    inode_count: int
    modification_time: int
    block_size: int
    fragment_entry_count: int
    compression_id: int
    block_log: int
    flags: int
    id_count: int
    version_major: int
    version_minor: int
    root_inode_ref: int
    bytes_used: int
    id_table_start: int
    xattr_id_table_start: int
    inode_table_start: int
    directory_table_start: int
    fragment_table_start: int
    export_table_start: int

    @classmethod
    def unpack(cls, data: bytes, endian: str) -> 'Superblock':
        return cls(endian, *struct.unpack_from(endian + SQUASHFS_SUPERBLOCK_FORMAT, data, 0))

    @property
    def byte_order(self) -> str:
        return byte_order_name(self.endian)

    @property
    def root_inode_block(self) -> int:
        """Start of the root inode's metadata block, relative to the inode table."""
        return self.root_inode_ref >> 16

    @property
    def root_inode_offset(self) -> int:
        return self.root_inode_ref & 0xFFFF

    @property
    def compression_name(self) -> str:
        return COMPRESSION_NAMES.get(self.compression_id, 'unknown')

    @property
    def flags_str(self) -> str:
        return parse_sb_flags(self.flags)

    @property
    def config(self) -> DecoderConfig:
        return DecoderConfig(self.endian, self.block_size, self.compression_id)

    def to_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.modification_time, tz=timezone.utc)


@dataclass(frozen=True)
class InodeHeader:
    """16 bytes - common to every inode type."""
    type: int
    permissions: int
    uid_idx: int
    gid_idx: int
    mtime: int
    inode_number: int

    @classmethod
    def unpack(cls, reader: Reader) -> 'InodeHeader':
        return cls(*reader.unpack(SQUASHFS_INODE_HEADER_FORMAT, 'inode header'))


@dataclass(frozen=True)
class DirectoryInodeData:
    """16 bytes - basic directory."""
    block_index: int      # 4 - listing block, relative to the directory table
    link_count: int       # 4
    file_size: int        # 2 - listing size + 3
    block_offset: int     # 2 - listing offset in the uncompressed block
    parent_inode: int     # 4

    @classmethod
    def unpack(cls, reader: Reader, config: DecoderConfig) -> 'DirectoryInodeData':
        return cls(*reader.unpack(SQUASHFS_DIR_INODE_FORMAT, 'directory inode'))


def file_block_count(file_size: int, block_size: int, fragment_index: int) -> int:
    """Number of entries in a basic file inode's block-size list.

    A tail smaller than block_size lives in a fragment whenever the inode
    names one, so only whole blocks are listed in that case.
    """
    if fragment_index == INVALID_FRAGMENT:
        return math.ceil(file_size / block_size)
    return file_size // block_size


@dataclass(frozen=True)
class FileInodeData:
    """16 bytes + 4 per data block - basic file."""
    blocks_start: int
    fragment_index: int
    fragment_offset: int
    file_size: int
    block_sizes: Tuple[int, ...]

    @classmethod
    def unpack(cls, reader: Reader, config: DecoderConfig) -> 'FileInodeData':
        blocks_start, fragment_index, fragment_offset, file_size = reader.unpack(
            SQUASHFS_FILE_INODE_FORMAT, 'file inode')
        count = file_block_count(file_size, config.block_size, fragment_index)
        block_sizes = reader.u32_array(count, 'file block list')
        return cls(blocks_start, fragment_index, fragment_offset, file_size, block_sizes)

    @property
    def has_fragment(self) -> bool:
        return self.fragment_index != INVALID_FRAGMENT


@dataclass(frozen=True)
class SymlinkInodeData:
    """8 bytes + target - basic symlink."""
    link_count: int
    target_size: int
    target: str

    @classmethod
    def unpack(cls, reader: Reader, config: DecoderConfig) -> 'SymlinkInodeData':
        link_count, target_size = reader.unpack(SQUASHFS_SYMLINK_INODE_FORMAT, 'symlink inode')
        target = reader.text(target_size, 'symlink target')
        return cls(link_count, target_size, target)


InodeData = Union[DirectoryInodeData, FileInodeData, SymlinkInodeData]


@dataclass(frozen=True)
class Inode:
    """Decoded inode: common header fields plus the type-specific payload."""
    type: int
    permissions: int
    uid_idx: int
    gid_idx: int
    mtime: int
    inode_number: int
    position: int         # logical offset in the inode table stream
    data: InodeData

    @property
    def type_name(self) -> str:
        return INODE_TYPE_NAMES.get(self.type, 'unknown')

    @property
    def mode_str(self) -> str:
        return parse_mode(self.type, self.permissions)

    @property
    def size(self) -> int:
        if self.type == INODE_TYPE.BASIC_FILE:
            return self.data.file_size
        if self.type == INODE_TYPE.BASIC_SYMLINK:
            return self.data.target_size
        if self.type == INODE_TYPE.BASIC_DIR:
            return self.data.file_size
        raise ValueError(f"No size for inode type {self.type}")

    @property
    def parent_inode(self) -> Optional[int]:
        return self.data.parent_inode if self.type == INODE_TYPE.BASIC_DIR else None

    def to_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.mtime, tz=timezone.utc)


@dataclass(frozen=True)
class DirectoryHeader:
    """12 bytes - starts a run of entries sharing one inode block."""
    count: int            # entries - 1
    start: int            # inode table block of these entries
    inode_number: int     # base for entry deltas

    @classmethod
    def unpack(cls, reader: Reader) -> 'DirectoryHeader':
        return cls(*reader.unpack(SQUASHFS_DIR_HEADER_FORMAT, 'directory header'))

    @property
    def entry_count(self) -> int:
        return self.count + 1


@dataclass(frozen=True)
class DirectoryEntry:
    """8 bytes + name - one name in a directory listing."""
    offset: int           # inode offset inside the header's inode block
    inode_delta: int      # signed, relative to the header's inode_number
    type: int
    name_size: int        # name length - 1
    name: str
    inode_number: int
    inode_block: int
    listing_position: int

    @classmethod
    def unpack(cls, reader: Reader, header: DirectoryHeader,
               listing_position: int) -> 'DirectoryEntry':
        offset, inode_delta, type_, name_size = reader.unpack(
            SQUASHFS_DIR_ENTRY_FORMAT, 'directory entry')
        name = reader.text(name_size + 1, 'directory entry name')
        return cls(
            offset=offset,
            inode_delta=inode_delta,
            type=type_,
            name_size=name_size,
            name=name,
            inode_number=header.inode_number + inode_delta,
            inode_block=header.start,
            listing_position=listing_position,
        )

    @property
    def inode_ref(self) -> int:
        return (self.inode_block << 16) | self.offset

    @property
    def type_name(self) -> str:
        return INODE_TYPE_NAMES.get(self.type, 'unknown')
