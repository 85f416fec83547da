"""
SquashFS Constants - Magic numbers, sizes, and type enums.
"""
import stat

# Superblock constants
SUPERBLOCK_OFFSET = 0
SUPERBLOCK_SIZE = 96
SQUASHFS_MAGIC = 0x73717368       # "hsqs" on little-endian images
SUPPORTED_VERSION_MAJOR = 4

# Metadata block constants
METADATA_BLOCK_SIZE = 8192         # logical (uncompressed) size of a full block
METADATA_HEADER_SIZE = 2
METADATA_UNCOMPRESSED = 0x8000     # set when the payload is stored
METADATA_LENGTH_MASK = 0x7FFF

INVALID_FRAGMENT = 0xFFFFFFFF
INVALID_TABLE = 0xFFFFFFFFFFFFFFFF

# Record limits
DIR_HEADER_MAX_ENTRIES = 256
ID_ENTRY_SIZE = 4


class COMPRESSION:
    """Compression algorithm ids (superblock compression_id)."""
    GZIP = 1
    LZMA = 2
    LZO = 3
    XZ = 4
    LZ4 = 5
    ZSTD = 6


COMPRESSION_NAMES = {
    1: 'gzip',
    2: 'lzma',
    3: 'lzo',
    4: 'xz',
    5: 'lz4',
    6: 'zstd',
}


class INODE_TYPE:
    """Inode type ids (inode header type field)."""
    BASIC_DIR = 1
    BASIC_FILE = 2
    BASIC_SYMLINK = 3
    BASIC_BLOCK_DEV = 4
    BASIC_CHAR_DEV = 5
    BASIC_FIFO = 6
    BASIC_SOCKET = 7
    EXT_DIR = 8
    EXT_FILE = 9
    EXT_SYMLINK = 10
    EXT_BLOCK_DEV = 11
    EXT_CHAR_DEV = 12
    EXT_FIFO = 13
    EXT_SOCKET = 14


INODE_TYPE_NAMES = {
    1: 'directory',
    2: 'file',
    3: 'symlink',
    4: 'blkdev',
    5: 'chrdev',
    6: 'fifo',
    7: 'socket',
    8: 'ext_directory',
    9: 'ext_file',
    10: 'ext_symlink',
    11: 'ext_blkdev',
    12: 'ext_chrdev',
    13: 'ext_fifo',
    14: 'ext_socket',
}


class SB_FLAGS:
    """Superblock flags."""
    UNCOMPRESSED_INODES = 1 << 0
    UNCOMPRESSED_DATA = 1 << 1
    CHECK = 1 << 2
    UNCOMPRESSED_FRAGMENTS = 1 << 3
    NO_FRAGMENTS = 1 << 4
    ALWAYS_FRAGMENTS = 1 << 5
    DUPLICATES = 1 << 6
    EXPORTABLE = 1 << 7
    UNCOMPRESSED_XATTRS = 1 << 8
    NO_XATTRS = 1 << 9
    COMPRESSOR_OPTIONS = 1 << 10
    UNCOMPRESSED_IDS = 1 << 11


_SB_FLAG_NAMES = [
    (SB_FLAGS.UNCOMPRESSED_INODES, 'UNCOMPRESSED_INODES'),
    (SB_FLAGS.UNCOMPRESSED_DATA, 'UNCOMPRESSED_DATA'),
    (SB_FLAGS.CHECK, 'CHECK'),
    (SB_FLAGS.UNCOMPRESSED_FRAGMENTS, 'UNCOMPRESSED_FRAGMENTS'),
    (SB_FLAGS.NO_FRAGMENTS, 'NO_FRAGMENTS'),
    (SB_FLAGS.ALWAYS_FRAGMENTS, 'ALWAYS_FRAGMENTS'),
    (SB_FLAGS.DUPLICATES, 'DUPLICATES'),
    (SB_FLAGS.EXPORTABLE, 'EXPORTABLE'),
    (SB_FLAGS.UNCOMPRESSED_XATTRS, 'UNCOMPRESSED_XATTRS'),
    (SB_FLAGS.NO_XATTRS, 'NO_XATTRS'),
    (SB_FLAGS.COMPRESSOR_OPTIONS, 'COMPRESSOR_OPTIONS'),
    (SB_FLAGS.UNCOMPRESSED_IDS, 'UNCOMPRESSED_IDS'),
]


def parse_sb_flags(flags: int) -> str:
    """Convert superblock flags to comma-separated string."""
    return ','.join(name for bit, name in _SB_FLAG_NAMES if flags & bit)


_TYPE_CHARS = {
    INODE_TYPE.BASIC_DIR: 'd', INODE_TYPE.EXT_DIR: 'd',
    INODE_TYPE.BASIC_FILE: '-', INODE_TYPE.EXT_FILE: '-',
    INODE_TYPE.BASIC_SYMLINK: 'l', INODE_TYPE.EXT_SYMLINK: 'l',
    INODE_TYPE.BASIC_BLOCK_DEV: 'b', INODE_TYPE.EXT_BLOCK_DEV: 'b',
    INODE_TYPE.BASIC_CHAR_DEV: 'c', INODE_TYPE.EXT_CHAR_DEV: 'c',
    INODE_TYPE.BASIC_FIFO: 'p', INODE_TYPE.EXT_FIFO: 'p',
    INODE_TYPE.BASIC_SOCKET: 's', INODE_TYPE.EXT_SOCKET: 's',
}


def parse_mode(inode_type: int, permissions: int) -> str:
    """Convert inode type and permission bits to a string like 'drwxr-xr-x'.

    SquashFS keeps the file type in the inode type id, not in the
    permission field, so both are needed.
    """
    file_type = _TYPE_CHARS.get(inode_type, '?')

    perms = ''
    for who in [(stat.S_IRUSR, stat.S_IWUSR, stat.S_IXUSR),
                (stat.S_IRGRP, stat.S_IWGRP, stat.S_IXGRP),
                (stat.S_IROTH, stat.S_IWOTH, stat.S_IXOTH)]:
        perms += 'r' if permissions & who[0] else '-'
        perms += 'w' if permissions & who[1] else '-'
        perms += 'x' if permissions & who[2] else '-'
    return file_type + perms
