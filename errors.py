"""
SquashFS Errors - Exception taxonomy raised while decoding an image.

Every error aborts the whole read. All classes derive from ValueError so
callers catching ValueError around a parse keep working.
"""
from typing import Optional

from constants import COMPRESSION_NAMES, INODE_TYPE_NAMES


class SquashfsError(ValueError):
    """
    Base class for all decoding errors
    """
    pass


class TruncatedInput(SquashfsError):
    """
    Raised, when fewer bytes are available than a decoded length demands
    """
    def __init__(self, expected: int, actual: int, offset: Optional[int] = None,
                 what: str = 'data'):
        self.expected = expected
        self.actual = actual
        self.offset = offset
        self.what = what
        where = f" at offset 0x{offset:x}" if offset is not None else ''
        super().__init__(f"Truncated {what}{where}: got {actual} bytes, expected {expected}")


class InvalidMagic(SquashfsError):
    """
    Raised, when neither byte order yields the SquashFS signature
    """
    def __init__(self, magic_le: int, magic_be: int):
        self.magic_le = magic_le
        self.magic_be = magic_be
        super().__init__(
            f"Invalid SquashFS magic: 0x{magic_le:08x} (little-endian), "
            f"0x{magic_be:08x} (big-endian)"
        )


class UnsupportedVersion(SquashfsError):
    """
    Raised, when the superblock major version is not supported
    """
    def __init__(self, major: int, minor: int):
        self.major = major
        self.minor = minor
        super().__init__(f"Unsupported SquashFS version {major}.{minor}")


class UnsupportedCompression(SquashfsError):
    """
    Raised, when a compression id is unknown or has no registered decompressor
    """
    def __init__(self, compression_id: int):
        self.compression_id = compression_id
        name = COMPRESSION_NAMES.get(compression_id, 'unknown')
        super().__init__(f"Unsupported compression id {compression_id} ({name})")


class DecompressionError(SquashfsError):
    """
    Raised, when a registered decompressor rejects a block
    """
    pass


class UnknownInodeType(SquashfsError):
    """
    Raised, when an inode type id is outside the recognized set
    """
    def __init__(self, inode_type: int, position: Optional[int] = None):
        self.inode_type = inode_type
        self.position = position
        super().__init__(self._message())

    def _message(self) -> str:
        where = f" at logical offset {self.position}" if self.position is not None else ''
        return f"Unknown inode type {self.inode_type}{where}"


class UnsupportedInodeType(UnknownInodeType):
    """
    Raised, when an inode type is recognized but its layout is not decoded
    """
    def _message(self) -> str:
        name = INODE_TYPE_NAMES.get(self.inode_type, 'unknown')
        where = f" at logical offset {self.position}" if self.position is not None else ''
        return f"Inode type {self.inode_type} ({name}) is not supported{where}"


class CorruptSuperblock(SquashfsError):
    """
    Raised, when superblock fields contradict each other
    """
    pass


class CorruptDirectory(SquashfsError):
    """
    Raised, when a directory header is out of range
    """
    pass


class CorruptReference(SquashfsError):
    """
    Raised, when a metadata reference points outside its table
    """
    pass
