"""
SquashFS Inode Table - Decode the logical inode table stream.
"""
import logging
from typing import Callable, Dict, List, Union

from constants import INODE_TYPE, INODE_TYPE_NAMES
from errors import UnknownInodeType, UnsupportedInodeType
from metadata import MetadataStream
from structures import (DecoderConfig, DirectoryInodeData, FileInodeData, Inode,
                        InodeData, InodeHeader, Reader, SymlinkInodeData)

logger = logging.getLogger(__name__)

# Type id -> payload decoder. Types missing here are either unknown or
# recognized without a decoder; both abort the table since the next inode
# can only be found by consuming this one exactly.
INODE_DECODERS: Dict[int, Callable[[Reader, DecoderConfig], InodeData]] = {
    INODE_TYPE.BASIC_DIR: DirectoryInodeData.unpack,
    INODE_TYPE.BASIC_FILE: FileInodeData.unpack,
    INODE_TYPE.BASIC_SYMLINK: SymlinkInodeData.unpack,
}


def decode_inode(reader: Reader, config: DecoderConfig) -> Inode:
    """Decode one inode at the reader's position and advance past it."""
    position = reader.pos
    header = InodeHeader.unpack(reader)

    decoder = INODE_DECODERS.get(header.type)
    if decoder is None:
        if header.type in INODE_TYPE_NAMES:
            raise UnsupportedInodeType(header.type, position)
        raise UnknownInodeType(header.type, position)

    data = decoder(reader, config)
    return Inode(
        type=header.type,
        permissions=header.permissions,
        uid_idx=header.uid_idx,
        gid_idx=header.gid_idx,
        mtime=header.mtime,
        inode_number=header.inode_number,
        position=position,
        data=data,
    )


def decode_inode_table(stream: Union[MetadataStream, bytes], inode_count: int,
                       config: DecoderConfig) -> List[Inode]:
    """
    Decode exactly inode_count inodes from the start of the stream.

    Returns inodes in table order (not sorted by inode number).
    """
    data = stream.data if isinstance(stream, MetadataStream) else stream
    reader = Reader(data, config.endian)

    inodes = []
    for _ in range(inode_count):
        inodes.append(decode_inode(reader, config))

    if reader.remaining:
        logger.debug("Inode table: %d trailing bytes after %d inodes",
                     reader.remaining, inode_count)
    logger.debug("Decoded %d inodes", len(inodes))
    return inodes
