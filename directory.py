"""
SquashFS Directory Table - Decode directory listings.

A listing is a series of headers, each followed by count + 1 entries:

    header: count(4) + start(4) + inode_number(4)
    entry:  offset(2) + inode_delta(2, signed) + type(2) + name_size(2) + name
"""
import logging
from typing import List, Union

from constants import DIR_HEADER_MAX_ENTRIES
from errors import CorruptDirectory, CorruptReference
from metadata import MetadataStream
from structures import DecoderConfig, DirectoryEntry, DirectoryHeader, Reader

logger = logging.getLogger(__name__)

# A directory inode's file_size counts 3 bytes more than its listing
DIR_SIZE_BIAS = 3


def _decode_listing(reader: Reader, end: int) -> List[DirectoryEntry]:
    """Decode header runs until the reader reaches end."""
    entries = []
    while reader.pos < end:
        listing_position = reader.pos
        header = DirectoryHeader.unpack(reader)
        if header.count >= DIR_HEADER_MAX_ENTRIES:
            raise CorruptDirectory(
                f"Directory header at {listing_position} claims {header.entry_count} entries "
                f"(max {DIR_HEADER_MAX_ENTRIES})")

        for _ in range(header.entry_count):
            entries.append(DirectoryEntry.unpack(reader, header, listing_position))
    return entries


def decode_directory_table(stream: Union[MetadataStream, bytes],
                           config: DecoderConfig) -> List[DirectoryEntry]:
    """
    Decode every listing in the directory table stream.

    Entries are flattened in table order; each carries its resolved inode
    number but no link back to its header.
    """
    data = stream.data if isinstance(stream, MetadataStream) else stream
    reader = Reader(data, config.endian)
    entries = _decode_listing(reader, len(data))
    logger.debug("Decoded %d directory entries", len(entries))
    return entries


def decode_directory_listing(stream: MetadataStream, block_index: int, block_offset: int,
                             file_size: int, config: DecoderConfig) -> List[DirectoryEntry]:
    """
    Decode the listing of one directory inode.

    Args:
        stream: Directory table stream
        block_index: Listing block, relative to the directory table start
        block_offset: Offset inside the uncompressed block
        file_size: Directory inode file_size (listing size + 3)
    """
    size = file_size - DIR_SIZE_BIAS
    if size <= 0:
        return []

    start = stream.logical_offset(block_index, block_offset)
    end = start + size
    if end > len(stream):
        raise CorruptReference(
            f"Directory listing [{start}, {end}) exceeds table stream of {len(stream)} bytes")

    # Bound the reader to the listing so a corrupt count cannot run past it
    reader = Reader(stream.data, config.endian, start, end)
    return _decode_listing(reader, end)
