"""
SquashFS Lookup Tables - uid/gid id table.
"""
import logging
import math
import struct
from typing import BinaryIO, List

from constants import ID_ENTRY_SIZE, INVALID_TABLE, METADATA_BLOCK_SIZE
from errors import TruncatedInput
from metadata import read_exactly, read_metadata_block
from structures import Reader, Superblock

logger = logging.getLogger(__name__)

IDS_PER_BLOCK = METADATA_BLOCK_SIZE // ID_ENTRY_SIZE


def read_id_table(f: BinaryIO, sb: Superblock) -> List[int]:
    """
    Read the id table that uid_idx / gid_idx index into.

    Layout: at id_table_start an array of 64-bit block pointers, one per
    IDS_PER_BLOCK ids; each pointer addresses a metadata block of u32 ids.
    """
    if sb.id_count == 0 or sb.id_table_start == INVALID_TABLE:
        return []

    config = sb.config
    num_blocks = math.ceil(sb.id_count / IDS_PER_BLOCK)
    raw = read_exactly(f, sb.id_table_start, num_blocks * 8, 'id table pointers')
    pointers = struct.unpack(f'{sb.endian}{num_blocks}Q', raw)

    ids = []
    for pointer in pointers:
        payload, _ = read_metadata_block(f, pointer, config)
        wanted = min(sb.id_count - len(ids), IDS_PER_BLOCK)
        if wanted * ID_ENTRY_SIZE > len(payload):
            raise TruncatedInput(wanted * ID_ENTRY_SIZE, len(payload), pointer, 'id table block')
        ids.extend(Reader(payload, config.endian).u32_array(wanted, 'id table block'))

    logger.debug("Read %d ids from %d block(s)", len(ids), num_blocks)
    return ids


def directory_table_end(f: BinaryIO, sb: Superblock) -> int:
    """
    End of the directory table region.

    fragment_table_start addresses the fragment index, which follows the
    fragment metadata blocks. When fragments exist the directory table
    ends where the first of those blocks starts.
    """
    end = sb.fragment_table_start
    if sb.fragment_entry_count == 0 or end == INVALID_TABLE:
        return end

    raw = read_exactly(f, end, 8, 'fragment table pointer')
    first_block = struct.unpack(sb.endian + 'Q', raw)[0]
    if sb.directory_table_start <= first_block < end:
        logger.debug("Directory table ends at first fragment block 0x%x", first_block)
        return first_block
    return end
