"""
SquashFS Metadata Reader - Reassemble block-framed metadata regions.

A metadata region is a run of self-framed blocks:

    [u16 header][payload][u16 header][payload]...

The top bit of the header marks a stored (uncompressed) payload, the low
15 bits give the on-disk payload length. Decompressed payloads concatenate
into one logical stream whose offsets differ from the image offsets.
"""
import logging
import struct
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, Tuple

from compression import decompress
from constants import (METADATA_BLOCK_SIZE, METADATA_HEADER_SIZE,
                       METADATA_LENGTH_MASK, METADATA_UNCOMPRESSED)
from errors import CorruptReference, DecompressionError, TruncatedInput
from structures import DecoderConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataStream:
    """Logical stream of one metadata region."""
    data: bytes
    # {block start relative to region start: logical offset of its payload}
    block_offsets: Dict[int, int] = field(default_factory=dict)

    def __len__(self):
        return len(self.data)

    def logical_offset(self, block: int, offset: int) -> int:
        """
        Convert a (block, offset) metadata reference to a logical offset.

        Args:
            block: Block start relative to the region start
            offset: Offset inside the uncompressed block
        """
        if block not in self.block_offsets:
            raise CorruptReference(f"No metadata block starts at relative offset 0x{block:x}")
        position = self.block_offsets[block] + offset
        if position > len(self.data):
            raise CorruptReference(
                f"Reference ({block:#x}, {offset}) points past the end of the stream")
        return position


def read_exactly(f: BinaryIO, offset: int, size: int, what: str = 'data') -> bytes:
    """Seek to offset and read exactly size bytes."""
    f.seek(offset)
    data = f.read(size)
    if len(data) != size:
        raise TruncatedInput(size, len(data), offset, what)
    return data


def read_block_header(f: BinaryIO, offset: int, config: DecoderConfig) -> Tuple[bool, int]:
    """Return (stored, payload_size) for the metadata block at offset."""
    raw = read_exactly(f, offset, METADATA_HEADER_SIZE, 'metadata block header')
    header = struct.unpack(config.endian + 'H', raw)[0]
    return bool(header & METADATA_UNCOMPRESSED), header & METADATA_LENGTH_MASK


def _payload(stored: bool, raw: bytes, config: DecoderConfig) -> bytes:
    if stored and len(raw) > METADATA_BLOCK_SIZE:
        raise DecompressionError(
            f"Stored metadata block of {len(raw)} bytes exceeds {METADATA_BLOCK_SIZE}")
    return raw if stored else decompress(config.compression_id, raw, METADATA_BLOCK_SIZE)


def read_metadata_block(f: BinaryIO, offset: int,
                        config: DecoderConfig) -> Tuple[bytes, int]:
    """
    Read one metadata block.

    Returns:
        (payload, on_disk_size) where on_disk_size includes the 2-byte header
    """
    stored, size = read_block_header(f, offset, config)
    raw = read_exactly(f, offset + METADATA_HEADER_SIZE, size, 'metadata block')
    payload = _payload(stored, raw, config)
    return payload, METADATA_HEADER_SIZE + size


def _scan_region(f: BinaryIO, start: int, end: int,
                 config: DecoderConfig) -> List[Tuple[int, bool, bytes]]:
    """Sequential prefix scan: [(relative_start, stored, raw_payload), ...]."""
    blocks = []
    cursor = start
    while cursor < end:
        stored, size = read_block_header(f, cursor, config)
        raw = read_exactly(f, cursor + METADATA_HEADER_SIZE, size, 'metadata block')
        blocks.append((cursor - start, stored, raw))
        cursor += METADATA_HEADER_SIZE + size
    return blocks


def read_metadata_region(f: BinaryIO, start: int, end: int, config: DecoderConfig,
                         max_workers: Optional[int] = None) -> MetadataStream:
    """
    Reassemble the logical stream for the image range [start, end).

    Blocks are read until the cursor reaches or passes end. With
    max_workers > 1 the block lengths are still discovered sequentially,
    then compressed payloads are inflated on a thread pool and reassembled
    in their original order.
    """
    if end < start:
        raise CorruptReference(f"Region end 0x{end:x} lies before its start 0x{start:x}")

    blocks = _scan_region(f, start, end, config)

    def inflate(block: Tuple[int, bool, bytes]) -> bytes:
        _, stored, raw = block
        return _payload(stored, raw, config)

    if max_workers and max_workers > 1 and len(blocks) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            payloads = list(pool.map(inflate, blocks))
    else:
        payloads = [inflate(block) for block in blocks]

    block_offsets = {}
    logical = 0
    for (relative, _, _), payload in zip(blocks, payloads):
        block_offsets[relative] = logical
        logical += len(payload)

    logger.debug("Metadata region [0x%x, 0x%x): %d blocks, %d logical bytes",
                 start, end, len(blocks), logical)
    return MetadataStream(b''.join(payloads), block_offsets)
