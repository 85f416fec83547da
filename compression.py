"""
SquashFS Decompressors - Compression id to codec mapping.
"""
import logging
import lzma
import re
import zlib
from typing import Callable, Dict

import lz4.block
import zstandard as zstd

from constants import COMPRESSION, COMPRESSION_NAMES, METADATA_BLOCK_SIZE
from errors import DecompressionError, UnsupportedCompression

# Try to import compression modules (optional dependencies)
try:
    import lzo
    HAS_LZO = True
except ImportError:
    HAS_LZO = False

logger = logging.getLogger(__name__)

Decompressor = Callable[[bytes, int], bytes]


def _bounded(decompressor, data: bytes, max_size: int, require_eof: bool = True) -> bytes:
    # One byte of headroom lets the codec consume its trailer on a full block
    out = decompressor.decompress(data, max_size + 1)
    if len(out) > max_size:
        raise DecompressionError(f"Block inflates past {max_size} bytes")
    if require_eof and not decompressor.eof:
        raise DecompressionError("Compressed block is truncated")
    return out


def _gzip(data: bytes, max_size: int) -> bytes:
    return _bounded(zlib.decompressobj(), data, max_size)


def _xz(data: bytes, max_size: int) -> bytes:
    return _bounded(lzma.LZMADecompressor(format=lzma.FORMAT_XZ), data, max_size)


def _lzma(data: bytes, max_size: int) -> bytes:
    # Legacy lzma images use the "alone" container; some writers emit raw LZMA1
    try:
        return _bounded(lzma.LZMADecompressor(format=lzma.FORMAT_ALONE), data, max_size)
    except lzma.LZMAError:
        filt = {"id": lzma.FILTER_LZMA1, "dict_size": 1 << 23}
        raw = lzma.LZMADecompressor(format=lzma.FORMAT_RAW, filters=[filt])
        return _bounded(raw, data, max_size, require_eof=False)


_LZ4_SIZE_RE = re.compile(r'wrote (\d+) bytes')


def _lz4(data: bytes, max_size: int) -> bytes:
    # Raw LZ4 blocks carry no size prefix. python-lz4 insists on the exact
    # size, and reports how much it wrote when the block is short.
    try:
        return lz4.block.decompress(data, uncompressed_size=max_size)
    except lz4.block.LZ4BlockError as e:
        match = _LZ4_SIZE_RE.search(str(e))
        if match is None or int(match.group(1)) >= max_size:
            raise
        return lz4.block.decompress(data, uncompressed_size=int(match.group(1)))


def _zstd(data: bytes, max_size: int) -> bytes:
    # max_output_size only applies to frames without a recorded content size
    if zstd.frame_content_size(data) > max_size:
        raise DecompressionError(f"Frame declares more than {max_size} bytes")
    dctx = zstd.ZstdDecompressor()
    return dctx.decompress(data, max_output_size=max_size)


def _lzo(data: bytes, max_size: int) -> bytes:
    return lzo.decompress(data, False, max_size)


DECOMPRESSORS: Dict[int, Decompressor] = {
    COMPRESSION.GZIP: _gzip,
    COMPRESSION.LZMA: _lzma,
    COMPRESSION.XZ: _xz,
    COMPRESSION.LZ4: _lz4,
    COMPRESSION.ZSTD: _zstd,
}

if HAS_LZO:
    DECOMPRESSORS[COMPRESSION.LZO] = _lzo


def register_decompressor(compression_id: int, func: Decompressor) -> None:
    """Register (or replace) the codec used for a compression id."""
    DECOMPRESSORS[compression_id] = func


def is_supported(compression_id: int) -> bool:
    return compression_id in DECOMPRESSORS


def compression_name(compression_id: int) -> str:
    return COMPRESSION_NAMES.get(compression_id, 'unknown')


def decompress(compression_id: int, data: bytes,
               max_size: int = METADATA_BLOCK_SIZE) -> bytes:
    """
    Decompress one SquashFS block.

    Args:
        compression_id: Superblock compression id
        data: Compressed block payload
        max_size: Upper bound of the uncompressed size

    Raises:
        UnsupportedCompression: no codec registered for compression_id
        DecompressionError: the codec rejected the payload
    """
    func = DECOMPRESSORS.get(compression_id)
    if func is None:
        raise UnsupportedCompression(compression_id)

    try:
        result = func(data, max_size)
    except Exception as e:
        raise DecompressionError(
            f"{compression_name(compression_id)} decompression failed: {e}") from e

    if len(result) > max_size:
        raise DecompressionError(
            f"{compression_name(compression_id)} block inflated to {len(result)} bytes, "
            f"limit is {max_size}")

    logger.debug("Decompressed %d -> %d bytes (%s)", len(data), len(result),
                 compression_name(compression_id))
    return result
