"""
SquashFS Image Statistics - Summarize how an image stores its objects.

Regular files are classified by where their content lives:

    block_only      whole data blocks, no fragment
    fragment_tail   data blocks plus a tail packed into a fragment
    fragment_only   small file held entirely in a fragment
    empty           zero-length file
"""
import json
import logging
from collections import Counter
from typing import Any, Dict, List, Sequence

from filesystem import FileEntry, SquashfsImage

logger = logging.getLogger(__name__)

STORAGE_CLASSES = ('block_only', 'fragment_tail', 'fragment_only', 'empty')


def storage_class(entry: FileEntry) -> str:
    if entry.size == 0:
        return 'empty'
    if entry.fragment_index is None:
        return 'block_only'
    return 'fragment_tail' if entry.block_count else 'fragment_only'


def _file_storage(files: List[FileEntry]) -> Dict[str, Dict[str, int]]:
    storage = {name: {'files': 0, 'bytes': 0, 'data_blocks': 0} for name in STORAGE_CLASSES}
    for entry in files:
        bucket = storage[storage_class(entry)]
        bucket['files'] += 1
        bucket['bytes'] += entry.size
        bucket['data_blocks'] += entry.block_count
    return storage


def _symlinks(links: List[FileEntry], paths: set) -> Dict[str, int]:
    absolute = [e for e in links if e.symlink_target.startswith('/')]
    return {
        'count': len(links),
        'absolute': len(absolute),
        'relative': len(links) - len(absolute),
        # Absolute targets missing from the walked tree
        'absolute_unresolved': sum(1 for e in absolute if e.symlink_target not in paths),
    }


def _owners(entries: List[FileEntry], ids: Sequence[int]) -> Dict[str, Any]:
    by_uid = Counter(e.uid for e in entries)
    by_gid = Counter(e.gid for e in entries)
    used = set(by_uid) | set(by_gid)
    return {
        'by_uid': {str(uid): n for uid, n in sorted(by_uid.items())},
        'by_gid': {str(gid): n for gid, n in sorted(by_gid.items())},
        'id_table_size': len(ids),
        'unused_ids': sorted(set(ids) - used),
    }


def calculate_statistics(entries: List[FileEntry], ids: Sequence[int] = ()) -> Dict[str, Any]:
    """
    Summarize a flattened image tree.

    Args:
        entries: FileEntry records from SquashfsImage.extract_files()
        ids: The image's id table, to report ids no object uses

    Returns:
        JSON-ready dict with summary, file_storage, symlinks and owners
    """
    files = [e for e in entries if e.type == 'file']
    links = [e for e in entries if e.type == 'symlink']
    types = Counter(e.type for e in entries)

    summary = {
        'paths': len(entries),
        'distinct_inodes': len({e.inode for e in entries}),
        'files': len(files),
        'directories': types['directory'],
        'symlinks': len(links),
        # Extra names pointing at an already counted file inode
        'hard_links': len(files) - len({e.inode for e in files}),
        'file_bytes': sum(e.size for e in files),
        'data_blocks': sum(e.block_count for e in files),
    }

    return {
        'summary': summary,
        'by_type': dict(types),
        'file_storage': _file_storage(files),
        'symlinks': _symlinks(links, {e.path for e in entries}),
        'owners': _owners(entries, ids),
    }


def image_statistics(image: SquashfsImage) -> Dict[str, Any]:
    stats = calculate_statistics(image.extract_files(), image.ids)
    stats['summary']['block_size'] = image.superblock.block_size
    stats['summary']['compression'] = image.superblock.compression_name
    return stats


def write_statistics_json(stats: Dict[str, Any], output_path: str) -> bool:
    """Write statistics as JSON. A failed write is logged, not raised."""
    try:
        with open(output_path, 'w') as f:
            json.dump(stats, f, indent=2, sort_keys=True)
    except OSError as e:
        logger.warning("Could not write statistics to %s: %s", output_path, e)
        return False
    return True
