"""
SquashFS Filesystem Reader - Decode inodes and directory listings from an image.
"""
import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple

from constants import INODE_TYPE
from directory import decode_directory_listing, decode_directory_table
from errors import CorruptReference
from inodes import decode_inode_table
from metadata import MetadataStream, read_metadata_region
from structures import DirectoryEntry, Inode, Superblock
from superblock import read_superblock
from tables import directory_table_end, read_id_table

logger = logging.getLogger(__name__)


@dataclass
class FileEntry:
    """Represents a file or directory reachable from the SquashFS root."""
    inode: int
    name: str
    path: str
    size: int
    type: str             # 'file', 'directory', 'symlink'
    mode: int
    mode_str: str         # 'drwxr-xr-x'
    uid: int
    gid: int
    mtime: str            # ISO format
    parent_inode: Optional[int] = None
    nlink: Optional[int] = None
    symlink_target: Optional[str] = None
    block_count: int = 0                      # Number of full data blocks
    fragment_index: Optional[int] = None      # Fragment holding the tail


@dataclass(frozen=True)
class SquashfsImage:
    """Everything decoded from one image; immutable once read."""
    superblock: Superblock
    inodes: Tuple[Inode, ...]
    directory_entries: Tuple[DirectoryEntry, ...]
    ids: Tuple[int, ...] = ()
    inode_stream: Optional[MetadataStream] = field(default=None, repr=False)
    directory_stream: Optional[MetadataStream] = field(default=None, repr=False)

    @cached_property
    def _by_number(self) -> Dict[int, Inode]:
        return {inode.inode_number: inode for inode in self.inodes}

    @cached_property
    def _by_position(self) -> Dict[int, Inode]:
        return {inode.position: inode for inode in self.inodes}

    def inode_by_number(self, inode_number: int) -> Inode:
        try:
            return self._by_number[inode_number]
        except KeyError:
            raise CorruptReference(f"No inode numbered {inode_number}") from None

    def inode_at(self, inode_ref: int) -> Inode:
        """Resolve a 48-bit inode reference (block << 16 | offset)."""
        if self.inode_stream is None:
            raise ValueError("Image was built without its inode table stream")
        position = self.inode_stream.logical_offset(inode_ref >> 16, inode_ref & 0xFFFF)
        try:
            return self._by_position[position]
        except KeyError:
            raise CorruptReference(
                f"Inode reference 0x{inode_ref:x} does not start an inode") from None

    @property
    def root_inode(self) -> Inode:
        return self.inode_at(self.superblock.root_inode_ref)

    def list_directory(self, inode: Inode) -> List[DirectoryEntry]:
        """Decode the listing of a directory inode."""
        if inode.type != INODE_TYPE.BASIC_DIR:
            raise ValueError(f"Inode {inode.inode_number} is a {inode.type_name}, not a directory")
        if self.directory_stream is None:
            raise ValueError("Image was built without its directory table stream")
        data = inode.data
        return decode_directory_listing(self.directory_stream, data.block_index,
                                        data.block_offset, data.file_size,
                                        self.superblock.config)

    def _id(self, index: int) -> int:
        if index >= len(self.ids):
            raise CorruptReference(f"Id index {index} outside id table of {len(self.ids)}")
        return self.ids[index]

    def uid_of(self, inode: Inode) -> int:
        return self._id(inode.uid_idx)

    def gid_of(self, inode: Inode) -> int:
        return self._id(inode.gid_idx)

    def walk(self, max_depth: int = 100) -> Iterator[Tuple[str, Inode]]:
        """Yield (path, inode) for every object reachable from the root, depth first."""
        root = self.root_inode
        seen = {root.inode_number}
        stack = [('/', root, 0)]

        while stack:
            path, inode, depth = stack.pop()
            yield path, inode

            if inode.type != INODE_TYPE.BASIC_DIR or depth >= max_depth:
                continue

            children = []
            for entry in self.list_directory(inode):
                child = self.inode_by_number(entry.inode_number)
                if child.type == INODE_TYPE.BASIC_DIR:
                    # Only directories can close a loop; hard-linked files repeat
                    if child.inode_number in seen:
                        continue
                    seen.add(child.inode_number)
                child_path = path.rstrip('/') + '/' + entry.name
                children.append((child_path, child, depth + 1))
            stack.extend(reversed(children))

    def extract_files(self) -> List[FileEntry]:
        """Flatten the tree into FileEntry records."""
        entries = []
        for path, inode in self.walk():
            name = path.rsplit('/', 1)[-1] or '/'
            entry = FileEntry(
                inode=inode.inode_number,
                name=name,
                path=path,
                size=inode.size,
                type=inode.type_name,
                mode=inode.permissions,
                mode_str=inode.mode_str,
                uid=self.uid_of(inode) if self.ids else inode.uid_idx,
                gid=self.gid_of(inode) if self.ids else inode.gid_idx,
                mtime=inode.to_datetime().isoformat(),
            )

            if inode.type == INODE_TYPE.BASIC_DIR:
                entry.parent_inode = inode.data.parent_inode
                entry.nlink = inode.data.link_count
            elif inode.type == INODE_TYPE.BASIC_FILE:
                entry.block_count = len(inode.data.block_sizes)
                if inode.data.has_fragment:
                    entry.fragment_index = inode.data.fragment_index
            elif inode.type == INODE_TYPE.BASIC_SYMLINK:
                entry.nlink = inode.data.link_count
                entry.symlink_target = inode.data.target

            entries.append(entry)
        return entries


def read_image(f: BinaryIO, max_workers: Optional[int] = None) -> SquashfsImage:
    """
    Decode superblock, inode table, directory table and id table.

    Any error aborts the read; nothing partial is returned.

    Args:
        f: Seekable binary stream of the image
        max_workers: Decompress metadata blocks on this many threads
    """
    sb = read_superblock(f)
    config = sb.config

    inode_stream = read_metadata_region(f, sb.inode_table_start, sb.directory_table_start,
                                        config, max_workers)
    directory_stream = read_metadata_region(f, sb.directory_table_start,
                                            directory_table_end(f, sb), config, max_workers)

    inodes = decode_inode_table(inode_stream, sb.inode_count, config)
    entries = decode_directory_table(directory_stream, config)
    ids = read_id_table(f, sb)

    logger.info("Read %d inodes, %d directory entries, %d ids",
                len(inodes), len(entries), len(ids))
    return SquashfsImage(
        superblock=sb,
        inodes=tuple(inodes),
        directory_entries=tuple(entries),
        ids=tuple(ids),
        inode_stream=inode_stream,
        directory_stream=directory_stream,
    )


def open_image(image_path: str, max_workers: Optional[int] = None) -> SquashfsImage:
    """Open an image file, decode it and close it again."""
    with open(image_path, 'rb') as f:
        return read_image(f, max_workers)
