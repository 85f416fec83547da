"""
SquashFS Output Formatters - JSON, CSV, and console output.
"""
import json
import csv
from typing import List
from io import StringIO
from dataclasses import asdict

from filesystem import FileEntry

CSV_FIELDS = ['path', 'name', 'type', 'size', 'mode_str', 'mode',
              'uid', 'gid', 'nlink', 'mtime', 'inode', 'parent_inode',
              'symlink_target', 'block_count', 'fragment_index']


def to_json(entries: List[FileEntry], indent: int = 2) -> str:
    """Convert file entries to JSON string."""
    return json.dumps([asdict(e) for e in entries], indent=indent)


def to_csv(entries: List[FileEntry]) -> str:
    """Convert file entries to CSV string."""
    output = StringIO()
    writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, extrasaction='ignore')
    writer.writeheader()

    for entry in entries:
        writer.writerow(asdict(entry))

    return output.getvalue()


def to_console(entries: List[FileEntry]) -> str:
    """Format file entries for console display."""
    lines = []
    lines.append(f"{'Mode':<12} {'Owner':<8} {'Group':<8} {'Size':>12} {'Modified':<20} Path")
    lines.append('-' * 80)

    for entry in entries:
        mtime_short = entry.mtime[:19] if entry.mtime else ''
        if entry.type == 'directory':
            size_str = '<DIR>'
        else:
            size_str = f"{entry.size:,}"

        path = entry.path
        if entry.symlink_target is not None:
            path = f"{path} -> {entry.symlink_target}"

        lines.append(
            f"{entry.mode_str:<12} {entry.uid:<8} {entry.gid:<8} "
            f"{size_str:>12} {mtime_short:<20} {path}"
        )

    return '\n'.join(lines)


def to_tree(entries: List[FileEntry]) -> str:
    """Format file entries as a tree structure."""
    tree = {}
    for entry in entries:
        if entry.path == '/':
            continue
        parts = entry.path.strip('/').split('/')
        current = tree
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        if entry.type == 'directory':
            current.setdefault(parts[-1], {})
        else:
            current[parts[-1]] = entry

    lines = []

    def print_tree(node, prefix=''):
        items = list(node.items())
        for i, (name, value) in enumerate(items):
            is_last_item = (i == len(items) - 1)
            connector = '└── ' if is_last_item else '├── '

            if isinstance(value, FileEntry):
                type_indicator = 'l' if value.type == 'symlink' else '-'
                lines.append(f"{prefix}{connector}[{type_indicator}] {name}")
            else:
                lines.append(f"{prefix}{connector}[d] {name}/")
                new_prefix = prefix + ('    ' if is_last_item else '│   ')
                print_tree(value, new_prefix)

    lines.append('/')
    print_tree(tree)
    return '\n'.join(lines)
