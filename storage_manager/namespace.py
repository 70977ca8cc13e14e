from __future__ import annotations
"""Turns a flat key listing into a folder/file view of one directory level."""
from typing import Iterable

from .models import FileNode, FolderNode, NamespaceNode, ObjectRecord

SEPARATOR = "/"


def normalize_path(path: str) -> str:
    if path and not path.endswith(SEPARATOR):
        return path + SEPARATOR
    return path


def parent_path(path: str) -> str:
    """Return the folder containing ``path`` ("" for top-level entries)."""
    trimmed = normalize_path(path).rstrip(SEPARATOR)
    if SEPARATOR not in trimmed:
        return ""
    return trimmed.rsplit(SEPARATOR, 1)[0] + SEPARATOR


def build(records: Iterable[ObjectRecord], current_path: str = "") -> list[NamespaceNode]:
    """Group ``records`` into the child folders and files of ``current_path``.

    Folders carry the number and total size of every object below them.
    The result depends only on the set of records, not their order:
    folders come first, then files, each sorted case-insensitively.
    """
    base = normalize_path(current_path)
    tallies: dict[str, list[int]] = {}
    names: dict[str, str] = {}
    files: list[FileNode] = []

    for record in records:
        if not record.key.startswith(base):
            continue
        relative = record.key[len(base):]
        if not relative:
            continue
        segment, separator, _ = relative.partition(SEPARATOR)
        if separator:
            folder_path = f"{base}{segment}{SEPARATOR}"
            tally = tallies.setdefault(folder_path, [0, 0])
            tally[0] += 1
            tally[1] += record.size
            names[folder_path] = segment
        else:
            files.append(FileNode(record))

    folders = [
        FolderNode(name=names[path], path=path, file_count=count, total_size=size)
        for path, (count, size) in tallies.items()
    ]
    folders.sort(key=lambda node: (node.name.lower(), node.name))
    files.sort(key=lambda node: (node.name.lower(), node.name, node.record.size))
    return [*folders, *files]
