"""
fnbuilder IO Module

- path_in_scope / relative_in_scope: keep caller supplied paths inside an allowed root
- FileSystem: Abstract file system interface
- DiskFileSystem: Local disk file system
- HyperMemoryFileSystem: In-memory file system for tests and dry runs
- walk_tree / copy_tree: filtered recursive walk and copy over any FileSystem

Usage:
    from fnbuilder.io import create_fs, walk_tree

    fs = create_fs()
    for entry in walk_tree(fs, "./handler"):
        print(entry.relative_path, entry.kind)
"""

from .path import path_in_scope, relative_in_scope, resolve_path
from .fs import (
    FileSystem,
    DiskFileSystem,
    HyperMemoryFileSystem,
    TreeEntry,
    walk_tree,
    copy_tree,
    create_fs,
)

__all__ = [
    # Path
    'path_in_scope',
    'relative_in_scope',
    'resolve_path',
    # FileSystem
    'FileSystem',
    'DiskFileSystem',
    'HyperMemoryFileSystem',
    'TreeEntry',
    'walk_tree',
    'copy_tree',
    'create_fs',
]
