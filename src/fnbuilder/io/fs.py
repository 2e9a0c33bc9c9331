from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Callable, IO, Iterator, List, NamedTuple, Optional, Union, override
import functools
import logging
import os
import posixpath
import stat as stat_mod

import fsspec
from morefs.memory import MemFS

from ..exceptions import (
    FnbPathExistsError,
    FnbPathNotFoundError,
    FnbNotAFileError,
    FnbNotADirectoryError,
)

logger = logging.getLogger(__name__)

StrPath = Union[str, os.PathLike]


def wrap_io_error(func):
    """Decorator to wrap IO errors into fnbuilder exceptions."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except FileExistsError as e:
            raise FnbPathExistsError(e) from e
        except FileNotFoundError as e:
            raise FnbPathNotFoundError(e) from e
        except IsADirectoryError as e:
            raise FnbNotAFileError(e) from e
        except NotADirectoryError as e:
            raise FnbNotADirectoryError(e) from e

    return wrapper

# --------------------------------------------------------
#
# Abstract Base FileSystem Interface
#
# --------------------------------------------------------

class FileSystem(ABC):
    """fnbuilder File System Abstract Base Class"""

    @abstractmethod
    def read_bytes(self, path: StrPath) -> bytes:
        """Read bytes from a file"""
        pass

    @abstractmethod
    def write_bytes(self, path: StrPath, content: bytes):
        """Write bytes to a file, creating parent directories"""
        pass

    @abstractmethod
    def exists(self, path: StrPath) -> bool:
        """Check if a path exists"""
        pass

    @abstractmethod
    def is_dir(self, path: StrPath) -> bool:
        """Check if a path is a directory"""
        pass

    @abstractmethod
    def is_file(self, path: StrPath) -> bool:
        """Check if a path is a file"""
        pass

    @abstractmethod
    def mkdir(self, path: StrPath, parents: bool = False, exist_ok: bool = False, mode: int = 0o777):
        """Create a directory"""
        pass

    @abstractmethod
    def rmtree(self, path: StrPath):
        """Remove a directory recursively, a missing path is not an error"""
        pass

    @abstractmethod
    def listdir(self, path: StrPath) -> List[str]:
        """List the entry names of a directory"""
        pass

    @abstractmethod
    def stat(self, path: StrPath) -> os.stat_result:
        """Get file status"""
        pass

    # NotImplemented methods
    # !!! Child-FileSystem Override these methods if needed
    def is_symlink(self, path: StrPath) -> bool:
        """Check if a path is a symbolic link, file systems without links have none"""
        return False

    def chmod(self, path: StrPath, mode: int):
        """Change permission bits"""
        return NotImplemented

    def open(self, path: StrPath, mode: str = "rb", **kwargs) -> IO:
        """Open a file"""
        return NotImplemented

# --------------------
#
# Generic FileSystem
#
# --------------------

class GenericFileSystem(FileSystem, ABC):
    """Generic File System base class for fsspec and morefs implementations"""

    def __init__(self, fs_instance, name=None):
        """
        Initialize with a filesystem instance

        Args:
            fs_instance: The underlying filesystem instance (fsspec or morefs)
            name: Optional name for logging purposes
        """
        self.fs = fs_instance
        self.name = name or f"{type(fs_instance).__name__}"

    @abstractmethod
    def path2str(self, path: StrPath) -> str:
        """Convert path to the string form the backend expects"""
        pass

    @override
    @wrap_io_error
    def read_bytes(self, path: StrPath) -> bytes:
        logger.debug(f"[{self.name}] Reading bytes from: {path}")
        with self.fs.open(self.path2str(path), "rb") as f:
            return f.read()

    @override
    @wrap_io_error
    def write_bytes(self, path: StrPath, content: bytes):
        logger.debug(f"[{self.name}] Writing {len(content)} bytes to: {path}")
        parent_path_str = posixpath.dirname(self.path2str(path))
        if parent_path_str:
            self.fs.mkdirs(parent_path_str, exist_ok=True)
        with self.fs.open(self.path2str(path), "wb") as f:
            f.write(content)

    @override
    def exists(self, path: StrPath) -> bool:
        return self.fs.exists(self.path2str(path))

    @override
    def is_dir(self, path: StrPath) -> bool:
        return self.fs.isdir(self.path2str(path))

    @override
    def is_file(self, path: StrPath) -> bool:
        return self.fs.isfile(self.path2str(path))

    @override
    @wrap_io_error
    def mkdir(self, path: StrPath, parents: bool = False, exist_ok: bool = False, mode: int = 0o777):
        if self.exists(path):
            if exist_ok and self.is_dir(path):
                return
            raise FileExistsError(f"Path already exists: {path}")
        if parents:
            self.fs.mkdirs(self.path2str(path), exist_ok=exist_ok)
        else:
            self.fs.mkdir(self.path2str(path), create_parents=False)

    @override
    @wrap_io_error
    def rmtree(self, path: StrPath):
        if self.fs.exists(self.path2str(path)):
            self.fs.rm(self.path2str(path), recursive=True)
        else:
            logger.debug(f"Path {path} does not exist, skipping rmtree.")

    @override
    @wrap_io_error
    def listdir(self, path: StrPath) -> List[str]:
        return sorted(
            posixpath.basename(p.rstrip("/"))
            for p in self.fs.ls(self.path2str(path), detail=False)
        )

    @override
    @wrap_io_error
    def open(self, path: StrPath, mode: str = "rb", **kwargs) -> IO:
        """Open a file"""
        logger.debug(f"[{self.name}] Opening: {path} with mode '{mode}'")

        if "w" in mode or "a" in mode:
            parent_path_str = posixpath.dirname(self.path2str(path))
            if parent_path_str and parent_path_str != "/":
                self.fs.mkdirs(parent_path_str, exist_ok=True)

        return self.fs.open(self.path2str(path), mode=mode, **kwargs)


class FsspecFileSystem(GenericFileSystem):
    """fsspec-based File System"""

    def __init__(self, protocol="file"):
        fs_instance = fsspec.filesystem(protocol)
        super().__init__(fs_instance, name=f"{protocol}FS")
        self.protocol = protocol

    @override
    def path2str(self, path: StrPath) -> str:
        return os.fspath(path)

    @override
    def stat(self, path: StrPath) -> os.stat_result:
        stat_info = self.fs.stat(self.path2str(path))
        mode = stat_info.get(
            "mode", 0o100644 if stat_info.get("type") == "file" else 0o040755
        )
        mtime = stat_info.get("mtime", 0)
        return os.stat_result(
            (mode, 0, 0, 1, 0, 0, stat_info.get("size", 0), mtime, mtime, mtime)
        )


class MorefsFileSystem(GenericFileSystem):
    """morefs-based File System"""

    def __init__(self, fs_type="mem"):
        """
        Initialize morefs filesystem

        Args:
            fs_type: Type of morefs filesystem, only "mem" is supported
        """
        if fs_type == "mem":
            fs_instance = MemFS()
        else:
            raise ValueError(f"Unsupported morefs type: {fs_type}")
        super().__init__(fs_instance, name=f"Morefs{fs_type.title()}FS")
        self.fs_type = fs_type
        # morefs keeps no permission bits, remember the ones we were asked for
        self._modes = {}

    @override
    def path2str(self, path: StrPath) -> str:
        path_str = PurePosixPath(os.fspath(path)).as_posix()
        if not path_str.startswith("/"):
            path_str = "/" + path_str
        return path_str

    @override
    @wrap_io_error
    def stat(self, path: StrPath) -> os.stat_result:
        stat_info = self.fs.stat(self.path2str(path))

        if not isinstance(stat_info, dict):
            raise TypeError(
                f"[{self.name}] Expected a dict from stat, but got {type(stat_info)}"
            )

        epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
        modified = stat_info.get("modified") or epoch
        mtime = modified.timestamp() if isinstance(modified, datetime) else epoch.timestamp()

        is_dir = stat_info.get("type", "file") == "directory"
        perms = self._modes.get(self.path2str(path), 0o755 if is_dir else 0o644)
        mode = (stat_mod.S_IFDIR if is_dir else stat_mod.S_IFREG) | perms

        return os.stat_result(
            (mode, 0, 0, 1, 0, 0, stat_info.get("size", 0) or 0, mtime, mtime, mtime)
        )

    @override
    def chmod(self, path: StrPath, mode: int):
        self._modes[self.path2str(path)] = mode & 0o7777

    @override
    def rmtree(self, path: StrPath):
        prefix = self.path2str(path)
        for key in [k for k in self._modes if k == prefix or k.startswith(prefix.rstrip("/") + "/")]:
            del self._modes[key]
        super().rmtree(path)

# --------------------
#
# Generic Disk FileSystem
#
# --------------------

class DiskFileSystem(FsspecFileSystem):
    """Local disk file system using fsspec"""

    def __init__(self):
        super().__init__(protocol="file")

    @override
    @wrap_io_error
    def stat(self, path: StrPath) -> os.stat_result:
        return os.stat(os.fspath(path))

    @override
    def is_symlink(self, path: StrPath) -> bool:
        return os.path.islink(os.fspath(path))

    @override
    @wrap_io_error
    def chmod(self, path: StrPath, mode: int):
        os.chmod(os.fspath(path), mode)

    @override
    @wrap_io_error
    def mkdir(self, path: StrPath, parents: bool = False, exist_ok: bool = False, mode: int = 0o777):
        if parents:
            os.makedirs(os.fspath(path), mode=mode, exist_ok=exist_ok)
        elif not (exist_ok and os.path.isdir(os.fspath(path))):
            os.mkdir(os.fspath(path), mode)

    @override
    @wrap_io_error
    def open(self, path: StrPath, mode: str = "rb", **kwargs) -> IO:
        return open(os.fspath(path), mode, **kwargs)


# --------------------
#
# Memory (Fake) FileSystem
#
# --------------------

class HyperMemoryFileSystem(MorefsFileSystem):
    """
    High-performance in-memory filesystem
    """
    def __init__(self, fs_type="mem"):
        super().__init__(fs_type=fs_type)


# --------------------
#
# Tree Helpers
#
# --------------------

class TreeEntry(NamedTuple):
    """One entry of a walked directory tree."""
    relative_path: PurePosixPath
    kind: str  # "dir" or "file"
    content: Optional[bytes]
    mode: int


DIR = "dir"
FILE = "file"

TreePredicate = Callable[[PurePosixPath, str], bool]


def walk_tree(fs: FileSystem, root: StrPath, predicate: Optional[TreePredicate] = None) -> Iterator[TreeEntry]:
    """
    Walk the tree below `root`, parents before children, names sorted.

    `predicate(relative_path, kind)` returning False drops the entry and,
    for directories, everything below it. `root` itself is not yielded.
    """
    root_str = os.fspath(root)
    if not fs.is_dir(root_str):
        raise FnbNotADirectoryError(f"Not a directory: {root_str}")
    yield from _walk(fs, root_str, PurePosixPath(), predicate)


def _walk(fs: FileSystem, directory: str, rel: PurePosixPath, predicate: Optional[TreePredicate]) -> Iterator[TreeEntry]:
    for name in fs.listdir(directory):
        full = posixpath.join(directory, name)
        rel_path = rel / name
        kind = DIR if fs.is_dir(full) else FILE
        if kind == DIR and fs.is_symlink(full):
            logger.warning(f"Skipping symlinked directory '{rel_path}' below '{directory}'")
            continue
        if predicate is not None and not predicate(rel_path, kind):
            logger.debug(f"Skipping '{rel_path}' below '{directory}'")
            continue
        mode = stat_mod.S_IMODE(fs.stat(full).st_mode)
        if kind == DIR:
            yield TreeEntry(rel_path, DIR, None, mode)
            yield from _walk(fs, full, rel_path, predicate)
        else:
            yield TreeEntry(rel_path, FILE, fs.read_bytes(full), mode)


def copy_tree(fs: FileSystem, src: StrPath, dst: StrPath, predicate: Optional[TreePredicate] = None):
    """
    Copy a file or directory tree from `src` to `dst`.

    Directories are merged into existing ones, file modes are preserved.
    Symlinked directories below `src` are not followed, symlinked files are
    copied as regular files.
    """
    src_str, dst_str = os.fspath(src), os.fspath(dst)
    if fs.is_file(src_str):
        _copy_file(fs, src_str, dst_str, stat_mod.S_IMODE(fs.stat(src_str).st_mode))
        return
    if not fs.is_dir(src_str):
        raise FnbPathNotFoundError(f"No such file or directory: {src_str}")

    logger.debug(f"Copying tree '{src_str}' to '{dst_str}'")
    _ensure_dir(fs, dst_str, stat_mod.S_IMODE(fs.stat(src_str).st_mode))
    for entry in walk_tree(fs, src_str, predicate):
        target = posixpath.join(dst_str, entry.relative_path.as_posix())
        if entry.kind == DIR:
            _ensure_dir(fs, target, entry.mode)
        else:
            _copy_file(fs, None, target, entry.mode, entry.content)


def _ensure_dir(fs: FileSystem, path: str, mode: int):
    if fs.is_dir(path):
        return
    fs.mkdir(path, parents=True, exist_ok=True, mode=mode)
    fs.chmod(path, mode)


def _copy_file(fs: FileSystem, src: Optional[str], dst: str, mode: int, content: Optional[bytes] = None):
    if content is None:
        content = fs.read_bytes(src)
    fs.write_bytes(dst, content)
    fs.chmod(dst, mode)

# --------------------
#
# Helper Functions
#
# --------------------

def create_fs(use_vfs: bool = False) -> FileSystem:
    """
    Create the filesystem used by a build, optionally fully in memory.
    """
    if use_vfs:
        return HyperMemoryFileSystem()
    return DiskFileSystem()
