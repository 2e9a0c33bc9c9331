import io
import logging
import os
import tarfile
from typing import Optional

from pydantic import ValidationError

from .. import constants
from ..datacls import BuildConfig
from ..io import FileSystem, DiskFileSystem, walk_tree
from ..io.fs import DIR
from ..io.path import StrPath
from ..exceptions import ArchiveError, FnbIOError

logger = logging.getLogger(__name__)


def make_tar(tar_path: StrPath, context: StrPath, build_config: BuildConfig, fs: Optional[FileSystem] = None):
    """
    Write the archive sent to the builder.

    Every entry of `context` is stored below `context/`, directories as bare
    headers, then the serialized `build_config` is appended as the last entry.
    A failed archive is removed so it can never be uploaded.
    """
    fs = fs or DiskFileSystem()
    tar_path, context = os.fspath(tar_path), os.fspath(context)
    logger.info(f"[Archive] Writing '{context}' to '{tar_path}'")
    try:
        with fs.open(tar_path, "wb") as f:
            with tarfile.open(fileobj=f, mode="w", format=tarfile.PAX_FORMAT) as tar:
                count = _add_context(tar, fs, context)
                _add_manifest(tar, build_config)
    except (FnbIOError, OSError, tarfile.TarError) as e:
        _remove_partial(fs, tar_path)
        raise ArchiveError(f"unable to write archive '{tar_path}' from '{context}': {e}") from e
    logger.info(f"[Archive] Wrote {count} context entries and manifest to '{tar_path}'")


def _add_context(tar: tarfile.TarFile, fs: FileSystem, context: str) -> int:
    root = tarfile.TarInfo(constants.CONTEXT_ARCHIVE_PREFIX)
    root.type = tarfile.DIRTYPE
    root.mode = fs.stat(context).st_mode & 0o7777
    tar.addfile(root)

    count = 0
    for entry in walk_tree(fs, context):
        info = tarfile.TarInfo(f"{constants.CONTEXT_ARCHIVE_PREFIX}/{entry.relative_path.as_posix()}")
        info.mode = entry.mode
        if entry.kind == DIR:
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        else:
            info.size = len(entry.content)
            tar.addfile(info, io.BytesIO(entry.content))
        logger.debug(f"[Archive] Added '{info.name}' ({info.size} bytes)")
        count += 1
    return count


def _add_manifest(tar: tarfile.TarFile, build_config: BuildConfig):
    payload = build_config.to_bytes()
    info = tarfile.TarInfo(constants.BUILDER_CONFIG_FILE_NAME)
    info.mode = constants.BUILDER_CONFIG_FILE_MODE
    info.size = len(payload)
    tar.addfile(info, io.BytesIO(payload))
    logger.debug(f"[Archive] Added manifest '{info.name}' for image '{build_config.image}'")


def _remove_partial(fs: FileSystem, tar_path: str):
    try:
        if fs.exists(tar_path):
            fs.rmtree(tar_path)
    except (FnbIOError, OSError) as e:
        logger.warning(f"[Archive] Unable to remove partial archive '{tar_path}': {e}")


def read_manifest(tar_path: StrPath, fs: Optional[FileSystem] = None) -> BuildConfig:
    """Read the build config back out of an archive written by `make_tar`."""
    fs = fs or DiskFileSystem()
    tar_path = os.fspath(tar_path)
    try:
        with fs.open(tar_path, "rb") as f:
            with tarfile.open(fileobj=f, mode="r") as tar:
                member = tar.getmember(constants.BUILDER_CONFIG_FILE_NAME)
                payload = tar.extractfile(member).read()
    except KeyError as e:
        raise ArchiveError(f"archive '{tar_path}' has no {constants.BUILDER_CONFIG_FILE_NAME} entry") from e
    except (FnbIOError, OSError, tarfile.TarError) as e:
        raise ArchiveError(f"unable to read archive '{tar_path}': {e}") from e
    try:
        return BuildConfig.from_bytes(payload)
    except ValidationError as e:
        raise ArchiveError(f"archive '{tar_path}' has an invalid manifest: {e}") from e
