# fnbuilder/io/path.py

import logging
import os
from pathlib import PurePath
from typing import Optional, Union

from ..exceptions import ScopeViolation


logger = logging.getLogger(__name__)

StrPath = Union[str, os.PathLike]


def resolve_path(path: StrPath, base: Optional[StrPath] = None) -> PurePath:
    """
    Return the absolute, lexically normalised form of `path`.

    Relative paths are anchored at `base` (the current working directory by
    default). Symlinks are not followed, so the result depends only on the
    path strings involved and not on what is on disk.
    """
    anchor = os.getcwd() if base is None else os.fspath(base)
    joined = os.path.join(anchor, os.fspath(path))
    return PurePath(os.path.abspath(joined))


def path_in_scope(path: StrPath, scope: StrPath = ".", base: Optional[StrPath] = None) -> str:
    """
    Return the absolute form of `path` if it lies strictly inside `scope`.

    Raises:
        ScopeViolation: `path` equals `scope`, or is not one of its descendants.
    """
    scope_abs = resolve_path(scope, base)
    abs_path = resolve_path(path, base)

    if abs_path == scope_abs:
        raise ScopeViolation(
            f"forbidden path appears to equal the entire project: {path} ({abs_path})",
            path=os.fspath(path),
            resolved=str(abs_path),
        )

    if scope_abs in abs_path.parents:
        logger.debug(f"Path '{path}' resolved to '{abs_path}' inside '{scope_abs}'")
        return str(abs_path)

    raise ScopeViolation(
        f"forbidden path appears to be outside of the build context: {path} ({abs_path})",
        path=os.fspath(path),
        resolved=str(abs_path),
    )


def relative_in_scope(path: StrPath, scope: StrPath = ".", base: Optional[StrPath] = None) -> PurePath:
    """
    Like `path_in_scope`, but return the path relative to `scope`.
    """
    abs_path = PurePath(path_in_scope(path, scope, base))
    return abs_path.relative_to(resolve_path(scope, base))
