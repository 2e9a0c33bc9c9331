import logging
import os
from pathlib import PurePath
from typing import Callable, List, Optional, Sequence

from .. import constants
from ..config import BuildContextConfig
from ..io import FileSystem, DiskFileSystem, copy_tree, path_in_scope, relative_in_scope, resolve_path
from ..io.path import StrPath
from ..exceptions import (
    ContextClearError,
    FnbIOError,
    HandlerCopyError,
    TemplateCopyError,
)

logger = logging.getLogger(__name__)


def is_running_in_ci() -> bool:
    """True when the CI environment variable is set to `true` or `1`."""
    return os.environ.get(constants.CI_ENV) in constants.CI_TRUTHY_VALUES


class ContextAssembler:
    """
    Creates the Docker build context for a function.

    The context is `<build_dir>/<function_name>`: the language template with
    the handler overlayed into `template_handler_overlay`, or the handler
    alone for the `dockerfile` language. Extra paths are copied below the
    handler destination and must stay inside `scope`.
    """

    def __init__(
        self,
        config: Optional[BuildContextConfig] = None,
        fs: Optional[FileSystem] = None,
        is_ci: Callable[[], bool] = is_running_in_ci,
        scope: StrPath = ".",
    ):
        self.config = config or BuildContextConfig()
        self.fs = fs or DiskFileSystem()
        self.is_ci = is_ci
        self.scope = scope

    def assemble(
        self,
        function_name: str,
        handler: StrPath,
        language: str,
        copy_extra_paths: Optional[Sequence[StrPath]] = None,
    ) -> str:
        """
        Build the context from scratch and return its path.

        Nothing is touched on disk until the function name and every extra
        path have passed the scope check.
        """
        build_dir = self.config.build_dir
        context_path = os.path.join(build_dir, function_name)
        path_in_scope(context_path, build_dir)
        extra_paths = self._check_extra_paths(copy_extra_paths or [])

        logger.info(f"[Context] Creating build context for '{function_name}' at '{context_path}'")
        self._clear(context_path)

        use_template = language != constants.DOCKERFILE_LANGUAGE
        handler_dst = context_path
        if use_template:
            handler_dst = os.path.join(context_path, self.config.template_handler_overlay)
        self._make_handler_dst(handler_dst)

        if use_template:
            self._copy_template(language, context_path)

        self._overlay_handler(os.fspath(handler), handler_dst)
        self._copy_extra_paths(extra_paths, handler_dst)

        logger.info(f"[Context] Build context for '{function_name}' ready at '{context_path}'")
        return context_path

    def _check_extra_paths(self, copy_extra_paths: Sequence[StrPath]) -> List[PurePath]:
        return [relative_in_scope(p, self.scope, base=self.scope) for p in copy_extra_paths]

    def _clear(self, context_path: str):
        try:
            self.fs.rmtree(context_path)
        except (FnbIOError, OSError) as e:
            raise ContextClearError(f"unable to clear context folder: {context_path}: {e}") from e

    def _make_handler_dst(self, handler_dst: str):
        permissions = constants.DEFAULT_DIR_PERMISSIONS
        if self.is_ci():
            permissions = constants.CI_DIR_PERMISSIONS
            logger.warning(f"[Context] Running in CI, creating '{handler_dst}' world-writable ({permissions:o})")
        try:
            self.fs.mkdir(handler_dst, parents=True, exist_ok=True, mode=permissions)
            # umask would otherwise narrow the requested mode
            self.fs.chmod(handler_dst, permissions)
        except (FnbIOError, OSError) as e:
            raise HandlerCopyError(f"error creating function handler path {handler_dst}: {e}") from e

    def _copy_template(self, language: str, context_path: str):
        template_src = os.path.join(self.config.template_dir, language)
        if not self.fs.is_dir(template_src):
            raise TemplateCopyError(f"error copying template {language}: '{template_src}' is not a directory")
        logger.debug(f"[Context] Copying template '{template_src}' into '{context_path}'")
        try:
            copy_tree(self.fs, template_src, context_path)
        except (FnbIOError, OSError) as e:
            raise TemplateCopyError(f"error copying template {language}: {e}") from e

    def _overlay_handler(self, handler: str, handler_dst: str):
        try:
            names = self.fs.listdir(handler)
        except (FnbIOError, OSError) as e:
            raise HandlerCopyError(f"error reading function handler {handler}: {e}") from e

        for name in names:
            if name in constants.SKIPPED_HANDLER_ENTRIES:
                logger.debug(f"[Context] Skipping handler entry '{name}'")
                continue
            src = os.path.join(handler, name)
            dst = os.path.join(handler_dst, name)
            if self.fs.is_symlink(src) and self.fs.is_dir(src):
                logger.warning(f"[Context] Skipping symlinked directory '{src}' in handler")
                continue
            try:
                copy_tree(self.fs, src, dst)
            except (FnbIOError, OSError) as e:
                raise HandlerCopyError(f"error copying handler entry {src} to {dst}: {e}") from e

    def _copy_extra_paths(self, extra_paths: List[PurePath], handler_dst: str):
        scope_abs = resolve_path(self.scope, self.scope)
        for rel in extra_paths:
            src = os.fspath(scope_abs / rel)
            dst = os.path.join(handler_dst, os.fspath(rel))
            logger.debug(f"[Context] Copying extra path '{src}' to '{dst}'")
            try:
                copy_tree(self.fs, src, dst)
            except (FnbIOError, OSError) as e:
                raise HandlerCopyError(f"error copying extra paths: {src}: {e}") from e


def create_build_context(
    function_name: str,
    handler: StrPath,
    language: str,
    copy_extra_paths: Optional[Sequence[StrPath]] = None,
    config: Optional[BuildContextConfig] = None,
    fs: Optional[FileSystem] = None,
) -> str:
    """Assemble a build context with the default CI detection and the working directory as scope."""
    return ContextAssembler(config=config, fs=fs).assemble(function_name, handler, language, copy_extra_paths)
